import asyncio
import json
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from typing import List
from supabase import AsyncClient
from coachhub.api.deps import get_client, get_tenant_profile, load_profile, verify_token
from coachhub.core.errors import InvalidRecipient, NoCoachAvailable, ReportFailed
from coachhub.schemas.message import ChatMessage, MessageCreate, MarkReadResponse
from coachhub.schemas.profile import Profile
from coachhub.services.chat_feed import ChatFeed
from coachhub.services.moderation import ModerationGuard

logger = logging.getLogger(__name__)

router = APIRouter()

async def _open_feed(client: AsyncClient, profile: Profile, live: bool = False) -> ChatFeed:
    feed = ChatFeed(client, ModerationGuard(client))
    await feed.open(profile.id, profile.tenant_id, live=live)
    return feed

@router.get("/", response_model=List[ChatMessage])
async def list_messages(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    profile: Profile = Depends(get_tenant_profile),
    client: AsyncClient = Depends(get_client),
):
    """
    Conversation history for the authenticated user, oldest first,
    without messages from blocked users.
    """
    feed = await _open_feed(client, profile)
    return feed.messages[offset:offset + limit]

@router.post("/", response_model=ChatMessage, status_code=status.HTTP_201_CREATED)
async def send_message(
    message_in: MessageCreate,
    profile: Profile = Depends(get_tenant_profile),
    client: AsyncClient = Depends(get_client),
):
    """
    Send a direct message. Clients are routed to their coach automatically.
    If no coach can be found the draft is echoed back so it can be retried.
    """
    feed = await _open_feed(client, profile)
    try:
        message = await feed.send(profile, message_in.content, message_in.receiver_id)
    except NoCoachAvailable as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "no_coach_available", "message": str(e), "draft": feed.draft},
        )
    except InvalidRecipient as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "invalid_recipient", "message": str(e)},
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if not message:
        raise HTTPException(status_code=500, detail="Failed to send message.")
    return message

@router.post("/read", response_model=MarkReadResponse)
async def mark_messages_read(
    profile: Profile = Depends(get_tenant_profile),
    client: AsyncClient = Depends(get_client),
):
    feed = await _open_feed(client, profile)
    updated = await feed.mark_read()
    return MarkReadResponse(updated=updated)

def _snapshot(feed: ChatFeed) -> dict:
    return {
        "type": "messages",
        "status": feed.status.value,
        "unread": feed.unread_count,
        "messages": [m.model_dump(mode="json") for m in feed.messages],
    }

@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    token: str = Query(...),
    client: AsyncClient = Depends(get_client),
):
    """
    Live conversation. The server pushes a full snapshot on every change.
    Client frames:
      {"type": "resume"}                       app came back to foreground
      {"type": "send", "content": ..., "receiver_id": ...}
      {"type": "read"}
      {"type": "block", "user_id": ...}
      {"type": "report", "reported_id": ..., "message_id": ..., "reason": ...}
    """
    try:
        user = await verify_token(client, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    profile = await load_profile(client, user.id)
    if not profile or not profile.tenant_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    changed = asyncio.Event()
    feed = ChatFeed(client, ModerationGuard(client))
    feed.add_listener(lambda _: changed.set())

    async def push():
        while True:
            await changed.wait()
            changed.clear()
            await websocket.send_json(_snapshot(feed))

    pusher = None
    try:
        await feed.open(profile.id, profile.tenant_id)
        changed.set()
        pusher = asyncio.create_task(push())

        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                frame = None
            if not isinstance(frame, dict):
                await websocket.send_json({"type": "error", "code": "bad_frame", "message": "Frames must be JSON objects"})
                continue

            kind = frame.get("type")
            try:
                if kind == "resume":
                    await feed.on_foreground()
                elif kind == "send":
                    await feed.send(profile, frame.get("content", ""), frame.get("receiver_id"))
                elif kind == "read":
                    await feed.mark_read()
                elif kind == "block":
                    await feed.block(frame["user_id"])
                elif kind == "report":
                    await feed.report(frame["reported_id"], frame["message_id"], frame.get("reason", ""))
                    await websocket.send_json({"type": "reported", "message_id": frame["message_id"]})
                else:
                    await websocket.send_json({"type": "error", "code": "unknown_frame", "message": f"Unknown frame type {kind!r}"})
            except NoCoachAvailable as e:
                await websocket.send_json({"type": "error", "code": "no_coach_available", "message": str(e), "draft": feed.draft})
            except InvalidRecipient as e:
                await websocket.send_json({"type": "error", "code": "invalid_recipient", "message": str(e), "draft": feed.draft})
            except ReportFailed as e:
                await websocket.send_json({"type": "error", "code": "report_failed", "message": str(e), "retryable": True})
            except (KeyError, ValueError) as e:
                await websocket.send_json({"type": "error", "code": "bad_frame", "message": str(e)})
            except Exception as e:
                logger.error(f"Chat socket action {kind!r} failed for {profile.id}: {e}")
                await websocket.send_json({"type": "error", "code": f"{kind}_failed", "message": str(e), "draft": feed.draft})
    except WebSocketDisconnect:
        logger.info(f"Chat socket closed for {profile.id}")
    finally:
        if pusher:
            pusher.cancel()
            # Collect the pusher so a send on a closed socket is not left unretrieved
            results = await asyncio.gather(pusher, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.debug(f"Chat socket pusher for {profile.id} stopped: {result}")
        await feed.close()
