from fastapi import APIRouter, Depends, HTTPException, status
from supabase import AsyncClient
from coachhub.api.deps import get_client, get_current_profile
from coachhub.core.errors import ReportFailed
from coachhub.schemas.moderation import BlockCreate, BlockListResponse, ReportCreate
from coachhub.schemas.profile import Profile
from coachhub.services.moderation import ModerationGuard

router = APIRouter()

@router.get("/blocks", response_model=BlockListResponse)
async def list_blocks(
    profile: Profile = Depends(get_current_profile),
    client: AsyncClient = Depends(get_client),
):
    blocked = await ModerationGuard(client).load_blocks(profile.id)
    return BlockListResponse(blocked_ids=sorted(blocked))

@router.post("/blocks", response_model=BlockListResponse)
async def block_user(
    block_in: BlockCreate,
    profile: Profile = Depends(get_current_profile),
    client: AsyncClient = Depends(get_client),
):
    """
    Block another user. Blocking someone already blocked is not an error.
    Their messages disappear from your history immediately.
    """
    if block_in.blocked_id == profile.id:
        raise HTTPException(status_code=400, detail="You cannot block yourself.")
    blocked = await ModerationGuard(client).block(profile.id, block_in.blocked_id)
    return BlockListResponse(blocked_ids=sorted(blocked))

@router.post("/reports", status_code=status.HTTP_201_CREATED)
async def report_message(
    report_in: ReportCreate,
    profile: Profile = Depends(get_current_profile),
    client: AsyncClient = Depends(get_client),
):
    """
    Report a message for moderator review.
    """
    try:
        await ModerationGuard(client).report(profile.id, report_in.reported_id, report_in.message_id, report_in.reason)
    except ReportFailed as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"code": "report_failed", "message": str(e), "retryable": True},
        )
    return {"message": "Report submitted successfully"}
