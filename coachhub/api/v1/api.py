from fastapi import APIRouter
from coachhub.api.v1.endpoints import tenants, messages, moderation

api_router = APIRouter()
api_router.include_router(tenants.router, prefix="/tenants", tags=["tenants"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(moderation.router, prefix="/moderation", tags=["moderation"])
