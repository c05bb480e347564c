from fastapi import FastAPI
from coachhub.api.v1.api import api_router
from coachhub.core.config import settings
from coachhub.core.logging import setup_logging

logger = setup_logging()

app = FastAPI(
    title=settings.app_name,
    openapi_url=f"{settings.api_v1_str}/openapi.json"
)

app.include_router(api_router, prefix=settings.api_v1_str)
logger.info(f"{settings.app_name} started ({settings.environment})")

@app.get("/")
async def root():
    return {"message": "CoachHub Whitelabel Backend is running", "environment": settings.environment}
