from fastapi import APIRouter, status

from app.platform.config import settings
from app.platform.response import api_response

router = APIRouter()
ping_router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check():
    return api_response(
        data={"status": "ok", "service": settings.APP_NAME},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )


@ping_router.get("/ping", tags=["health"])
async def ping():
    return api_response(data={"pong": True}, message="pong")
