from fastapi import APIRouter

from app.features.auth.routes.auth import router as auth_router
from app.features.health.routes.health import ping_router
from app.features.projects.routes.projects import router as projects_router
from app.features.referral.routes.referral import router as referral_router
from app.features.waitlist.routes.entries import router as entries_router
from app.features.waitlist.routes.waitlist import router as waitlist_router

api_router = APIRouter()

# Owner-facing routes (Bearer JWT)
api_router.include_router(auth_router)
api_router.include_router(projects_router)
api_router.include_router(entries_router)
api_router.include_router(referral_router)

# Public widget routes (X-API-Key)
api_router.include_router(waitlist_router)

api_router.include_router(ping_router)
