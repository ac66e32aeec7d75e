from fastapi import APIRouter

from sleepchat.api.auth import router as auth_router
from sleepchat.api.friends import router as friends_router
from sleepchat.api.messages import router as messages_router
from sleepchat.api.settings import router as settings_router
from sleepchat.api.sleep import router as sleep_router
from sleepchat.api.whitelist import router as whitelist_router

api_router = APIRouter(prefix="/api")

api_router.include_router(auth_router)
api_router.include_router(sleep_router)
api_router.include_router(whitelist_router)
api_router.include_router(settings_router)
api_router.include_router(friends_router)
api_router.include_router(messages_router)
