from fastapi import APIRouter

from modcache.routers.endorsements import router as endorsements_router
from modcache.routers.games import router as games_router
from modcache.routers.mods import router as mods_router
from modcache.routers.nexus import router as nexus_router
from modcache.routers.tracked import router as tracked_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(nexus_router)
api_router.include_router(games_router)
api_router.include_router(mods_router)
api_router.include_router(tracked_router)
api_router.include_router(endorsements_router)
