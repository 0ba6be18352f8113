from fastapi import APIRouter, HTTPException

from modcache.config import settings
from modcache.nexus.client import NexusClient
from modcache.schemas.nexus import NexusKeyResult

router = APIRouter(prefix="/nexus", tags=["nexus"])


@router.post("/validate", response_model=NexusKeyResult)
async def validate_key() -> NexusKeyResult:
    if not settings.nexus_api_key:
        raise HTTPException(400, "Nexus API key not configured")
    async with NexusClient(settings.nexus_api_key) as client:
        return await client.validate_key()
