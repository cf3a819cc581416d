"""
Email platform information router.

Endpoints:
  GET /api/platforms                — capability table of all known clients
  GET /api/platforms/{client_id}    — descriptive details for one client
"""

from fastapi import APIRouter, HTTPException

from app.models.email_client import EMAIL_CLIENTS, get_client_config
from app.services.platform_details import get_platform_details

router = APIRouter()


@router.get("")
async def list_platforms() -> list[dict]:
    return [client.model_dump(mode="json") for client in EMAIL_CLIENTS]


@router.get("/{client_id}")
async def get_platform(client_id: str) -> dict:
    if get_client_config(client_id) is None:
        raise HTTPException(
            status_code=404,
            detail={"detail": f"Unknown email client '{client_id}'", "error_code": "client_not_found"},
        )
    return get_platform_details(client_id).model_dump()
