"""
HTTP endpoints

Endpoints:
    GET /                          - Service info / liveness
    GET /api/instagram/{username}  - Recent posts for a username
"""

from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from postsnap.core.exceptions import InvalidUsernameError
from postsnap.core.retrieval import RetrievalService
from postsnap.utils.config import APP_VERSION, SERVICE_NAME
from postsnap.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_service(request: Request) -> RetrievalService:
    return request.app.state.retrieval_service


@router.get("/")
async def service_info() -> Dict[str, Any]:
    """Report that the service is up and what it exposes."""
    return {
        "status": "online",
        "service": SERVICE_NAME,
        "version": APP_VERSION,
        "endpoints": [
            "GET /api/instagram/:username - Buscar posts do Instagram",
        ],
    }


@router.get("/api/instagram/{username}")
async def instagram_posts(username: str, request: Request):
    """
    Fetch the most recent posts of an Instagram profile.

    Always answers 200 with a result once the username is valid; the
    ``source`` field tells which strategy produced it.
    """
    service = get_service(request)
    try:
        result = await service.get_recent_posts(username)
    except InvalidUsernameError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    except Exception as e:
        logger.exception(f"Error fetching posts for @{username}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return result.to_dict()


@router.get("/api/stats")
async def service_stats(request: Request) -> Dict[str, Any]:
    """Cache and strategy counters."""
    return get_service(request).get_stats()
