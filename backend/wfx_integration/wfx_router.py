"""
WorkflowMax Integration - API Router

REST endpoints for connecting the service to WorkflowMax:
- GET /api/wfx/status - Connection status
- GET /api/wfx/authorize - OAuth authorisation URL
- GET /api/wfx/callback - OAuth redirect target; exchanges the code for tokens
- POST /api/wfx/disconnect - Forget stored tokens
- GET /api/wfx/cache - Response cache statistics
- DELETE /api/wfx/cache - Clear the response cache
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from .client import WFXApiClient, WFXApiError, WFXAuthenticationError, get_wfx_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wfx", tags=["WorkflowMax"])


def get_client() -> WFXApiClient:
    return get_wfx_client()


@router.get("/status", summary="WorkflowMax connection status")
async def get_status(client: WFXApiClient = Depends(get_client)):
    return {
        "configured": bool(client.client_id and client.client_secret),
        "authenticated": client.is_authenticated(),
        "account_id": client.account_id or None,
        "token_expiry": client.token_expiry,
    }


@router.get("/authorize", summary="Start the OAuth flow")
async def authorize(
    callback_url: Optional[str] = Query(None, description="Override the configured redirect URI"),
    client: WFXApiClient = Depends(get_client)
):
    if not client.client_id:
        raise HTTPException(status_code=503, detail="WorkflowMax client id is not configured")
    return {"authorization_url": client.get_authorization_url(callback_url)}


@router.get("/callback", summary="OAuth redirect target")
async def oauth_callback(
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    client: WFXApiClient = Depends(get_client)
):
    """
    Exchange the authorisation code returned by WorkflowMax for tokens.

    Tokens are persisted so later runs start authenticated.
    """
    if error:
        raise HTTPException(status_code=400, detail=f"Authorisation denied: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorisation code")

    try:
        await client.exchange_code_for_token(code)
    except WFXAuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except WFXApiError as e:
        logger.error(f"WorkflowMax token exchange failed: {e}")
        raise HTTPException(status_code=502, detail="WorkflowMax token exchange failed")

    logger.info("WorkflowMax authorisation completed")
    return {"authenticated": True, "token_expiry": client.token_expiry}


@router.post("/disconnect", summary="Forget stored tokens")
async def disconnect(client: WFXApiClient = Depends(get_client)):
    client.clear_tokens()
    client.clear_cache()
    return {"authenticated": False}


@router.get("/cache", summary="Response cache statistics")
async def cache_stats(client: WFXApiClient = Depends(get_client)):
    return client.get_cache_stats()


@router.delete("/cache", summary="Clear the response cache")
async def clear_cache(client: WFXApiClient = Depends(get_client)):
    client.clear_cache()
    return {"cleared": True}
