"""Integration routes - connect and disconnect provider accounts."""

from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from studysync.api.deps import get_current_user_id, get_db, get_http_client
from studysync.core.config import settings
from studysync.core.errors import NotConfiguredError, TokenExchangeError
from studysync.core.logging import get_logger
from studysync.ingestion.canvas_feed_source import validate_feed_url
from studysync.ingestion.canvas_source import CanvasSource
from studysync.models.profile import UserProfile
from studysync.schemas.api import CalendarFeedIn, CanvasCredentialsIn, IntegrationStatus
from studysync.services.token_service import TokenManager

router = APIRouter(prefix="/integrations", tags=["integrations"])
log = get_logger("integration_routes")


def _settings_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.APP_URL.rstrip('/')}/settings?{urlencode(params)}", status_code=302)


def _get_or_create_profile(db: Session, user_id: str) -> UserProfile:
    profile = db.get(UserProfile, user_id)
    if profile is None:
        profile = UserProfile(id=user_id)
        db.add(profile)
    return profile


# -----------------------------------------------------------------------------
# Google (Classroom + Gmail)
# -----------------------------------------------------------------------------


@router.get("/google")
def connect_google(user_id: str = Depends(get_current_user_id)):
    """Redirect to the Google consent screen (offline access, signed state)."""
    try:
        url = TokenManager.build_authorization_url(user_id)
    except NotConfiguredError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return RedirectResponse(url, status_code=307)


@router.get("/google/callback")
async def google_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    OAuth redirect target.

    Always answers with a redirect back to the settings page carrying
    ``google=connected`` or ``google=error&message=<reason>``.
    """
    if error:
        return _settings_redirect(google="error", message=error)
    if not code or not state:
        return _settings_redirect(google="error", message="missing_params")

    state_user_id = TokenManager.verify_state(state)
    if not state_user_id:
        return _settings_redirect(google="error", message="invalid_state")
    if x_user_id and x_user_id != state_user_id:
        return _settings_redirect(google="error", message="user_mismatch")

    manager = TokenManager(db, http_client)
    try:
        tokens = await manager.exchange_code(code, settings.google_redirect_uri)
        await manager.save_credential(state_user_id, tokens)
    except (TokenExchangeError, NotConfiguredError) as exc:
        log.error(f"Google callback failed for user={state_user_id}: {exc}")
        return _settings_redirect(google="error", message="token_exchange_failed")

    log.info(f"Google account connected for user={state_user_id}")
    return _settings_redirect(google="connected")


@router.post("/google/disconnect")
async def disconnect_google(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Revoke the grant at Google (best effort) and forget the stored tokens."""
    await TokenManager(db, http_client).revoke(user_id)
    return {"success": True}


@router.get("/google/status", response_model=IntegrationStatus)
def google_status(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    profile = db.get(UserProfile, user_id)
    connected = bool(profile and profile.google_credential.is_connected)
    return IntegrationStatus(provider="google", connected=connected)


# -----------------------------------------------------------------------------
# Canvas
# -----------------------------------------------------------------------------


@router.put("/canvas", response_model=IntegrationStatus)
async def save_canvas_credentials(
    payload: CanvasCredentialsIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Validate a Canvas access token against the instance, then store it."""
    base_url = payload.base_url.strip().rstrip("/")
    source = CanvasSource(base_url, payload.token.strip(), http_client=http_client)
    if not await source.validate_token():
        raise HTTPException(status_code=400, detail="Canvas rejected the access token for this URL")

    profile = _get_or_create_profile(db, user_id)
    profile.canvas_base_url = base_url
    profile.canvas_token = payload.token.strip()
    db.commit()
    log.info(f"Saved Canvas credentials for user={user_id}")
    return IntegrationStatus(provider="canvas", connected=True)


@router.put("/canvas-calendar", response_model=IntegrationStatus)
def save_calendar_feed(
    payload: CalendarFeedIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    url = payload.url.strip()
    if not validate_feed_url(url):
        raise HTTPException(status_code=400, detail="Calendar feed URL must be an https calendar (.ics) link")

    profile = _get_or_create_profile(db, user_id)
    profile.canvas_calendar_url = url
    db.commit()
    return IntegrationStatus(provider="canvas_calendar", connected=True)
