"""Google OAuth token lifecycle: exchange, refresh, persist and revoke.

State per user is derived from the profile columns:

    Unconnected -> Connected(valid) -> Connected(expiring) -> Connected(valid)
                                     \\-> Unconnected (refresh rejected / revoked)

A rejected refresh is terminal for the run: the credential is cleared and the
caller is told to reconnect. Refreshes are single-flight per user because a
refresh can invalidate the previous access token at the provider.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode
from weakref import WeakValueDictionary

import httpx
from pydantic import ValidationError
from sqlalchemy.orm import Session

from studysync.core.config import settings
from studysync.core.errors import NotConfiguredError, ReconnectRequiredError, TokenExchangeError
from studysync.core.logging import get_logger
from studysync.ingestion.http import client_session
from studysync.models.profile import UserProfile
from studysync.schemas.normalized import OAuthCredential, TokenResponse

log = get_logger("token_service")

GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/classroom.courses.readonly",
    "https://www.googleapis.com/auth/classroom.coursework.me.readonly",
    "https://www.googleapis.com/auth/gmail.readonly",
]

# One lock per user, shared by every TokenManager in the process; dropped once no refresh holds it
_refresh_locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()


def _refresh_lock(user_id: str) -> asyncio.Lock:
    lock = _refresh_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _refresh_locks[user_id] = lock
    return lock


class TokenManager:
    """Owns the Google credential stored on a user's profile."""

    def __init__(self, db: Session, http_client: Optional[httpx.AsyncClient] = None):
        self.db = db
        self.http_client = http_client
        self.refresh_margin = timedelta(seconds=settings.TOKEN_REFRESH_MARGIN_SECONDS)

    # -------------------------------------------------------------------------
    # Access tokens
    # -------------------------------------------------------------------------
    async def get_valid_access_token(self, user_id: str) -> Optional[str]:
        """Return a usable access token, or None when the user is not connected."""
        token, _ = await self._resolve(user_id)
        return token

    async def acquire_access_token(self, user_id: str) -> str:
        """Like :meth:`get_valid_access_token` but raises a typed error instead of None."""
        token, refresh_rejected = await self._resolve(user_id)
        if token:
            return token
        if refresh_rejected:
            raise ReconnectRequiredError("Google access was revoked or expired. Please reconnect your Google account.")
        raise NotConfiguredError("Google account not connected. Connect it in settings to sync Classroom and Gmail.")

    async def _resolve(self, user_id: str) -> Tuple[Optional[str], bool]:
        profile = self.db.get(UserProfile, user_id)
        if profile is None or not profile.google_credential.is_connected:
            return None, False

        credential = profile.google_credential
        if not credential.expires_within(self.refresh_margin):
            return credential.access_token, False

        async with _refresh_lock(user_id):
            # Another run may have refreshed while we waited
            self.db.refresh(profile)
            credential = profile.google_credential
            if not credential.is_connected:
                return None, False
            if not credential.expires_within(self.refresh_margin):
                return credential.access_token, False

            try:
                tokens = await self._refresh(credential.refresh_token)
            except TokenExchangeError as exc:
                log.warning(f"Google token refresh rejected for user={user_id}: {exc}")
                profile.clear_google_credential()
                self.db.commit()
                return None, True

            refreshed = self._store(profile, tokens)
            log.info(f"Refreshed Google access token for user={user_id}")
            return refreshed.access_token, False

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------
    async def save_credential(self, user_id: str, tokens: TokenResponse) -> OAuthCredential:
        profile = self.db.get(UserProfile, user_id)
        if profile is None:
            profile = UserProfile(id=user_id)
            self.db.add(profile)
        return self._store(profile, tokens)

    def _store(self, profile: UserProfile, tokens: TokenResponse) -> OAuthCredential:
        current = profile.google_credential
        credential = OAuthCredential(
            access_token=tokens.access_token,
            # Providers do not always rotate the refresh token
            refresh_token=tokens.refresh_token or current.refresh_token,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=tokens.expires_in),
        )
        profile.store_google_credential(credential)
        self.db.commit()
        return credential

    async def revoke(self, user_id: str) -> None:
        """Best-effort provider revocation, then clear the stored credential."""
        profile = self.db.get(UserProfile, user_id)
        if profile is None:
            return

        credential = profile.google_credential
        token = credential.refresh_token or credential.access_token
        if token:
            try:
                async with client_session(self.http_client) as client:
                    resp = await client.post(
                        settings.GOOGLE_REVOKE_URL,
                        data={"token": token},
                        headers={"Content-Type": "application/x-www-form-urlencoded"},
                    )
                if resp.is_error:
                    log.warning(f"Google revocation returned {resp.status_code} for user={user_id}")
            except httpx.HTTPError as exc:
                log.warning(f"Google revocation request failed for user={user_id}: {exc}")

        profile.clear_google_credential()
        self.db.commit()
        log.info(f"Cleared Google credential for user={user_id}")

    # -------------------------------------------------------------------------
    # Token endpoint
    # -------------------------------------------------------------------------
    async def exchange_code(self, code: str, redirect_uri: str) -> TokenResponse:
        return await self._token_request(
            {
                "code": code,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            }
        )

    async def _refresh(self, refresh_token: str) -> TokenResponse:
        return await self._token_request({"refresh_token": refresh_token, "grant_type": "refresh_token"})

    async def _token_request(self, form: Dict[str, str]) -> TokenResponse:
        if not settings.google_configured:
            raise NotConfiguredError("Google integration is not configured on this server.")

        data = {
            **form,
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
        }
        try:
            async with client_session(self.http_client) as client:
                resp = await client.post(
                    settings.GOOGLE_TOKEN_URL,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise TokenExchangeError(f"Token request failed: {exc}") from exc

        if resp.is_error:
            raise TokenExchangeError(
                f"Token endpoint returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            return TokenResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise TokenExchangeError(f"Token endpoint returned an invalid payload: {exc}") from exc

    # -------------------------------------------------------------------------
    # Consent flow
    # -------------------------------------------------------------------------
    @staticmethod
    def sign_state(user_id: str) -> str:
        digest = hmac.new((settings.GOOGLE_CLIENT_SECRET or "").encode(), user_id.encode(), hashlib.sha256)
        return f"{user_id}.{digest.hexdigest()}"

    @classmethod
    def verify_state(cls, state: str) -> Optional[str]:
        """Return the user id carried by a signed ``state``, or None if tampered."""
        user_id, sep, _ = state.rpartition(".")
        if not sep or not user_id:
            return None
        if not hmac.compare_digest(cls.sign_state(user_id), state):
            return None
        return user_id

    @classmethod
    def build_authorization_url(cls, user_id: str, redirect_uri: Optional[str] = None) -> str:
        if not settings.google_configured:
            raise NotConfiguredError("Google integration is not configured on this server.")
        params = {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "redirect_uri": redirect_uri or settings.google_redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": cls.sign_state(user_id),
        }
        return f"{settings.GOOGLE_AUTH_URL}?{urlencode(params)}"
