"""User profile holding per-source credentials."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from studysync.models.base import Base
from studysync.schemas.normalized import OAuthCredential


class UserProfile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")

    # Canvas: personal access token + instance URL, or the public calendar feed
    canvas_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    canvas_base_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    canvas_calendar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Google OAuth (Classroom + Gmail); always written and cleared together
    google_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    google_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    google_token_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def google_credential(self) -> OAuthCredential:
        return OAuthCredential(
            access_token=self.google_access_token,
            refresh_token=self.google_refresh_token,
            expires_at=self.google_token_expiry,
        )

    def store_google_credential(self, credential: OAuthCredential) -> None:
        self.google_access_token = credential.access_token
        self.google_refresh_token = credential.refresh_token
        self.google_token_expiry = credential.expires_at

    def clear_google_credential(self) -> None:
        self.store_google_credential(OAuthCredential.disconnected())

    @property
    def canvas_api_configured(self) -> bool:
        return bool(self.canvas_token and self.canvas_base_url)
