from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class RevokedToken(SQLModel, table=True):
    """
    Access tokens invalidated before their expiry (e.g. on logout).

    Only the SHA-256 digest of the token is stored.
    """

    __tablename__ = "revoked_tokens"

    token_digest: str = Field(
        primary_key=True,
        max_length=64,
    )

    revoked_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
