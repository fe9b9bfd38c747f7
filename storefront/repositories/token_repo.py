import hashlib

from sqlmodel import Session

from storefront.models.revoked_token import RevokedToken


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class RevokedTokenRepository:
    """Lookup/insert for the revoked-token list."""

    def is_revoked(self, session: Session, token: str) -> bool:
        return session.get(RevokedToken, token_digest(token)) is not None

    def revoke(self, session: Session, token: str) -> RevokedToken:
        row = session.get(RevokedToken, token_digest(token))
        if row is None:
            row = RevokedToken(token_digest=token_digest(token))
            session.add(row)
            session.commit()
            session.refresh(row)
        return row
