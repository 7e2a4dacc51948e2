"""
JWT Service — credential issuer for tenant context claims.

Access token:  15 minutes (configurable via JWT_ACCESS_EXPIRES)
Refresh token: 7 days     (configurable via JWT_REFRESH_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": <user_id>,
    "tenant_id": <tenant_id>,     # absent when no context is established
    "role_id": <role_id>,         # absent when no context is established
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

The refresh token carries no tenant claims. The context to embed on refresh
lives on the Session row and is re-validated before every re-issue.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from village_access.models import db
from village_access.models.auth import Session
from village_access.services.context_models import SessionContext
from village_access.services.tenant_context_service import CredentialIssuer

logger = logging.getLogger(__name__)


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
DEFAULT_REFRESH_EXPIRES = 604800   # 7 days
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def _get_refresh_expires():
    return current_app.config.get("JWT_REFRESH_EXPIRES", DEFAULT_REFRESH_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(context: SessionContext) -> str:
    """Generate a short-lived access token embedding the context claims."""
    now = datetime.now(timezone.utc)
    payload = {
        # PyJWT requires a string subject
        "sub": str(context.user_id),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    payload.update(context.to_claims())
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def generate_refresh_token(user_id: int) -> tuple[str, str, datetime]:
    """
    Generate a long-lived refresh token.
    Returns: (raw_token, token_hash, expires_at)
    """
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=_get_refresh_expires())
    payload = {
        "sub": str(user_id),
        "type": "refresh",
        "iat": now,
        "exp": expires_at,
        "jti": str(uuid.uuid4()),
    }
    raw_token = jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)
    return raw_token, hash_token(raw_token), expires_at


def generate_token_pair(context: SessionContext) -> dict:
    """Generate both access + refresh tokens for a context."""
    access_token = generate_access_token(context)
    refresh_token, token_hash, expires_at = generate_refresh_token(context.user_id)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_hash": token_hash,
        "expires_at": expires_at,
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

    return payload


def decode_access_token(token: str) -> dict:
    return decode_token(token, expected_type="access")


def decode_refresh_token(token: str) -> dict:
    return decode_token(token, expected_type="refresh")


def claims_to_context(payload: dict) -> SessionContext:
    """Decoded access-token payload → SessionContext."""
    return SessionContext.from_claims(payload)


def hash_token(token: str) -> str:
    """SHA-256 hash of a token (for DB storage — never store raw refresh tokens)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ═══════════════════════════════════════════════════════════════
# Session Management
# All session persistence belongs in this service, not in blueprints.
# ═══════════════════════════════════════════════════════════════

def create_session(
    context: SessionContext,
    token_hash: str,
    ip_address: str | None,
    user_agent: str | None,
    expires_at: datetime,
) -> Session:
    """Persist a new refresh-token session recording the embedded context."""
    session = Session(
        user_id=context.user_id,
        tenant_id=context.tenant_id,
        role_id=context.role_id,
        token_hash=token_hash,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=expires_at,
    )
    db.session.add(session)
    db.session.commit()
    return session


def revoke_session(session: Session) -> None:
    """Mark a session as inactive and commit."""
    session.is_active = False
    db.session.commit()


def revoke_session_by_token(token_hash: str) -> bool:
    """
    Find an active session by token hash and revoke it.

    Returns True if a session was found and revoked, False otherwise.
    """
    session = Session.query.filter_by(token_hash=token_hash, is_active=True).first()
    if session:
        session.is_active = False
        session.tenant_id = None
        session.role_id = None
        db.session.commit()
        return True
    return False


def revoke_all_user_sessions(user_id: int) -> int:
    """Revoke all active sessions for a user (logout-everywhere flow)."""
    count = Session.query.filter_by(user_id=user_id, is_active=True).update(
        {"is_active": False, "tenant_id": None, "role_id": None}
    )
    db.session.commit()
    return count


def rotate_session(
    old_session: Session,
    context: SessionContext,
    new_token_hash: str,
    new_expires_at: datetime,
    ip_address: str | None,
    user_agent: str | None,
) -> Session:
    """
    Invalidate the old session and create a replacement carrying ``context``.

    Both writes commit in one transaction so a refresh token is never reusable.
    """
    old_session.is_active = False
    old_session.last_used_at = datetime.now(timezone.utc)

    new_session = Session(
        user_id=context.user_id,
        tenant_id=context.tenant_id,
        role_id=context.role_id,
        token_hash=new_token_hash,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=new_expires_at,
    )
    db.session.add(new_session)
    db.session.commit()
    return new_session


def get_active_session_by_token(user_id: int, token_hash: str) -> Session | None:
    return Session.query.filter_by(
        user_id=user_id, token_hash=token_hash, is_active=True
    ).first()


def session_context(session: Session) -> SessionContext:
    """Context recorded on a refresh session."""
    return SessionContext(user_id=session.user_id, tenant_id=session.tenant_id, role_id=session.role_id)


def latest_session_context(user_id: int) -> SessionContext | None:
    """Context of the user's most recent live session that carries a tenant, if any."""
    sessions = (
        Session.query.filter(
            Session.user_id == user_id,
            Session.is_active.is_(True),
            Session.tenant_id.isnot(None),
        )
        .order_by(Session.created_at.desc())
        .all()
    )
    for session in sessions:
        if not session.is_expired:
            return session_context(session)
    return None


# ═══════════════════════════════════════════════════════════════
# Credential issuer
# ═══════════════════════════════════════════════════════════════
class JwtCredentialIssuer(CredentialIssuer):
    """Mints a token pair for a context and records it on a refresh session.

    With ``current_session`` the old refresh token is rotated out; without it
    a new session is opened (login).
    """

    def __init__(self, current_session: Session | None = None, ip_address=None, user_agent=None):
        self.current_session = current_session
        self.ip_address = ip_address
        self.user_agent = user_agent

    def issue(self, context: SessionContext) -> dict:
        tokens = generate_token_pair(context)
        if self.current_session is not None:
            self.current_session = rotate_session(
                self.current_session, context,
                tokens["token_hash"], tokens["expires_at"],
                self.ip_address, self.user_agent,
            )
        else:
            self.current_session = create_session(
                context, tokens["token_hash"],
                self.ip_address, self.user_agent,
                tokens["expires_at"],
            )
        logger.debug(
            "Issued credential for user %d (tenant=%s role=%s)",
            context.user_id, context.tenant_id, context.role_id,
        )
        return {
            "access_token": tokens["access_token"],
            "refresh_token": tokens["refresh_token"],
            "token_type": tokens["token_type"],
            "expires_in": tokens["expires_in"],
        }
