"""
User Service — account creation and password authentication.

Accounts are global: one login reaches every community the user is a member
of. Which community a session operates under is decided afterwards by the
tenant context service.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from village_access.models import db
from village_access.models.auth import User
from village_access.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserServiceError(Exception):
    """Custom exception for user service errors."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _normalize_email(email: str) -> str:
    try:
        # Login lowercases the whole address, so store it that way
        return validate_email(email, check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise UserServiceError(f"Invalid email: {e}")


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(
    email: str,
    password: str = None,
    full_name: str = None,
    status: str = "active",
) -> User:
    """Create a new platform account (no community access yet)."""
    email = _normalize_email(email)

    if password is not None and len(password) < MIN_PASSWORD_LENGTH:
        raise UserServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if get_user_by_email(email):
        raise UserServiceError(f"User with email {email} already exists", 409)

    user = User(
        email=email,
        password_hash=hash_password(password) if password else None,
        full_name=full_name,
        status=status,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User %d created", user.id, extra={"user_id": user.id})
    return user


def get_user_by_email(email: str) -> User | None:
    return User.query.filter_by(email=email.strip().lower()).first()


def get_user_by_id(user_id: int) -> User | None:
    """Find a user by ID."""
    return db.session.get(User, user_id)


# ═══════════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════════
def authenticate_user(email: str, password: str) -> User:
    """Authenticate a user with email + password. Returns User on success."""
    user = get_user_by_email(email)
    if not user:
        raise UserServiceError("Invalid email or password", 401)

    if user.status != "active":
        raise UserServiceError(f"Account is {user.status}", 403)

    if not verify_password(password, user.password_hash):
        logger.warning("Failed login for user %d", user.id, extra={"user_id": user.id})
        raise UserServiceError("Invalid email or password", 401)

    update_last_login(user.id)
    return user


def update_last_login(user_id: int) -> None:
    user = db.session.get(User, user_id)
    if user:
        user.last_login_at = datetime.now(timezone.utc)
        db.session.commit()
