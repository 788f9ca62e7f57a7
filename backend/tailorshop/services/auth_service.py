# Overview: Password hashing, credential checks and staff account provisioning.

"""
Authentication Service

Accounts are provisioned by the shop owner through the CLI; there is no
self-registration. The role is chosen once at creation and the API never
lets a user change it.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special char
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from .permission_service import VALID_ROLES


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """
    Hash password using bcrypt. Password is validated for strength first.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(username: str, name: str, password: str, role: str, *, rounds: int = 12) -> User:
    """
    Create a staff account.

    Raises:
        ValueError: username taken or role unknown
        PasswordValidationError: weak password
    """
    username = (username or "").strip().lower()
    if not username:
        raise ValueError("Username is required")

    role = (role or "").strip().lower()
    if role not in VALID_ROLES:
        raise ValueError(f"Role must be one of: {', '.join(sorted(VALID_ROLES))}")

    if db.session.query(User).filter_by(username=username).first():
        raise ValueError(f"User '{username}' already exists")

    user = User(
        username=username,
        name=(name or username).strip(),
        role=role,
        password_hash=hash_password(password, rounds=rounds),
        is_active=True,
        created_at=utcnow(),
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, else None.

    Updates last_login_at on success.
    """
    user = db.session.query(User).filter_by(username=(username or "").strip().lower()).first()
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def list_users_by_role(role: str) -> list[User]:
    return (
        db.session.query(User)
        .filter(User.role == role, User.is_active.is_(True))
        .order_by(User.id)
        .all()
    )
