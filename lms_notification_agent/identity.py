"""Resolve the polling user from the backend's auth token."""

import logging
from dataclasses import dataclass
from typing import Optional

import jwt

from .config import ROLES, IdentityConfig

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


@dataclass
class Identity:
    """Who the agent is polling for."""
    user_id: str
    role: str
    name: str = ""


def decode_token(token: str, secret: Optional[str] = None) -> dict:
    """
    Decode the backend JWT.

    The backend verifies the token on every request, so the signature is only
    checked here when a secret is configured.

    Raises:
        ValueError: If the token is expired or malformed.
    """
    try:
        if secret:
            return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.ExpiredSignatureError:
        raise ValueError("Token expired")
    except jwt.InvalidTokenError:
        raise ValueError("Invalid token")


def resolve_identity(token: str, config: IdentityConfig) -> Identity:
    """
    Work out user id and role, preferring explicit configuration over claims.

    Raises:
        ValueError: If no user id or a valid role can be determined.
    """
    claims = {}
    if not (config.user_id and config.role):
        claims = decode_token(token, config.jwt_secret)

    user_id = config.user_id or claims.get("user_id") or claims.get("sub")
    role = config.role or claims.get("user_role")
    name = claims.get("user_name") or ""

    if not user_id:
        raise ValueError("Could not determine user id (set USER_ID or use a token with a user_id claim)")
    if role not in ROLES:
        raise ValueError(f"Unsupported role '{role}'; expected one of {', '.join(ROLES)}")

    logger.info(f"Polling notifications for {name or user_id} ({role})")
    return Identity(user_id=str(user_id), role=role, name=name)
