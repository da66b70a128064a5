import time

import jwt
import pytest

from lms_notification_agent.config import IdentityConfig
from lms_notification_agent.identity import decode_token, resolve_identity

SECRET = "test-secret"


def _token(secret=SECRET, **claims):
    payload = {"user_id": 12, "user_role": "student", "user_name": "Siti", "exp": int(time.time()) + 3600}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def test_identity_from_token_claims():
    identity = resolve_identity(_token(), IdentityConfig())

    assert identity.user_id == "12"
    assert identity.role == "student"
    assert identity.name == "Siti"


def test_configured_values_override_claims():
    identity = resolve_identity("not-a-jwt", IdentityConfig(user_id="99", role="teacher"))

    assert identity.user_id == "99"
    assert identity.role == "teacher"


def test_signature_checked_when_secret_configured():
    token = _token(secret="other-secret")

    assert decode_token(token)["user_id"] == 12
    with pytest.raises(ValueError, match="Invalid token"):
        decode_token(token, SECRET)


def test_expired_token_is_rejected():
    with pytest.raises(ValueError, match="Token expired"):
        decode_token(_token(exp=int(time.time()) - 60), SECRET)


def test_unsupported_role_is_rejected():
    with pytest.raises(ValueError):
        resolve_identity(_token(user_role="parent"), IdentityConfig())
