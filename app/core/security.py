import hashlib
from typing import Any

from beanie import PydanticObjectId
from bson.errors import InvalidId
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.core.config import get_settings
from app.core.exceptions import BadRequestError

SESSION_MAX_AGE = 7 * 24 * 3600  # 7 days


def get_session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="trueservices-session",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_session_cookie(payload: dict[str, Any]) -> str:
    """Sign a session payload. Called by the auth provider integration."""
    serializer = get_session_serializer()
    return serializer.dumps(payload)


def load_session_cookie(cookie_value: str) -> dict[str, Any] | None:
    serializer = get_session_serializer()
    try:
        return serializer.loads(cookie_value, max_age=SESSION_MAX_AGE)
    except (BadSignature, SignatureExpired):
        return None


def parse_object_id(value: Any, code: str = "INVALID_ID", message: str = "Valid ID is required") -> PydanticObjectId:
    """Parse a path/body id or raise BadRequestError with the given code."""
    if not value:
        raise BadRequestError(message, code=code)
    try:
        return PydanticObjectId(str(value))
    except (InvalidId, TypeError, ValueError):
        raise BadRequestError(message, code=code) from None
