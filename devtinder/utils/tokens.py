import json
import uuid

from cryptography.fernet import Fernet, InvalidToken

from devtinder.config import get_settings
from devtinder.errors import AuthenticationError


def get_fernet() -> Fernet:
    settings = get_settings()
    return Fernet(settings.SECRET_KEY.encode())


def issue_access_token(user_id: uuid.UUID) -> str:
    """Encrypt ``{"sub": user_id}`` into a Fernet bearer token."""
    f = get_fernet()
    payload = json.dumps({"sub": str(user_id)}).encode("utf-8")
    return f.encrypt(payload).decode("ascii")


def verify_access_token(token: str) -> uuid.UUID:
    """Decrypt a bearer token and return the user id it carries.

    Tokens older than ``ACCESS_TOKEN_TTL_SECONDS`` are rejected.
    """
    if not token:
        raise AuthenticationError()
    f = get_fernet()
    try:
        decrypted = f.decrypt(token.encode("ascii"), ttl=get_settings().ACCESS_TOKEN_TTL_SECONDS)
        return uuid.UUID(json.loads(decrypted.decode("utf-8"))["sub"])
    except (InvalidToken, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise AuthenticationError("Invalid or expired token") from exc
