import time

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import AuthenticationError


def require_token_secret() -> str:
    secret = get_settings().token_secret
    if not secret:
        raise RuntimeError("GASTOS_TOKEN_SECRET must be set")
    return secret


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(require_token_secret(), salt="access-token")


def hash_password(password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    secret = password.encode("utf-8")[:72]
    return bcrypt.hashpw(secret, bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    secret = password.encode("utf-8")[:72]
    return bcrypt.checkpw(secret, hashed_password.encode("utf-8"))


def generate_access_token(user_id: int) -> str:
    serializer = _serializer()
    return serializer.dumps({"sub": user_id, "iat": int(time.time())})


def read_access_token(token: str) -> int:
    """Return the user id carried by ``token``."""
    settings = get_settings()
    serializer = _serializer()
    try:
        data = serializer.loads(token, max_age=settings.token_ttl_hours * 3600)
    except SignatureExpired as exc:
        raise AuthenticationError("Session expired") from exc
    except BadSignature as exc:
        raise AuthenticationError("Invalid session token") from exc

    user_id = data.get("sub") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        raise AuthenticationError("Invalid session token")
    return user_id
