from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from app.core.config import configs


def create_access_token(
    subject: str,
    app_id: str,
    tenant_id: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
    role: Optional[str] = None,
    expires_minutes: Optional[int] = None,
    secret_key: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or configs.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload: Dict[str, Any] = {
        "sub": subject,
        "app_id": app_id,
        "tenant_id": tenant_id,
        "exp": expire,
    }
    if email:
        payload["email"] = email
    if name:
        payload["name"] = name
    if role:
        payload["role"] = role

    return jwt.encode(
        payload,
        secret_key or configs.SECRET_KEY,
        algorithm=algorithm or configs.JWT_ALGORITHM,
    )


def decode_token(
    token: str,
    secret_key: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> Dict[str, Any]:
    """Raises jose.JWTError on bad signature, expiry or malformed input."""
    return jwt.decode(
        token,
        secret_key or configs.SECRET_KEY,
        algorithms=[algorithm or configs.JWT_ALGORITHM],
    )
