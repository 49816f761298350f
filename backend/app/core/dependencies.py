from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from jose import JWTError
from pydantic import ValidationError as PayloadValidationError

from app.core.container import Container
from app.core.db import get_db
from app.core.exceptions import AuthError, PermissionDeniedError
from app.schemas.auth_schema import CurrentUser, TenantScope, TokenPayload
from app.services.streaming_service import StreamingService
from app.utils.jwt import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_container(request: Request) -> Container:
    return request.app.state.container


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    container: Container = Depends(get_container),
) -> CurrentUser:
    """
    Resolve the viewer from the bearer JWT. Tokens are issued by the auth
    service and carry the tenant scope alongside the user id.
    """
    if not credentials:
        raise PermissionDeniedError("Not authenticated", headers={"WWW-Authenticate": "Bearer"})

    configs = container.configs()

    try:
        payload = TokenPayload(
            **decode_token(
                credentials.credentials,
                secret_key=configs.SECRET_KEY,
                algorithm=configs.JWT_ALGORITHM,
            )
        )
    except JWTError as e:
        logger.warning(f"[AUTH] JWT decode error: {str(e)}")
        raise AuthError("Invalid token")
    except PayloadValidationError:
        logger.warning("[AUTH] Token missing required claims")
        raise AuthError("Invalid token: missing claims")

    return CurrentUser(
        id=payload.sub,
        email=payload.email,
        name=payload.name,
        role=payload.role,
        scope=TenantScope(app_id=payload.app_id, tenant_id=payload.tenant_id),
    )


def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current_user.is_admin:
        logger.warning(f"[AUTH] User {current_user.id} denied admin access")
        raise PermissionDeniedError("Admin access required")
    return current_user


def get_streaming_service(
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
) -> StreamingService:
    return StreamingService(
        db=db,
        policy=container.streaming_policy(),
        clock=container.clock(),
    )
