"""
Viewer Streaming Session API Endpoints

POST /api/v1/streaming/sessions                  - Open a viewing session for a purchased order
POST /api/v1/streaming/sessions/validate         - Validate a session token (body)
GET  /api/v1/streaming/validate                  - Validate a session token (query)
GET  /api/v1/streaming/sessions/{token}          - Get session details
POST /api/v1/streaming/sessions/{token}/heartbeat - Keep a session alive
POST /api/v1/streaming/heartbeat                 - Keep a session alive (query token)
POST /api/v1/streaming/sessions/{token}/end      - Close a session
POST /api/v1/streaming/end                       - Close a session (query token)
GET  /api/v1/streaming/stats                     - Viewer slots for an order link
GET  /api/v1/streaming/my-sessions               - Caller's active sessions

The query-token variants exist for the player, which only knows the token.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response, status

from app.core.dependencies import get_current_user, get_streaming_service
from app.core.exceptions import ValidationError
from app.schemas.auth_schema import CurrentUser
from app.schemas.streaming_schema import (
    CreateSessionResponse,
    CreateStreamingSessionRequest,
    EndSessionResponse,
    HeartbeatAckResponse,
    HeartbeatResponse,
    NewStreamingSession,
    StreamingSessionResponse,
    StreamingStats,
    ValidateSessionRequest,
    ValidateSessionResult,
)
from app.services.streaming_service import StreamingService, extract_client_info, to_epoch_ms

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/streaming", tags=["Streaming"])


def _client_ip(request: Request) -> Optional[str]:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return None


def _require_token(session_token: Optional[str]) -> str:
    if not session_token:
        raise ValidationError("Session token is required")
    return session_token


@router.post("/sessions", status_code=status.HTTP_201_CREATED, response_model=CreateSessionResponse)
async def create_streaming_session(
    payload: CreateStreamingSessionRequest,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    if not payload.order_id:
        raise ValidationError("Order ID is required")
    if not payload.ticket_id:
        raise ValidationError("Ticket ID is required")

    ip_address, user_agent = extract_client_info(
        _client_ip(request), request.headers.get("user-agent")
    )

    return await service.create_session(
        current_user.scope,
        NewStreamingSession(
            order_id=payload.order_id,
            ticket_id=payload.ticket_id,
            event_id=payload.event_id,
            user_id=current_user.id,
            user_email=payload.user_email or current_user.email or "",
            user_name=payload.user_name or current_user.name,
            ip_address=ip_address,
            user_agent=user_agent,
        ),
    )


@router.post("/sessions/validate", response_model=ValidateSessionResult)
async def validate_session(
    payload: ValidateSessionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    return await service.validate_session(_require_token(payload.session_token))


@router.get("/validate", response_model=ValidateSessionResult)
async def validate_session_query(
    session_token: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    return await service.validate_session(_require_token(session_token))


@router.get("/stats", response_model=StreamingStats)
async def get_streaming_stats(
    order_id: Optional[int] = None,
    ticket_id: Optional[int] = None,
    event_id: Optional[int] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    if order_id is None or ticket_id is None:
        raise ValidationError("order_id and ticket_id are required")

    return await service.get_streaming_stats(current_user.scope, order_id, ticket_id, event_id)


@router.get("/my-sessions", response_model=List[StreamingSessionResponse])
async def get_my_sessions(
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    return await service.get_user_active_sessions(current_user.scope, current_user.id)


@router.get("/sessions/{token}", response_model=StreamingSessionResponse)
async def get_session(
    token: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    return await service.get_session_by_token(token)


@router.post("/sessions/{token}/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    token: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    success = await service.heartbeat(token)
    return HeartbeatResponse(success=success)


@router.post("/heartbeat", response_model=HeartbeatAckResponse)
async def heartbeat_query(
    session_token: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    token = _require_token(session_token)
    await service.heartbeat(token)
    session = await service.get_session_by_token(token)
    return HeartbeatAckResponse(
        session_id=session.id,
        last_activity_at=to_epoch_ms(session.last_activity_at),
    )


@router.post("/sessions/{token}/end", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    token: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    await service.end_session(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/end", response_model=EndSessionResponse)
async def end_session_query(
    session_token: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: StreamingService = Depends(get_streaming_service),
):
    session = await service.end_session(_require_token(session_token))
    return EndSessionResponse(session_id=session.id, status=session.status)
