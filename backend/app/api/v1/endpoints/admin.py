"""
Admin streaming API endpoint.
Lets admins inspect viewer sessions and cut off an order's viewers,
e.g. after a refund.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends

from app.core.dependencies import get_streaming_service, require_admin
from app.schemas.auth_schema import CurrentUser
from app.schemas.streaming_schema import (
    ForceEndResponse,
    PaginationParams,
    StreamingSessionFilter,
    StreamingSessionListResponse,
    StreamingSessionResponse,
)
from app.services.streaming_service import StreamingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/streaming", tags=["Admin"])


@router.get("/sessions", response_model=StreamingSessionListResponse)
async def list_streaming_sessions(
    order_id: Optional[int] = None,
    ticket_id: Optional[int] = None,
    event_id: Optional[int] = None,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    active_only: bool = False,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    admin: CurrentUser = Depends(require_admin),
    service: StreamingService = Depends(get_streaming_service),
):
    return await service.list_sessions(
        admin.scope,
        StreamingSessionFilter(
            order_id=order_id,
            ticket_id=ticket_id,
            event_id=event_id,
            user_id=user_id,
            status=status,
            active_only=active_only,
        ),
        PaginationParams(page=page, page_size=page_size),
    )


@router.get("/orders/{order_id}/sessions", response_model=List[StreamingSessionResponse])
async def get_order_sessions(
    order_id: int,
    admin: CurrentUser = Depends(require_admin),
    service: StreamingService = Depends(get_streaming_service),
):
    return await service.get_order_active_sessions(admin.scope, order_id)


@router.post("/orders/{order_id}/force-end", response_model=ForceEndResponse)
async def force_end_order_sessions(
    order_id: int,
    admin: CurrentUser = Depends(require_admin),
    service: StreamingService = Depends(get_streaming_service),
):
    ended_count = await service.force_end_order_sessions(admin.scope, order_id)
    logger.info(f"[ADMIN] User {admin.id} force ended {ended_count} sessions for order {order_id}")
    return ForceEndResponse(order_id=order_id, ended_count=ended_count)
