from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class CreateStreamingSessionRequest(BaseModel):
    """Body of POST /streaming/sessions. Ids are checked by the service, not here."""
    order_id: Optional[int] = None
    ticket_id: Optional[int] = None
    event_id: Optional[int] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "order_id": 1042,
                "ticket_id": 17,
                "event_id": 5,
                "user_email": "viewer@example.com",
                "user_name": "Asha",
            }
        }


class NewStreamingSession(BaseModel):
    """Everything the admission engine needs to admit one browser."""
    order_id: Optional[int] = None
    ticket_id: Optional[int] = None
    event_id: Optional[int] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"


class CreateSessionResponse(BaseModel):
    session_token: str
    expires_at: int  # epoch milliseconds, advisory


class StreamingSessionResponse(BaseModel):
    id: int
    app_id: str
    tenant_id: str
    session_token: str
    order_id: int
    ticket_id: int
    event_id: Optional[int] = None
    user_id: str
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: str  # active, ended, expired
    started_at: datetime
    last_activity_at: datetime
    ended_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ValidateSessionRequest(BaseModel):
    session_token: Optional[str] = None


class ValidateSessionResult(BaseModel):
    valid: bool
    session: Optional[StreamingSessionResponse] = None
    error: Optional[str] = None


class HeartbeatResponse(BaseModel):
    success: bool


class HeartbeatAckResponse(BaseModel):
    session_id: int
    last_activity_at: int  # epoch milliseconds


class EndSessionResponse(BaseModel):
    session_id: int
    status: str


class StreamingStats(BaseModel):
    order_id: int
    ticket_id: int
    event_id: Optional[int] = None
    active_viewers: int
    max_concurrent: int
    available_slots: int


class StreamingSessionFilter(BaseModel):
    order_id: Optional[int] = None
    ticket_id: Optional[int] = None
    event_id: Optional[int] = None
    user_id: Optional[str] = None
    status: Optional[str] = None
    active_only: bool = False


class PaginationParams(BaseModel):
    page: Optional[int] = None
    page_size: Optional[int] = None


class StreamingSessionListResponse(BaseModel):
    data: List[StreamingSessionResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class ForceEndResponse(BaseModel):
    order_id: int
    ended_count: int
