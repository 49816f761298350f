from typing import Optional

from pydantic import BaseModel


class TenantScope(BaseModel):
    """App + tenant pair every query is scoped by."""
    app_id: str
    tenant_id: str

    class Config:
        frozen = True


class TokenPayload(BaseModel):
    sub: str
    app_id: str
    tenant_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    scope: TenantScope

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
