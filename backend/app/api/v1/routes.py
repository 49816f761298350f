from fastapi import APIRouter

from app.api.v1.endpoints.admin import router as admin_router
from app.api.v1.endpoints.streaming import router as streaming_router

routers = APIRouter()
routers.include_router(streaming_router)
routers.include_router(admin_router)
