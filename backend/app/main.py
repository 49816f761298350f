import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.api.v1.routes import routers as v1_routers
from app.core.container import Container
from app.core.exceptions import AppError

load_dotenv()

logger = logging.getLogger(__name__)


class AppCreator:
    def __init__(self, container: Optional[Container] = None):
        # Init DI container; the DB engine is created on first use
        self.container = container or Container()
        configs = self.container.configs()

        logging.basicConfig(
            level=configs.LOG_LEVEL,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        # Init FastAPI
        self.app = FastAPI(
            title=configs.PROJECT_NAME,
            version="0.1.0",
            openapi_url=f"{configs.API_V1_STR}/openapi.json",
        )
        self.app.state.container = self.container

        # Client address from trusted reverse proxies
        self.app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=configs.FORWARDED_ALLOW_IPS)

        # CORS
        if configs.BACKEND_CORS_ORIGINS:
            self.app.add_middleware(
                CORSMiddleware,
                allow_origins=[str(origin) for origin in configs.BACKEND_CORS_ORIGINS],
                allow_credentials=True,
                allow_methods=["*"],
                allow_headers=["*"],
            )

        @self.app.exception_handler(AppError)
        async def app_error_handler(request: Request, exc: AppError):
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail, "code": exc.code},
                headers=exc.headers,
            )

        @self.app.exception_handler(Exception)
        async def unhandled_error_handler(request: Request, exc: Exception):
            logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
            )

        # Health check
        @self.app.get("/")
        async def root():
            return {"status": "service is working"}

        # API v1 routes
        self.app.include_router(
            v1_routers,
            prefix=configs.API_V1_STR,
        )


def create_app(container: Optional[Container] = None) -> FastAPI:
    return AppCreator(container).app


app_creator = AppCreator()
app = app_creator.app
container = app_creator.container
