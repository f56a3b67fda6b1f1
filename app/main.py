from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination

from app.config import get_settings
from app.exceptions import ChatEngineError
from app.infra.logging_config import LoggingConfig, get_logger
from app.realtime.gateway import RealtimeGateway
from app.routers import conversations_router, external_router, system

logger = get_logger("main")


async def chat_engine_error_handler(request: Request, exc: ChatEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def create_app(testing: bool = False) -> FastAPI:
    settings = get_settings()
    LoggingConfig()
    gateway = RealtimeGateway(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s (%s)", settings.app_name, settings.environment)
        yield
        await gateway.shutdown()

    app = FastAPI(
        title="Chat Engine",
        lifespan=lifespan,
        debug=testing,
    )
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.cors_origins == "*" else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ChatEngineError, chat_engine_error_handler)

    app.include_router(system.router)
    app.include_router(conversations_router.router)
    app.include_router(external_router.router)
    add_pagination(app)

    return app


def create_asgi(app: FastAPI) -> socketio.ASGIApp:
    """Socket.IO in front of FastAPI; non Socket.IO traffic falls through to ``app``."""
    return socketio.ASGIApp(
        app.state.gateway.sio,
        other_asgi_app=app,
        socketio_path=get_settings().socketio_path,
    )


app = create_app()
asgi = create_asgi(app)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:asgi",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
