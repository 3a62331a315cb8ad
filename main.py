from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

import models  # noqa: F401  註冊所有 table 到 Base.metadata
from database import Base, SessionLocal, engine, get_settings
from api import debate_rooms, users, websocket
from core.delivery import RoomChannel
from core.lifecycle_sweeper import LifecycleSweeper
from core.room_orchestrator import RoomOrchestrator
from services.directory import InMemoryDirectory
from services.notification_service import LoggingNotifier

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


def create_app(
    session_factory=SessionLocal,
    bind=engine,
    directory=None,
    notifier=None,
    sweeper_enabled=None,
) -> FastAPI:
    """
    建立 FastAPI app

    測試時可以注入自己的 session_factory / directory / notifier
    """
    if sweeper_enabled is None:
        sweeper_enabled = settings.sweeper_enabled

    channel = RoomChannel()
    sweeper = LifecycleSweeper(session_factory=session_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: 建立資料庫表、啟動封存排程
        Base.metadata.create_all(bind=bind)
        if sweeper_enabled:
            await sweeper.start()
        yield
        # Shutdown
        if sweeper_enabled:
            await sweeper.stop()

    app = FastAPI(
        title="Debate Rooms API",
        description="Backend API for one-on-one structured debates",
        version="1.0.0",
        lifespan=lifespan
    )

    app.state.channel = channel
    app.state.sweeper = sweeper
    app.state.directory = directory if directory is not None else InMemoryDirectory()
    app.state.orchestrator = RoomOrchestrator(
        directory=app.state.directory,
        channel=channel,
        notifier=notifier if notifier is not None else LoggingNotifier(),
        session_factory=session_factory,
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(debate_rooms.router)
    app.include_router(users.router)
    app.include_router(websocket.router)

    @app.get("/")
    def root():
        return {"message": "Debate Rooms API", "status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
