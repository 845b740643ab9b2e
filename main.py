import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, get_settings
from api import websocket
from api.websocket import ConnectionGateway
from core.room_manager import RoomRegistry
from core.state_machine import RoomStateMachine
from services.question_bank import load_question_bank

logger = logging.getLogger(__name__)


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title="Roulette Quiz API",
        description="Real-time multiplayer quiz with a roulette penalty wheel",
        version="1.0.0",
    )

    # 所有狀態都在記憶體內，process 重啟後消失
    registry = RoomRegistry(
        code_length=settings.room_code_length,
        max_code_attempts=settings.room_code_max_attempts,
    )
    gateway = ConnectionGateway()
    app.state.settings = settings
    app.state.registry = registry
    app.state.gateway = gateway
    app.state.state_machine = RoomStateMachine(
        registry,
        gateway,
        load_question_bank(settings.question_bank_path),
        settings,
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(websocket.router)

    @app.get("/")
    def root():
        return {"message": "Roulette Quiz API", "status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "healthy", "rooms": len(registry)}

    return app


def uvicorn_options(settings: Settings) -> dict:
    """
    uvicorn 啟動參數

    連線存活檢查由 uvicorn 在 WebSocket 協定層處理：每 heartbeat_interval_sec
    送一次 ping frame，heartbeat_timeout_sec 內沒收到 pong 就關閉連線，
    endpoint 收到 websocket.disconnect 後走一般的斷線流程。
    瀏覽器會自動回覆協定層的 ping，client 不需要額外送任何事件。
    """
    return {
        "host": settings.host,
        "port": settings.port,
        "ws_ping_interval": settings.heartbeat_interval_sec,
        "ws_ping_timeout": settings.heartbeat_timeout_sec,
    }


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    logger.info(f"WebSocket ping every {settings.heartbeat_interval_sec}s")
    uvicorn.run(app, **uvicorn_options(settings))
