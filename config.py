from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    # 遊戲參數
    initial_points: int = 7
    correct_answer_points: int = 1
    flat_penalty_points: int = 1

    # 房間代碼
    room_code_length: int = 6
    room_code_max_attempts: int = 10

    # 連線存活檢查（秒），由 uvicorn 在 WebSocket 協定層送出 ping
    heartbeat_interval_sec: float = 30.0
    heartbeat_timeout_sec: float = 30.0

    # 題目廣播時是否附帶正確答案旗標（與原行為相容，預設開啟）
    reveal_answer_correctness: bool = True
    question_bank_path: Optional[str] = None

    cors_allow_origins: List[str] = ["*"]
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        env_prefix = "ROULETTE_"


@lru_cache()
def get_settings():
    return Settings()
