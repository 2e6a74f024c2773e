"""Engine settings, read from RECALL_* environment variables with local defaults."""
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseSettings):
    """Settings with environment variable support"""

    model_config = SettingsConfigDict(env_prefix="RECALL_")

    data_dir: str = "data"
    experiment_enabled: bool = True
    default_algorithm: str = "fsrs"
    ledger_capacity: int = 1000
    port: int = 8000

    # CORS, given as a JSON list in RECALL_CORS_ORIGINS
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]
