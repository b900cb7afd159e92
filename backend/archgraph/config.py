import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

# Load .env from project root
load_dotenv()

DB_ENVIRONMENTS = ("dev", "staging", "production")


@dataclass(frozen=True)
class RuntimeSettings:
    """Runtime settings resolved from the environment."""

    db_env: str = "dev"
    database_url: str = ""
    queue_mode: str = ""
    redis_url: str = ""
    queue_name: str = "runtime-default"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        db_env = os.getenv("RUNTIME_DB_ENV", "dev").strip().lower()
        if db_env not in DB_ENVIRONMENTS:
            db_env = "dev"

        origins = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
            if origin.strip()
        ]

        return cls(
            db_env=db_env,
            database_url=os.getenv("DATABASE_URL", "").strip(),
            queue_mode=os.getenv("RUNTIME_QUEUE_MODE", "").strip().lower(),
            redis_url=os.getenv("REDIS_URL", "").strip(),
            queue_name=os.getenv("RUNTIME_QUEUE_NAME", "runtime-default").strip() or "runtime-default",
            cors_origins=origins,
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            host=os.getenv("HOST", "0.0.0.0").strip() or "0.0.0.0",
            port=int(os.getenv("PORT", "8000")),
        )

    @property
    def uses_in_memory_queue(self) -> bool:
        return self.queue_mode == "mock" or not self.redis_url
