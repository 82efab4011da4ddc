from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


@dataclass
class Settings:
    """Runtime settings read from the environment (and an optional .env file)."""

    flow_store: str = "memory"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_key_prefix: str = "flow:"
    edge_match_strategy: str = "exact"
    log_level: str = "INFO"
    flow_seed_path: Optional[str] = None
    preview_ttl: int = 3600

    @property
    def use_redis(self) -> bool:
        return self.flow_store.lower() == "redis"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            flow_store=os.getenv("FLOW_STORE", "memory"),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_db=int(os.getenv("REDIS_DB", "0")),
            redis_key_prefix=os.getenv("REDIS_KEY_PREFIX", "flow:"),
            edge_match_strategy=os.getenv("EDGE_MATCH_STRATEGY", "exact"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            flow_seed_path=os.getenv("FLOW_SEED_PATH") or None,
            preview_ttl=int(os.getenv("PREVIEW_TTL", "3600")),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
