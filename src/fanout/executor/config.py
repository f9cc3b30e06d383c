"""
Process-wide configuration: logging for worker processes, and tunables read from `FANOUT_*` envvars
"""

import multiprocessing
import os

from pydantic import BaseModel, Field

env_prefix = "FANOUT_"

logging_config = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(name)s %(process)d %(message)s",
        },
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        "fanout": {
            "level": os.environ.get(f"{env_prefix}LOG_LEVEL", "INFO"),
            "handlers": ["default"],
            "propagate": False,
        },
    },
}


def _default_start_method() -> str:
    # NOTE forkserver lets us import the bootstrap module just once, in the server, and then
    # fork cheaply per task. Spawn is the portable fallback
    if "forkserver" in multiprocessing.get_all_start_methods():
        return "forkserver"
    return "spawn"


class Settings(BaseModel):
    large_payload_threshold: int = Field(
        100_000,
        description="characters of the textual rendering above which payload encoding goes to a background thread",
    )
    start_method: str = Field(
        default_factory=_default_start_method,
        description="multiprocessing start method for worker processes",
    )
    poll_interval_ms: int = Field(
        100,
        description="granularity at which a waiting task notices termination, crash or deadline of its worker",
    )
    terminate_grace_sec: float = Field(
        1.0,
        description="how long to wait for a killed worker process to be reaped",
    )
    encoding_workers: int = Field(
        2,
        description="threads of the pool used for encoding large payloads",
    )

    @classmethod
    def from_env(cls) -> "Settings":
        values = {
            name: value
            for name in cls.model_fields
            if (value := os.environ.get(f"{env_prefix}{name.upper()}")) is not None
        }
        return cls(**values)


settings = Settings.from_env()
