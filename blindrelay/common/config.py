"""Runtime configuration read from the environment (and an optional .env file)."""

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict


DEFAULT_STORE_PATH = Path.home() / ".blindrelay" / "store.json"


class Settings(BaseModel):
    """
    Everything a component needs to know about its surroundings.

    Built once at start-up and handed to each component's constructor;
    nothing reads the environment after that.
    """

    model_config = ConfigDict(frozen=True)

    relay_url: str = "http://127.0.0.1:8645"
    inference_url: str = "http://localhost:11434"
    model: str = "dolphin-llama3"

    # plain = no encryption, sealed = AES-GCM slot vectors, bfv = TenSEAL
    scheme: Literal["plain", "sealed", "bfv"] = "plain"
    slot_count: int = 2048

    http_timeout: float = 10.0
    inference_timeout: float = 300.0

    status_interval: float = 30.0   # health, version, peer census
    poll_interval: float = 1.0      # message polling, subscribe retries
    reply_delay: float = 1.0        # simulated assistant reply
    display_limit: int = 10

    store_path: Path = DEFAULT_STORE_PATH

    log_level: str = "info"
    log_format: Literal["console", "json"] = "console"


def load_settings(env_file: str = None) -> Settings:
    """
    Read BLINDRELAY_* variables, after loading .env if present.
    Variables already set in the environment win over the file.
    """
    load_dotenv(env_file)

    defaults = Settings()
    return Settings(
        relay_url=os.getenv("BLINDRELAY_RELAY_URL", defaults.relay_url),
        inference_url=os.getenv("BLINDRELAY_INFERENCE_URL", defaults.inference_url),
        model=os.getenv("BLINDRELAY_MODEL", defaults.model),
        scheme=os.getenv("BLINDRELAY_SCHEME", defaults.scheme),
        slot_count=int(os.getenv("BLINDRELAY_SLOT_COUNT", str(defaults.slot_count))),
        http_timeout=float(os.getenv("BLINDRELAY_HTTP_TIMEOUT", str(defaults.http_timeout))),
        inference_timeout=float(
            os.getenv("BLINDRELAY_INFERENCE_TIMEOUT", str(defaults.inference_timeout))
        ),
        status_interval=float(
            os.getenv("BLINDRELAY_STATUS_INTERVAL", str(defaults.status_interval))
        ),
        poll_interval=float(os.getenv("BLINDRELAY_POLL_INTERVAL", str(defaults.poll_interval))),
        reply_delay=float(os.getenv("BLINDRELAY_REPLY_DELAY", str(defaults.reply_delay))),
        store_path=Path(os.getenv("BLINDRELAY_STORE_PATH", str(defaults.store_path))).expanduser(),
        log_level=os.getenv("BLINDRELAY_LOG_LEVEL", defaults.log_level),
        log_format=os.getenv("BLINDRELAY_LOG_FORMAT", defaults.log_format),
    )
