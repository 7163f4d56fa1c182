"""Runtime configuration from environment variables (and .env).

    DATA_DIR             user documents + catalog overrides   (./data)
    PRESETS_DIR          built-in achievement catalog         (./presets)
    STORY_PATH           authored story file                  (PRESETS_DIR/story.json)
    HOST / PORT          HTTP bind address                    (0.0.0.0 / 13013)
    LOG_LEVEL            root log level                       (INFO)
    PERSISTENCE_TIMEOUT  seconds per engine call, 0 = off     (5)
    TRANSPORT_URL        message relay base URL, empty = off  ("")
    TRANSPORT_API_KEY    bearer token for the relay           ("")
    TRANSPORT_TIMEOUT    relay HTTP timeout in seconds        (10)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = ROOT / "data"
DEFAULT_PRESETS_DIR = ROOT / "presets"

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

load_dotenv(ROOT / ".env")


class Config(BaseModel):
    data_dir: Path = DEFAULT_DATA_DIR
    presets_dir: Path = DEFAULT_PRESETS_DIR
    story_path: Path | None = None
    host: str = "0.0.0.0"
    port: int = 13013
    log_level: str = "INFO"
    persistence_timeout: float = Field(default=5.0, ge=0)
    transport_url: str = ""
    transport_api_key: str = ""
    transport_timeout: float = Field(default=10.0, gt=0)

    @property
    def story_file(self) -> Path:
        return self.story_path or self.presets_dir / "story.json"


def load_config(env: Mapping[str, str] | None = None) -> Config:
    """Build a Config from env (defaults to os.environ); unset keys keep defaults."""
    env = os.environ if env is None else env
    keys = {
        "data_dir": "DATA_DIR",
        "presets_dir": "PRESETS_DIR",
        "story_path": "STORY_PATH",
        "host": "HOST",
        "port": "PORT",
        "log_level": "LOG_LEVEL",
        "persistence_timeout": "PERSISTENCE_TIMEOUT",
        "transport_url": "TRANSPORT_URL",
        "transport_api_key": "TRANSPORT_API_KEY",
        "transport_timeout": "TRANSPORT_TIMEOUT",
    }
    values = {field: env[var] for field, var in keys.items() if env.get(var, "") != ""}
    return Config.model_validate(values)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
