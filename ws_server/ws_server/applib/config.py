from pathlib import Path
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Priority: environment variables > .env file
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # Empty sessions linger this long so a quick reconnect finds its stored view.
    SESSION_GRACE_SECONDS: float = Field(default=30.0, ge=0)
    SESSION_ID_MIN_LENGTH: int = Field(default=4, ge=1)
    SESSION_ID_MAX_LENGTH: int = Field(default=64, ge=1)
    INSTANCE_ID: str = "unknown-instance"


# Load a .env file before creating the Settings instance so pydantic-settings sees it.
try:
    from dotenv import load_dotenv

    current_dir = Path(__file__).resolve().parent
    env_paths = [
        current_dir.parent.parent.parent / ".env",  # repository root
        current_dir.parent.parent / ".env",         # ws_server/.env
        Path(os.getcwd()) / ".env",
    ]

    for env_path in env_paths:
        if env_path.exists():
            load_dotenv(env_path, override=False)
            break
    else:
        load_dotenv(override=False)
except ImportError:
    pass

config = Settings()
