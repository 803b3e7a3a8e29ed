import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ValidationError as PydanticValidationError

from .errors import ConfigError, PersistError

logger = logging.getLogger(__name__)

DEFAULT_DIR = Path.home() / ".config" / "dunbar"


class AppSettings(BaseModel):
    provider: str = ""  # contacts provider, empty until `contacts init`
    messages_provider: str = "beeper"


class DunbarConfig(BaseModel):
    """Resolved storage location, passed to every component that touches disk."""

    dunbar_dir: Path

    @classmethod
    def from_env(cls) -> "DunbarConfig":
        env_dir = os.environ.get("DUNBAR_DIR", "")
        return cls(dunbar_dir=Path(env_dir) if env_dir else DEFAULT_DIR)

    @property
    def contacts_dir(self) -> Path:
        return self.dunbar_dir / "contacts"

    @property
    def people_dir(self) -> Path:
        return self.contacts_dir / "people"

    @property
    def google_creds_path(self) -> Path:
        return self.contacts_dir / "google_creds.json"

    @property
    def google_sync_token_path(self) -> Path:
        return self.contacts_dir / "google_sync_token.txt"

    @property
    def beeper_creds_path(self) -> Path:
        return self.dunbar_dir / "beeper_credentials.json"

    @property
    def config_path(self) -> Path:
        return self.dunbar_dir / "config.json"

    @property
    def messages_db_path(self) -> Path:
        return self.dunbar_dir / "messages.db"

    @property
    def log_path(self) -> Path:
        return self.dunbar_dir / "dunbar.log"

    @property
    def key_path(self) -> Path:
        return self.dunbar_dir / ".key"

    def ensure_dir(self) -> None:
        try:
            self.dunbar_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise PersistError(f"failed to create dunbar directory: {e}") from e


def load_settings(cfg: DunbarConfig) -> AppSettings:
    cfg.ensure_dir()
    if not cfg.config_path.exists():
        return AppSettings()
    try:
        data = json.loads(cfg.config_path.read_text(encoding="utf-8"))
        return AppSettings(**data)
    except (json.JSONDecodeError, PydanticValidationError, TypeError) as e:
        raise ConfigError(f"failed to parse config {cfg.config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"failed to read config: {e}") from e


def save_settings(cfg: DunbarConfig, settings: AppSettings) -> None:
    cfg.ensure_dir()
    try:
        cfg.config_path.write_text(
            json.dumps(settings.model_dump(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        os.chmod(cfg.config_path, 0o644)
    except OSError as e:
        raise PersistError(f"failed to write config: {e}") from e
    logger.info("Saved settings to %s", cfg.config_path)
