"""Owner-only credential files with encrypted secrets."""

import json
import logging
from pathlib import Path
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from .crypto import decrypt_fields, encrypt_fields, needs_migration, set_strict_permissions
from .errors import ConfigError, PersistError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def load_credentials(
    path: Path, model: type[M], key_file: Path, sensitive: list[str]
) -> Optional[M]:
    """Read *path* into *model*, or return None when the file does not exist."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse credentials file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"failed to read credentials file {path}: {e}") from e

    migrate = needs_migration(data, sensitive)
    try:
        creds = model(**decrypt_fields(data, sensitive, key_file))
    except PydanticValidationError as e:
        raise ConfigError(f"invalid credentials file {path}: {e}") from e

    if migrate:
        logger.info("Migrating %s to encrypted storage", path.name)
        save_credentials(path, creds, key_file, sensitive)
    return creds


def save_credentials(path: Path, creds: BaseModel, key_file: Path, sensitive: list[str]) -> None:
    data = encrypt_fields(creds.model_dump(mode="json"), sensitive, key_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        raise PersistError(f"failed to write credentials file: {e}") from e
    set_strict_permissions(path)
