import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ..errors import NotFoundError, PersistError
from .models import Contact

logger = logging.getLogger(__name__)


class ContactStore:
    """One pretty-printed JSON file per contact, named ``<uid>.json``."""

    def __init__(self, people_dir: Path):
        self.people_dir = people_dir
        try:
            self.people_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise PersistError(f"failed to create contacts directory: {e}") from e

    def _path(self, uid: str) -> Path:
        return self.people_dir / f"{uid}.json"

    def exists(self, uid: str) -> bool:
        return self._path(uid).exists()

    def load(self, uid: str) -> Optional[Contact]:
        """Return the contact, or None when no file exists for *uid*."""
        path = self._path(uid)
        if not path.exists():
            return None
        return self._read(path)

    def load_all(self) -> list[Contact]:
        try:
            paths = sorted(p for p in self.people_dir.iterdir() if p.suffix == ".json" and p.is_file())
        except OSError as e:
            raise PersistError(f"failed to read contacts directory: {e}") from e
        return [self._read(p) for p in paths]

    def save(self, contact: Contact) -> None:
        path = self._path(contact.uid)
        data = contact.model_dump(mode="json", exclude_none=True)
        try:
            path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            os.chmod(path, 0o644)
        except OSError as e:
            logger.error("Failed to write contact %s: %s", contact.uid, e)
            raise PersistError(f"failed to write contact file: {e}") from e

    def remove(self, uid: str) -> None:
        path = self._path(uid)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFoundError(f"contact not found: {uid}") from None
        except OSError as e:
            logger.error("Failed to delete contact %s: %s", uid, e)
            raise PersistError(f"failed to delete contact: {e}") from e

    def _read(self, path: Path) -> Contact:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Contact(**data)
        except OSError as e:
            raise PersistError(f"failed to read contact file {path.name}: {e}") from e
        except (json.JSONDecodeError, PydanticValidationError, TypeError) as e:
            logger.error("Failed to parse contact %s", path.name)
            raise PersistError(f"failed to parse contact file {path.name}: {e}") from e
