"""Contact lifecycle: local writes, provider-routed deletes and pull-only sync."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..errors import DunbarError, ProviderError, ProviderWriteError
from .base import ContactSource
from .models import Contact
from .storage import ContactStore

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ContactSyncResult:
    updated: int = 0
    removed: int = 0


class ContactManager:
    def __init__(self, source: ContactSource, store: ContactStore):
        self.source = source
        self.store = store

    def get(self, uid: str) -> Optional[Contact]:
        return self.store.load(uid)

    def list(self) -> list[Contact]:
        return self.store.load_all()

    def write(self, contact: Contact) -> Contact:
        """Persist a local edit, then push it to the provider.

        The two steps are not transactional: when the push fails the local
        file is already written and ProviderWriteError is raised.
        """
        contact = contact.model_copy(deep=True)
        if not contact.uid:
            contact.uid = str(uuid.uuid4())
        contact.last_modified = _now()

        self.store.save(contact)

        try:
            self.source.write_one(contact)
        except ProviderError as e:
            raise ProviderWriteError(
                f"failed to write contact to provider: {e}",
                status_code=e.status_code,
                body=e.body,
            ) from e
        return contact

    def write_batch(self, contacts: list[Contact]) -> list[Contact]:
        # Stops at the first failure; earlier writes stay applied.
        return [self.write(c) for c in contacts]

    def delete(self, uid: str) -> None:
        # Provider contacts go first so a remote record never outlives its local file
        if "-" not in uid:
            try:
                self.source.delete_one(uid)
            except DunbarError as e:
                raise e.wrap("failed to delete contact from provider") from e
        self.store.remove(uid)
        logger.info("Deleted contact %s", uid)

    def sync(self) -> ContactSyncResult:
        """Pull every remote contact into local storage without marking it as a local edit."""
        try:
            remote = self.source.fetch_all()
        except DunbarError as e:
            raise e.wrap("failed to fetch remote contacts") from e

        result = ContactSyncResult()
        for contact in remote:
            try:
                self._write_synced(contact)
            except DunbarError as e:
                raise e.wrap("failed to write local contact") from e
            result.updated += 1

        if self.source.supports_incremental_sync:
            for uid in self.source.deleted_uids():
                if self.store.exists(uid):
                    self.store.remove(uid)
                    result.removed += 1

        try:
            self.source.commit_sync_token()
        except DunbarError as e:
            raise e.wrap("failed to save sync position") from e

        logger.info(
            "Synced %d contacts from %s (%d removed)",
            result.updated, self.source.name, result.removed,
        )
        return result

    def _write_synced(self, contact: Contact) -> None:
        contact = contact.model_copy(deep=True)
        if not contact.uid:
            contact.uid = str(uuid.uuid4())

        existing = self.store.load(contact.uid)
        # Local-only fields survive a re-sync
        contact.last_modified = existing.last_modified if existing else None
        contact.tags = existing.tags if existing else contact.tags
        contact.last_synced = _now()

        self.store.save(contact)
