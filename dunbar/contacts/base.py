from abc import ABC, abstractmethod

from .models import Contact


class ContactSource(ABC):
    """Abstract base class for contact providers."""

    name: str
    # Providers that keep a cursor between fetches and report upstream deletions
    supports_incremental_sync: bool = False

    @abstractmethod
    def fetch_all(self) -> list[Contact]:
        """Fetch remote contacts, normalised to the local schema."""
        ...

    @abstractmethod
    def write_one(self, contact: Contact) -> None:
        """Create or update *contact* on the provider."""
        ...

    @abstractmethod
    def delete_one(self, uid: str) -> None:
        """Delete the provider-side contact with *uid*."""
        ...

    def deleted_uids(self) -> list[str]:
        """Uids reported deleted upstream by the last incremental fetch."""
        return []

    def commit_sync_token(self) -> None:
        """Persist the cursor reached by the last fetch.

        Called only after everything that fetch returned has been stored
        locally, so a failed sync is retried from the previous cursor.
        """
