from abc import ABC, abstractmethod
from typing import Callable, Optional

from .models import Conversation, Message

ProgressFn = Callable[[str], None]


class MessageSource(ABC):
    """Abstract base class for message providers."""

    name: str
    supports_incremental_sync: bool = False

    @abstractmethod
    def sync(
        self, progress: Optional[ProgressFn] = None
    ) -> tuple[list[Conversation], list[Message]]:
        """Fetch the current snapshot of conversations and their messages."""
        ...
