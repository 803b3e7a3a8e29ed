from typing import Optional

import httpx

from .config import DunbarConfig, load_settings
from .contacts.base import ContactSource
from .contacts.google_provider import GoogleContactsProvider
from .contacts.manager import ContactManager
from .contacts.storage import ContactStore
from .errors import ConfigError
from .messages.base import MessageSource
from .messages.beeper_provider import BeeperProvider
from .messages.db import MessageStore
from .messages.manager import MessageManager


CONTACT_SOURCES = [GoogleContactsProvider]
MESSAGE_SOURCES = [BeeperProvider]

_CONTACT_SOURCE_MAP = {cls.name: cls for cls in CONTACT_SOURCES}
_MESSAGE_SOURCE_MAP = {cls.name: cls for cls in MESSAGE_SOURCES}


def contact_source_names() -> list[str]:
    return [cls.name for cls in CONTACT_SOURCES]


def message_source_names() -> list[str]:
    return [cls.name for cls in MESSAGE_SOURCES]


def build_contact_source(
    cfg: DunbarConfig, name: str, client: Optional[httpx.Client] = None
) -> ContactSource:
    """Construct (but do not initialize) the named contacts provider."""
    if name not in _CONTACT_SOURCE_MAP:
        raise ConfigError(f"unsupported contacts provider: {name}")
    return _CONTACT_SOURCE_MAP[name].from_config(cfg, client=client)


def build_message_source(
    cfg: DunbarConfig, name: str, client: Optional[httpx.Client] = None
) -> MessageSource:
    if name not in _MESSAGE_SOURCE_MAP:
        raise ConfigError(f"unsupported messages provider: {name}")
    return _MESSAGE_SOURCE_MAP[name].from_config(cfg, client=client)


def get_contact_manager(cfg: DunbarConfig, client: Optional[httpx.Client] = None) -> ContactManager:
    settings = load_settings(cfg)
    if not settings.provider:
        raise ConfigError("contacts not initialized. Run 'dunbar contacts init' first")

    source = build_contact_source(cfg, settings.provider, client=client)
    try:
        source.initialize()
    except ConfigError as e:
        raise e.wrap(f"failed to initialize {settings.provider} provider") from e
    return ContactManager(source, ContactStore(cfg.people_dir))


def get_message_manager(cfg: DunbarConfig, client: Optional[httpx.Client] = None) -> MessageManager:
    settings = load_settings(cfg)
    source = build_message_source(cfg, settings.messages_provider, client=client)
    try:
        source.initialize()
    except ConfigError as e:
        raise e.wrap(f"failed to initialize {settings.messages_provider} provider") from e
    return MessageManager(source, MessageStore(cfg.messages_db_path))
