"""``dunbar`` command line: scriptable list/sync commands and the interactive browsers."""

import argparse
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.text import Text

from .config import DunbarConfig
from .errors import DunbarError
from .registry import get_contact_manager, get_message_manager
from .setup import init_contacts, init_messages

logger = logging.getLogger(__name__)

VERSION = "0.1.0"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(cfg: DunbarConfig, verbose: bool = False) -> None:
    cfg.ensure_dir()
    handlers: list[logging.Handler] = [logging.FileHandler(cfg.log_path, encoding="utf-8")]
    if verbose:
        handlers.append(logging.StreamHandler(sys.stderr))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def cmd_version(cfg: DunbarConfig, args: argparse.Namespace) -> None:
    print(f"dunbar version {VERSION}")


def cmd_contacts(cfg: DunbarConfig, args: argparse.Namespace) -> None:
    from .tui.contacts_browser import ContactsBrowser
    from .tui.terminal import run_browser

    cm = get_contact_manager(cfg)
    try:
        contacts = cm.list()
    except DunbarError as e:
        raise e.wrap("failed to list contacts") from e
    run_browser(ContactsBrowser(cm, contacts))


def cmd_contacts_init(cfg: DunbarConfig, args: argparse.Namespace) -> None:
    from .tui.terminal import TerminalPrompter

    init_contacts(cfg, TerminalPrompter())


def cmd_contacts_list(cfg: DunbarConfig, args: argparse.Namespace) -> None:
    cm = get_contact_manager(cfg)
    try:
        contacts = cm.list()
    except DunbarError as e:
        raise e.wrap("failed to list contacts") from e
    # uid|full_name|primary_email|primary_phone
    for c in contacts:
        print(f"{c.uid}|{c.full_name}|{c.primary_email()}|{c.primary_phone()}")


def cmd_contacts_sync(cfg: DunbarConfig, args: argparse.Namespace) -> None:
    cm = get_contact_manager(cfg)
    print("Syncing contacts...")
    try:
        result = cm.sync()
    except DunbarError as e:
        raise e.wrap("failed to sync contacts") from e
    if result.removed:
        print(f"Removed {result.removed} contacts deleted upstream")
    try:
        total = len(cm.list())
    except DunbarError as e:
        raise e.wrap("failed to list contacts") from e
    print(f"Sync complete! Total contacts: {total}")


def cmd_messages(cfg: DunbarConfig, args: argparse.Namespace) -> None:
    from .tui.messages_browser import MessagesBrowser
    from .tui.terminal import run_browser

    mm = get_message_manager(cfg)
    try:
        try:
            conversations = mm.list_conversations()
        except DunbarError as e:
            raise e.wrap("failed to list conversations") from e
        run_browser(MessagesBrowser(mm, conversations))
    finally:
        mm.close()


def cmd_messages_init(cfg: DunbarConfig, args: argparse.Namespace) -> None:
    from .tui.terminal import TerminalPrompter

    init_messages(cfg, TerminalPrompter())


def cmd_messages_list(cfg: DunbarConfig, args: argparse.Namespace) -> None:
    mm = get_message_manager(cfg)
    try:
        try:
            conversations = mm.list_conversations()
        except DunbarError as e:
            raise e.wrap("failed to list conversations") from e
        # id|title|platform|participant_count|unread_count|last_activity
        for c in conversations:
            print(
                f"{c.id}|{c.title}|{c.platform}|{c.participant_count}|{c.unread_count}|"
                f"{c.last_activity.isoformat(timespec='seconds')}"
            )
    finally:
        mm.close()


def cmd_messages_sync(cfg: DunbarConfig, args: argparse.Namespace) -> None:
    mm = get_message_manager(cfg)
    console = Console(stderr=True)
    try:
        with console.status("Syncing messages...") as status:
            result = mm.sync(progress=lambda text: status.update(Text(text)))
    finally:
        mm.close()
    print(f"Sync complete! {result.conversations} conversations, {result.messages} messages")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dunbar", description="Personal Relationship Manager CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="also log to stderr")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("version", help="Display version information")
    p.set_defaults(func=cmd_version)

    contacts = sub.add_parser("contacts", help="Manage your contacts")
    contacts.set_defaults(func=cmd_contacts)
    contacts_sub = contacts.add_subparsers(dest="action")
    contacts_sub.add_parser("init", help="Initialize contacts provider").set_defaults(func=cmd_contacts_init)
    contacts_sub.add_parser("list", help="List all contacts").set_defaults(func=cmd_contacts_list)
    contacts_sub.add_parser("sync", help="Sync contacts with provider").set_defaults(func=cmd_contacts_sync)

    messages = sub.add_parser("messages", help="Manage your messages and conversations")
    messages.set_defaults(func=cmd_messages)
    messages_sub = messages.add_subparsers(dest="action")
    messages_sub.add_parser("init", help="Initialize messages provider").set_defaults(func=cmd_messages_init)
    messages_sub.add_parser("list", help="List all conversations").set_defaults(func=cmd_messages_list)
    messages_sub.add_parser("sync", help="Sync messages with Beeper").set_defaults(func=cmd_messages_sync)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    cfg = DunbarConfig.from_env()
    try:
        setup_logging(cfg, args.verbose)
        args.func(cfg, args)
    except DunbarError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
