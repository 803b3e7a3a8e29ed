"""Interactive provider setup for ``contacts init`` and ``messages init``.

Credential and config files are written only once every prompt has been
answered and the provider accepted the credentials. Cancelling at any step
leaves the data directory untouched.
"""

import logging
import webbrowser
from typing import Callable, Optional

import httpx
from rich.console import Console

from .config import DunbarConfig, load_settings, save_settings
from .errors import DunbarError, ProviderError
from .messages.beeper_provider import BeeperCredentials
from .registry import build_contact_source, build_message_source, contact_source_names, message_source_names
from .tui.forms import Choice, Confirm, Field, Form, Prompt

logger = logging.getLogger(__name__)

Prompter = Callable[[Prompt], Prompt]
Opener = Callable[[str], object]

GOOGLE_SETUP_NOTE = (
    "To use Google Contacts, you need OAuth 2.0 credentials.\n\n"
    "Setup steps:\n"
    "1. Enable People API at: console.cloud.google.com/apis/library/people.googleapis.com\n"
    "2. Go to: console.cloud.google.com/apis/credentials\n"
    "3. Create OAuth 2.0 Client ID (Application type: Desktop app)\n"
    "4. No redirect URIs needed (auto-includes urn:ietf:wg:oauth:2.0:oob)"
)

BEEPER_SETUP_NOTE = (
    "To use Beeper, you need an access token.\n\n"
    "Setup steps:\n"
    "1. Open Beeper Desktop\n"
    "2. Go to Settings > Developer\n"
    "3. Copy your Access Token"
)


def _ask(prompter: Prompter, prompt: Prompt) -> Prompt:
    result = prompter(prompt)
    if result.cancelled:
        raise DunbarError("setup cancelled")
    return result


def open_browser(url: str, opener: Opener = webbrowser.open) -> None:
    # Best effort only, the URL is always printed too
    try:
        opener(url)
    except webbrowser.Error as e:
        logger.debug("Could not open browser: %s", e)


def init_contacts(
    cfg: DunbarConfig,
    prompter: Prompter,
    console: Optional[Console] = None,
    client: Optional[httpx.Client] = None,
    opener: Opener = webbrowser.open,
) -> None:
    console = console or Console()
    cfg.ensure_dir()
    choice = _ask(prompter, Choice("Select contacts provider", contact_source_names()))
    name = choice.value

    source = build_contact_source(cfg, name, client=client)
    auth = source.auth
    existing = auth.load()

    client_id = client_secret = ""
    if existing and existing.client_id:
        confirm = _ask(
            prompter,
            Confirm(
                "Existing credentials found",
                f"Client ID: {existing.client_id}\n\nDelete and enter new credentials?",
                affirmative="Yes, delete",
                negative="No, keep and re-authorize",
            ),
        )
        if not confirm.value:
            client_id, client_secret = existing.client_id, existing.client_secret

    if not client_id:
        form = _ask(
            prompter,
            Form(
                "Google Contacts Setup",
                [Field("Client ID"), Field("Client Secret", secret=True)],
                note=GOOGLE_SETUP_NOTE,
            ),
        )
        client_id, client_secret = (f.value.strip() for f in form.fields)

    url = auth.auth_url(client_id)
    open_browser(url, opener)
    console.print("\nOpening your browser for authorization...")
    console.print("If the browser doesn't open, copy this URL manually:\n")
    console.print(url, soft_wrap=True, markup=False)
    console.print()

    code_form = _ask(
        prompter,
        Form(
            "Authorization Code",
            [Field("Authorization Code", description="Enter the authorization code from Google:")],
        ),
    )
    try:
        creds = auth.exchange_code(client_id, client_secret, code_form.fields[0].value.strip())
    except ProviderError as e:
        raise e.wrap("failed to exchange auth code") from e

    auth.save(creds)
    # A new authorization may point at a different account
    source.clear_sync_token()
    settings = load_settings(cfg)
    settings.provider = name
    save_settings(cfg, settings)

    logger.info("Contacts provider %s initialized for %s", name, creds.email or "unknown account")
    console.print("\nGoogle Contacts provider initialized successfully!")
    console.print("Run 'dunbar contacts sync' to sync your contacts.")


def init_messages(
    cfg: DunbarConfig,
    prompter: Prompter,
    console: Optional[Console] = None,
    client: Optional[httpx.Client] = None,
) -> None:
    console = console or Console()
    cfg.ensure_dir()
    choice = _ask(prompter, Choice("Select messages provider", message_source_names()))
    name = choice.value
    provider = build_message_source(cfg, name, client=client)

    existing = provider.load_credentials()
    if existing and existing.access_token:
        confirm = _ask(
            prompter,
            Confirm(
                "Existing credentials found",
                "Delete and enter new access token?",
                affirmative="Yes, delete",
                negative="No, keep existing",
            ),
        )
        if not confirm.value:
            _select_messages_provider(cfg, name)
            console.print("Keeping existing credentials.")
            console.print("Run 'dunbar messages sync' to sync your messages.")
            return

    form = _ask(prompter, Form("Beeper Setup", [Field("Access Token", secret=True)], note=BEEPER_SETUP_NOTE))
    token = form.fields[0].value.strip()

    provider.initialize(access_token=token)
    console.print("\nTesting connection to Beeper...")
    try:
        provider.verify()
    except ProviderError as e:
        raise e.wrap("failed to connect to Beeper") from e

    provider.save_credentials(BeeperCredentials(access_token=token))
    _select_messages_provider(cfg, name)
    console.print("✓ Beeper provider initialized successfully!")
    console.print("Run 'dunbar messages sync' to sync your messages.")


def _select_messages_provider(cfg: DunbarConfig, name: str) -> None:
    settings = load_settings(cfg)
    if settings.messages_provider != name:
        settings.messages_provider = name
        save_settings(cfg, settings)
