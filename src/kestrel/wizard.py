# =============================================================================
# Configuration Wizard
# =============================================================================
# `kestrel configure`: asks for the settings of one account, optionally stores
# its password in the system keyring, and writes config.toml.
# =============================================================================

import logging
from pathlib import Path

import keyring
from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt

from kestrel.config import Config
from kestrel.core import Account

logger = logging.getLogger(__name__)


def _guess_host(prefix: str, email: str) -> str:
    domain = email.partition("@")[2]
    return f"{prefix}.{domain}" if domain else ""


def configure(path: Path | None = None, console: Console | None = None) -> Config:
    """
    Interactively configure a single account and save it.

    Args:
        path: Where to write the config (default: the XDG location).
        console: Console used for prompts.

    Returns:
        The saved configuration.
    """
    console = console or Console()
    console.print("\n[underline]Configuring your default account[/]\n")

    name = Prompt.ask("Account name", default="personal", console=console)
    email = Prompt.ask("Email address", console=console)
    display_name = Prompt.ask("Display name", default="", console=console)

    imap_host = Prompt.ask("IMAP host", default=_guess_host("imap", email), console=console)
    imap_security = Prompt.ask(
        "IMAP security", choices=["ssl", "starttls"], default="ssl", console=console
    )
    imap_port = IntPrompt.ask(
        "IMAP port", default=993 if imap_security == "ssl" else 143, console=console
    )

    smtp_host = Prompt.ask("SMTP host", default=_guess_host("smtp", email), console=console)
    smtp_security = Prompt.ask(
        "SMTP security", choices=["ssl", "starttls"], default="starttls", console=console
    )
    smtp_port = IntPrompt.ask(
        "SMTP port", default=465 if smtp_security == "ssl" else 587, console=console
    )

    account = Account(
        name=name,
        email=email,
        display_name=display_name,
        imap_host=imap_host,
        imap_port=imap_port,
        imap_security=imap_security,
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_security=smtp_security,
    )

    if Confirm.ask("Store the password in the system keyring now?", default=True, console=console):
        password = Prompt.ask("Password", password=True, console=console)
        keyring.set_password(account.keyring_service, account.imap_login, password)
        logger.info(f"Password stored under {account.keyring_service}")

    config = Config(default_account=name, accounts={name: account})

    target = Prompt.ask(
        "Where would you like to save your configuration?",
        default=str(path or Config.config_file_path()),
        console=console,
    )
    written = config.save(Path(target).expanduser())
    console.print(f"Configuration written to {written}")
    return config
