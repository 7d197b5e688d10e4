# =============================================================================
# Configuration Management
# =============================================================================
# Loads and saves Kestrel configuration.
#
# XDG Base Directory Compliance (https://specifications.freedesktop.org/basedir-spec/):
#   - Config:  $XDG_CONFIG_HOME/kestrel/  (default: ~/.config/kestrel/)
#   - State:   $XDG_STATE_HOME/kestrel/   (default: ~/.local/state/kestrel/)
#
# Files:
#   - config.toml: accounts and the default account
#   - draft.eml: the scratch draft of the message being composed (state dir)
#
# Layout of config.toml:
#
#   [general]
#   default_account = "personal"
#
#   [accounts.personal]
#   email = "user@example.com"
#   imap_host = "imap.example.com"
#   smtp_host = "smtp.example.com"
#   ...
# =============================================================================

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w

from kestrel.core import Account
from kestrel.core.mailbox import DRAFTS, INBOX, SENT

APP_NAME = "kestrel"

# Account fields stored in config.toml, with their defaults
_ACCOUNT_DEFAULTS: dict[str, Any] = {
    "email": "",
    "display_name": "",
    "signature": "",
    "downloads_dir": str(Path.home() / "Downloads"),
    "default_page_size": 10,
    "inbox_mailbox": INBOX.name,
    "sent_mailbox": SENT.name,
    "drafts_mailbox": DRAFTS.name,
    "imap_host": "",
    "imap_port": 993,
    "imap_security": "ssl",
    "imap_login": "",
    "smtp_host": "",
    "smtp_port": 587,
    "smtp_security": "starttls",
    "smtp_login": "",
}


def get_xdg_config_home() -> Path:
    """
    Returns the XDG config directory for Kestrel.

    Respects $XDG_CONFIG_HOME if set, otherwise uses ~/.config/kestrel/
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config) if xdg_config else Path.home() / ".config"
    return base / APP_NAME


def get_xdg_state_home() -> Path:
    """
    Returns the XDG state directory for Kestrel.

    Respects $XDG_STATE_HOME if set, otherwise uses ~/.local/state/kestrel/
    The scratch draft lives here: it must survive a crash, but it is not
    configuration.
    """
    xdg_state = os.environ.get("XDG_STATE_HOME")
    base = Path(xdg_state) if xdg_state else Path.home() / ".local" / "state"
    return base / APP_NAME


@dataclass
class Config:
    """
    Main configuration container for Kestrel.

    Attributes:
        default_account: Name of the account used when --account isn't given.
        accounts: Configured email accounts, keyed by name.

    Usage:
        >>> config = Config.load()
        >>> config.account("personal").email
        'user@example.com'
    """
    default_account: str = ""
    accounts: dict[str, Account] = field(default_factory=dict)

    # -------------------------------------------------------------------------
    # File Paths
    # -------------------------------------------------------------------------

    @staticmethod
    def config_file_path() -> Path:
        """Returns the path to the main config file."""
        return get_xdg_config_home() / "config.toml"

    @staticmethod
    def draft_path() -> Path:
        """Returns the path to the scratch draft."""
        return get_xdg_state_home() / "draft.eml"

    # -------------------------------------------------------------------------
    # Loading and Saving
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """
        Load configuration from the config file.

        If the config file doesn't exist, returns an empty configuration.

        Raises:
            ConfigError: If the config file exists but is invalid.
        """
        config_path = Path(path) if path else cls.config_file_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file {str(config_path)!r}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {str(config_path)!r}: {e}") from e

        return cls._from_dict(data)

    def save(self, path: Path | None = None) -> Path:
        """
        Save configuration to the config file, creating its directory.

        Returns:
            The path written.
        """
        config_path = Path(path) if path else self.config_file_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)

        return config_path

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create a Config from parsed TOML."""
        config = cls()

        general = data.get("general", {})
        config.default_account = general.get("default_account", "")

        accounts_data = data.get("accounts", {})
        if not isinstance(accounts_data, dict):
            raise ConfigError("[accounts] must be a table")

        for name, acct_data in accounts_data.items():
            if not isinstance(acct_data, dict):
                raise ConfigError(f"[accounts.{name}] must be a table")
            unknown = set(acct_data) - set(_ACCOUNT_DEFAULTS)
            if unknown:
                raise ConfigError(
                    f"Unknown setting(s) in [accounts.{name}]: {', '.join(sorted(unknown))}"
                )
            values = {key: acct_data.get(key, default) for key, default in _ACCOUNT_DEFAULTS.items()}
            values["downloads_dir"] = Path(values["downloads_dir"])
            config.accounts[name] = Account(name=name, **values)

        return config

    def _to_dict(self) -> dict[str, Any]:
        """Convert Config to a dictionary for TOML serialization."""
        data: dict[str, Any] = {
            "general": {"default_account": self.default_account},
            "accounts": {},
        }

        for name, account in self.accounts.items():
            entry = {key: getattr(account, key) for key in _ACCOUNT_DEFAULTS}
            entry["downloads_dir"] = str(account.downloads_dir)
            data["accounts"][name] = entry

        return data

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def account(self, name: str | None = None) -> Account:
        """
        Resolve the account to use.

        Order: the given name, then default_account, then the first
        configured account.

        Raises:
            ConfigError: If no account matches or none is configured.
        """
        if name:
            try:
                return self.accounts[name]
            except KeyError:
                raise ConfigError(f"Unknown account {name!r}") from None

        if self.default_account:
            if self.default_account not in self.accounts:
                raise ConfigError(f"Default account {self.default_account!r} is not configured")
            return self.accounts[self.default_account]

        if not self.accounts:
            raise ConfigError(
                f"No account configured. Run `kestrel configure` or edit {self.config_file_path()}"
            )
        return next(iter(self.accounts.values()))


class ConfigError(Exception):
    """Raised when there's an error loading or parsing configuration."""
    pass


def print_paths() -> None:
    """
    Print the XDG paths Kestrel uses.
    Useful for users wondering where their config and drafts are stored.
    """
    print(f"Config:  {get_xdg_config_home()}")
    print(f"State:   {get_xdg_state_home()}")
    print()
    print(f"Config file:  {Config.config_file_path()}")
    print(f"Draft:        {Config.draft_path()}")
