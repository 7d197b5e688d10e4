# =============================================================================
# Kestrel: A Command-Line Email Client
# =============================================================================
#
#   "Hovers over your inbox, strikes only when told to."
#
# Kestrel reads, searches, files, and writes email from the shell. Each
# command is a single pass over one IMAP session (and one SMTP session when
# it sends mail), so it composes well with scripts and pipes.
#
# Features:
#   - IMAP with SSL or STARTTLS, passwords from the system keyring
#   - list / search / read / copy / move / delete / save / send
#   - write, reply (all), forward, and mailto: URIs in your $EDITOR
#   - crash-safe scratch draft, local or remote drafts
#   - plain or JSON output
#   - XDG Base Directory compliant
#
# =============================================================================

__version__ = "0.1.0"
__app_name__ = "kestrel"


def main() -> int:
    """Entry point for the 'kestrel' command."""
    from kestrel.cli import main as cli_main
    return cli_main()


__all__ = ["main", "__version__", "__app_name__"]
