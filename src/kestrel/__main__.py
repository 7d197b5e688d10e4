# =============================================================================
# Kestrel Entry Point for `python -m kestrel`
# =============================================================================
# Equivalent to running the 'kestrel' command after installation.
# =============================================================================

import sys

from kestrel.cli import main

if __name__ == "__main__":
    sys.exit(main())
