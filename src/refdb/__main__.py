"""Entry point for the reference database updater."""

import sys

from refdb.update import main

if __name__ == "__main__":
    sys.exit(main())
