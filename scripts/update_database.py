"""Rebuild and publish the reference database from a checkout, without installing."""

import sys
from pathlib import Path

# Add parent dir so we can import the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from refdb.update import main

if __name__ == "__main__":
    sys.exit(main())
