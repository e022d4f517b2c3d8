"""Allow python -m tokenfeed."""
from __future__ import annotations

from tokenfeed.cli.main import main

if __name__ == "__main__":
    raise SystemExit(main())
