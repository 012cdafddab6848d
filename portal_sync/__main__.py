"""Entry point for ``python -m portal_sync``."""

from portal_sync.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
