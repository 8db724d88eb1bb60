from __future__ import annotations

from outage_bot.entrypoints.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
