"""Allow ``python -m confluence_trader``."""

from confluence_trader.cli import main

raise SystemExit(main())
