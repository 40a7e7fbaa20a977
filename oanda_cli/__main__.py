"""Allow ``python -m oanda_cli``."""

from oanda_cli.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
