"""Module entry point: python -m flyover ..."""

from __future__ import annotations

from flyover.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
