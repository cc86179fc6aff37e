#!/usr/bin/env python3
"""Entry point for the tg-broker command line front-end."""

from __future__ import annotations

from tgbroker.cli import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
