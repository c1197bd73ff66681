"""Entry point for `python -m kubegate`.

Usage:
    python -m kubegate
    uv run python -m kubegate
"""

from __future__ import annotations

import asyncio

from kubegate.app import main

asyncio.run(main())
