"""CLI command modules.

Each module holds one maintenance command; main.LAZY_COMMANDS maps command
names to them.
"""

from __future__ import annotations

__all__: list[str] = []
