"""Command line interface for floe-maintenance.

Entry point: ``floe-maintenance`` (floe_maintenance.cli.main:cli).
"""

from __future__ import annotations
