"""Asset registry — custody of unique assets."""

from title_escrow.registry.sql_registry import SqlAssetRegistry

__all__ = ["SqlAssetRegistry"]
