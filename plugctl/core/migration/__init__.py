"""Migration of legacy layouts (single index, no receipts)"""

from plugctl.core.migration.migration import (
    MigrationReport,
    do_migration,
    is_migrated,
    migrate_index,
)

__all__ = [
    "MigrationReport",
    "do_migration",
    "is_migrated",
    "migrate_index",
]
