"""Migration engine and confirmation policies."""

from cqlmodel.migrations.confirm import (
    AllowList,
    AlwaysAllow,
    AlwaysDeny,
    ConfirmationRequest,
    Confirmer,
    MigrationAction,
    TtyConfirmer,
)
from cqlmodel.migrations.engine import (
    MigrationEngine,
    MigrationResult,
    make_confirmer,
    resolve_migration_mode,
)

__all__ = [
    "AllowList",
    "AlwaysAllow",
    "AlwaysDeny",
    "ConfirmationRequest",
    "Confirmer",
    "MigrationAction",
    "TtyConfirmer",
    "MigrationEngine",
    "MigrationResult",
    "make_confirmer",
    "resolve_migration_mode",
]
