"""Confirmation policies consulted before a migration step is applied.

The engine never prompts on its own; it hands a ConfirmationRequest to
whichever Confirmer its host supplied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Protocol

__all__ = [
    "MigrationAction",
    "ConfirmationRequest",
    "Confirmer",
    "TtyConfirmer",
    "AlwaysAllow",
    "AlwaysDeny",
    "AllowList",
]

logger = logging.getLogger(__name__)


class MigrationAction(Enum):
    """Kinds of schema changes that need operator approval."""

    RECREATE_TABLE = "recreate_table"
    ADD_FIELD = "add_field"
    DROP_FIELD = "drop_field"
    ALTER_FIELD_TYPE = "alter_field_type"
    RECREATE_FIELD = "recreate_field"
    DROP_INDEXES = "drop_indexes"
    DROP_MATERIALIZED_VIEWS = "drop_materialized_views"

    @property
    def is_destructive(self) -> bool:
        return self not in (MigrationAction.ADD_FIELD, MigrationAction.ALTER_FIELD_TYPE)


@dataclass(frozen=True)
class ConfirmationRequest:
    action: MigrationAction
    table_name: str
    message: str
    field_name: Optional[str] = None


class Confirmer(Protocol):
    def confirm(self, request: ConfirmationRequest) -> bool: ...


class TtyConfirmer:
    """Ask on the terminal; only an answer of ``y`` approves the step."""

    def __init__(self, ask: Callable[[str], str] = input) -> None:
        self._ask = ask

    def confirm(self, request: ConfirmationRequest) -> bool:
        answer = self._ask(request.message)
        return (answer or "").strip().lower() == "y"


class AlwaysAllow:
    """Approve every step, for non-interactive environments."""

    def confirm(self, request: ConfirmationRequest) -> bool:
        logger.info(f"Auto-confirmed: {request.message}")
        return True


class AlwaysDeny:
    def confirm(self, request: ConfirmationRequest) -> bool:
        logger.info(f"Auto-declined: {request.message}")
        return False


class AllowList:
    """Approve only the listed kinds of actions."""

    def __init__(self, actions: Iterable[MigrationAction]) -> None:
        self._actions = frozenset(actions)

    def confirm(self, request: ConfirmationRequest) -> bool:
        allowed = request.action in self._actions
        logger.info(
            f"{'Allowed' if allowed else 'Declined'} {request.action.value} "
            f"on table '{request.table_name}'"
        )
        return allowed
