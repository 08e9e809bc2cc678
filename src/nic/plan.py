"""Dry-run plans.

A plan lists what a reconcile would do to each resource. It is built from
discovered state with the same field comparisons reconciliation uses, so
it issues read calls only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .errors import ImmutableFieldViolation
from .reconciler import FieldDiff
from .status import RunContext, StatusLevel

logger = logging.getLogger(__name__)


class PlanAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    UNCHANGED = "unchanged"
    # An immutable field differs; reconcile would refuse the resource
    BLOCKED = "blocked"


@dataclass(frozen=True)
class PlannedChange:
    kind: str
    identity: str
    action: PlanAction
    fields: tuple[str, ...] = ()
    detail: str = ""

    def describe(self) -> str:
        line = f"{self.action.value} {self.kind} {self.identity}"
        if self.fields:
            line += f" ({', '.join(self.fields)})"
        if self.detail:
            line += f": {self.detail}"
        return line


@dataclass
class Plan:
    """Ordered planned changes, in the order reconcile would apply them."""

    changes: list[PlannedChange] = field(default_factory=list)

    def create(self, kind: str, identity: str, detail: str = "") -> None:
        self.changes.append(PlannedChange(kind, identity, PlanAction.CREATE, detail=detail))

    def unchanged(self, kind: str, identity: str, detail: str = "") -> None:
        self.changes.append(PlannedChange(kind, identity, PlanAction.UNCHANGED, detail=detail))

    def delete(self, kind: str, identity: str, detail: str = "") -> None:
        self.changes.append(PlannedChange(kind, identity, PlanAction.DELETE, detail=detail))

    def compare(self, kind: str, identity: str, diff: Callable[[], FieldDiff]) -> PlannedChange:
        """Record the outcome of one field comparison.

        An immutable mismatch is recorded as BLOCKED instead of raised, so a
        single plan reports every resource.
        """
        try:
            result = diff()
        except ImmutableFieldViolation as e:
            change = PlannedChange(
                kind, identity, PlanAction.BLOCKED, fields=(e.field,), detail=str(e)
            )
        else:
            if result:
                change = PlannedChange(
                    kind, identity, PlanAction.UPDATE, fields=tuple(result.changed)
                )
            else:
                change = PlannedChange(kind, identity, PlanAction.UNCHANGED)
        self.changes.append(change)
        return change

    def by_action(self, action: PlanAction) -> list[PlannedChange]:
        return [c for c in self.changes if c.action == action]

    @property
    def pending(self) -> list[PlannedChange]:
        """Changes a reconcile would make."""
        return [
            c for c in self.changes if c.action not in (PlanAction.UNCHANGED, PlanAction.BLOCKED)
        ]

    @property
    def blocked(self) -> list[PlannedChange]:
        return self.by_action(PlanAction.BLOCKED)

    def report(self, ctx: RunContext) -> None:
        for change in self.changes:
            level = StatusLevel.WARNING if change.action == PlanAction.BLOCKED else StatusLevel.INFO
            ctx.status(
                level,
                f"DRY RUN: {change.describe()}",
                change.kind,
                change.action.value,
                identity=change.identity,
            )
        logger.info(
            "Dry run planned",
            extra={"pending": len(self.pending), "blocked": len(self.blocked)},
        )
        ctx.status(
            StatusLevel.SUCCESS,
            f"Dry run complete: {len(self.pending)} change(s), {len(self.blocked)} blocked. "
            "No changes were made",
            "dry-run",
            "complete",
        )
