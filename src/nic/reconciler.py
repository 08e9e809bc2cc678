"""Building blocks shared by the per-kind reconcilers.

Each resource kind follows the same pattern:

1. discover: tag-filtered listing, None when nothing is found
2. reconcile: create when absent, reject immutable drift, issue one update
   call per differing mutable field, or return the snapshot untouched
3. destroy: delete everything discovery finds, in dependency order

Immutable fields are always checked before any mutating call is made.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .errors import AmbiguousStateError, ImmutableFieldViolation
from .tags import has_resource_type, is_managed, tags_differ

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ResourceScope:
    """Where a platform's resources live and how they are identified."""

    project_name: str
    resource_group: str
    location: str
    user_tags: dict[str, str] = field(default_factory=dict)


def managed(
    items: Iterable[T],
    scope: ResourceScope,
    resource_type: str | None = None,
    tags_of: Callable[[T], dict[str, str]] = lambda item: item.tags,  # type: ignore[attr-defined]
) -> list[T]:
    """Keep only resources carrying this platform's marker (and type, when given)."""
    result = []
    for item in items:
        tags = tags_of(item)
        if not is_managed(tags, scope.project_name):
            continue
        if resource_type is not None and not has_resource_type(tags, resource_type):
            continue
        result.append(item)
    return result


def single_match(
    kind: str,
    identity: str,
    matches: Sequence[T],
    name_of: Callable[[T], str] = lambda item: item.name,  # type: ignore[attr-defined]
) -> T | None:
    """Return the only match, None for no match.

    Raises:
        AmbiguousStateError: If more than one resource matched.
    """
    if not matches:
        return None
    if len(matches) > 1:
        raise AmbiguousStateError(kind, identity, [name_of(m) for m in matches])
    return matches[0]


class FieldDiff:
    """Collects field comparisons for one resource.

    Immutable comparisons raise on the first mismatch; mutable ones record
    the field name so the caller can issue the matching update call.
    """

    def __init__(self, kind: str, identity: str) -> None:
        self.kind = kind
        self.identity = identity
        self.changed: list[str] = []

    def immutable(self, field_name: str, actual: Any, desired: Any) -> None:
        if actual != desired:
            raise ImmutableFieldViolation(self.kind, self.identity, field_name, actual, desired)

    def mutable(self, field_name: str, actual: Any, desired: Any) -> bool:
        if actual != desired:
            self.changed.append(field_name)
            return True
        return False

    def tags(self, actual: dict[str, str], desired: dict[str, str]) -> bool:
        """Tags differ when a desired tag is missing or has another value."""
        if tags_differ(actual, desired):
            self.changed.append("tags")
            return True
        return False

    def __contains__(self, field_name: str) -> bool:
        return field_name in self.changed

    def __bool__(self) -> bool:
        return bool(self.changed)


def same_id(actual: str | None, desired: str | None) -> bool:
    """Azure resource ids compare case-insensitively."""
    return (actual or "").lower() == (desired or "").lower()
