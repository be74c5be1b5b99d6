"""
Workflow definition value objects (``registration_kernel.domain.workflow``).

Responsibility
--------------
Pure, frozen representation of an approval workflow: an ordered tuple of
``WorkflowLevel``.  The same type serves as the *live* definition returned by
the workflow lookup port and as the *snapshot* frozen into a registration at
submit time.  ``to_snapshot()`` / ``from_snapshot()`` convert to and from the
JSON document stored on the registration row.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Level orders are positive and unique within a workflow.
* ``levels`` are always held sorted by ``level_order``.
* A snapshot is a value, not a reference: editing the live workflow after
  submission cannot reach a registration's copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Submission always enters the level with this order.
FIRST_LEVEL_ORDER = 1


@dataclass(frozen=True)
class WorkflowLevel:
    """One approval stage.

    ``is_parallel`` and ``conditions`` are carried for fidelity with the
    workflow configuration; the engine requires every resolved approver of a
    level to approve and does not evaluate conditions.
    """

    level_order: int
    level_name: str
    approver_ids: tuple[str, ...] = ()
    approver_group_ids: tuple[str, ...] = ()
    is_parallel: bool = True
    editable_fields: tuple[str, ...] = ()
    conditions: dict[str, Any] | None = field(default=None, compare=False, hash=False)

    def __post_init__(self) -> None:
        if self.level_order < 1:
            raise ValueError(
                f"level_order must be >= 1, got {self.level_order}"
            )

    @property
    def has_conditions(self) -> bool:
        return bool(self.conditions)

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "level_order": self.level_order,
            "level_name": self.level_name,
            "approver_ids": list(self.approver_ids),
            "approver_group_ids": list(self.approver_group_ids),
            "is_parallel": self.is_parallel,
            "editable_fields": list(self.editable_fields),
            "conditions": self.conditions,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> WorkflowLevel:
        return cls(
            level_order=int(data["level_order"]),
            level_name=data.get("level_name") or f"Level {data['level_order']}",
            approver_ids=tuple(data.get("approver_ids") or ()),
            approver_group_ids=tuple(data.get("approver_group_ids") or ()),
            is_parallel=bool(data.get("is_parallel", True)),
            editable_fields=tuple(data.get("editable_fields") or ()),
            conditions=data.get("conditions"),
        )


@dataclass(frozen=True)
class WorkflowDefinition:
    """An ordered set of approval levels configured for a form template."""

    workflow_id: str
    name: str
    template_id: str
    levels: tuple[WorkflowLevel, ...]
    version: int = 1

    def __post_init__(self) -> None:
        orders = [level.level_order for level in self.levels]
        if len(orders) != len(set(orders)):
            raise ValueError(
                f"Workflow {self.workflow_id} has duplicate level orders: {orders}"
            )
        ordered = tuple(sorted(self.levels, key=lambda lv: lv.level_order))
        if ordered != self.levels:
            object.__setattr__(self, "levels", ordered)

    def get_level(self, level_order: int) -> WorkflowLevel | None:
        for level in self.levels:
            if level.level_order == level_order:
                return level
        return None

    def first_level(self) -> WorkflowLevel | None:
        """The level a submission enters; ``None`` when order 1 is missing."""
        return self.get_level(FIRST_LEVEL_ORDER)

    def next_level_after(self, level_order: int) -> WorkflowLevel | None:
        """Lowest level whose order is strictly greater than ``level_order``."""
        for level in self.levels:
            if level.level_order > level_order:
                return level
        return None

    def editable_fields_at(self, level_order: int) -> frozenset[str]:
        level = self.get_level(level_order)
        if level is None:
            return frozenset()
        return frozenset(level.editable_fields)

    def to_snapshot(self) -> dict[str, Any]:
        """Serialize into the JSON document stored on the registration."""
        return {
            "workflow_id": self.workflow_id,
            "name": self.name,
            "template_id": self.template_id,
            "version": self.version,
            "levels": [level.to_snapshot() for level in self.levels],
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> WorkflowDefinition:
        return cls(
            workflow_id=str(data["workflow_id"]),
            name=data.get("name", ""),
            template_id=str(data["template_id"]),
            version=int(data.get("version", 1)),
            levels=tuple(
                WorkflowLevel.from_snapshot(level) for level in data.get("levels", ())
            ),
        )


class EmptyLevelPolicy(str, Enum):
    """What advancement does with a later level that resolves to nobody."""

    SKIP = "skip"
    FAIL = "fail"


@dataclass(frozen=True)
class WorkflowSettings:
    """Engine tunables, bridged in from configuration."""

    max_advance_iterations: int = 100
    empty_level_policy: EmptyLevelPolicy = EmptyLevelPolicy.SKIP
    tracking_number_digits: int = 5

    def __post_init__(self) -> None:
        if self.max_advance_iterations < 1:
            raise ValueError("max_advance_iterations must be >= 1")
        if self.tracking_number_digits < 1:
            raise ValueError("tracking_number_digits must be >= 1")
