"""
Planner — merge the differ's actions into one executable plan.

Kinds depend on each other: links may assume their packages are
installed, services may assume both packages and links are in place.
Building up follows the dependency order (producers first); tearing
down follows its mirror image (consumers first). Each action gets the
priority of its kind in its direction, and a stable sort keeps the
differ's emission order among equal priorities.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from archman.core.errors import CyclicDependencyError
from archman.core.models.action import Action, Direction
from archman.core.models.resource import ResourceKind

logger = logging.getLogger(__name__)

# kind → kinds it depends on
KIND_DEPENDENCIES: dict[ResourceKind, frozenset[ResourceKind]] = {
    ResourceKind.PACKAGE: frozenset(),
    ResourceKind.LINKED_FILE: frozenset({ResourceKind.PACKAGE}),
    ResourceKind.SERVICE_UNIT: frozenset({ResourceKind.PACKAGE, ResourceKind.LINKED_FILE}),
}


@dataclass
class Plan:
    """An ordered, single-use sequence of actions."""

    operation_id: str = ""
    actions: list[Action] = field(default_factory=list)

    @property
    def total_actions(self) -> int:
        return len(self.actions)

    @property
    def is_empty(self) -> bool:
        return not self.actions

    def __iter__(self) -> Iterator[Action]:
        return iter(self.actions)

    def __len__(self) -> int:
        return len(self.actions)

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "total": self.total_actions,
            "actions": [a.model_dump(mode="json") for a in self.actions],
        }


def kind_order(
    dependencies: Mapping[ResourceKind, Iterable[ResourceKind]] = KIND_DEPENDENCIES,
) -> list[ResourceKind]:
    """Topologically sort kinds so every kind follows its dependencies.

    Ties are broken by ResourceKind declaration order.

    Raises:
        CyclicDependencyError: If the graph has a cycle.
    """
    kinds = [k for k in ResourceKind if k in dependencies]
    pending = {k: set(dependencies[k]) & set(kinds) for k in kinds}
    ready = deque(k for k in kinds if not pending[k])
    ordered: list[ResourceKind] = []

    while ready:
        kind = ready.popleft()
        ordered.append(kind)
        for other in kinds:
            deps = pending[other]
            if kind in deps:
                deps.discard(kind)
                if not deps:
                    ready.append(other)

    if len(ordered) != len(kinds):
        remaining = [k.value for k in kinds if k not in ordered]
        raise CyclicDependencyError(remaining)
    return ordered


def priorities(
    dependencies: Mapping[ResourceKind, Iterable[ResourceKind]] = KIND_DEPENDENCIES,
) -> dict[tuple[Direction, ResourceKind], int]:
    """Priority of each (direction, kind); lower runs first.

    With the built-in graph: create Package=0, LinkedFile=1,
    ServiceUnit=2; remove ServiceUnit=0, LinkedFile=1, Package=2.
    """
    order = kind_order(dependencies)
    last = len(order) - 1
    table: dict[tuple[Direction, ResourceKind], int] = {}
    for i, kind in enumerate(order):
        table[(Direction.CREATE, kind)] = i
        table[(Direction.REMOVE, kind)] = last - i
    return table


def build_plan(
    actions: Iterable[Action],
    operation_id: str | None = None,
    dependencies: Mapping[ResourceKind, Iterable[ResourceKind]] = KIND_DEPENDENCIES,
) -> Plan:
    """Order actions into a single plan.

    Args:
        actions: Differ output, in emission order.
        operation_id: Identifier for the run (generated if omitted).
        dependencies: Kind dependency graph.

    Returns:
        Plan with actions stably sorted by (direction, kind) priority.

    Raises:
        CyclicDependencyError: If the dependency graph has a cycle.
    """
    table = priorities(dependencies)
    ordered = sorted(actions, key=lambda a: table[(a.direction, a.kind)])
    plan = Plan(operation_id=operation_id or generate_operation_id(), actions=ordered)
    logger.debug("Planned %d action(s) for %s", plan.total_actions, plan.operation_id)
    return plan


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
