"""Roadmap store: the ordered, dependency-aware feature backlog.

Items move forward through planned -> specced -> in-progress -> completed.
Any non-completed item may be deferred, and a deferred item returns to
planned when reactivated. Items are never deleted.

Dependency cycles are tolerated while a batch of edits is in flight and
rejected when the roadmap is committed (see :meth:`RoadmapStore.check_commit`).
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .errors import InvalidTransitionError, NotFoundError, ValidationError
from .models import (
    ROADMAP_ORDER,
    ROADMAP_PREFIX,
    Effort,
    RoadmapDocument,
    RoadmapItem,
    RoadmapStatus,
    format_id,
    utc_timestamp,
)
from .tracker_logging import log_status_change, observability_hooks

logger = logging.getLogger("agentos.roadmap")

# Timestamp attribute set when an item enters each status
_STATUS_TIMESTAMPS = {
    RoadmapStatus.SPECCED: "specced_at",
    RoadmapStatus.IN_PROGRESS: "started_at",
    RoadmapStatus.COMPLETED: "completed_at",
}


def find_cycles(graph: Mapping[str, Iterable[str]]) -> List[List[str]]:
    """Return every distinct dependency cycle in ``graph``.

    Each cycle is reported once, as a path that starts and ends with the same
    id, e.g. ``["roadmap-003", "roadmap-005", "roadmap-003"]``. Edges to ids
    missing from the graph are ignored.
    """
    cycles: List[List[str]] = []
    seen: set = set()

    def normalize(cycle: List[str]) -> tuple:
        body = cycle[:-1]
        start = body.index(min(body))
        return tuple(body[start:] + body[:start])

    def visit(node: str, path: List[str], on_path: set) -> None:
        for neighbor in graph.get(node, ()):
            if neighbor not in graph:
                continue
            if neighbor in on_path:
                cycle = path[path.index(neighbor):] + [neighbor]
                key = normalize(cycle)
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle)
                continue
            path.append(neighbor)
            on_path.add(neighbor)
            visit(neighbor, path, on_path)
            on_path.discard(neighbor)
            path.pop()

    for start in sorted(graph):
        visit(start, [start], {start})

    return cycles


def reaches(graph: Mapping[str, Iterable[str]], source: str, target: str) -> bool:
    """True when ``target`` is reachable from ``source`` through ``graph``."""
    stack = list(graph.get(source, ()))
    visited = set()
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in visited:
            continue
        visited.add(node)
        stack.extend(graph.get(node, ()))
    return False


class RoadmapStore:
    """Mutations and queries over a loaded :class:`RoadmapDocument`."""

    def __init__(self, document: RoadmapDocument, clock: Callable[[], str] = utc_timestamp):
        self.document = document
        self.clock = clock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[RoadmapItem]:
        return self.document.items

    def get(self, item_id: str) -> RoadmapItem:
        for item in self.document.items:
            if item.id == item_id:
                return item
        raise NotFoundError(f"Roadmap item '{item_id}' not found")

    def exists(self, item_id: str) -> bool:
        return any(item.id == item_id for item in self.document.items)

    def items_by_priority(self) -> List[RoadmapItem]:
        return sorted(self.document.items, key=lambda item: item.priority)

    def dependency_graph(self) -> Dict[str, List[str]]:
        return {item.id: list(item.dependencies) for item in self.document.items}

    def dependents_of(self, item_id: str) -> List[str]:
        """Ids of the items that depend on ``item_id``."""
        self.get(item_id)
        return [item.id for item in self.document.items if item_id in item.dependencies]

    def ready_items(self) -> List[RoadmapItem]:
        """Planned items whose dependencies are all completed, by priority."""
        completed = {item.id for item in self.document.items if item.status == RoadmapStatus.COMPLETED}
        return [
            item for item in self.items_by_priority()
            if item.status == RoadmapStatus.PLANNED and set(item.dependencies) <= completed
        ]

    # ------------------------------------------------------------------
    # Creation and ordering
    # ------------------------------------------------------------------

    def add_item(
        self,
        title: str,
        description: str = "",
        effort: Effort | str = Effort.M,
        dependencies: Iterable[str] = (),
    ) -> RoadmapItem:
        """Append a planned item with the next sequential id and lowest priority."""
        if not title or not title.strip():
            raise ValidationError("Roadmap item title cannot be empty")
        try:
            effort = Effort(effort)
        except ValueError:
            raise ValidationError(
                f"Invalid effort '{effort}', expected one of {[e.value for e in Effort]}"
            ) from None

        dependencies = list(dict.fromkeys(dependencies))
        unknown = [dep for dep in dependencies if not self.exists(dep)]
        if unknown:
            raise ValidationError(f"Unknown roadmap dependencies: {', '.join(unknown)}")

        item_id = format_id(ROADMAP_PREFIX, self.document.last_issued + 1)
        graph = self.dependency_graph()
        graph[item_id] = dependencies
        if item_id in dependencies or reaches(graph, item_id, item_id):
            raise ValidationError(f"Dependencies of '{title}' would introduce a cycle")

        priority = max((item.priority for item in self.document.items), default=0) + 1
        item = RoadmapItem(
            id=item_id,
            title=title.strip(),
            description=description,
            effort=effort,
            priority=priority,
            dependencies=dependencies,
            created_at=self.clock(),
        )
        self.document.items.append(item)
        self.document.last_issued += 1
        self._touch()

        logger.info(f"Added roadmap item {item_id}: {item.title}")
        observability_hooks.log_workflow_event(
            "roadmap_item_added", item_id=item_id, priority=priority, effort=effort.value
        )
        return item

    def reprioritize(self, id_to_priority: Mapping[str, int]) -> List[RoadmapItem]:
        """Apply a batch of priority changes, rejecting duplicates in the result."""
        for item_id, priority in id_to_priority.items():
            self.get(item_id)
            if not isinstance(priority, int) or isinstance(priority, bool) or priority < 1:
                raise ValidationError(f"Priority for '{item_id}' must be a positive integer, got {priority!r}")

        resulting = {item.id: id_to_priority.get(item.id, item.priority) for item in self.document.items}
        by_priority: Dict[int, List[str]] = {}
        for item_id, priority in resulting.items():
            by_priority.setdefault(priority, []).append(item_id)
        duplicates = {p: ids for p, ids in by_priority.items() if len(ids) > 1}
        if duplicates:
            detail = "; ".join(f"{p}: {', '.join(ids)}" for p, ids in sorted(duplicates.items()))
            raise ValidationError(f"Duplicate priorities after reprioritize -> {detail}")

        for item in self.document.items:
            item.priority = resulting[item.id]
        self._touch()
        logger.info(f"Reprioritized {len(id_to_priority)} roadmap items")
        return self.items_by_priority()

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def add_dependency(self, item_id: str, dependency_id: str) -> RoadmapItem:
        """Add an edge without a cycle check; see :meth:`validate_dependency_graph`."""
        item = self.get(item_id)
        self.get(dependency_id)
        if item_id == dependency_id:
            raise ValidationError(f"Roadmap item '{item_id}' cannot depend on itself")
        if dependency_id not in item.dependencies:
            item.dependencies.append(dependency_id)
            self._touch()
        return item

    def remove_dependency(self, item_id: str, dependency_id: str) -> RoadmapItem:
        item = self.get(item_id)
        if dependency_id in item.dependencies:
            item.dependencies.remove(dependency_id)
            self._touch()
        return item

    def validate_dependency_graph(self) -> List[List[str]]:
        """Return the dependency cycles of the roadmap; empty when acyclic."""
        return find_cycles(self.dependency_graph())

    def check_commit(self) -> None:
        """Raise unless the roadmap is safe to persist."""
        cycles = self.validate_dependency_graph()
        if cycles:
            rendered = "; ".join(" -> ".join(cycle) for cycle in cycles)
            raise ValidationError(f"Roadmap dependency graph contains cycles: {rendered}")

        priorities = [item.priority for item in self.document.items]
        if len(priorities) != len(set(priorities)):
            raise ValidationError("Roadmap contains duplicate priorities")

        issues = [issue for item in self.document.items for issue in item.validate()]
        known = {item.id for item in self.document.items}
        for item in self.document.items:
            for dep in item.dependencies:
                if dep not in known:
                    issues.append(f"{item.id}: unknown dependency '{dep}'")
        if issues:
            raise ValidationError("Roadmap is inconsistent: " + "; ".join(issues))

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        item_id: str,
        new_status: RoadmapStatus | str,
        spec_path: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> RoadmapItem:
        """Move an item forward; re-transitioning to the current status is a no-op."""
        item = self.get(item_id)
        try:
            target = RoadmapStatus(new_status)
        except ValueError:
            raise InvalidTransitionError(f"Unknown roadmap status '{new_status}'") from None

        if target == item.status:
            return item
        if target == RoadmapStatus.DEFERRED:
            return self.defer(item_id, reason)
        if item.status == RoadmapStatus.DEFERRED:
            if target == RoadmapStatus.PLANNED:
                return self.reactivate(item_id)
            raise InvalidTransitionError(
                f"Roadmap item '{item_id}' is deferred; reactivate it before moving to '{target.value}'"
            )
        if ROADMAP_ORDER.index(target) < ROADMAP_ORDER.index(item.status):
            raise InvalidTransitionError(
                f"Roadmap item '{item_id}' cannot move back from '{item.status.value}' to '{target.value}'"
            )

        if item.status == RoadmapStatus.PLANNED:
            if not (spec_path or item.spec_path):
                raise ValidationError(
                    f"Roadmap item '{item_id}' needs a spec path to leave 'planned'",
                    suggestion="Create a spec for the item first",
                )
        if spec_path:
            item.spec_path = spec_path

        old_status = item.status
        item.status = target
        attribute = _STATUS_TIMESTAMPS[target]
        if getattr(item, attribute) is None:
            setattr(item, attribute, self.clock())
        self._touch()

        logger.info(f"Roadmap item {item_id}: {old_status.value} -> {target.value}")
        log_status_change("roadmap_item", item_id, old_status.value, target.value)
        return item

    def defer(self, item_id: str, reason: Optional[str] = None) -> RoadmapItem:
        item = self.get(item_id)
        if item.status == RoadmapStatus.COMPLETED:
            raise InvalidTransitionError(f"Completed roadmap item '{item_id}' cannot be deferred")
        if item.status == RoadmapStatus.DEFERRED:
            return item

        old_status = item.status
        item.status = RoadmapStatus.DEFERRED
        item.deferred_at = self.clock()
        item.deferred_reason = reason
        self._touch()

        logger.info(f"Deferred roadmap item {item_id}: {reason or 'no reason given'}")
        log_status_change("roadmap_item", item_id, old_status.value, item.status.value, reason=reason)
        return item

    def reactivate(self, item_id: str) -> RoadmapItem:
        """Return a deferred item to planned; planned items never reference a spec."""
        item = self.get(item_id)
        if item.status != RoadmapStatus.DEFERRED:
            raise InvalidTransitionError(
                f"Roadmap item '{item_id}' is '{item.status.value}', only deferred items can be reactivated"
            )

        if item.spec_path:
            logger.warning(f"Reactivating {item_id} detaches it from {item.spec_path}")
        item.status = RoadmapStatus.PLANNED
        item.deferred_at = None
        item.deferred_reason = None
        item.spec_path = None
        self._touch()

        log_status_change("roadmap_item", item_id, RoadmapStatus.DEFERRED.value, item.status.value)
        return item

    def _touch(self) -> None:
        self.document.last_updated = self.clock()
