"""Task tree engine.

Enforces the completion semantics of the group -> task -> subtask hierarchy
of a spec's ``tasks.json``:

- a parent completes only when every child is completed or skipped;
- a task group starts only when every group it depends on is completed;
- the root status and the summary counts are derived from node statuses
  and are never stored independently.

Violations are raised, never coerced: callers complete or skip children
explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .errors import (
    IncompleteChildrenError,
    InvalidTransitionError,
    NotFoundError,
    UnmetDependencyError,
    ValidationError,
)
from .models import (
    FINISHED_TASK_STATES,
    SUBTASK_PREFIX,
    TASK_GROUP_PREFIX,
    TASK_PREFIX,
    Layer,
    Subtask,
    Task,
    TaskGroup,
    TaskStatus,
    TaskSummary,
    TaskTreeDocument,
    TreeStatus,
    format_id,
    summarize,
    utc_timestamp,
)
from .tracker_logging import log_status_change

logger = logging.getLogger("agentos.tasks")

Node = Union[TaskGroup, Task, Subtask]


@dataclass(slots=True)
class NodeLocation:
    """A node together with its ancestors."""

    kind: str  # 'group', 'task', 'subtask'
    node: Node
    group: TaskGroup
    task: Optional[Task] = None


class TaskTreeEngine:
    """Mutations over a loaded :class:`TaskTreeDocument`."""

    def __init__(self, document: TaskTreeDocument, clock: Callable[[], str] = utc_timestamp):
        self.document = document
        self.clock = clock

    @property
    def spec_id(self) -> str:
        return self.document.spec_id

    @property
    def status(self) -> TreeStatus:
        return self.document.status

    @property
    def summary(self) -> TaskSummary:
        return self.document.summary

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find(self, node_id: str) -> NodeLocation:
        for group in self.document.task_groups:
            if group.id == node_id:
                return NodeLocation("group", group, group)
            for task in group.tasks:
                if task.id == node_id:
                    return NodeLocation("task", task, group, task)
                for subtask in task.subtasks:
                    if subtask.id == node_id:
                        return NodeLocation("subtask", subtask, group, task)
        raise NotFoundError(f"Node '{node_id}' not found in tasks for spec '{self.spec_id}'")

    def group(self, group_id: str) -> TaskGroup:
        location = self.find(group_id)
        if location.kind != "group":
            raise NotFoundError(f"'{group_id}' is a {location.kind}, not a task group")
        return location.group

    def unmet_dependencies(self, group: TaskGroup) -> List[str]:
        statuses = {g.id: g.status for g in self.document.task_groups}
        return [dep for dep in group.dependencies if statuses.get(dep) != TreeStatus.COMPLETED]

    def next_actionable(self) -> Optional[Task]:
        """First unfinished task inside a group whose dependencies are met."""
        for group in self.document.task_groups:
            if group.status == TreeStatus.COMPLETED or self.unmet_dependencies(group):
                continue
            for task in group.tasks:
                if task.status not in FINISHED_TASK_STATES:
                    return task
        return None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_task_group(
        self,
        name: str,
        layer: Union[Layer, str] = Layer.OTHER,
        dependencies: Iterable[str] = (),
        acceptance_criteria: Iterable[str] = (),
    ) -> TaskGroup:
        if not name or not name.strip():
            raise ValidationError("Task group name cannot be empty")
        try:
            layer = Layer(layer)
        except ValueError:
            raise ValidationError(
                f"Invalid layer '{layer}', expected one of {[l.value for l in Layer]}"
            ) from None

        dependencies = list(dict.fromkeys(dependencies))
        known = {g.id for g in self.document.task_groups}
        unknown = [dep for dep in dependencies if dep not in known]
        if unknown:
            raise NotFoundError(f"Unknown task group dependencies: {', '.join(unknown)}")

        group = TaskGroup(
            id=self._issue(TASK_GROUP_PREFIX),
            name=name.strip(),
            layer=layer,
            dependencies=dependencies,
            acceptance_criteria=list(acceptance_criteria),
        )
        self.document.task_groups.append(group)
        logger.info(f"[{self.spec_id}] added task group {group.id}: {group.name}")
        return group

    def add_task(self, group_id: str, title: str, notes: Optional[str] = None) -> Task:
        group = self.group(group_id)
        if not title or not title.strip():
            raise ValidationError("Task title cannot be empty")
        if group.status == TreeStatus.COMPLETED:
            raise InvalidTransitionError(
                f"Task group '{group_id}' is completed; reopen it before adding tasks"
            )

        task = Task(id=self._issue(TASK_PREFIX), title=title.strip(), notes=notes)
        group.tasks.append(task)
        logger.info(f"[{self.spec_id}] added {task.id} to {group_id}")
        return task

    def add_subtask(
        self,
        task_id: str,
        title: str,
        details: Iterable[str] = (),
        notes: Optional[str] = None,
    ) -> Subtask:
        location = self.find(task_id)
        if location.kind != "task":
            raise NotFoundError(f"'{task_id}' is a {location.kind}, not a task")
        if not title or not title.strip():
            raise ValidationError("Subtask title cannot be empty")
        if location.task.status == TaskStatus.COMPLETED:
            raise InvalidTransitionError(f"Task '{task_id}' is completed; reopen it before adding subtasks")

        subtask = Subtask(
            id=self._issue(SUBTASK_PREFIX),
            title=title.strip(),
            details=list(details),
            notes=notes,
        )
        location.task.subtasks.append(subtask)
        return subtask

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def set_status(self, node_id: str, new_status: str, force: bool = False, notes: Optional[str] = None) -> Node:
        """Change a node's status, enforcing the hierarchy rules."""
        location = self.find(node_id)
        old_status = location.node.status

        if location.kind == "group":
            self._set_group_status(location.group, new_status, force)
        else:
            self._set_work_item_status(location, new_status, force)

        if notes is not None and location.kind != "group":
            location.node.notes = notes

        if location.node.status != old_status:
            logger.info(f"[{self.spec_id}] {node_id}: {old_status.value} -> {location.node.status.value}")
            log_status_change(
                location.kind, node_id, old_status.value, location.node.status.value,
                spec_id=self.spec_id, tree_status=self.status.value,
            )
        return location.node

    def _set_group_status(self, group: TaskGroup, new_status: str, force: bool) -> None:
        try:
            target = TreeStatus(new_status)
        except ValueError:
            raise InvalidTransitionError(
                f"Invalid task group status '{new_status}', expected one of {[s.value for s in TreeStatus]}"
            ) from None
        if target == group.status:
            return

        if group.status == TreeStatus.COMPLETED and not force:
            raise InvalidTransitionError(
                f"Task group '{group.id}' is completed; pass force=True to reopen it"
            )

        if target in (TreeStatus.IN_PROGRESS, TreeStatus.COMPLETED):
            unmet = self.unmet_dependencies(group)
            if unmet:
                raise UnmetDependencyError(
                    f"Task group '{group.id}' depends on unfinished groups: {', '.join(unmet)}",
                    unmet=unmet,
                )

        if target == TreeStatus.COMPLETED:
            pending = [task.id for task in group.tasks if task.status not in FINISHED_TASK_STATES]
            if pending:
                raise IncompleteChildrenError(
                    f"Task group '{group.id}' has unfinished tasks: {', '.join(pending)}",
                    pending=pending,
                )

        if group.status == TreeStatus.COMPLETED:
            started = [
                g.id for g in self.document.task_groups
                if group.id in g.dependencies and g.status != TreeStatus.PENDING
            ]
            if started:
                logger.warning(f"Reopening {group.id} while dependents already started: {', '.join(started)}")

        group.status = target
        if target != TreeStatus.PENDING and group.started_at is None:
            group.started_at = self.clock()
        if target == TreeStatus.COMPLETED and group.completed_at is None:
            group.completed_at = self.clock()

    def _set_work_item_status(self, location: NodeLocation, new_status: str, force: bool) -> None:
        node = location.node
        try:
            target = TaskStatus(new_status)
        except ValueError:
            raise InvalidTransitionError(
                f"Invalid status '{new_status}', expected one of {[s.value for s in TaskStatus]}"
            ) from None
        if target == node.status:
            return

        if node.status == TaskStatus.COMPLETED and not force:
            raise InvalidTransitionError(
                f"{location.kind.capitalize()} '{node.id}' is completed; pass force=True to reopen it"
            )

        reopening = node.status in FINISHED_TASK_STATES and target not in FINISHED_TASK_STATES
        if reopening:
            parent_id, parent_done = self._parent_state(location)
            if parent_done:
                raise InvalidTransitionError(
                    f"Cannot reopen '{node.id}' while its parent '{parent_id}' is completed; reopen the parent first"
                )

        if target in (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED):
            unmet = self.unmet_dependencies(location.group)
            if unmet:
                raise UnmetDependencyError(
                    f"'{node.id}' belongs to task group '{location.group.id}', which depends on "
                    f"unfinished groups: {', '.join(unmet)}",
                    unmet=unmet,
                )

        if location.kind == "task" and target == TaskStatus.COMPLETED:
            pending = [s.id for s in node.subtasks if s.status not in FINISHED_TASK_STATES]
            if pending:
                raise IncompleteChildrenError(
                    f"Task '{node.id}' has unfinished subtasks: {', '.join(pending)}",
                    pending=pending,
                )

        node.status = target

    @staticmethod
    def _parent_state(location: NodeLocation) -> Tuple[str, bool]:
        if location.kind == "subtask":
            return location.task.id, location.task.status == TaskStatus.COMPLETED
        return location.group.id, location.group.status == TreeStatus.COMPLETED

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def recompute_summary(self) -> TaskSummary:
        """Recount the tree and replace any stale summary loaded from disk."""
        summary = summarize(self.document.task_groups)
        self.document.loaded_summary = summary
        self.document.loaded_status = self.document.status
        return summary

    def summary_drift(self) -> Dict[str, Dict[str, object]]:
        """Fields whose on-disk value disagrees with the live tree, if any."""
        drift: Dict[str, Dict[str, object]] = {}
        live = self.summary.to_dict()
        if self.document.loaded_summary is not None:
            for key, stored in self.document.loaded_summary.to_dict().items():
                if stored != live[key]:
                    drift[key] = {"stored": stored, "live": live[key]}
        if self.document.loaded_status is not None and self.document.loaded_status != self.status:
            drift["status"] = {"stored": self.document.loaded_status.value, "live": self.status.value}
        return drift

    def _issue(self, prefix: str) -> str:
        number = self.document.last_issued.get(prefix, 0) + 1
        self.document.last_issued[prefix] = number
        return format_id(prefix, number)
