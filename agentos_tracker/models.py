"""Data models for the Agent OS lifecycle tracker.

This module contains the document structures the agent reads and writes:
the product roadmap, per-spec metadata, per-spec task trees and the
product-wide findings log. Every document converts to and from the exact
camelCase JSON shape stored on disk.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

SCHEMA_VERSION = "1.0"
DEFAULT_BASE_DIR = "agent-os"


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with a Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def spec_path_for(spec_id: str, base_dir: str = DEFAULT_BASE_DIR) -> str:
    """Project-relative folder of a spec, as stored in ``RoadmapItem.specPath``."""
    return f"{base_dir}/specs/{spec_id}"


# ----------------------------------------------------------------------
# Status enums
# ----------------------------------------------------------------------


class RoadmapStatus(str, Enum):
    """Roadmap item status progression"""
    PLANNED = "planned"
    SPECCED = "specced"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    DEFERRED = "deferred"


ROADMAP_ORDER = [
    RoadmapStatus.PLANNED,
    RoadmapStatus.SPECCED,
    RoadmapStatus.IN_PROGRESS,
    RoadmapStatus.COMPLETED,
]


class Effort(str, Enum):
    """T-shirt size estimate"""
    XS = "XS"
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"


class SpecStatus(str, Enum):
    """Spec workflow stage"""
    DRAFTING = "drafting"
    SHAPED = "shaped"
    SPECCED = "specced"
    TASKED = "tasked"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


SPEC_ORDER = [
    SpecStatus.DRAFTING,
    SpecStatus.SHAPED,
    SpecStatus.SPECCED,
    SpecStatus.TASKED,
    SpecStatus.IN_PROGRESS,
    SpecStatus.COMPLETED,
]


class TreeStatus(str, Enum):
    """Status shared by task groups and the task tree root"""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskStatus(str, Enum):
    """Status of tasks and subtasks"""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


# Children in these states no longer block their parent
FINISHED_TASK_STATES = frozenset({TaskStatus.COMPLETED, TaskStatus.SKIPPED})


class Layer(str, Enum):
    """Architectural layer a task group belongs to"""
    DATABASE = "database"
    API = "api"
    FRONTEND = "frontend"
    TESTING = "testing"
    INFRASTRUCTURE = "infrastructure"
    INTEGRATION = "integration"
    OTHER = "other"


class FindingCategory(str, Enum):
    BUILD_CONFIG = "build-config"
    ERROR_PATTERN = "error-pattern"
    CODE_PATTERN = "code-pattern"
    DEPENDENCY = "dependency"
    PERFORMANCE = "performance"
    TESTING = "testing"
    ARCHITECTURE = "architecture"
    TOOLING = "tooling"
    SECURITY = "security"
    OTHER = "other"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FindingStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    SUPERSEDED = "superseded"


# ----------------------------------------------------------------------
# Identifier sequences
# ----------------------------------------------------------------------

ROADMAP_PREFIX = "roadmap"
TASK_GROUP_PREFIX = "tg"
TASK_PREFIX = "task"
SUBTASK_PREFIX = "subtask"
FINDING_PREFIX = "finding"


def format_id(prefix: str, number: int) -> str:
    """Render a sequential id such as ``task-007``."""
    return f"{prefix}-{number:03d}"


def parse_id_number(identifier: str, prefix: str) -> Optional[int]:
    """Return the numeric part of ``identifier`` or None if it has another shape."""
    match = re.fullmatch(rf"{re.escape(prefix)}-(\d+)", identifier or "")
    return int(match.group(1)) if match else None


def highest_issued(identifiers: Iterable[str], prefix: str) -> int:
    """Largest sequence number among ``identifiers`` (0 when none match)."""
    numbers = [parse_id_number(identifier, prefix) for identifier in identifiers]
    return max((n for n in numbers if n is not None), default=0)


# ----------------------------------------------------------------------
# Roadmap
# ----------------------------------------------------------------------


@dataclass(slots=True)
class RoadmapItem:
    """A prioritized feature on the product roadmap."""

    id: str
    title: str
    description: str = ""
    status: RoadmapStatus = RoadmapStatus.PLANNED
    effort: Effort = Effort.M
    priority: int = 1
    dependencies: List[str] = field(default_factory=list)
    spec_path: Optional[str] = None
    created_at: Optional[str] = None
    specced_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    deferred_at: Optional[str] = None
    deferred_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "effort": self.effort.value,
            "priority": self.priority,
            "dependencies": list(self.dependencies),
            "specPath": self.spec_path,
            "createdAt": self.created_at,
            "speccedAt": self.specced_at,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "deferredAt": self.deferred_at,
            "deferredReason": self.deferred_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoadmapItem":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            status=RoadmapStatus(data.get("status", "planned")),
            effort=Effort(data.get("effort", "M")),
            priority=data.get("priority", 1),
            dependencies=list(data.get("dependencies", [])),
            spec_path=data.get("specPath"),
            created_at=data.get("createdAt"),
            specced_at=data.get("speccedAt"),
            started_at=data.get("startedAt"),
            completed_at=data.get("completedAt"),
            deferred_at=data.get("deferredAt"),
            deferred_reason=data.get("deferredReason"),
        )

    def validate(self) -> List[str]:
        """Validate the item and return any issues."""
        issues = []

        if not self.id:
            issues.append("Roadmap item id is required")
        if not self.title:
            issues.append(f"{self.id}: title is required")
        if not isinstance(self.priority, int) or self.priority < 1:
            issues.append(f"{self.id}: priority must be a positive integer, got {self.priority!r}")
        if self.id in self.dependencies:
            issues.append(f"{self.id}: an item cannot depend on itself")
        if self.status == RoadmapStatus.PLANNED and self.spec_path:
            issues.append(f"{self.id}: planned items cannot reference a spec")
        if self.status in (RoadmapStatus.SPECCED, RoadmapStatus.IN_PROGRESS, RoadmapStatus.COMPLETED) \
                and not self.spec_path:
            issues.append(f"{self.id}: status '{self.status.value}' requires a specPath")
        if self.status != RoadmapStatus.DEFERRED and (self.deferred_at or self.deferred_reason):
            issues.append(f"{self.id}: deferral fields set on a non-deferred item")

        return issues


@dataclass(slots=True)
class RoadmapDocument:
    """Contents of ``product/roadmap.json``."""

    product_name: str
    items: List[RoadmapItem] = field(default_factory=list)
    schema_version: str = SCHEMA_VERSION
    last_updated: Optional[str] = None
    revision: int = 0
    last_issued: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "schemaVersion": self.schema_version,
            "productName": self.product_name,
            "lastUpdated": self.last_updated,
            "revision": self.revision,
            "idSequence": {ROADMAP_PREFIX: self.last_issued},
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoadmapDocument":
        """Create from dictionary representation."""
        items = [RoadmapItem.from_dict(item) for item in data.get("items", [])]
        recorded = data.get("idSequence", {}).get(ROADMAP_PREFIX, 0)
        return cls(
            product_name=data.get("productName", ""),
            items=items,
            schema_version=data.get("schemaVersion", SCHEMA_VERSION),
            last_updated=data.get("lastUpdated"),
            revision=data.get("revision", 0),
            last_issued=max(recorded, highest_issued((i.id for i in items), ROADMAP_PREFIX)),
        )


# ----------------------------------------------------------------------
# Spec metadata
# ----------------------------------------------------------------------


@dataclass(slots=True)
class SpecMeta:
    """Contents of ``specs/<specId>/spec-meta.json``."""

    spec_id: str
    title: str
    roadmap_item_id: Optional[str] = None
    status: SpecStatus = SpecStatus.DRAFTING
    created_at: Optional[str] = None
    shaped_at: Optional[str] = None
    specced_at: Optional[str] = None
    tasked_at: Optional[str] = None
    implementation_started_at: Optional[str] = None
    completed_at: Optional[str] = None
    findings_generated: List[str] = field(default_factory=list)
    schema_version: str = SCHEMA_VERSION
    revision: int = 0

    def stage_timestamps(self) -> List[Optional[str]]:
        """Stage timestamps in workflow order."""
        return [
            self.created_at,
            self.shaped_at,
            self.specced_at,
            self.tasked_at,
            self.implementation_started_at,
            self.completed_at,
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "schemaVersion": self.schema_version,
            "specId": self.spec_id,
            "title": self.title,
            "roadmapItemId": self.roadmap_item_id,
            "status": self.status.value,
            "createdAt": self.created_at,
            "shapedAt": self.shaped_at,
            "speccedAt": self.specced_at,
            "taskedAt": self.tasked_at,
            "implementationStartedAt": self.implementation_started_at,
            "completedAt": self.completed_at,
            "findingsGenerated": list(self.findings_generated),
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpecMeta":
        """Create from dictionary representation."""
        return cls(
            spec_id=data["specId"],
            title=data.get("title", data["specId"]),
            roadmap_item_id=data.get("roadmapItemId"),
            status=SpecStatus(data.get("status", "drafting")),
            created_at=data.get("createdAt"),
            shaped_at=data.get("shapedAt"),
            specced_at=data.get("speccedAt"),
            tasked_at=data.get("taskedAt"),
            implementation_started_at=data.get("implementationStartedAt"),
            completed_at=data.get("completedAt"),
            findings_generated=list(data.get("findingsGenerated", [])),
            schema_version=data.get("schemaVersion", SCHEMA_VERSION),
            revision=data.get("revision", 0),
        )

    def validate(self) -> List[str]:
        """Validate stage timestamps and return any issues."""
        issues = []

        if not self.spec_id:
            issues.append("Spec id is required")
        present = [stamp for stamp in self.stage_timestamps() if stamp]
        if present != sorted(present):
            issues.append(f"{self.spec_id}: stage timestamps are not in workflow order")
        if self.status in SPEC_ORDER:
            reached = SPEC_ORDER.index(self.status)
            for index, stamp in enumerate(self.stage_timestamps()):
                if index > reached and stamp:
                    issues.append(
                        f"{self.spec_id}: stage '{SPEC_ORDER[index].value}' has a timestamp "
                        f"but status is '{self.status.value}'"
                    )
        if len(set(self.findings_generated)) != len(self.findings_generated):
            issues.append(f"{self.spec_id}: findingsGenerated contains duplicates")

        return issues


# ----------------------------------------------------------------------
# Task tree
# ----------------------------------------------------------------------


@dataclass(slots=True)
class Subtask:
    id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    details: List[str] = field(default_factory=list)
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "details": list(self.details),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subtask":
        return cls(
            id=data["id"],
            title=data["title"],
            status=TaskStatus(data.get("status", "pending")),
            details=list(data.get("details", [])),
            notes=data.get("notes"),
        )


@dataclass(slots=True)
class Task:
    id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    notes: Optional[str] = None
    subtasks: List[Subtask] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "notes": self.notes,
            "subtasks": [subtask.to_dict() for subtask in self.subtasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            title=data["title"],
            status=TaskStatus(data.get("status", "pending")),
            notes=data.get("notes"),
            subtasks=[Subtask.from_dict(s) for s in data.get("subtasks", [])],
        )


@dataclass(slots=True)
class TaskGroup:
    id: str
    name: str
    layer: Layer = Layer.OTHER
    dependencies: List[str] = field(default_factory=list)
    status: TreeStatus = TreeStatus.PENDING
    acceptance_criteria: List[str] = field(default_factory=list)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    tasks: List[Task] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "layer": self.layer.value,
            "dependencies": list(self.dependencies),
            "status": self.status.value,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "tasks": [task.to_dict() for task in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskGroup":
        return cls(
            id=data["id"],
            name=data["name"],
            layer=Layer(data.get("layer", "other")),
            dependencies=list(data.get("dependencies", [])),
            status=TreeStatus(data.get("status", "pending")),
            acceptance_criteria=list(data.get("acceptanceCriteria", [])),
            started_at=data.get("startedAt"),
            completed_at=data.get("completedAt"),
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
        )


@dataclass(slots=True)
class TaskSummary:
    """Aggregate counts of a task tree. Always derived from node statuses."""

    total_task_groups: int = 0
    completed_task_groups: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalTaskGroups": self.total_task_groups,
            "completedTaskGroups": self.completed_task_groups,
            "totalTasks": self.total_tasks,
            "completedTasks": self.completed_tasks,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskSummary":
        return cls(
            total_task_groups=data.get("totalTaskGroups", 0),
            completed_task_groups=data.get("completedTaskGroups", 0),
            total_tasks=data.get("totalTasks", 0),
            completed_tasks=data.get("completedTasks", 0),
        )


def summarize(groups: Iterable[TaskGroup]) -> TaskSummary:
    """Count groups and tasks by status. Skipped tasks are not completed."""
    summary = TaskSummary()
    for group in groups:
        summary.total_task_groups += 1
        if group.status == TreeStatus.COMPLETED:
            summary.completed_task_groups += 1
        for task in group.tasks:
            summary.total_tasks += 1
            if task.status == TaskStatus.COMPLETED:
                summary.completed_tasks += 1
    return summary


def derive_tree_status(groups: List[TaskGroup]) -> TreeStatus:
    """Root status: completed only when every group is completed."""
    if groups and all(group.status == TreeStatus.COMPLETED for group in groups):
        return TreeStatus.COMPLETED
    for group in groups:
        if group.status != TreeStatus.PENDING:
            return TreeStatus.IN_PROGRESS
        for task in group.tasks:
            if task.status != TaskStatus.PENDING:
                return TreeStatus.IN_PROGRESS
            if any(subtask.status != TaskStatus.PENDING for subtask in task.subtasks):
                return TreeStatus.IN_PROGRESS
    return TreeStatus.PENDING


@dataclass(slots=True)
class TaskTreeDocument:
    """Contents of ``specs/<specId>/tasks.json``.

    ``status`` and ``summary`` are computed on every read; the values found
    on disk are kept in ``loaded_status``/``loaded_summary`` only so that
    drift introduced by hand edits can be reported.
    """

    spec_id: str
    spec_title: str = ""
    roadmap_item_id: Optional[str] = None
    task_groups: List[TaskGroup] = field(default_factory=list)
    schema_version: str = SCHEMA_VERSION
    revision: int = 0
    last_issued: Dict[str, int] = field(default_factory=dict)
    loaded_status: Optional[TreeStatus] = None
    loaded_summary: Optional[TaskSummary] = None

    @property
    def status(self) -> TreeStatus:
        return derive_tree_status(self.task_groups)

    @property
    def summary(self) -> TaskSummary:
        return summarize(self.task_groups)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "schemaVersion": self.schema_version,
            "specId": self.spec_id,
            "specTitle": self.spec_title,
            "roadmapItemId": self.roadmap_item_id,
            "status": self.status.value,
            "summary": self.summary.to_dict(),
            "revision": self.revision,
            "idSequence": dict(self.last_issued),
            "taskGroups": [group.to_dict() for group in self.task_groups],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskTreeDocument":
        """Create from dictionary representation."""
        groups = [TaskGroup.from_dict(g) for g in data.get("taskGroups", [])]
        tasks = [task for group in groups for task in group.tasks]
        subtasks = [subtask for task in tasks for subtask in task.subtasks]
        recorded = data.get("idSequence", {})
        last_issued = {
            TASK_GROUP_PREFIX: max(
                recorded.get(TASK_GROUP_PREFIX, 0),
                highest_issued((g.id for g in groups), TASK_GROUP_PREFIX),
            ),
            TASK_PREFIX: max(
                recorded.get(TASK_PREFIX, 0),
                highest_issued((t.id for t in tasks), TASK_PREFIX),
            ),
            SUBTASK_PREFIX: max(
                recorded.get(SUBTASK_PREFIX, 0),
                highest_issued((s.id for s in subtasks), SUBTASK_PREFIX),
            ),
        }
        loaded_summary = data.get("summary")
        loaded_status = data.get("status")
        return cls(
            spec_id=data["specId"],
            spec_title=data.get("specTitle", ""),
            roadmap_item_id=data.get("roadmapItemId"),
            task_groups=groups,
            schema_version=data.get("schemaVersion", SCHEMA_VERSION),
            revision=data.get("revision", 0),
            last_issued=last_issued,
            loaded_status=TreeStatus(loaded_status) if loaded_status else None,
            loaded_summary=TaskSummary.from_dict(loaded_summary) if loaded_summary is not None else None,
        )

    def validate(self) -> List[str]:
        """Validate node ids and completion states and return any issues."""
        issues = []

        if not self.spec_id:
            issues.append("Spec id is required")

        seen: set = set()
        group_ids = {group.id for group in self.task_groups}
        for group in self.task_groups:
            node_ids = [group.id]
            node_ids += [task.id for task in group.tasks]
            node_ids += [subtask.id for task in group.tasks for subtask in task.subtasks]
            for node_id in node_ids:
                if node_id in seen:
                    issues.append(f"{self.spec_id}: duplicate node id '{node_id}'")
                seen.add(node_id)

            for dep in group.dependencies:
                if dep == group.id:
                    issues.append(f"{group.id}: a task group cannot depend on itself")
                elif dep not in group_ids:
                    issues.append(f"{group.id}: unknown dependency '{dep}'")

            if group.status == TreeStatus.COMPLETED:
                unfinished = [task.id for task in group.tasks if task.status not in FINISHED_TASK_STATES]
                if unfinished:
                    issues.append(f"{group.id}: completed with unfinished tasks {', '.join(unfinished)}")
            for task in group.tasks:
                if task.status == TaskStatus.COMPLETED:
                    unfinished = [s.id for s in task.subtasks if s.status not in FINISHED_TASK_STATES]
                    if unfinished:
                        issues.append(f"{task.id}: completed with unfinished subtasks {', '.join(unfinished)}")

        return issues


# ----------------------------------------------------------------------
# Findings
# ----------------------------------------------------------------------


@dataclass(slots=True)
class Finding:
    """A piece of institutional knowledge captured during implementation."""

    id: str
    category: FindingCategory
    title: str
    description: str = ""
    confidence: Confidence = Confidence.LOW
    status: FindingStatus = FindingStatus.ACTIVE
    confirmed_count: int = 1
    created_at: Optional[str] = None
    last_confirmed_at: Optional[str] = None
    superseded_by: Optional[str] = None
    source_spec: Optional[str] = None
    archived_at: Optional[str] = None
    archived_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence.value,
            "status": self.status.value,
            "confirmedCount": self.confirmed_count,
            "createdAt": self.created_at,
            "lastConfirmedAt": self.last_confirmed_at,
            "supersededBy": self.superseded_by,
            "sourceSpec": self.source_spec,
            "archivedAt": self.archived_at,
            "archivedReason": self.archived_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            category=FindingCategory(data.get("category", "other")),
            title=data["title"],
            description=data.get("description", ""),
            confidence=Confidence(data.get("confidence", "low")),
            status=FindingStatus(data.get("status", "active")),
            confirmed_count=data.get("confirmedCount", 1),
            created_at=data.get("createdAt"),
            last_confirmed_at=data.get("lastConfirmedAt"),
            superseded_by=data.get("supersededBy"),
            source_spec=data.get("sourceSpec"),
            archived_at=data.get("archivedAt"),
            archived_reason=data.get("archivedReason"),
        )

    def is_active(self) -> bool:
        return self.status == FindingStatus.ACTIVE


@dataclass(slots=True)
class FindingsDocument:
    """Contents of ``product/findings.json``."""

    findings: List[Finding] = field(default_factory=list)
    schema_version: str = SCHEMA_VERSION
    last_updated: Optional[str] = None
    last_reviewed_at: Optional[str] = None
    revision: int = 0
    last_issued: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "schemaVersion": self.schema_version,
            "lastUpdated": self.last_updated,
            "lastReviewedAt": self.last_reviewed_at,
            "revision": self.revision,
            "idSequence": {FINDING_PREFIX: self.last_issued},
            "findings": [finding.to_dict() for finding in self.findings],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FindingsDocument":
        """Create from dictionary representation."""
        findings = [Finding.from_dict(f) for f in data.get("findings", [])]
        recorded = data.get("idSequence", {}).get(FINDING_PREFIX, 0)
        return cls(
            findings=findings,
            schema_version=data.get("schemaVersion", SCHEMA_VERSION),
            last_updated=data.get("lastUpdated"),
            last_reviewed_at=data.get("lastReviewedAt"),
            revision=data.get("revision", 0),
            last_issued=max(recorded, highest_issued((f.id for f in findings), FINDING_PREFIX)),
        )


# ----------------------------------------------------------------------
# Advisory reports
# ----------------------------------------------------------------------


@dataclass(slots=True)
class LinkageInconsistency:
    """A broken roadmap <-> spec reference, surfaced for manual correction."""

    # 'missing-roadmap-item', 'roadmap-points-elsewhere', 'missing-spec',
    # 'spec-points-elsewhere', 'tasks-roadmap-mismatch'
    kind: str
    subject: str
    detail: str
    spec_id: Optional[str] = None
    roadmap_item_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert to dictionary representation."""
        return {
            "kind": self.kind,
            "subject": self.subject,
            "detail": self.detail,
            "specId": self.spec_id,
            "roadmapItemId": self.roadmap_item_id,
        }
