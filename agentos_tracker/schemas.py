"""JSON Schemas for the tracker documents.

Written into ``agent-os/schemas/`` by :meth:`Workspace.install` so the agent
can validate hand edits, and used by :class:`~agentos_tracker.workspace.Workspace`
to check every document it loads. Enum values come from :mod:`agentos_tracker.models`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Type

from .models import (
    Confidence,
    Effort,
    FindingCategory,
    FindingStatus,
    Layer,
    RoadmapStatus,
    SpecStatus,
    TaskStatus,
    TreeStatus,
)

DRAFT = "https://json-schema.org/draft/2020-12/schema"

NULLABLE_STRING = {"type": ["string", "null"]}
STRING_LIST = {"type": "array", "items": {"type": "string"}}
ID_SEQUENCE = {"type": "object", "additionalProperties": {"type": "integer", "minimum": 0}}
REVISION = {"type": "integer", "minimum": 0}


def _enum(enum_type: Type[Enum]) -> Dict[str, Any]:
    return {"type": "string", "enum": [member.value for member in enum_type]}


def _identifier(prefix: str) -> Dict[str, Any]:
    return {"type": "string", "pattern": f"^{prefix}-[0-9]{{3,}}$"}


def _document(title: str, required: list, properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "$schema": DRAFT,
        "title": title,
        "type": "object",
        "required": required,
        "properties": properties,
    }


ROADMAP_ITEM_SCHEMA = {
    "type": "object",
    "required": ["id", "title", "status", "effort", "priority", "dependencies", "specPath"],
    "properties": {
        "id": _identifier("roadmap"),
        "title": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "status": _enum(RoadmapStatus),
        "effort": _enum(Effort),
        "priority": {"type": "integer", "minimum": 1},
        "dependencies": {"type": "array", "items": _identifier("roadmap"), "uniqueItems": True},
        "specPath": NULLABLE_STRING,
        "createdAt": NULLABLE_STRING,
        "speccedAt": NULLABLE_STRING,
        "startedAt": NULLABLE_STRING,
        "completedAt": NULLABLE_STRING,
        "deferredAt": NULLABLE_STRING,
        "deferredReason": NULLABLE_STRING,
    },
}

SUBTASK_SCHEMA = {
    "type": "object",
    "required": ["id", "title", "status"],
    "properties": {
        "id": _identifier("subtask"),
        "title": {"type": "string"},
        "status": _enum(TaskStatus),
        "details": STRING_LIST,
        "notes": NULLABLE_STRING,
    },
}

TASK_SCHEMA = {
    "type": "object",
    "required": ["id", "title", "status", "subtasks"],
    "properties": {
        "id": _identifier("task"),
        "title": {"type": "string"},
        "status": _enum(TaskStatus),
        "notes": NULLABLE_STRING,
        "subtasks": {"type": "array", "items": SUBTASK_SCHEMA},
    },
}

TASK_GROUP_SCHEMA = {
    "type": "object",
    "required": ["id", "name", "layer", "dependencies", "status", "tasks"],
    "properties": {
        "id": _identifier("tg"),
        "name": {"type": "string"},
        "layer": _enum(Layer),
        "dependencies": {"type": "array", "items": _identifier("tg"), "uniqueItems": True},
        "status": _enum(TreeStatus),
        "acceptanceCriteria": STRING_LIST,
        "startedAt": NULLABLE_STRING,
        "completedAt": NULLABLE_STRING,
        "tasks": {"type": "array", "items": TASK_SCHEMA},
    },
}

FINDING_SCHEMA = {
    "type": "object",
    "required": ["id", "category", "title", "confidence", "status", "confirmedCount"],
    "properties": {
        "id": _identifier("finding"),
        "category": _enum(FindingCategory),
        "title": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "confidence": _enum(Confidence),
        "status": _enum(FindingStatus),
        "confirmedCount": {"type": "integer", "minimum": 1},
        "createdAt": NULLABLE_STRING,
        "lastConfirmedAt": NULLABLE_STRING,
        "supersededBy": {"anyOf": [_identifier("finding"), {"type": "null"}]},
        "sourceSpec": NULLABLE_STRING,
        "archivedAt": NULLABLE_STRING,
        "archivedReason": NULLABLE_STRING,
    },
}

SCHEMAS: Dict[str, Dict[str, Any]] = {
    "roadmap.schema.json": _document(
        "Agent OS roadmap",
        ["schemaVersion", "productName", "items"],
        {
            "schemaVersion": {"type": "string"},
            "productName": {"type": "string"},
            "lastUpdated": NULLABLE_STRING,
            "revision": REVISION,
            "idSequence": ID_SEQUENCE,
            "items": {"type": "array", "items": ROADMAP_ITEM_SCHEMA},
        },
    ),
    "spec-meta.schema.json": _document(
        "Agent OS spec metadata",
        ["schemaVersion", "specId", "title", "status"],
        {
            "schemaVersion": {"type": "string"},
            "specId": {"type": "string", "minLength": 1},
            "title": {"type": "string"},
            "roadmapItemId": {"anyOf": [_identifier("roadmap"), {"type": "null"}]},
            "status": _enum(SpecStatus),
            "createdAt": NULLABLE_STRING,
            "shapedAt": NULLABLE_STRING,
            "speccedAt": NULLABLE_STRING,
            "taskedAt": NULLABLE_STRING,
            "implementationStartedAt": NULLABLE_STRING,
            "completedAt": NULLABLE_STRING,
            "findingsGenerated": {"type": "array", "items": _identifier("finding"), "uniqueItems": True},
            "revision": REVISION,
        },
    ),
    "tasks.schema.json": _document(
        "Agent OS task breakdown",
        ["schemaVersion", "specId", "status", "summary", "taskGroups"],
        {
            "schemaVersion": {"type": "string"},
            "specId": {"type": "string", "minLength": 1},
            "specTitle": {"type": "string"},
            "roadmapItemId": {"anyOf": [_identifier("roadmap"), {"type": "null"}]},
            "status": _enum(TreeStatus),
            "summary": {
                "type": "object",
                "required": ["totalTaskGroups", "completedTaskGroups", "totalTasks", "completedTasks"],
                "properties": {
                    key: {"type": "integer", "minimum": 0}
                    for key in ("totalTaskGroups", "completedTaskGroups", "totalTasks", "completedTasks")
                },
            },
            "revision": REVISION,
            "idSequence": ID_SEQUENCE,
            "taskGroups": {"type": "array", "items": TASK_GROUP_SCHEMA},
        },
    ),
    "findings.schema.json": _document(
        "Agent OS findings",
        ["schemaVersion", "findings"],
        {
            "schemaVersion": {"type": "string"},
            "lastUpdated": NULLABLE_STRING,
            "lastReviewedAt": NULLABLE_STRING,
            "revision": REVISION,
            "idSequence": ID_SEQUENCE,
            "findings": {"type": "array", "items": FINDING_SCHEMA},
        },
    ),
}
