"""Agent OS lifecycle tracker - roadmap, spec, task and findings documents."""

# No imports at package level to avoid circular import issues
# Import modules directly where needed

__version__ = "3.0.0"

__all__ = [
    "WorkflowManager",
    "Workspace",
    "RoadmapStore",
    "SpecRecordManager",
    "TaskTreeEngine",
    "FindingsLog",
]
