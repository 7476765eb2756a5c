"""Exception types raised by the Agent OS lifecycle tracker.

Structural violations (cycles, duplicate ids, out-of-order transitions,
unfinished children) are raised at the point of mutation so an inconsistent
document is never written. Advisory problems are reported through
:class:`~agentos_tracker.models.LinkageInconsistency` instead.
"""

from __future__ import annotations

from typing import List, Optional


class TrackerError(Exception):
    """Base class for every error raised by the tracker."""

    suggestion: str = "Inspect the document and retry the operation"

    def __init__(self, message: str, *, suggestion: Optional[str] = None):
        super().__init__(message)
        if suggestion:
            self.suggestion = suggestion


class ValidationError(TrackerError, ValueError):
    """Malformed input: duplicate ids, cyclic dependencies, duplicate priorities."""

    suggestion = "Fix the input values and retry"


class DuplicateIdError(ValidationError):
    """An id that must be unique already exists."""

    suggestion = "Choose a different id"


class MissingArtifactError(ValidationError):
    """A spec stage was requested before the document it depends on exists."""

    suggestion = "Write the required document into the spec folder first"


class SelfMergeError(ValidationError):
    """A finding was merged into itself."""

    suggestion = "Pass two different finding ids"


class InvalidTransitionError(TrackerError, ValueError):
    """A status change is not reachable from the current status."""

    suggestion = "Check the allowed status order before transitioning"


class OutOfOrderError(InvalidTransitionError):
    """A spec stage was skipped or revisited."""

    suggestion = "Advance the spec one stage at a time"


class IncompleteChildrenError(TrackerError):
    """A parent node was completed while some of its children are unfinished."""

    suggestion = "Complete or skip the remaining children first"

    def __init__(self, message: str, pending: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.pending = list(pending or [])


class UnmetDependencyError(TrackerError):
    """Work was started before its prerequisite task groups were completed."""

    suggestion = "Complete the dependency task groups first"

    def __init__(self, message: str, unmet: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.unmet = list(unmet or [])


class NotFoundError(TrackerError, KeyError):
    """A referenced roadmap item, spec, task node or finding does not exist."""

    suggestion = "List the existing ids and retry with one of them"

    def __str__(self) -> str:
        # KeyError would otherwise wrap the message in quotes
        return self.args[0] if self.args else ""


class ConflictError(TrackerError):
    """A document changed on disk after it was loaded."""

    suggestion = "Reload the document and apply the change again"


class DocumentError(TrackerError):
    """A document on disk could not be parsed."""

    suggestion = "Repair the JSON document by hand or restore it from version control"
