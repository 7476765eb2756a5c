"""Findings log: append-only institutional knowledge.

A finding starts active and ends either archived or superseded; there is no
way back to active. Rediscovering an archived finding records a new entry.
Entries are never deleted.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional, Tuple

from .errors import InvalidTransitionError, NotFoundError, SelfMergeError, ValidationError
from .models import (
    FINDING_PREFIX,
    Confidence,
    Finding,
    FindingCategory,
    FindingsDocument,
    FindingStatus,
    format_id,
    utc_timestamp,
)
from .tracker_logging import log_status_change, observability_hooks

logger = logging.getLogger("agentos.findings")

# Confirmations after which a confidence upgrade should be reviewed
CONFIDENCE_REVIEW_THRESHOLDS = {
    Confidence.LOW: (3, Confidence.MEDIUM),
    Confidence.MEDIUM: (5, Confidence.HIGH),
}


def _normalize_title(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", title.lower()).strip()


class FindingsLog:
    """Mutations and queries over a loaded :class:`FindingsDocument`."""

    def __init__(self, document: FindingsDocument, clock: Callable[[], str] = utc_timestamp):
        self.document = document
        self.clock = clock

    @property
    def findings(self) -> List[Finding]:
        return self.document.findings

    def get(self, finding_id: str) -> Finding:
        for finding in self.document.findings:
            if finding.id == finding_id:
                return finding
        raise NotFoundError(f"Finding '{finding_id}' not found")

    def active(self, category: Optional[FindingCategory | str] = None) -> List[Finding]:
        wanted = FindingCategory(category) if category else None
        return [
            f for f in self.document.findings
            if f.is_active() and (wanted is None or f.category == wanted)
        ]

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        category: FindingCategory | str,
        title: str,
        description: str = "",
        confidence: Confidence | str = Confidence.LOW,
        source_spec: Optional[str] = None,
    ) -> Finding:
        if not title or not title.strip():
            raise ValidationError("Finding title cannot be empty")
        try:
            category = FindingCategory(category)
            confidence = Confidence(confidence)
        except ValueError as e:
            raise ValidationError(f"Invalid finding field: {e}") from None

        now = self.clock()
        self.document.last_issued += 1
        finding = Finding(
            id=format_id(FINDING_PREFIX, self.document.last_issued),
            category=category,
            title=title.strip(),
            description=description,
            confidence=confidence,
            created_at=now,
            last_confirmed_at=now,
            source_spec=source_spec,
        )
        self.document.findings.append(finding)
        self._touch()

        logger.info(f"Recorded {finding.id} [{category.value}] {finding.title}")
        observability_hooks.log_workflow_event(
            "finding_recorded", spec_id=source_spec, finding_id=finding.id, category=category.value
        )
        return finding

    def reconfirm(self, finding_id: str) -> Finding:
        finding = self._require_active(finding_id, "reconfirm")
        finding.confirmed_count += 1
        finding.last_confirmed_at = self.clock()
        self._touch()

        logger.info(f"Reconfirmed {finding_id} ({finding.confirmed_count} confirmations)")
        if self.suggested_confidence(finding):
            logger.info(f"{finding_id} is due for a confidence review")
        return finding

    def set_confidence(self, finding_id: str, confidence: Confidence | str) -> Finding:
        finding = self._require_active(finding_id, "change confidence of")
        try:
            finding.confidence = Confidence(confidence)
        except ValueError:
            raise ValidationError(f"Invalid confidence '{confidence}'") from None
        self._touch()
        return finding

    # ------------------------------------------------------------------
    # Review lifecycle
    # ------------------------------------------------------------------

    def merge(self, keep_id: str, archive_id: str) -> Tuple[Finding, Finding]:
        """Fold ``archive_id`` into ``keep_id``; the merged entry becomes superseded."""
        if keep_id == archive_id:
            raise SelfMergeError(f"Cannot merge finding '{keep_id}' into itself")
        keep = self.get(keep_id)
        archived = self.get(archive_id)
        for finding in (keep, archived):
            if not finding.is_active():
                raise InvalidTransitionError(
                    f"Finding '{finding.id}' is {finding.status.value}; only active findings can be merged"
                )

        keep.confirmed_count += archived.confirmed_count
        if archived.last_confirmed_at and (not keep.last_confirmed_at or archived.last_confirmed_at > keep.last_confirmed_at):
            keep.last_confirmed_at = archived.last_confirmed_at
        archived.status = FindingStatus.SUPERSEDED
        archived.superseded_by = keep_id

        # Entries folded into archive_id earlier now point at the survivor
        for finding in self.document.findings:
            if finding.superseded_by == archive_id:
                finding.superseded_by = keep_id
        self._touch()

        logger.info(f"Merged {archive_id} into {keep_id} ({keep.confirmed_count} confirmations)")
        log_status_change(
            "finding", archive_id, FindingStatus.ACTIVE.value, FindingStatus.SUPERSEDED.value,
            superseded_by=keep_id,
        )
        return keep, archived

    def archive(self, finding_id: str, reason: str) -> Finding:
        finding = self._require_active(finding_id, "archive")
        dependents = [f.id for f in self.document.findings if f.superseded_by == finding_id]
        if dependents:
            raise ValidationError(
                f"Finding '{finding_id}' supersedes {', '.join(dependents)}; merge it into another finding instead",
                suggestion="Use merge so superseded entries keep pointing at an active finding",
            )

        finding.status = FindingStatus.ARCHIVED
        finding.archived_at = self.clock()
        finding.archived_reason = reason
        self._touch()

        logger.info(f"Archived {finding_id}: {reason}")
        log_status_change("finding", finding_id, FindingStatus.ACTIVE.value, FindingStatus.ARCHIVED.value,
                          reason=reason)
        return finding

    def suggested_confidence(self, finding: Finding) -> Optional[Confidence]:
        """The confidence a review should consider, or None when no review is due."""
        threshold = CONFIDENCE_REVIEW_THRESHOLDS.get(finding.confidence)
        if finding.is_active() and threshold and finding.confirmed_count >= threshold[0]:
            return threshold[1]
        return None

    def review_candidates(self) -> List[Dict[str, object]]:
        """Active findings whose confirmations suggest a confidence upgrade.

        Upgrades are only proposed; apply them with :meth:`set_confidence`.
        """
        candidates = []
        for finding in self.active():
            suggested = self.suggested_confidence(finding)
            if suggested:
                candidates.append({
                    "id": finding.id,
                    "title": finding.title,
                    "confirmedCount": finding.confirmed_count,
                    "confidence": finding.confidence.value,
                    "suggestedConfidence": suggested.value,
                })
        return candidates

    def find_duplicates(self) -> List[List[str]]:
        """Groups of active findings sharing a category and normalized title."""
        groups: Dict[Tuple[str, str], List[str]] = {}
        for finding in self.active():
            key = (finding.category.value, _normalize_title(finding.title))
            groups.setdefault(key, []).append(finding.id)
        return [ids for ids in groups.values() if len(ids) > 1]

    def mark_reviewed(self) -> str:
        self.document.last_reviewed_at = self.clock()
        self._touch()
        return self.document.last_reviewed_at

    def validate(self) -> List[str]:
        """Check the supersede invariant and return any issues."""
        issues = []
        by_id = {f.id: f for f in self.document.findings}
        if len(by_id) != len(self.document.findings):
            issues.append("Duplicate finding ids")
        for finding in self.document.findings:
            if finding.confirmed_count < 1:
                issues.append(f"{finding.id}: confirmedCount must be at least 1")
            if finding.status == FindingStatus.SUPERSEDED:
                target = by_id.get(finding.superseded_by or "")
                if target is None:
                    issues.append(f"{finding.id}: supersededBy {finding.superseded_by!r} does not exist")
                elif target.id == finding.id or not target.is_active():
                    issues.append(f"{finding.id}: supersededBy '{target.id}' is not an active finding")
            elif finding.superseded_by:
                issues.append(f"{finding.id}: supersededBy set on a {finding.status.value} finding")
        return issues

    def _require_active(self, finding_id: str, action: str) -> Finding:
        finding = self.get(finding_id)
        if not finding.is_active():
            raise InvalidTransitionError(
                f"Cannot {action} finding '{finding_id}': it is {finding.status.value}",
                suggestion="Record a new finding instead of reviving a closed one",
            )
        return finding

    def _touch(self) -> None:
        self.document.last_updated = self.clock()
