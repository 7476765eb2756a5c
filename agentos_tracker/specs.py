"""Spec record management.

A spec record follows one feature through shaping, specification, task
breakdown and implementation. Records optionally link to one roadmap item;
the link is kept bidirectional by writing the item's ``specPath`` when the
record is created, and checked afterwards by
:meth:`SpecRecordManager.link_consistency_check`.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from .errors import (
    DuplicateIdError,
    InvalidTransitionError,
    MissingArtifactError,
    NotFoundError,
    OutOfOrderError,
    ValidationError,
)
from .models import (
    DEFAULT_BASE_DIR,
    SPEC_ORDER,
    LinkageInconsistency,
    RoadmapStatus,
    SpecMeta,
    SpecStatus,
    TaskTreeDocument,
    spec_path_for,
    utc_timestamp,
)
from .roadmap import RoadmapStore
from .tracker_logging import log_status_change, observability_hooks

logger = logging.getLogger("agentos.specs")

# Artifact names reported by an artifact probe
REQUIREMENTS_ARTIFACT = "requirements"
SPEC_ARTIFACT = "spec"
TASKS_ARTIFACT = "tasks"

# Document that must exist before a spec may enter each stage
STAGE_REQUIREMENTS = {
    SpecStatus.SHAPED: REQUIREMENTS_ARTIFACT,
    SpecStatus.SPECCED: SPEC_ARTIFACT,
    SpecStatus.TASKED: TASKS_ARTIFACT,
}

_STAGE_TIMESTAMPS = {
    SpecStatus.SHAPED: "shaped_at",
    SpecStatus.SPECCED: "specced_at",
    SpecStatus.TASKED: "tasked_at",
    SpecStatus.IN_PROGRESS: "implementation_started_at",
    SpecStatus.COMPLETED: "completed_at",
}

ArtifactProbe = Callable[[str], Set[str]]


class SpecRecordManager:
    """Create, advance and cross-check spec records.

    ``artifacts`` reports which documents exist for a spec id; when omitted
    stage readiness is not checked. ``roadmap`` is updated in place when a
    record links to a roadmap item.
    """

    def __init__(
        self,
        records: Optional[Iterable[SpecMeta]] = None,
        roadmap: Optional[RoadmapStore] = None,
        artifacts: Optional[ArtifactProbe] = None,
        clock: Callable[[], str] = utc_timestamp,
        base_dir: str = DEFAULT_BASE_DIR,
    ):
        self.records: Dict[str, SpecMeta] = {record.spec_id: record for record in records or ()}
        self.roadmap = roadmap
        self.artifacts = artifacts
        self.clock = clock
        self.base_dir = base_dir

    def get(self, spec_id: str) -> SpecMeta:
        try:
            return self.records[spec_id]
        except KeyError:
            raise NotFoundError(f"Spec '{spec_id}' not found") from None

    def spec_path(self, spec_id: str) -> str:
        return spec_path_for(spec_id, self.base_dir)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, spec_id: str, title: Optional[str] = None, roadmap_item_id: Optional[str] = None) -> SpecMeta:
        """Create a drafting record, linking it to a planned roadmap item if given."""
        if not spec_id or not spec_id.strip() or "/" in spec_id:
            raise ValidationError(f"Invalid spec id {spec_id!r}")
        if spec_id in self.records:
            raise DuplicateIdError(f"Spec '{spec_id}' already exists")

        if roadmap_item_id is not None:
            if self.roadmap is None:
                raise NotFoundError(f"Roadmap item '{roadmap_item_id}' not found: no roadmap loaded")
            item = self.roadmap.get(roadmap_item_id)
            if item.spec_path and item.spec_path != self.spec_path(spec_id):
                raise ValidationError(
                    f"Roadmap item '{roadmap_item_id}' is already linked to {item.spec_path}"
                )
            if item.status != RoadmapStatus.PLANNED:
                raise InvalidTransitionError(
                    f"Roadmap item '{roadmap_item_id}' is '{item.status.value}'; only planned items can be specced",
                    suggestion="Reactivate deferred items before creating a spec for them",
                )
            if title is None:
                title = item.title

        record = SpecMeta(
            spec_id=spec_id,
            title=title or spec_id,
            roadmap_item_id=roadmap_item_id,
            created_at=self.clock(),
        )

        if roadmap_item_id is not None:
            self.roadmap.transition(roadmap_item_id, RoadmapStatus.SPECCED, spec_path=self.spec_path(spec_id))
        self.records[spec_id] = record

        logger.info(f"Created spec {spec_id}" + (f" for {roadmap_item_id}" if roadmap_item_id else ""))
        observability_hooks.log_workflow_event(
            "spec_created", spec_id=spec_id, roadmap_item_id=roadmap_item_id
        )
        return record

    def advance(self, spec_id: str, target_status: SpecStatus | str) -> SpecMeta:
        """Move a record to the next stage; repeating the current stage is a no-op."""
        record = self.get(spec_id)
        try:
            target = SpecStatus(target_status)
        except ValueError:
            raise OutOfOrderError(f"Unknown spec status '{target_status}'") from None

        if target == SpecStatus.ABANDONED:
            return self.abandon(spec_id)
        if target == record.status:
            return record
        if record.status in (SpecStatus.COMPLETED, SpecStatus.ABANDONED):
            raise OutOfOrderError(f"Spec '{spec_id}' is {record.status.value} and cannot change stage")

        current_index = SPEC_ORDER.index(record.status)
        target_index = SPEC_ORDER.index(target)
        if target_index < current_index:
            raise OutOfOrderError(
                f"Spec '{spec_id}' cannot move back from '{record.status.value}' to '{target.value}'"
            )
        if target_index > current_index + 1:
            skipped = [stage.value for stage in SPEC_ORDER[current_index + 1:target_index]]
            raise OutOfOrderError(
                f"Spec '{spec_id}' cannot skip to '{target.value}'; next stage is "
                f"'{SPEC_ORDER[current_index + 1].value}' (skipped: {', '.join(skipped)})"
            )

        required = STAGE_REQUIREMENTS.get(target)
        if required and self.artifacts is not None and required not in self.artifacts(spec_id):
            raise MissingArtifactError(
                f"Spec '{spec_id}' cannot become '{target.value}' before its {required} document exists"
            )

        old_status = record.status
        record.status = target
        attribute = _STAGE_TIMESTAMPS[target]
        if getattr(record, attribute) is None:
            setattr(record, attribute, self.clock())

        logger.info(f"Spec {spec_id}: {old_status.value} -> {target.value}")
        log_status_change("spec", spec_id, old_status.value, target.value, spec_id=spec_id)
        return record

    def abandon(self, spec_id: str) -> SpecMeta:
        record = self.get(spec_id)
        if record.status == SpecStatus.ABANDONED:
            return record
        if record.status == SpecStatus.COMPLETED:
            raise OutOfOrderError(f"Completed spec '{spec_id}' cannot be abandoned")

        old_status = record.status
        record.status = SpecStatus.ABANDONED
        logger.info(f"Abandoned spec {spec_id}")
        log_status_change("spec", spec_id, old_status.value, record.status.value, spec_id=spec_id)
        return record

    def add_finding(self, spec_id: str, finding_id: str) -> SpecMeta:
        record = self.get(spec_id)
        if finding_id not in record.findings_generated:
            record.findings_generated.append(finding_id)
        return record

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def link_consistency_check(
        self, task_trees: Optional[Mapping[str, TaskTreeDocument]] = None
    ) -> List[LinkageInconsistency]:
        """Report broken roadmap <-> spec references without raising."""
        reports: List[LinkageInconsistency] = []
        roadmap_items = {item.id: item for item in self.roadmap.items} if self.roadmap else {}

        for spec_id in sorted(self.records):
            record = self.records[spec_id]
            if record.roadmap_item_id is None:
                continue
            item = roadmap_items.get(record.roadmap_item_id)
            if item is None:
                reports.append(LinkageInconsistency(
                    kind="missing-roadmap-item",
                    subject=spec_id,
                    detail=f"Spec references roadmap item '{record.roadmap_item_id}', which does not exist",
                    spec_id=spec_id,
                    roadmap_item_id=record.roadmap_item_id,
                ))
            elif item.spec_path != self.spec_path(spec_id):
                reports.append(LinkageInconsistency(
                    kind="roadmap-points-elsewhere",
                    subject=spec_id,
                    detail=f"Roadmap item '{item.id}' has specPath {item.spec_path!r}, "
                           f"expected '{self.spec_path(spec_id)}'",
                    spec_id=spec_id,
                    roadmap_item_id=item.id,
                ))

        known_paths = {self.spec_path(spec_id): spec_id for spec_id in self.records}
        for item_id in sorted(roadmap_items):
            item = roadmap_items[item_id]
            if not item.spec_path:
                continue
            spec_id = known_paths.get(item.spec_path)
            if spec_id is None:
                reports.append(LinkageInconsistency(
                    kind="missing-spec",
                    subject=item_id,
                    detail=f"Roadmap item points to {item.spec_path}, which has no spec record",
                    roadmap_item_id=item_id,
                ))
            elif self.records[spec_id].roadmap_item_id != item_id:
                reports.append(LinkageInconsistency(
                    kind="spec-points-elsewhere",
                    subject=item_id,
                    detail=f"Roadmap item points to {item.spec_path}, but that spec names roadmap item "
                           f"{self.records[spec_id].roadmap_item_id!r}",
                    spec_id=spec_id,
                    roadmap_item_id=item_id,
                ))

        for spec_id, tree in sorted((task_trees or {}).items()):
            record = self.records.get(spec_id)
            if record is not None and tree.roadmap_item_id != record.roadmap_item_id:
                reports.append(LinkageInconsistency(
                    kind="tasks-roadmap-mismatch",
                    subject=spec_id,
                    detail=f"tasks.json names roadmap item {tree.roadmap_item_id!r}, "
                           f"spec-meta.json names {record.roadmap_item_id!r}",
                    spec_id=spec_id,
                    roadmap_item_id=record.roadmap_item_id,
                ))

        if reports:
            logger.warning(f"Linkage check found {len(reports)} inconsistencies")
        return reports
