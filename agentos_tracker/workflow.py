"""Workflow management for Agent OS documents.

This module provides the cross-document control flow: every operation
loads the documents it needs, applies the change through the store classes,
rolls status changes up (task tree -> spec -> roadmap item) and writes the
documents back. Operations return JSON-ready dictionaries; tracker errors are
reported in the payload so an agent can correct course.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import MissingArtifactError, NotFoundError, TrackerError
from .findings import FindingsLog
from .models import (
    ROADMAP_ORDER,
    SPEC_ORDER,
    RoadmapDocument,
    RoadmapStatus,
    SpecMeta,
    SpecStatus,
    TaskTreeDocument,
    TreeStatus,
    spec_path_for,
    utc_timestamp,
)
from .roadmap import RoadmapStore
from .specs import SpecRecordManager
from .tasks import TaskTreeEngine
from .tracker_logging import log_error_with_context, log_operation, log_performance
from .workspace import Workspace

logger = logging.getLogger("agentos.workflow")

# Roadmap status implied by each spec stage
SPEC_TO_ROADMAP = {
    SpecStatus.IN_PROGRESS: RoadmapStatus.IN_PROGRESS,
    SpecStatus.COMPLETED: RoadmapStatus.COMPLETED,
}

WORKFLOW_STEPS = [
    {
        "step": 1,
        "tool": "install",
        "description": "Create the agent-os/ folder with schemas, roadmap.json and findings.json",
    },
    {
        "step": 2,
        "tool": "add_roadmap_item",
        "description": "Plan features on the roadmap with effort, priority and dependencies",
    },
    {
        "step": 3,
        "tool": "create_spec",
        "description": "Start a spec for a planned roadmap item; the item becomes 'specced'",
    },
    {
        "step": 4,
        "tool": "write_spec_document / advance_spec",
        "description": "Write planning/requirements.md then spec.md, advancing the spec to shaped and specced",
    },
    {
        "step": 5,
        "tool": "add_task_group / add_task / add_subtask",
        "description": "Break the spec into task groups, tasks and subtasks, then advance it to tasked",
    },
    {
        "step": 6,
        "tool": "set_task_status",
        "description": "Work through the tasks; completion rolls up to the spec and the roadmap item",
    },
    {
        "step": 7,
        "tool": "record_finding",
        "description": "Capture learnings; reconfirm, merge or archive them during review",
    },
]


class WorkflowManager:
    """Manages the Agent OS document workflow for one project."""

    def __init__(self, root: Path | str, clock: Callable[[], str] = utc_timestamp,
                 base_dir_name: Optional[str] = None):
        """Initialize workflow manager with the project root."""
        self.workspace = Workspace(root, base_dir_name=base_dir_name)
        self.clock = clock

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    def install(self, product_name: str = "") -> Dict[str, Any]:
        try:
            result = self.workspace.install(product_name)
        except TrackerError as e:
            return self._error("install", e)
        return {
            **result,
            "next_suggested_step": "add_roadmap_item",
            "message": f"Agent OS documents ready. Created {len(result['created'])} files.",
        }

    # ------------------------------------------------------------------
    # Roadmap
    # ------------------------------------------------------------------

    def list_roadmap(self) -> Dict[str, Any]:
        try:
            store = self._roadmap()
        except TrackerError as e:
            return self._error("list_roadmap", e)
        return {
            "product_name": store.document.product_name,
            "items": [item.to_dict() for item in store.items_by_priority()],
            "ready": [item.id for item in store.ready_items()],
            "count": len(store.items),
        }

    @log_performance("add_roadmap_item")
    def add_roadmap_item(self, title: str, description: str = "", effort: str = "M",
                         dependencies: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        try:
            store = self._roadmap()
            item = store.add_item(title, description, effort, dependencies or ())
            self.workspace.save_roadmap(store.document)
        except TrackerError as e:
            return self._error("add_roadmap_item", e)
        return {
            "item": item.to_dict(),
            "next_suggested_step": "create_spec",
            "message": f"Added {item.id} at priority {item.priority}",
        }

    def transition_roadmap_item(self, item_id: str, status: str, spec_path: Optional[str] = None,
                                reason: Optional[str] = None) -> Dict[str, Any]:
        try:
            store = self._roadmap()
            item = store.transition(item_id, status, spec_path=spec_path, reason=reason)
            self.workspace.save_roadmap(store.document)
        except TrackerError as e:
            return self._error("transition_roadmap_item", e)
        return {"item": item.to_dict(), "message": f"{item_id} is {item.status.value}"}

    def defer_roadmap_item(self, item_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        return self.transition_roadmap_item(item_id, RoadmapStatus.DEFERRED.value, reason=reason)

    def reactivate_roadmap_item(self, item_id: str) -> Dict[str, Any]:
        try:
            store = self._roadmap()
            item = store.reactivate(item_id)
            self.workspace.save_roadmap(store.document)
        except TrackerError as e:
            return self._error("reactivate_roadmap_item", e)
        return {"item": item.to_dict(), "message": f"{item_id} is planned again"}

    def reprioritize_roadmap(self, priorities: Mapping[str, int]) -> Dict[str, Any]:
        try:
            store = self._roadmap()
            ordered = store.reprioritize(priorities)
            self.workspace.save_roadmap(store.document)
        except TrackerError as e:
            return self._error("reprioritize_roadmap", e)
        return {"items": [{"id": item.id, "priority": item.priority} for item in ordered]}

    def edit_roadmap_dependencies(self, edits: Iterable[Mapping[str, str]]) -> Dict[str, Any]:
        """Apply a batch of ``{"item", "add"|"remove"}`` edits, committing only an acyclic result."""
        try:
            store = self._roadmap()
            for edit in edits:
                if edit.get("add"):
                    store.add_dependency(edit["item"], edit["add"])
                if edit.get("remove"):
                    store.remove_dependency(edit["item"], edit["remove"])
            cycles = store.validate_dependency_graph()
            if cycles:
                return {
                    "committed": False,
                    "cycles": cycles,
                    "error": "Dependency edits would introduce cycles",
                    "error_type": "ValidationError",
                    "suggestion": "Drop one edge of each cycle and submit the batch again",
                }
            self.workspace.save_roadmap(store.document)
        except (TrackerError, KeyError) as e:
            return self._error("edit_roadmap_dependencies", e)
        return {"committed": True, "cycles": [], "graph": store.dependency_graph()}

    def validate_roadmap(self) -> Dict[str, Any]:
        try:
            store = self._roadmap()
        except TrackerError as e:
            return self._error("validate_roadmap", e)
        cycles = store.validate_dependency_graph()
        issues = [issue for item in store.items for issue in item.validate()]
        return {"valid": not cycles and not issues, "cycles": cycles, "issues": issues}

    # ------------------------------------------------------------------
    # Specs
    # ------------------------------------------------------------------

    def list_specs(self) -> Dict[str, Any]:
        try:
            records = self.workspace.load_all_spec_meta()
        except TrackerError as e:
            return self._error("list_specs", e)
        return {"specs": [record.to_dict() for record in records], "count": len(records)}

    @log_performance("create_spec")
    def create_spec(self, spec_id: str, title: Optional[str] = None,
                    roadmap_item_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            with log_operation("create_spec", spec_id=spec_id, roadmap_item_id=roadmap_item_id):
                store = self._roadmap()
                manager = self._spec_manager(store)
                record = manager.create(spec_id, title, roadmap_item_id)
                self.workspace.save_batch(
                    roadmap=store.document if roadmap_item_id else None,
                    spec_metas=[record],
                )
        except TrackerError as e:
            return self._error("create_spec", e)

        result = {
            "spec": record.to_dict(),
            "spec_path": str(self.workspace.spec_dir(spec_id)),
            "next_suggested_step": "write_spec_document",
            "workflow_tip": "Write planning/requirements.md, then advance the spec to 'shaped'",
            "message": f"Created spec {spec_id}",
        }
        if roadmap_item_id:
            result["roadmap_item"] = store.get(roadmap_item_id).to_dict()
        return result

    def write_spec_document(self, spec_id: str, kind: str, content: str) -> Dict[str, Any]:
        try:
            path = self.workspace.write_spec_document(spec_id, kind, content)
        except TrackerError as e:
            return self._error("write_spec_document", e)
        return {"spec_id": spec_id, "path": str(path), "artifacts": sorted(self.workspace.spec_artifacts(spec_id))}

    def advance_spec(self, spec_id: str, status: str) -> Dict[str, Any]:
        try:
            store = self._roadmap()
            manager = self._spec_manager(store)
            record = manager.advance(spec_id, status)
            roadmap_changed = self._sync_roadmap(store, record)
            self.workspace.save_batch(
                roadmap=store.document if roadmap_changed else None,
                spec_metas=[record],
            )
        except TrackerError as e:
            return self._error("advance_spec", e)
        return {
            "spec": record.to_dict(),
            "roadmap_updated": roadmap_changed,
            "message": f"Spec {spec_id} is {record.status.value}",
        }

    def abandon_spec(self, spec_id: str) -> Dict[str, Any]:
        try:
            manager = self._spec_manager(None)
            record = manager.abandon(spec_id)
            self.workspace.save_spec_meta(record)
        except TrackerError as e:
            return self._error("abandon_spec", e)
        return {"spec": record.to_dict(), "message": f"Spec {spec_id} abandoned"}

    def spec_status(self, spec_id: str) -> Dict[str, Any]:
        try:
            record = self.workspace.load_spec_meta(spec_id)
            tree = self.workspace.load_tasks(spec_id) if self.workspace.tasks_exist(spec_id) else None
        except TrackerError as e:
            return self._error("spec_status", e)
        return {
            "spec": record.to_dict(),
            "artifacts": sorted(self.workspace.spec_artifacts(spec_id)),
            "tasks": {
                "status": tree.status.value,
                "summary": tree.summary.to_dict(),
            } if tree else None,
        }

    # ------------------------------------------------------------------
    # Task trees
    # ------------------------------------------------------------------

    def task_tree(self, spec_id: str) -> Dict[str, Any]:
        try:
            engine = TaskTreeEngine(self.workspace.load_tasks(spec_id), clock=self.clock)
        except TrackerError as e:
            return self._error("task_tree", e)
        next_task = engine.next_actionable()
        return {
            "tasks": engine.document.to_dict(),
            "next_task": next_task.to_dict() if next_task else None,
            "summary_drift": engine.summary_drift(),
        }

    def add_task_group(self, spec_id: str, name: str, layer: str = "other",
                       dependencies: Optional[Iterable[str]] = None,
                       acceptance_criteria: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        try:
            engine = self._task_engine(spec_id, create=True)
            group = engine.add_task_group(name, layer, dependencies or (), acceptance_criteria or ())
            self.workspace.save_tasks(engine.document)
        except TrackerError as e:
            return self._error("add_task_group", e)
        return {"task_group": group.to_dict(), "summary": engine.summary.to_dict()}

    def add_task(self, spec_id: str, group_id: str, title: str, notes: Optional[str] = None) -> Dict[str, Any]:
        try:
            engine = self._task_engine(spec_id)
            task = engine.add_task(group_id, title, notes)
            self.workspace.save_tasks(engine.document)
        except TrackerError as e:
            return self._error("add_task", e)
        return {"task": task.to_dict(), "summary": engine.summary.to_dict()}

    def add_subtask(self, spec_id: str, task_id: str, title: str,
                    details: Optional[Iterable[str]] = None, notes: Optional[str] = None) -> Dict[str, Any]:
        try:
            engine = self._task_engine(spec_id)
            subtask = engine.add_subtask(task_id, title, details or (), notes)
            self.workspace.save_tasks(engine.document)
        except TrackerError as e:
            return self._error("add_subtask", e)
        return {"subtask": subtask.to_dict()}

    @log_performance("set_task_status")
    def set_task_status(self, spec_id: str, node_id: str, status: str, force: bool = False,
                        notes: Optional[str] = None) -> Dict[str, Any]:
        """Change a node's status and roll tree progress up to the spec and roadmap."""
        try:
            with log_operation("set_task_status", spec_id=spec_id, node_id=node_id, status=status):
                engine = self._task_engine(spec_id)
                node = engine.set_status(node_id, status, force=force, notes=notes)
                record, specs, roadmap = self._roll_up(spec_id, engine.status)
                self.workspace.save_batch(roadmap=roadmap, spec_metas=specs, task_trees=[engine.document])
        except TrackerError as e:
            return self._error("set_task_status", e)

        next_task = engine.next_actionable()
        return {
            "node": node.to_dict(),
            "tree_status": engine.status.value,
            "summary": engine.summary.to_dict(),
            "spec_status": record.status.value,
            "next_task": next_task.to_dict() if next_task else None,
        }

    def recompute_summary(self, spec_id: str) -> Dict[str, Any]:
        try:
            engine = self._task_engine(spec_id)
            drift = engine.summary_drift()
            summary = engine.recompute_summary()
            self.workspace.save_tasks(engine.document)
        except TrackerError as e:
            return self._error("recompute_summary", e)
        if drift:
            logger.warning(f"Reconciled drifted summary for {spec_id}: {drift}")
        return {"summary": summary.to_dict(), "status": engine.status.value, "corrected": drift}

    # ------------------------------------------------------------------
    # Findings
    # ------------------------------------------------------------------

    def list_findings(self, include_closed: bool = False) -> Dict[str, Any]:
        try:
            log = FindingsLog(self.workspace.load_findings(), clock=self.clock)
        except TrackerError as e:
            return self._error("list_findings", e)
        findings = log.findings if include_closed else log.active()
        return {"findings": [f.to_dict() for f in findings], "count": len(findings)}

    def record_finding(self, category: str, title: str, description: str = "",
                       confidence: str = "low", source_spec: Optional[str] = None) -> Dict[str, Any]:
        try:
            record = self.workspace.load_spec_meta(source_spec) if source_spec else None
            log = FindingsLog(self.workspace.load_findings(), clock=self.clock)
            finding = log.record(category, title, description, confidence, source_spec)
            if record is not None:
                SpecRecordManager([record], clock=self.clock).add_finding(source_spec, finding.id)
            self.workspace.save_batch(findings=log.document, spec_metas=[record] if record else [])
        except TrackerError as e:
            return self._error("record_finding", e)
        return {"finding": finding.to_dict(), "message": f"Recorded {finding.id}"}

    def reconfirm_finding(self, finding_id: str) -> Dict[str, Any]:
        try:
            log = FindingsLog(self.workspace.load_findings(), clock=self.clock)
            finding = log.reconfirm(finding_id)
            self.workspace.save_findings(log.document)
        except TrackerError as e:
            return self._error("reconfirm_finding", e)
        suggested = log.suggested_confidence(finding)
        return {
            "finding": finding.to_dict(),
            "review_suggested": suggested is not None,
            "suggested_confidence": suggested.value if suggested else None,
        }

    def set_finding_confidence(self, finding_id: str, confidence: str) -> Dict[str, Any]:
        try:
            log = FindingsLog(self.workspace.load_findings(), clock=self.clock)
            finding = log.set_confidence(finding_id, confidence)
            self.workspace.save_findings(log.document)
        except TrackerError as e:
            return self._error("set_finding_confidence", e)
        return {"finding": finding.to_dict()}

    def merge_findings(self, keep_id: str, archive_id: str) -> Dict[str, Any]:
        try:
            log = FindingsLog(self.workspace.load_findings(), clock=self.clock)
            keep, archived = log.merge(keep_id, archive_id)
            self.workspace.save_findings(log.document)
        except TrackerError as e:
            return self._error("merge_findings", e)
        return {"kept": keep.to_dict(), "superseded": archived.to_dict()}

    def archive_finding(self, finding_id: str, reason: str) -> Dict[str, Any]:
        try:
            log = FindingsLog(self.workspace.load_findings(), clock=self.clock)
            finding = log.archive(finding_id, reason)
            self.workspace.save_findings(log.document)
        except TrackerError as e:
            return self._error("archive_finding", e)
        return {"finding": finding.to_dict()}

    def review_findings(self, mark_reviewed: bool = False) -> Dict[str, Any]:
        """Confidence-upgrade prompts and likely duplicates; nothing is applied."""
        try:
            log = FindingsLog(self.workspace.load_findings(), clock=self.clock)
            reviewed_at = log.document.last_reviewed_at
            if mark_reviewed:
                reviewed_at = log.mark_reviewed()
                self.workspace.save_findings(log.document)
        except TrackerError as e:
            return self._error("review_findings", e)
        return {
            "confidence_reviews": log.review_candidates(),
            "possible_duplicates": log.find_duplicates(),
            "last_reviewed_at": reviewed_at,
        }

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def check_linkage(self) -> Dict[str, Any]:
        """Advisory report of broken references and drifted task summaries."""
        try:
            store = self._roadmap()
            manager = self._spec_manager(store)
            trees = self.workspace.load_all_tasks()
        except TrackerError as e:
            return self._error("check_linkage", e)

        reports = manager.link_consistency_check(trees)
        drift = {}
        for spec_id, tree in trees.items():
            found = TaskTreeEngine(tree).summary_drift()
            if found:
                drift[spec_id] = found
        return {
            "consistent": not reports and not drift,
            "inconsistencies": [report.to_dict() for report in reports],
            "summary_drift": drift,
        }

    @staticmethod
    def get_workflow_guide() -> Dict[str, Any]:
        return {
            "workflow_overview": "Agent OS feature lifecycle in recommended order",
            "steps": WORKFLOW_STEPS,
            "tips": [
                "Spec stages advance one at a time: drafting, shaped, specced, tasked, in-progress, completed",
                "A task group starts only after the groups it depends on are completed",
                "Complete or skip every child before completing its parent",
                "Reconfirm a finding when it recurs instead of recording it again",
                "Run check_linkage after editing documents by hand",
            ],
        }

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _roadmap(self) -> RoadmapStore:
        return RoadmapStore(self.workspace.load_roadmap(), clock=self.clock)

    def _spec_manager(self, store: Optional[RoadmapStore]) -> SpecRecordManager:
        return SpecRecordManager(
            self.workspace.load_all_spec_meta(),
            roadmap=store,
            artifacts=self.workspace.spec_artifacts,
            clock=self.clock,
            base_dir=self.workspace.base_dir_name,
        )

    def _task_engine(self, spec_id: str, create: bool = False) -> TaskTreeEngine:
        if self.workspace.tasks_exist(spec_id):
            return TaskTreeEngine(self.workspace.load_tasks(spec_id), clock=self.clock)
        record = self.workspace.load_spec_meta(spec_id)
        if not create:
            raise NotFoundError(f"Spec '{spec_id}' has no tasks yet; add a task group first")
        document = TaskTreeDocument(
            spec_id=spec_id,
            spec_title=record.title,
            roadmap_item_id=record.roadmap_item_id,
        )
        return TaskTreeEngine(document, clock=self.clock)

    def _sync_roadmap(self, store: RoadmapStore, record: SpecMeta) -> bool:
        """Move the linked roadmap item forward to match the spec stage.

        Items that no longer point back at the spec are left alone; the
        broken link shows up in :meth:`check_linkage` instead.
        """
        target = SPEC_TO_ROADMAP.get(record.status)
        if target is None or record.roadmap_item_id is None or not store.exists(record.roadmap_item_id):
            return False
        item = store.get(record.roadmap_item_id)
        expected = spec_path_for(record.spec_id, self.workspace.base_dir_name)
        if item.spec_path != expected:
            logger.warning(
                f"Roadmap item {item.id} points to {item.spec_path!r}, not {expected}; "
                f"leaving it '{item.status.value}'"
            )
            return False
        if item.status not in ROADMAP_ORDER or ROADMAP_ORDER.index(item.status) >= ROADMAP_ORDER.index(target):
            if item.status != target:
                logger.warning(
                    f"Roadmap item {item.id} is '{item.status.value}', not moving it to '{target.value}'"
                )
            return False
        store.transition(item.id, target)
        return True

    def _roll_up(
        self, spec_id: str, tree_status: TreeStatus
    ) -> Tuple[SpecMeta, List[SpecMeta], Optional[RoadmapDocument]]:
        """Advance the spec (and its roadmap item) in memory to reflect task tree progress.

        Returns the spec record plus the documents that changed; the caller
        saves them together with the task tree.
        """
        if tree_status == TreeStatus.COMPLETED:
            target = SpecStatus.COMPLETED
        elif tree_status == TreeStatus.IN_PROGRESS:
            target = SpecStatus.IN_PROGRESS
        else:
            return self.workspace.load_spec_meta(spec_id), [], None

        store = self._roadmap()
        manager = self._spec_manager(store)
        record = manager.get(spec_id)
        if record.status == SpecStatus.ABANDONED:
            return record, [], None

        changed = False
        roadmap_changed = False
        while SPEC_ORDER.index(record.status) < SPEC_ORDER.index(target):
            next_stage = SPEC_ORDER[SPEC_ORDER.index(record.status) + 1]
            try:
                manager.advance(spec_id, next_stage)
            except MissingArtifactError as e:
                logger.info(f"Spec {spec_id} stays '{record.status.value}': {e}")
                break
            changed = True
            roadmap_changed = self._sync_roadmap(store, record) or roadmap_changed

        return record, [record] if changed else [], store.document if roadmap_changed else None

    def _error(self, operation: str, error: Exception) -> Dict[str, Any]:
        log_error_with_context(error, {"operation": operation})
        return {
            "error": str(error),
            "error_type": type(error).__name__,
            "suggestion": getattr(error, "suggestion", "Check the operation arguments"),
            "message": f"Error: {error}",
        }
