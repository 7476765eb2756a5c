"""Unit tests for tracker workflow management.

This module tests the cross-document orchestration: error payloads,
spec/roadmap synchronisation and task progress roll-up.
"""

import json

import pytest

from agentos_tracker.workflow import WorkflowManager


@pytest.fixture
def manager(tmp_path, clock):
    manager = WorkflowManager(tmp_path, clock=clock)
    manager.install("Acme")
    return manager


def _tasked_spec(manager, spec_id="accounts"):
    """Create a roadmap-linked spec advanced to 'tasked' with one group and two tasks."""
    item = manager.add_roadmap_item("Accounts")["item"]
    manager.create_spec(spec_id, roadmap_item_id=item["id"])
    manager.write_spec_document(spec_id, "requirements", "# Requirements")
    manager.advance_spec(spec_id, "shaped")
    manager.write_spec_document(spec_id, "spec", "# Spec")
    manager.advance_spec(spec_id, "specced")
    group = manager.add_task_group(spec_id, "Database", layer="database")["task_group"]
    manager.add_task(spec_id, group["id"], "Users table")
    manager.add_task(spec_id, group["id"], "Sessions table")
    manager.advance_spec(spec_id, "tasked")
    return item["id"], group["id"]


class TestErrorPayloads:
    """Tracker errors come back as payloads rather than exceptions."""

    def test_error_payload_shape(self, manager):
        result = manager.advance_spec("ghost", "shaped")

        assert result["error_type"] == "NotFoundError"
        assert "ghost" in result["error"]
        assert result["suggestion"]
        assert result["message"].startswith("Error:")

    def test_validation_error(self, manager):
        result = manager.add_roadmap_item("")
        assert result["error_type"] == "ValidationError"


class TestInstall:
    def test_install_reports_created_files(self, tmp_path, clock):
        result = WorkflowManager(tmp_path, clock=clock).install("Acme")

        assert result["next_suggested_step"] == "add_roadmap_item"
        assert len(result["created"]) == 7

    def test_workflow_guide(self):
        guide = WorkflowManager.get_workflow_guide()
        assert [step["step"] for step in guide["steps"]] == list(range(1, 8))


class TestRoadmapOperations:
    """Test cases for roadmap operations."""

    def test_add_and_list(self, manager):
        manager.add_roadmap_item("Accounts", effort="S")
        manager.add_roadmap_item("Billing", dependencies=["roadmap-001"])

        listing = manager.list_roadmap()

        assert [item["id"] for item in listing["items"]] == ["roadmap-001", "roadmap-002"]
        assert listing["ready"] == ["roadmap-001"]
        assert listing["product_name"] == "Acme"

    def test_cyclic_dependency_batch_is_not_committed(self, manager):
        for title in ("A", "B", "C", "D", "E"):
            manager.add_roadmap_item(title)

        result = manager.edit_roadmap_dependencies([
            {"item": "roadmap-003", "add": "roadmap-005"},
            {"item": "roadmap-005", "add": "roadmap-003"},
        ])

        assert result["committed"] is False
        assert result["cycles"] == [["roadmap-003", "roadmap-005", "roadmap-003"]]
        assert manager.validate_roadmap() == {"valid": True, "cycles": [], "issues": []}

    def test_acyclic_dependency_batch_is_committed(self, manager):
        manager.add_roadmap_item("A")
        manager.add_roadmap_item("B")

        result = manager.edit_roadmap_dependencies([{"item": "roadmap-002", "add": "roadmap-001"}])

        assert result["committed"] is True
        assert result["graph"]["roadmap-002"] == ["roadmap-001"]

    def test_reprioritize_duplicates(self, manager):
        manager.add_roadmap_item("A")
        manager.add_roadmap_item("B")

        result = manager.reprioritize_roadmap({"roadmap-001": 2})

        assert result["error_type"] == "ValidationError"

    def test_defer_and_reactivate(self, manager):
        manager.add_roadmap_item("A")

        assert manager.defer_roadmap_item("roadmap-001", "Later")["item"]["status"] == "deferred"
        assert manager.reactivate_roadmap_item("roadmap-001")["item"]["status"] == "planned"


class TestSpecOperations:
    """Test cases for spec operations."""

    def test_create_spec_links_roadmap_item(self, manager):
        manager.add_roadmap_item("Accounts")

        result = manager.create_spec("accounts", roadmap_item_id="roadmap-001")

        assert result["spec"]["status"] == "drafting"
        assert result["roadmap_item"]["status"] == "specced"
        assert result["roadmap_item"]["specPath"] == "agent-os/specs/accounts"
        assert manager.list_roadmap()["items"][0]["status"] == "specced"

    def test_failed_create_writes_nothing(self, manager):
        result = manager.create_spec("accounts", roadmap_item_id="roadmap-009")

        assert result["error_type"] == "NotFoundError"
        assert manager.list_specs()["count"] == 0

    def test_advance_requires_documents(self, manager):
        manager.create_spec("accounts")

        result = manager.advance_spec("accounts", "shaped")

        assert result["error_type"] == "MissingArtifactError"

    def test_advance_to_in_progress_moves_roadmap(self, manager):
        item_id, _ = _tasked_spec(manager)

        result = manager.advance_spec("accounts", "in-progress")

        assert result["roadmap_updated"] is True
        assert manager.list_roadmap()["items"][0]["status"] == "in-progress"

    def test_abandon(self, manager):
        manager.create_spec("accounts")
        assert manager.abandon_spec("accounts")["spec"]["status"] == "abandoned"

    def test_spec_status(self, manager):
        _tasked_spec(manager)

        status = manager.spec_status("accounts")

        assert status["spec"]["status"] == "tasked"
        assert status["artifacts"] == ["requirements", "spec", "tasks"]
        assert status["tasks"]["summary"]["totalTasks"] == 2


class TestTaskOperations:
    """Test cases for task operations and roll-up."""

    def test_tasks_document_inherits_spec_linkage(self, manager, tmp_path):
        item_id, _ = _tasked_spec(manager)

        data = json.loads((tmp_path / "agent-os" / "specs" / "accounts" / "tasks.json").read_text())

        assert data["specTitle"] == "Accounts"
        assert data["roadmapItemId"] == item_id

    def test_add_task_before_any_group(self, manager):
        manager.create_spec("accounts")
        result = manager.add_task("accounts", "tg-001", "Orphan")
        assert result["error_type"] == "NotFoundError"

    def test_first_started_task_rolls_up(self, manager):
        _tasked_spec(manager)

        result = manager.set_task_status("accounts", "task-001", "in-progress")

        assert result["tree_status"] == "in-progress"
        assert result["spec_status"] == "in-progress"
        assert manager.list_roadmap()["items"][0]["status"] == "in-progress"

    def test_completion_rolls_up_to_roadmap(self, manager):
        _, group_id = _tasked_spec(manager)
        manager.set_task_status("accounts", "task-001", "completed")
        manager.set_task_status("accounts", "task-002", "completed")

        result = manager.set_task_status("accounts", group_id, "completed")

        assert result["tree_status"] == "completed"
        assert result["spec_status"] == "completed"
        item = manager.list_roadmap()["items"][0]
        assert item["status"] == "completed"
        assert item["completedAt"] is not None

    def test_incomplete_children_error_payload(self, manager):
        _, group_id = _tasked_spec(manager)
        manager.set_task_status("accounts", "task-001", "completed")

        result = manager.set_task_status("accounts", group_id, "completed")

        assert result["error_type"] == "IncompleteChildrenError"
        assert "task-002" in result["error"]

    def test_spec_without_spec_document_stays_behind(self, manager):
        manager.create_spec("accounts")
        group = manager.add_task_group("accounts", "Database")["task_group"]
        manager.add_task("accounts", group["id"], "Users table")

        result = manager.set_task_status("accounts", "task-001", "in-progress")

        assert result["spec_status"] == "drafting"

    def test_recompute_summary_reports_corrections(self, manager, tmp_path):
        _tasked_spec(manager)
        path = tmp_path / "agent-os" / "specs" / "accounts" / "tasks.json"
        data = json.loads(path.read_text())
        data["summary"]["totalTasks"] = 7
        path.write_text(json.dumps(data))

        result = manager.recompute_summary("accounts")

        assert result["corrected"] == {"totalTasks": {"stored": 7, "live": 2}}
        assert json.loads(path.read_text())["summary"]["totalTasks"] == 2


class TestFindingOperations:
    """Test cases for findings operations."""

    def test_record_finding_updates_spec(self, manager):
        manager.create_spec("accounts")

        result = manager.record_finding("testing", "Reset DB between tests", source_spec="accounts")

        assert result["finding"]["id"] == "finding-001"
        assert manager.spec_status("accounts")["spec"]["findingsGenerated"] == ["finding-001"]

    def test_record_finding_for_unknown_spec(self, manager):
        result = manager.record_finding("testing", "A", source_spec="ghost")

        assert result["error_type"] == "NotFoundError"
        assert manager.list_findings()["count"] == 0

    def test_reconfirm_suggests_review(self, manager):
        manager.record_finding("testing", "A")
        manager.reconfirm_finding("finding-001")

        result = manager.reconfirm_finding("finding-001")

        assert result["review_suggested"] is True
        assert result["suggested_confidence"] == "medium"
        assert result["finding"]["confidence"] == "low"

    def test_merge_archive_and_review(self, manager):
        manager.record_finding("testing", "Reset DB between tests")
        manager.record_finding("testing", "reset db between tests")
        manager.record_finding("tooling", "Use ruff")

        review = manager.review_findings()
        assert review["possible_duplicates"] == [["finding-001", "finding-002"]]

        merged = manager.merge_findings("finding-001", "finding-002")
        assert merged["kept"]["confirmedCount"] == 2
        assert merged["superseded"]["supersededBy"] == "finding-001"

        assert manager.archive_finding("finding-003", "Switched tools")["finding"]["status"] == "archived"
        assert manager.list_findings()["count"] == 1
        assert manager.list_findings(include_closed=True)["count"] == 3

        reviewed = manager.review_findings(mark_reviewed=True)
        assert reviewed["last_reviewed_at"] is not None


class TestLinkage:
    """Test cases for the linkage report."""

    def test_consistent_project(self, manager):
        _tasked_spec(manager)
        assert manager.check_linkage() == {"consistent": True, "inconsistencies": [], "summary_drift": {}}

    def test_reports_hand_edited_roadmap(self, manager, tmp_path):
        _tasked_spec(manager)
        path = tmp_path / "agent-os" / "product" / "roadmap.json"
        data = json.loads(path.read_text())
        data["items"][0]["specPath"] = "agent-os/specs/elsewhere"
        path.write_text(json.dumps(data))

        report = manager.check_linkage()

        assert report["consistent"] is False
        kinds = sorted(entry["kind"] for entry in report["inconsistencies"])
        assert kinds == ["missing-spec", "roadmap-points-elsewhere"]
