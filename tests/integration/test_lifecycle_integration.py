"""
Integration tests for the full Agent OS lifecycle on disk:
install, plan, spec, task breakdown, implementation and findings,
driven through the workflow manager and the MCP tool functions.
"""

import json
from pathlib import Path

import pytest

import main
from agentos_tracker.workflow import WorkflowManager


class TestFullLifecycle:
    """One feature from roadmap entry to completion."""

    def test_feature_lifecycle(self, tmp_path, clock):
        manager = WorkflowManager(tmp_path, clock=clock)
        manager.install("Acme")

        manager.add_roadmap_item("Authentication", effort="L")
        manager.add_roadmap_item("Billing", dependencies=["roadmap-001"])
        assert manager.list_roadmap()["ready"] == ["roadmap-001"]

        spec_id = "2025-01-10-auth"
        created = manager.create_spec(spec_id, roadmap_item_id="roadmap-001")
        assert created["roadmap_item"]["specPath"] == f"agent-os/specs/{spec_id}"

        manager.write_spec_document(spec_id, "requirements", "# Requirements\n- login\n- logout")
        assert manager.advance_spec(spec_id, "shaped")["spec"]["status"] == "shaped"
        assert manager.advance_spec(spec_id, "tasked")["error_type"] == "OutOfOrderError"
        manager.write_spec_document(spec_id, "spec", "# Auth spec")
        manager.advance_spec(spec_id, "specced")

        database = manager.add_task_group(spec_id, "Database", layer="database",
                                          acceptance_criteria=["migrations apply cleanly"])["task_group"]
        api = manager.add_task_group(spec_id, "API", layer="api", dependencies=[database["id"]])["task_group"]
        manager.add_task(spec_id, database["id"], "Users table")
        manager.add_subtask(spec_id, "task-001", "Email index", details=["unique", "case-insensitive"])
        manager.add_task(spec_id, api["id"], "Login endpoint")
        manager.add_task(spec_id, api["id"], "Rate limiting")
        manager.advance_spec(spec_id, "tasked")

        blocked = manager.set_task_status(spec_id, api["id"], "in-progress")
        assert blocked["error_type"] == "UnmetDependencyError"

        started = manager.set_task_status(spec_id, "subtask-001", "in-progress")
        assert started["spec_status"] == "in-progress"
        assert manager.list_roadmap()["items"][0]["status"] == "in-progress"

        manager.set_task_status(spec_id, "subtask-001", "completed")
        manager.set_task_status(spec_id, "task-001", "completed")
        manager.set_task_status(spec_id, database["id"], "completed")
        manager.set_task_status(spec_id, "task-002", "completed", notes="JWT sessions")
        manager.set_task_status(spec_id, "task-003", "skipped", notes="Handled by gateway")
        done = manager.set_task_status(spec_id, api["id"], "completed")

        assert done["tree_status"] == "completed"
        assert done["summary"] == {
            "totalTaskGroups": 2,
            "completedTaskGroups": 2,
            "totalTasks": 3,
            "completedTasks": 2,
        }
        assert done["spec_status"] == "completed"

        item = manager.list_roadmap()["items"][0]
        assert item["status"] == "completed"
        assert manager.list_roadmap()["ready"] == ["roadmap-002"]

        finding = manager.record_finding("security", "Rate limit at the gateway", source_spec=spec_id)["finding"]
        assert manager.spec_status(spec_id)["spec"]["findingsGenerated"] == [finding["id"]]

        spec = manager.spec_status(spec_id)["spec"]
        stamps = [spec[key] for key in ("createdAt", "shapedAt", "speccedAt", "taskedAt",
                                         "implementationStartedAt", "completedAt")]
        assert all(stamps) and stamps == sorted(stamps)
        assert manager.check_linkage()["consistent"] is True

    def test_documents_match_on_disk_shape(self, tmp_path, clock):
        manager = WorkflowManager(tmp_path, clock=clock)
        manager.install("Acme")
        manager.add_roadmap_item("Authentication")
        manager.create_spec("auth", roadmap_item_id="roadmap-001")

        base = tmp_path / "agent-os"
        roadmap = json.loads((base / "product" / "roadmap.json").read_text())
        meta = json.loads((base / "specs" / "auth" / "spec-meta.json").read_text())

        assert roadmap["productName"] == "Acme"
        assert roadmap["items"][0]["specPath"] == "agent-os/specs/auth"
        assert meta["roadmapItemId"] == "roadmap-001"
        assert meta["status"] == "drafting"
        assert (base / "config.yml").read_text().startswith("version: ")

    def test_deferred_item_is_not_specced(self, tmp_path, clock):
        manager = WorkflowManager(tmp_path, clock=clock)
        manager.install()
        manager.add_roadmap_item("Search")
        manager.defer_roadmap_item("roadmap-001", "Needs infra")

        result = manager.create_spec("search", roadmap_item_id="roadmap-001")

        assert result["error_type"] == "InvalidTransitionError"
        manager.reactivate_roadmap_item("roadmap-001")
        assert "error" not in manager.create_spec("search", roadmap_item_id="roadmap-001")


def _linked_spec(manager, spec_id="auth"):
    """A roadmap-linked spec with its documents written and one task, still 'specced'."""
    manager.add_roadmap_item("Authentication")
    manager.add_roadmap_item("Billing")
    manager.create_spec(spec_id, roadmap_item_id="roadmap-001")
    manager.write_spec_document(spec_id, "requirements", "# Requirements")
    manager.advance_spec(spec_id, "shaped")
    manager.write_spec_document(spec_id, "spec", "# Spec")
    manager.advance_spec(spec_id, "specced")
    group = manager.add_task_group(spec_id, "Database")["task_group"]
    manager.add_task(spec_id, group["id"], "Users table")
    return group["id"]


class TestRollUpAcrossRoadmapChanges:
    """Spec progress when its roadmap item was deferred, reactivated or hand-edited."""

    def test_reactivated_item_does_not_block_spec(self, tmp_path, clock):
        manager = WorkflowManager(tmp_path, clock=clock)
        manager.install("Acme")
        _linked_spec(manager)
        manager.defer_roadmap_item("roadmap-001", "Waiting on SSO vendor")
        manager.reactivate_roadmap_item("roadmap-001")
        manager.advance_spec("auth", "tasked")

        result = manager.advance_spec("auth", "in-progress")

        assert "error" not in result
        assert result["spec"]["status"] == "in-progress"
        assert result["roadmap_updated"] is False
        item = manager.list_roadmap()["items"][0]
        assert item["status"] == "planned"
        assert item["specPath"] is None

        kinds = [entry["kind"] for entry in manager.check_linkage()["inconsistencies"]]
        assert kinds == ["roadmap-points-elsewhere"]

    def test_task_progress_after_reactivation(self, tmp_path, clock):
        manager = WorkflowManager(tmp_path, clock=clock)
        manager.install("Acme")
        _linked_spec(manager)
        manager.advance_spec("auth", "tasked")
        manager.defer_roadmap_item("roadmap-001")
        manager.reactivate_roadmap_item("roadmap-001")

        started = manager.set_task_status("auth", "task-001", "in-progress")

        assert "error" not in started
        assert started["spec_status"] == "in-progress"
        assert manager.list_roadmap()["items"][0]["status"] == "planned"

    def test_deferred_item_is_left_deferred(self, tmp_path, clock):
        manager = WorkflowManager(tmp_path, clock=clock)
        manager.install("Acme")
        group_id = _linked_spec(manager)
        manager.advance_spec("auth", "tasked")
        manager.defer_roadmap_item("roadmap-001", "Paused")

        manager.set_task_status("auth", "task-001", "completed")
        done = manager.set_task_status("auth", group_id, "completed")

        assert done["spec_status"] == "completed"
        item = manager.list_roadmap()["items"][0]
        assert item["status"] == "deferred"
        assert item["specPath"] == "agent-os/specs/auth"

    def test_failed_roll_up_writes_nothing(self, tmp_path, clock):
        manager = WorkflowManager(tmp_path, clock=clock)
        manager.install("Acme")
        _linked_spec(manager)
        manager.advance_spec("auth", "tasked")

        base = tmp_path / "agent-os"
        roadmap_path = base / "product" / "roadmap.json"
        roadmap = json.loads(roadmap_path.read_text())
        roadmap["items"][0]["dependencies"] = ["roadmap-002"]
        roadmap["items"][1]["dependencies"] = ["roadmap-001"]
        roadmap_path.write_text(json.dumps(roadmap))
        tasks_path = base / "specs" / "auth" / "tasks.json"
        meta_path = base / "specs" / "auth" / "spec-meta.json"
        before = {path: path.read_text() for path in (roadmap_path, tasks_path, meta_path)}

        result = manager.set_task_status("auth", "task-001", "in-progress")

        assert result["error_type"] == "ValidationError"
        assert "cycles" in result["error"]
        assert {path: path.read_text() for path in before} == before
        tree = manager.task_tree("auth")["tasks"]
        assert tree["taskGroups"][0]["tasks"][0]["status"] == "pending"
        assert manager.spec_status("auth")["spec"]["status"] == "tasked"

    def test_one_sided_link_is_reported(self, tmp_path, clock):
        manager = WorkflowManager(tmp_path, clock=clock)
        manager.install("Acme")
        manager.add_roadmap_item("Authentication")
        manager.create_spec("adhoc")
        manager.transition_roadmap_item("roadmap-001", "specced", spec_path="agent-os/specs/adhoc")

        report = manager.check_linkage()

        assert report["consistent"] is False
        assert report["inconsistencies"] == [{
            "kind": "spec-points-elsewhere",
            "subject": "roadmap-001",
            "detail": "Roadmap item points to agent-os/specs/adhoc, but that spec names roadmap item None",
            "specId": "adhoc",
            "roadmapItemId": "roadmap-001",
        }]


class TestToolFunctions:
    """The MCP tool functions resolve the project root and delegate."""

    def test_tools_with_explicit_root(self, tmp_path):
        root = str(tmp_path)

        main.install(product_name="Acme", root=root)
        main.add_roadmap_item("Authentication", root=root)
        main.create_spec("auth", roadmap_item_id="roadmap-001", root=root)
        main.add_task_group("auth", "Database", root=root)
        main.add_task("auth", "tg-001", "Users table", root=root)

        tasks = main.list_tasks("auth", root=root)
        assert tasks["next_task"]["id"] == "task-001"
        assert main.spec_status("auth", root=root)["tasks"]["summary"]["totalTasks"] == 1

    def test_root_detected_from_marker_directory(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AGENT_OS_PROJECT_ROOT", raising=False)
        monkeypatch.delenv("AGENT_OS_DIR", raising=False)
        (tmp_path / "agent-os").mkdir()
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        assert main._resolve_root(None) == tmp_path.resolve()

    def test_root_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AGENT_OS_PROJECT_ROOT", str(tmp_path))
        assert main._resolve_root(None) == Path(tmp_path).resolve()

        monkeypatch.setenv("AGENT_OS_PROJECT_ROOT", str(tmp_path / "missing"))
        with pytest.raises(ValueError):
            main._resolve_root(None)

    def test_install_falls_back_to_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AGENT_OS_PROJECT_ROOT", raising=False)
        monkeypatch.delenv("AGENT_OS_DIR", raising=False)
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ValueError):
            main._resolve_root(None)
        result = main.install(product_name="Acme")

        assert Path(result["base_dir"]) == tmp_path.resolve() / "agent-os"

    def test_roadmap_resource(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AGENT_OS_PROJECT_ROOT", str(tmp_path))
        main.install(product_name="Acme")
        main.add_roadmap_item("Authentication", effort="S")

        text = main.resource_roadmap()

        assert "Roadmap: Acme" in text
        assert "roadmap-001 [planned, S] Authentication" in text
