"""MCP server exposing the Agent OS lifecycle tracker tools."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from agentos_tracker.models import DEFAULT_BASE_DIR
from agentos_tracker.tracker_logging import setup_logging
from agentos_tracker.workflow import WorkflowManager

mcp = FastMCP("agent-os")


ROOT_ENV = "AGENT_OS_PROJECT_ROOT"
STORAGE_DIR_ENV = "AGENT_OS_DIR"


def _marker_directory() -> str:
    return os.getenv(STORAGE_DIR_ENV) or DEFAULT_BASE_DIR


def _locate_workspace_root() -> Optional[Path]:
    cwd = Path.cwd().resolve()
    marker = _marker_directory()
    for base in [cwd, *cwd.parents]:
        if (base / marker).is_dir():
            return base
    return None


def _resolve_root(root: Optional[str], *, allow_cwd: bool = False) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_workspace_root()
    if detected_root:
        return detected_root
    if allow_cwd:
        return Path.cwd().resolve()

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool, "
        f"set the {ROOT_ENV} environment variable, or run the install tool first."
    )


def _manager(root: Optional[str], *, allow_cwd: bool = False) -> WorkflowManager:
    return WorkflowManager(_resolve_root(root, allow_cwd=allow_cwd))


def _manager_optional(root: Optional[str]) -> Optional[WorkflowManager]:
    try:
        return _manager(root)
    except ValueError:
        return None


# ----------------------------------------------------------------------
# Setup
# ----------------------------------------------------------------------


@mcp.tool()
def install(product_name: str = "", root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 1: Create the agent-os/ folder with JSON schemas, an empty roadmap and an empty findings log.
    Existing documents are never overwritten, so it is safe to run again."""

    return _manager(root, allow_cwd=True).install(product_name)


@mcp.tool()
def get_workflow_guide() -> Dict[str, Any]:
    """Describe the recommended order of tracker tools."""

    return WorkflowManager.get_workflow_guide()


# ----------------------------------------------------------------------
# Roadmap
# ----------------------------------------------------------------------


@mcp.tool()
def list_roadmap(root: Optional[str] = None) -> Dict[str, Any]:
    """List roadmap items in priority order together with the items whose dependencies are done."""

    return _manager(root).list_roadmap()


@mcp.tool()
def add_roadmap_item(
    title: str,
    description: str = "",
    effort: str = "M",
    dependencies: Optional[List[str]] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 2: Add a planned feature to the roadmap. Effort is one of XS, S, M, L, XL.
    The item is placed after every existing item."""

    return _manager(root).add_roadmap_item(title, description, effort, dependencies)


@mcp.tool()
def transition_roadmap_item(
    item_id: str,
    status: str,
    spec_path: Optional[str] = None,
    reason: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Move a roadmap item forward (planned -> specced -> in-progress -> completed) or defer it."""

    return _manager(root).transition_roadmap_item(item_id, status, spec_path, reason)


@mcp.tool()
def defer_roadmap_item(item_id: str, reason: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Set a roadmap item aside with an optional reason."""

    return _manager(root).defer_roadmap_item(item_id, reason)


@mcp.tool()
def reactivate_roadmap_item(item_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Return a deferred roadmap item to planned."""

    return _manager(root).reactivate_roadmap_item(item_id)


@mcp.tool()
def reprioritize_roadmap(priorities: Dict[str, int], root: Optional[str] = None) -> Dict[str, Any]:
    """Assign new priorities, e.g. {"roadmap-003": 1, "roadmap-001": 2}. Applied all at once or not at all."""

    return _manager(root).reprioritize_roadmap(priorities)


@mcp.tool()
def edit_roadmap_dependencies(edits: List[Dict[str, str]], root: Optional[str] = None) -> Dict[str, Any]:
    """Apply dependency edits such as [{"item": "roadmap-002", "add": "roadmap-001"}].
    The batch is saved only when the resulting graph has no cycles."""

    return _manager(root).edit_roadmap_dependencies(edits)


@mcp.tool()
def validate_roadmap(root: Optional[str] = None) -> Dict[str, Any]:
    """Report dependency cycles and item-level problems in roadmap.json."""

    return _manager(root).validate_roadmap()


# ----------------------------------------------------------------------
# Specs
# ----------------------------------------------------------------------


@mcp.tool()
def list_specs(root: Optional[str] = None) -> Dict[str, Any]:
    """List every spec record."""

    return _manager(root).list_specs()


@mcp.tool()
def create_spec(
    spec_id: str,
    title: Optional[str] = None,
    roadmap_item_id: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 3: Create a spec record in drafting. When linked, the planned roadmap item becomes specced."""

    return _manager(root).create_spec(spec_id, title, roadmap_item_id)


@mcp.tool()
def write_spec_document(spec_id: str, kind: str, content: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 4: Write the 'requirements' (planning/requirements.md) or 'spec' (spec.md) document of a spec."""

    return _manager(root).write_spec_document(spec_id, kind, content)


@mcp.tool()
def advance_spec(spec_id: str, status: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Advance a spec to its next stage: shaped, specced, tasked, in-progress, completed (or abandoned)."""

    return _manager(root).advance_spec(spec_id, status)


@mcp.tool()
def abandon_spec(spec_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Abandon a spec that will not be implemented."""

    return _manager(root).abandon_spec(spec_id)


@mcp.tool()
def spec_status(spec_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Show a spec record, the documents present in its folder and its task progress."""

    return _manager(root).spec_status(spec_id)


# ----------------------------------------------------------------------
# Tasks
# ----------------------------------------------------------------------


@mcp.tool()
def add_task_group(
    spec_id: str,
    name: str,
    layer: str = "other",
    dependencies: Optional[List[str]] = None,
    acceptance_criteria: Optional[List[str]] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 5: Add a task group to a spec's tasks.json, creating the file on first use."""

    return _manager(root).add_task_group(spec_id, name, layer, dependencies, acceptance_criteria)


@mcp.tool()
def add_task(spec_id: str, group_id: str, title: str, notes: Optional[str] = None,
             root: Optional[str] = None) -> Dict[str, Any]:
    """Add a task to a task group."""

    return _manager(root).add_task(spec_id, group_id, title, notes)


@mcp.tool()
def add_subtask(
    spec_id: str,
    task_id: str,
    title: str,
    details: Optional[List[str]] = None,
    notes: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Add a subtask to a task."""

    return _manager(root).add_subtask(spec_id, task_id, title, details, notes)


@mcp.tool()
def list_tasks(spec_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Return the task tree of a spec and the next actionable task."""

    return _manager(root).task_tree(spec_id)


@mcp.tool()
def set_task_status(
    spec_id: str,
    node_id: str,
    status: str,
    force: bool = False,
    notes: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 6: Change the status of a task group, task or subtask.
    Parents complete only after every child is completed or skipped; completed nodes reopen only with force.
    Progress rolls up to the spec and its roadmap item."""

    return _manager(root).set_task_status(spec_id, node_id, status, force, notes)


@mcp.tool()
def recompute_summary(spec_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Recount a task tree and rewrite its summary after hand edits."""

    return _manager(root).recompute_summary(spec_id)


# ----------------------------------------------------------------------
# Findings
# ----------------------------------------------------------------------


@mcp.tool()
def list_findings(include_closed: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """List active findings, or every finding when include_closed is true."""

    return _manager(root).list_findings(include_closed)


@mcp.tool()
def record_finding(
    category: str,
    title: str,
    description: str = "",
    confidence: str = "low",
    source_spec: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 7: Record a learning in findings.json. Reconfirm existing findings instead of duplicating them."""

    return _manager(root).record_finding(category, title, description, confidence, source_spec)


@mcp.tool()
def reconfirm_finding(finding_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Count another confirmation of an active finding."""

    return _manager(root).reconfirm_finding(finding_id)


@mcp.tool()
def set_finding_confidence(finding_id: str, confidence: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Apply a reviewed confidence level (low, medium, high) to an active finding."""

    return _manager(root).set_finding_confidence(finding_id, confidence)


@mcp.tool()
def merge_findings(keep_id: str, archive_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Fold one active finding into another; the merged one becomes superseded."""

    return _manager(root).merge_findings(keep_id, archive_id)


@mcp.tool()
def archive_finding(finding_id: str, reason: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Archive an active finding that no longer applies."""

    return _manager(root).archive_finding(finding_id, reason)


@mcp.tool()
def review_findings(mark_reviewed: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Propose confidence upgrades and list likely duplicates. Nothing is changed unless mark_reviewed is set."""

    return _manager(root).review_findings(mark_reviewed)


@mcp.tool()
def check_linkage(root: Optional[str] = None) -> Dict[str, Any]:
    """Report broken roadmap/spec/tasks references and stale task summaries."""

    return _manager(root).check_linkage()


# ----------------------------------------------------------------------
# Resources
# ----------------------------------------------------------------------


@mcp.resource("agent-os://roadmap")
def resource_roadmap() -> str:
    """Resource view of the roadmap in priority order."""

    manager = _manager_optional(None)
    if not manager:
        return f"No project root detected. Run the install tool or set {ROOT_ENV}."

    result = manager.list_roadmap()
    if "error" in result:
        return f"Roadmap unavailable: {result['error']}"
    if not result["items"]:
        return "The roadmap has no items yet."

    lines = [f"Roadmap: {result['product_name'] or 'unnamed product'}"]
    for item in result["items"]:
        lines.append("")
        lines.append(f"{item['priority']}. {item['id']} [{item['status']}, {item['effort']}] {item['title']}")
        if item["dependencies"]:
            lines.append(f"   Depends on: {', '.join(item['dependencies'])}")
        if item["specPath"]:
            lines.append(f"   Spec: {item['specPath']}")
    return "\n".join(lines)


@mcp.resource("agent-os://findings")
def resource_findings() -> str:
    """Resource view of the active findings as JSON."""

    manager = _manager_optional(None)
    if not manager:
        return f"No project root detected. Run the install tool or set {ROOT_ENV}."
    return json.dumps(manager.list_findings(), indent=2)


def main() -> None:
    setup_logging(os.getenv("AGENT_OS_LOG_LEVEL", "INFO").upper(), os.getenv("AGENT_OS_LOG_FILE"))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
