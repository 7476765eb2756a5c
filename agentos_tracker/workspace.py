"""Workspace management for Agent OS documents.

This module maps the tracker documents onto the ``agent-os/`` folder of a
project and provides the read/modify/write primitives the workflow layer
uses: JSON loading with clear errors, atomic writes, and an optimistic
revision check so a stale copy never overwrites a newer one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import jsonschema
import yaml

from . import __version__
from .errors import ConflictError, DocumentError, NotFoundError, ValidationError
from .findings import FindingsLog
from .models import (
    DEFAULT_BASE_DIR,
    FindingsDocument,
    RoadmapDocument,
    SpecMeta,
    TaskTreeDocument,
    utc_timestamp,
)
from .roadmap import RoadmapStore
from .schemas import SCHEMAS
from .specs import REQUIREMENTS_ARTIFACT, SPEC_ARTIFACT, TASKS_ARTIFACT
from .tracker_logging import log_error_with_context, log_operation, log_performance, observability_hooks

logger = logging.getLogger("agentos.workspace")

SPEC_DOCUMENTS = {
    REQUIREMENTS_ARTIFACT: Path("planning") / "requirements.md",
    SPEC_ARTIFACT: Path("spec.md"),
}


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON through a temporary file in the same folder and ``os.replace`` it in."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.tmp.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class Workspace:
    """Manage Agent OS documents within a project."""

    STORAGE_DIR_ENV = "AGENT_OS_DIR"

    def __init__(self, root: Path | str, base_dir_name: Optional[str] = None):
        """Initialize workspace with given project root."""
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise NotFoundError(f"Project root '{root}' does not exist")

        self.base_dir_name = base_dir_name or os.getenv(self.STORAGE_DIR_ENV) or DEFAULT_BASE_DIR
        self.base_dir = self.root / self.base_dir_name
        self.product_dir = self.base_dir / "product"
        self.specs_dir = self.base_dir / "specs"
        self.schemas_dir = self.base_dir / "schemas"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def config_path(self) -> Path:
        return self.base_dir / "config.yml"

    @property
    def roadmap_path(self) -> Path:
        return self.product_dir / "roadmap.json"

    @property
    def findings_path(self) -> Path:
        return self.product_dir / "findings.json"

    def spec_dir(self, spec_id: str) -> Path:
        if not spec_id or "/" in spec_id or "\\" in spec_id or spec_id in (".", ".."):
            raise ValidationError(f"Invalid spec id {spec_id!r}")
        return self.specs_dir / spec_id

    def spec_meta_path(self, spec_id: str) -> Path:
        return self.spec_dir(spec_id) / "spec-meta.json"

    def tasks_path(self, spec_id: str) -> Path:
        return self.spec_dir(spec_id) / "tasks.json"

    def spec_document_path(self, spec_id: str, kind: str) -> Path:
        try:
            return self.spec_dir(spec_id) / SPEC_DOCUMENTS[kind]
        except KeyError:
            raise ValidationError(
                f"Unknown spec document '{kind}', expected one of {sorted(SPEC_DOCUMENTS)}"
            ) from None

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    def is_installed(self) -> bool:
        return self.config_path.exists()

    @log_performance("install")
    def install(self, product_name: str = "") -> Dict[str, Any]:
        """Create the ``agent-os/`` layout; existing documents are left untouched."""
        created: List[str] = []
        with log_operation("install", root=str(self.root)):
            for directory in (self.base_dir, self.product_dir, self.specs_dir, self.schemas_dir):
                directory.mkdir(parents=True, exist_ok=True)

            for name, schema in SCHEMAS.items():
                path = self.schemas_dir / name
                if not path.exists():
                    write_json_atomic(path, schema)
                    created.append(str(path))

            if not self.roadmap_path.exists():
                self.save_roadmap(RoadmapDocument(product_name=product_name, last_updated=utc_timestamp()))
                created.append(str(self.roadmap_path))
            if not self.findings_path.exists():
                self.save_findings(FindingsDocument(last_updated=utc_timestamp()))
                created.append(str(self.findings_path))
            if not self.config_path.exists():
                config = {"version": __version__, "base_dir": self.base_dir_name}
                with open(self.config_path, "w", encoding="utf-8") as f:
                    yaml.safe_dump(config, f, sort_keys=False)
                created.append(str(self.config_path))

        logger.info(f"Installed Agent OS documents at {self.base_dir} ({len(created)} created)")
        observability_hooks.log_workflow_event("workspace_installed", root=str(self.root), created=len(created))
        return {"root": str(self.root), "base_dir": str(self.base_dir), "created": created}

    def load_config(self) -> Dict[str, Any]:
        """Parse ``config.yml``; an absent file is an empty config."""
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            log_error_with_context(e, {"operation": "read_config", "path": str(self.config_path)})
            raise DocumentError(f"{self.config_path} is not valid YAML: {e}") from e
        if not isinstance(config, dict):
            raise DocumentError(f"{self.config_path} must contain a YAML mapping")
        return config

    def installed_version(self) -> Optional[str]:
        version = self.load_config().get("version")
        return str(version) if version is not None else None

    # ------------------------------------------------------------------
    # Roadmap and findings
    # ------------------------------------------------------------------

    def load_roadmap(self) -> RoadmapDocument:
        if not self.roadmap_path.exists():
            return RoadmapDocument(product_name="")
        return self._parse(self.roadmap_path, RoadmapDocument.from_dict, "roadmap.schema.json")

    def save_roadmap(self, document: RoadmapDocument) -> Path:
        """Persist the roadmap after the pre-commit checks pass."""
        return self.save_batch(roadmap=document)[0]

    def load_findings(self) -> FindingsDocument:
        if not self.findings_path.exists():
            return FindingsDocument()
        return self._parse(self.findings_path, FindingsDocument.from_dict, "findings.schema.json")

    def save_findings(self, document: FindingsDocument) -> Path:
        return self.save_batch(findings=document)[0]

    def save_batch(
        self,
        roadmap: Optional[RoadmapDocument] = None,
        findings: Optional[FindingsDocument] = None,
        spec_metas: Iterable[SpecMeta] = (),
        task_trees: Iterable[TaskTreeDocument] = (),
    ) -> List[Path]:
        """Check every given document, then write them all.

        Consistency and revision checks run for the whole batch before the
        first write, so a failing check leaves every file as it was.
        """
        pending: List[Tuple[Path, Any]] = []
        for tree in task_trees:
            issues = tree.validate()
            if issues:
                raise ValidationError("Task tree is inconsistent: " + "; ".join(issues))
            pending.append((self.tasks_path(tree.spec_id), tree))
        for meta in spec_metas:
            issues = meta.validate()
            if issues:
                raise ValidationError("Spec metadata is inconsistent: " + "; ".join(issues))
            pending.append((self.spec_meta_path(meta.spec_id), meta))
        if findings is not None:
            issues = FindingsLog(findings).validate()
            if issues:
                raise ValidationError("Findings log is inconsistent: " + "; ".join(issues))
            pending.append((self.findings_path, findings))
        if roadmap is not None:
            RoadmapStore(roadmap).check_commit()
            pending.append((self.roadmap_path, roadmap))

        for path, document in pending:
            self._check_revision(path, document)
        for path, document in pending:
            self._write_document(path, document)
        return [path for path, _ in pending]

    # ------------------------------------------------------------------
    # Specs
    # ------------------------------------------------------------------

    def list_spec_ids(self) -> List[str]:
        if not self.specs_dir.exists():
            return []
        return sorted(
            path.name for path in self.specs_dir.iterdir()
            if path.is_dir() and (path / "spec-meta.json").exists()
        )

    def spec_exists(self, spec_id: str) -> bool:
        return self.spec_meta_path(spec_id).exists()

    def load_spec_meta(self, spec_id: str) -> SpecMeta:
        path = self.spec_meta_path(spec_id)
        if not path.exists():
            raise NotFoundError(f"Spec '{spec_id}' not found at {path}")
        meta = self._parse(path, SpecMeta.from_dict, "spec-meta.schema.json")
        if meta.spec_id != spec_id:
            raise DocumentError(f"{path} declares specId '{meta.spec_id}', expected '{spec_id}'")
        return meta

    def load_all_spec_meta(self) -> List[SpecMeta]:
        return [self.load_spec_meta(spec_id) for spec_id in self.list_spec_ids()]

    def save_spec_meta(self, meta: SpecMeta) -> Path:
        return self.save_batch(spec_metas=[meta])[0]

    def tasks_exist(self, spec_id: str) -> bool:
        return self.tasks_path(spec_id).exists()

    def load_tasks(self, spec_id: str) -> TaskTreeDocument:
        path = self.tasks_path(spec_id)
        if not path.exists():
            raise NotFoundError(f"No tasks.json for spec '{spec_id}'")
        return self._parse(path, TaskTreeDocument.from_dict, "tasks.schema.json")

    def load_all_tasks(self) -> Dict[str, TaskTreeDocument]:
        return {spec_id: self.load_tasks(spec_id) for spec_id in self.list_spec_ids() if self.tasks_exist(spec_id)}

    def save_tasks(self, document: TaskTreeDocument) -> Path:
        """Persist a task tree after its node ids and completion states check out."""
        return self.save_batch(task_trees=[document])[0]

    def write_spec_document(self, spec_id: str, kind: str, content: str) -> Path:
        """Write ``planning/requirements.md`` or ``spec.md`` for a spec."""
        if not self.spec_exists(spec_id):
            raise NotFoundError(f"Spec '{spec_id}' not found")
        if not content or not content.strip():
            raise ValidationError(f"The {kind} document cannot be empty")
        path = self.spec_document_path(spec_id, kind)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content.strip() + "\n", encoding="utf-8")
        logger.info(f"Wrote {kind} document for {spec_id}")
        return path

    def spec_artifacts(self, spec_id: str) -> Set[str]:
        """Names of the documents present in a spec folder."""
        present = {kind for kind in SPEC_DOCUMENTS if self.spec_document_path(spec_id, kind).exists()}
        if self.tasks_exist(spec_id):
            present.add(TASKS_ARTIFACT)
        return present

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _read_json(self, path: Path) -> Dict[str, Any]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            log_error_with_context(e, {"operation": "read_document", "path": str(path)})
            raise DocumentError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise DocumentError(f"{path} must contain a JSON object")
        return data

    def _parse(self, path: Path, factory, schema_name: str):
        """Validate ``path`` against its JSON Schema, then build the document."""
        data = self._read_json(path)
        try:
            jsonschema.validate(instance=data, schema=SCHEMAS[schema_name])
        except jsonschema.ValidationError as e:
            log_error_with_context(e, {"operation": "validate_document", "path": str(path)})
            location = "/".join(str(part) for part in e.absolute_path) or "<root>"
            raise DocumentError(
                f"{path} does not match {schema_name} at {location}: {e.message}"
            ) from e
        try:
            return factory(data)
        except (KeyError, ValueError, TypeError) as e:
            log_error_with_context(e, {"operation": "parse_document", "path": str(path)})
            raise DocumentError(f"{path} does not match the expected document shape: {e}") from e

    def _check_revision(self, path: Path, document) -> None:
        """Raise ConflictError if the file was saved since ``document`` was loaded."""
        on_disk = 0
        if path.exists():
            on_disk = self._read_json(path).get("revision", 0)
        if on_disk != document.revision:
            raise ConflictError(
                f"{path} is at revision {on_disk} but this copy was loaded at revision {document.revision}"
            )

    def _write_document(self, path: Path, document) -> None:
        """Write ``document`` if nobody else saved the file since it was loaded."""
        self._check_revision(path, document)
        data = document.to_dict()
        data["revision"] = document.revision + 1
        write_json_atomic(path, data)
        document.revision += 1
        logger.debug(f"Saved {path} at revision {document.revision}")
