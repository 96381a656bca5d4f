"""Loading of desired configuration and recorded state files.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max desired configuration file
MAX_STATE_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB max recorded state file


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


class DesiredResource(BaseModel):
    """A desired configuration document for one resource instance."""

    model_config = {"extra": "ignore"}

    kind: str = Field(min_length=1)
    name: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


def _read_text(path: Path, max_bytes: int, what: str) -> str:
    if not path.exists():
        raise SpecLoadError(f"{what} file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat {what} file {path}: {e}") from e

    if file_size > max_bytes:
        raise SpecLoadError(f"{what} file exceeds maximum size of {max_bytes} bytes: {path}")

    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read {what} file {path}: {e}") from e


def load_desired(path: Path, known_kinds: list[str] | None = None) -> DesiredResource:
    """Load and validate a desired configuration from YAML.

    Two layouts are accepted:

        # flat
        kind: oxide_disk
        name: data-disk
        config: {...}

        # Kubernetes-style wrapper
        apiVersion: oxide-provider/v1
        kind: oxide_disk
        metadata: {name: data-disk}
        spec: {...}

    Args:
        path: YAML file path.
        known_kinds: If given, the document's kind must be one of these.

    Returns:
        Validated desired resource.

    Raises:
        SpecLoadError: If the file cannot be loaded or fails validation.
    """
    content = _read_text(path, MAX_SPEC_FILE_SIZE_BYTES, "Spec")

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec file must contain a YAML mapping: {path}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        metadata = raw_data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise SpecLoadError(f"Metadata section must be a mapping: {path}")
        doc = {
            "kind": raw_data.get("kind"),
            "name": metadata.get("name"),
            "config": raw_data.get("spec"),
        }
    else:
        doc = raw_data

    try:
        desired = DesiredResource.model_validate(doc)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {path}:\n{error_list}") from e

    if known_kinds is not None and desired.kind not in known_kinds:
        raise SpecLoadError(
            f"Unknown resource kind '{desired.kind}' in {path}. Valid kinds: {known_kinds}"
        )

    logger.info("Loaded desired %s from %s", desired.kind, path)
    return desired


def load_state(path: Path) -> dict[str, Any]:
    """Load a recorded state document from JSON.

    Raises:
        SpecLoadError: If the file cannot be loaded or is not a JSON object.
    """
    content = _read_text(path, MAX_STATE_FILE_SIZE_BYTES, "State")

    try:
        state = json.loads(content)
    except json.JSONDecodeError as e:
        raise SpecLoadError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(state, dict):
        raise SpecLoadError(f"State must be a JSON object: {path}")

    return state
