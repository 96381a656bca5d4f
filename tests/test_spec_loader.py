"""Tests for desired configuration and state loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from oxide_provider.spec_loader import (
    MAX_SPEC_FILE_SIZE_BYTES,
    SpecLoadError,
    load_desired,
    load_state,
)

KINDS = ["oxide_disk", "oxide_ip_pool"]


class TestLoadDesired:
    """Tests for load_desired."""

    def test_flat_layout(self, tmp_path: Path) -> None:
        """Test loading a flat desired configuration."""
        spec_file = tmp_path / "disk.yaml"
        spec_file.write_text(
            """
kind: oxide_disk
name: data
config:
  project_id: proj-1
  name: data
  description: data disk
  size: 1073741824
  block_size: 512
"""
        )

        desired = load_desired(spec_file, known_kinds=KINDS)

        assert desired.kind == "oxide_disk"
        assert desired.name == "data"
        assert desired.config["size"] == 1073741824

    def test_wrapper_layout(self, tmp_path: Path) -> None:
        """Test loading a Kubernetes-style wrapped configuration."""
        spec_file = tmp_path / "pool.yaml"
        spec_file.write_text(
            """
apiVersion: oxide-provider/v1
kind: oxide_ip_pool
metadata:
  name: default
spec:
  name: default
  description: default pool
"""
        )

        desired = load_desired(spec_file, known_kinds=KINDS)

        assert desired.kind == "oxide_ip_pool"
        assert desired.name == "default"
        assert desired.config == {"name": "default", "description": "default pool"}

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing file raises SpecLoadError."""
        with pytest.raises(SpecLoadError) as exc_info:
            load_desired(tmp_path / "missing.yaml")

        assert "not found" in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test that malformed YAML raises SpecLoadError."""
        spec_file = tmp_path / "bad.yaml"
        spec_file.write_text("kind: [unclosed")

        with pytest.raises(SpecLoadError) as exc_info:
            load_desired(spec_file)

        assert "Invalid YAML" in str(exc_info.value)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        """Test that a top-level list is rejected."""
        spec_file = tmp_path / "list.yaml"
        spec_file.write_text("- oxide_disk\n")

        with pytest.raises(SpecLoadError):
            load_desired(spec_file)

    def test_missing_kind(self, tmp_path: Path) -> None:
        """Test that the kind field is required."""
        spec_file = tmp_path / "nokind.yaml"
        spec_file.write_text("config:\n  name: data\n")

        with pytest.raises(SpecLoadError) as exc_info:
            load_desired(spec_file)

        assert "kind" in str(exc_info.value)

    def test_unknown_kind(self, tmp_path: Path) -> None:
        """Test that kinds outside the known set are rejected."""
        spec_file = tmp_path / "vpc.yaml"
        spec_file.write_text("kind: oxide_vpc\nconfig: {}\n")

        with pytest.raises(SpecLoadError) as exc_info:
            load_desired(spec_file, known_kinds=KINDS)

        assert "oxide_vpc" in str(exc_info.value)

    def test_oversized_file(self, tmp_path: Path) -> None:
        """Test that files above the size limit are refused before parsing."""
        spec_file = tmp_path / "huge.yaml"
        spec_file.write_text("#" * (MAX_SPEC_FILE_SIZE_BYTES + 1))

        with pytest.raises(SpecLoadError) as exc_info:
            load_desired(spec_file)

        assert "maximum size" in str(exc_info.value)


class TestLoadState:
    """Tests for load_state."""

    def test_valid_state(self, tmp_path: Path) -> None:
        """Test loading a recorded state object."""
        state_file = tmp_path / "state.json"
        state_file.write_text('{"id": "disk-1", "size": 1073741824}')

        assert load_state(state_file) == {"id": "disk-1", "size": 1073741824}

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Test that malformed JSON raises SpecLoadError."""
        state_file = tmp_path / "state.json"
        state_file.write_text("{")

        with pytest.raises(SpecLoadError) as exc_info:
            load_state(state_file)

        assert "Invalid JSON" in str(exc_info.value)

    def test_not_an_object(self, tmp_path: Path) -> None:
        """Test that state must be a JSON object."""
        state_file = tmp_path / "state.json"
        state_file.write_text("[]")

        with pytest.raises(SpecLoadError):
            load_state(state_file)
