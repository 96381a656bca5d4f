"""Pydantic models for Oxide API objects and request bodies.

These models provide:
1. Type-safe parsing of API responses
2. Validation at the boundary (fail fast, fail loudly)
3. Clean serialization of request bodies
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

# =============================================================================
# Base Models
# =============================================================================


class ApiModel(BaseModel):
    """Base for all API payloads."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    def to_body(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible request body."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class IdentityMetadata(ApiModel):
    """Fields shared by every named, identified API object."""

    id: str
    name: str
    description: str = ""
    time_created: datetime
    time_modified: datetime


def timestamp(value: datetime | None) -> str | None:
    """Render an API timestamp the way it is recorded in state."""
    return value.isoformat() if value is not None else None


NAME_PATTERN = r"^[a-z][a-z0-9-]*$"
MAX_NAME_LENGTH = 63


class NamedCreate(ApiModel):
    """Base for create bodies of named objects."""

    name: str
    description: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if len(v) > MAX_NAME_LENGTH or not re.match(NAME_PATTERN, v):
            raise ValueError(
                "name must start with a lowercase letter and contain only "
                f"lowercase letters, digits and '-' (max {MAX_NAME_LENGTH} chars)"
            )
        return v


# =============================================================================
# Disks
# =============================================================================


class DiskState(ApiModel):
    """Current disk attachment state."""

    state: str
    instance: str | None = None


class Disk(IdentityMetadata):
    """A disk as returned by the API."""

    project_id: str
    size: int
    block_size: int
    device_path: str = ""
    image_id: str | None = None
    snapshot_id: str | None = None
    state: DiskState


class BlankDiskSource(ApiModel):
    type: Literal["blank"] = "blank"
    block_size: int


class ImageDiskSource(ApiModel):
    type: Literal["image"] = "image"
    image_id: str


class SnapshotDiskSource(ApiModel):
    type: Literal["snapshot"] = "snapshot"
    snapshot_id: str


DiskSource = Annotated[
    BlankDiskSource | ImageDiskSource | SnapshotDiskSource,
    Field(discriminator="type"),
]


class DiskCreate(NamedCreate):
    """Request body for disk creation."""

    size: Annotated[int, Field(gt=0)]
    disk_source: DiskSource


# =============================================================================
# Images
# =============================================================================


class Digest(ApiModel):
    """Hash of image contents."""

    type: str
    value: str


class Image(IdentityMetadata):
    """An image as returned by the API.

    Silo-visible images carry no project, and images created from a
    snapshot carry no URL.
    """

    os: str
    version: str
    block_size: int
    size: int
    project_id: str | None = None
    url: str | None = None
    digest: Digest | None = None


class UrlImageSource(ApiModel):
    type: Literal["url"] = "url"
    url: str
    block_size: int


class SnapshotImageSource(ApiModel):
    type: Literal["snapshot"] = "snapshot"
    id: str


ImageSource = Annotated[
    UrlImageSource | SnapshotImageSource,
    Field(discriminator="type"),
]


class ImageCreate(NamedCreate):
    """Request body for image creation."""

    os: str
    version: str
    source: ImageSource


# =============================================================================
# Instances
# =============================================================================


class Instance(IdentityMetadata):
    """An instance as returned by the API."""

    project_id: str
    hostname: str
    memory: int
    ncpus: int
    run_state: str
    time_run_state_updated: datetime | None = None


class InstanceCreate(NamedCreate):
    """Request body for instance creation."""

    hostname: str
    memory: Annotated[int, Field(gt=0)]
    ncpus: Annotated[int, Field(gt=0)]
    start: bool = True


# =============================================================================
# IP Pools
# =============================================================================


class IpPool(IdentityMetadata):
    """An IP pool as returned by the API."""


class IpPoolCreate(NamedCreate):
    """Request body for IP pool creation."""


class IpPoolUpdate(ApiModel):
    """Request body for an IP pool update; omitted fields are left unchanged."""

    name: str | None = None
    description: str | None = None


# =============================================================================
# Pagination
# =============================================================================


class ResultsPage(ApiModel):
    """One page of a list endpoint."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    next_page: str | None = None
