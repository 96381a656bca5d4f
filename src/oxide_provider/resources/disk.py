"""oxide_disk: project-scoped block storage.

A disk is created from exactly one source: blank (selected by
``block_size``), an image, or a snapshot. The API offers no disk update, so
every user attribute is immutable.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..engine import RemoteBindings
from ..models import (
    BlankDiskSource,
    Disk,
    DiskCreate,
    ImageDiskSource,
    SnapshotDiskSource,
    timestamp,
)
from ..registry import engine_factory
from ..schema import (
    AttributeType,
    ResourceSchema,
    SourceSelection,
    SourceUnion,
    SourceVariant,
    computed,
    optional,
    required,
)

KIND = "oxide_disk"

SCHEMA = ResourceSchema(
    kind=KIND,
    description="A disk in an Oxide project.",
    attributes=(
        required(
            "project_id", AttributeType.STRING, "ID of the project that will contain the disk."
        ),
        required("name", AttributeType.STRING, "Name of the disk."),
        required("description", AttributeType.STRING, "Description for the disk."),
        required("size", AttributeType.INTEGER, "Size of the disk in bytes."),
        optional(
            "block_size",
            AttributeType.INTEGER,
            "Size of blocks in bytes. Setting it creates a blank disk.",
            server_default=True,
        ),
        optional("source_image_id", AttributeType.STRING, "Image ID of the disk source."),
        optional("source_snapshot_id", AttributeType.STRING, "Snapshot ID of the disk source."),
        computed("id", AttributeType.STRING, "Unique, immutable, system-controlled identifier."),
        computed("device_path", AttributeType.STRING, "Path of the disk device."),
        computed("state", AttributeType.STRING, "Attachment state of the disk."),
        computed("time_created", AttributeType.STRING, "Timestamp of when this disk was created."),
        computed(
            "time_modified", AttributeType.STRING, "Timestamp of when this disk was last modified."
        ),
    ),
    source_union=SourceUnion(
        name="disk_source",
        variants=(
            SourceVariant(tag="blank", attribute="block_size"),
            SourceVariant(tag="image", attribute="source_image_id", conflicts=("block_size",)),
            SourceVariant(
                tag="snapshot", attribute="source_snapshot_id", conflicts=("block_size",)
            ),
        ),
    ),
    supports_update=False,
)


def describe() -> ResourceSchema:
    return SCHEMA


def _create(client: Any, desired: Mapping[str, Any], selection: SourceSelection | None) -> Disk:
    if selection is None:
        raise ValueError("disk creation requires a source")

    match selection.tag:
        case "blank":
            source = BlankDiskSource(block_size=selection.value)
        case "image":
            source = ImageDiskSource(image_id=selection.value)
        case "snapshot":
            source = SnapshotDiskSource(snapshot_id=selection.value)
        case _:
            raise ValueError(f"unknown disk source: {selection.tag}")

    body = DiskCreate(
        name=desired["name"],
        description=desired["description"],
        size=desired["size"],
        disk_source=source,
    )
    return client.disk_create(desired["project_id"], body)


def _to_state(disk: Disk) -> dict[str, Any]:
    return {
        "id": disk.id,
        "name": disk.name,
        "description": disk.description,
        "project_id": disk.project_id,
        "size": disk.size,
        "block_size": disk.block_size,
        "source_image_id": disk.image_id,
        "source_snapshot_id": disk.snapshot_id,
        "device_path": disk.device_path,
        "state": disk.state.state,
        "time_created": timestamp(disk.time_created),
        "time_modified": timestamp(disk.time_modified),
    }


BINDINGS = RemoteBindings(
    create=_create,
    view=lambda client, identifier: client.disk_view(identifier),
    to_state=_to_state,
    delete=lambda client, identifier: client.disk_delete(identifier),
)

new_engine = engine_factory(BINDINGS)
