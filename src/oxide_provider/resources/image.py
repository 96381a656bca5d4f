"""oxide_image: operating system images.

An image is created either from a URL, which also needs a block size, or
from a snapshot, which conflicts with one. The API currently supports
neither updating nor deleting images.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..engine import RemoteBindings
from ..models import Image, ImageCreate, SnapshotImageSource, UrlImageSource, timestamp
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

KIND = "oxide_image"

SCHEMA = ResourceSchema(
    kind=KIND,
    description="An operating system image.",
    attributes=(
        required("name", AttributeType.STRING, "Name of the image."),
        required(
            "project_id",
            AttributeType.STRING,
            "ID of the project that will contain the image.",
            preserve_if_absent=True,
        ),
        required("description", AttributeType.STRING, "Description for the image."),
        required("os", AttributeType.STRING, "OS image distribution. Example: alpine"),
        required("version", AttributeType.STRING, "OS image version. Example: 3.16."),
        optional(
            "block_size",
            AttributeType.INTEGER,
            "Size of blocks in bytes.",
            server_default=True,
        ),
        optional(
            "source_snapshot_id",
            AttributeType.STRING,
            "Snapshot ID of the image source if applicable.",
        ),
        optional(
            "source_url",
            AttributeType.STRING,
            "URL source of this image, if applicable.",
            preserve_if_absent=True,
        ),
        computed("digest", AttributeType.OBJECT, "Hash of the image contents, if applicable."),
        computed(
            "id",
            AttributeType.STRING,
            "Unique, immutable, system-controlled identifier of the image.",
        ),
        computed("size", AttributeType.INTEGER, "Total size in bytes."),
        computed("time_created", AttributeType.STRING, "Timestamp of when this image was created."),
        computed(
            "time_modified",
            AttributeType.STRING,
            "Timestamp of when this image was last modified.",
        ),
    ),
    source_union=SourceUnion(
        name="image_source",
        variants=(
            SourceVariant(tag="url", attribute="source_url", requires=("block_size",)),
            SourceVariant(
                tag="snapshot", attribute="source_snapshot_id", conflicts=("block_size",)
            ),
        ),
    ),
    supports_update=False,
    supports_delete=False,
    timeout_operations=("create", "read"),
)


def describe() -> ResourceSchema:
    return SCHEMA


def _create(client: Any, desired: Mapping[str, Any], selection: SourceSelection | None) -> Image:
    if selection is None:
        raise ValueError("image creation requires a source")

    match selection.tag:
        case "url":
            source = UrlImageSource(url=selection.value, block_size=desired["block_size"])
        case "snapshot":
            source = SnapshotImageSource(id=selection.value)
        case _:
            raise ValueError(f"unknown image source: {selection.tag}")

    body = ImageCreate(
        name=desired["name"],
        description=desired["description"],
        os=desired["os"],
        version=desired["version"],
        source=source,
    )
    return client.image_create(desired["project_id"], body)


def _to_state(image: Image) -> dict[str, Any]:
    digest = None
    if image.digest is not None:
        digest = {"type": image.digest.type, "value": image.digest.value}

    # project_id and source_url are absent for some images; the engine keeps
    # the recorded values for those.
    return {
        "id": image.id,
        "name": image.name,
        "description": image.description,
        "os": image.os,
        "version": image.version,
        "block_size": image.block_size,
        "size": image.size,
        "project_id": image.project_id,
        "source_url": image.url,
        "digest": digest,
        "time_created": timestamp(image.time_created),
        "time_modified": timestamp(image.time_modified),
    }


BINDINGS = RemoteBindings(
    create=_create,
    view=lambda client, identifier: client.image_view(identifier),
    to_state=_to_state,
)

new_engine = engine_factory(BINDINGS)
