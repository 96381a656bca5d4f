"""oxide_instance: virtual machine instances.

Instances are replaced rather than updated: every user attribute is
immutable and the kind disables in-place update.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..engine import RemoteBindings
from ..models import Instance, InstanceCreate, timestamp
from ..registry import engine_factory
from ..schema import AttributeType, ResourceSchema, SourceSelection, computed, optional, required

KIND = "oxide_instance"

SCHEMA = ResourceSchema(
    kind=KIND,
    description="A virtual machine instance in an Oxide project.",
    attributes=(
        required(
            "project_id", AttributeType.STRING, "ID of the project that will contain the instance."
        ),
        required("name", AttributeType.STRING, "Name of the instance."),
        required("description", AttributeType.STRING, "Description for the instance."),
        required("hostname", AttributeType.STRING, "Host name of the instance."),
        required("memory", AttributeType.INTEGER, "Instance memory in bytes."),
        required("ncpus", AttributeType.INTEGER, "Number of CPUs allocated for this instance."),
        optional(
            "start_on_create",
            AttributeType.BOOLEAN,
            "Start the instance immediately after creation (default true).",
            server_default=True,
        ),
        computed("id", AttributeType.STRING, "Unique, immutable, system-controlled identifier."),
        computed("run_state", AttributeType.STRING, "Running state of the instance."),
        computed(
            "time_created", AttributeType.STRING, "Timestamp of when this instance was created."
        ),
        computed(
            "time_modified",
            AttributeType.STRING,
            "Timestamp of when this instance was last modified.",
        ),
        computed(
            "time_run_state_updated",
            AttributeType.STRING,
            "Timestamp of the last run state change.",
        ),
    ),
    supports_update=False,
)


def describe() -> ResourceSchema:
    return SCHEMA


def _create(
    client: Any, desired: Mapping[str, Any], selection: SourceSelection | None
) -> Instance:
    start = desired.get("start_on_create")
    body = InstanceCreate(
        name=desired["name"],
        description=desired["description"],
        hostname=desired["hostname"],
        memory=desired["memory"],
        ncpus=desired["ncpus"],
        start=True if start is None else start,
    )
    return client.instance_create(desired["project_id"], body)


def _to_state(instance: Instance) -> dict[str, Any]:
    return {
        "id": instance.id,
        "name": instance.name,
        "description": instance.description,
        "project_id": instance.project_id,
        "hostname": instance.hostname,
        "memory": instance.memory,
        "ncpus": instance.ncpus,
        "run_state": instance.run_state,
        "time_created": timestamp(instance.time_created),
        "time_modified": timestamp(instance.time_modified),
        "time_run_state_updated": timestamp(instance.time_run_state_updated),
    }


BINDINGS = RemoteBindings(
    create=_create,
    view=lambda client, identifier: client.instance_view(identifier),
    to_state=_to_state,
    delete=lambda client, identifier: client.instance_delete(identifier),
)

new_engine = engine_factory(BINDINGS)
