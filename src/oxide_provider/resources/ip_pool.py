"""oxide_ip_pool: system IP pools.

Name and description are updated in place; the pool is addressed by its
identifier so a rename does not lose track of it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..engine import RemoteBindings
from ..models import IpPool, IpPoolCreate, IpPoolUpdate, timestamp
from ..registry import engine_factory
from ..schema import AttributeType, ResourceSchema, SourceSelection, computed, required

KIND = "oxide_ip_pool"

SCHEMA = ResourceSchema(
    kind=KIND,
    description="A pool of IP addresses for external connectivity.",
    attributes=(
        required("name", AttributeType.STRING, "Name of the IP pool.", mutable=True),
        required("description", AttributeType.STRING, "Description for the IP pool.", mutable=True),
        computed("id", AttributeType.STRING, "Unique, immutable, system-controlled identifier."),
        computed("time_created", AttributeType.STRING, "Timestamp of when this pool was created."),
        computed(
            "time_modified", AttributeType.STRING, "Timestamp of when this pool was last modified."
        ),
    ),
)


def describe() -> ResourceSchema:
    return SCHEMA


def _create(client: Any, desired: Mapping[str, Any], selection: SourceSelection | None) -> IpPool:
    body = IpPoolCreate(name=desired["name"], description=desired["description"])
    return client.ip_pool_create(body)


def _update(client: Any, identifier: str, changes: dict[str, Any]) -> IpPool:
    return client.ip_pool_update(identifier, IpPoolUpdate(**changes))


def _to_state(pool: IpPool) -> dict[str, Any]:
    return {
        "id": pool.id,
        "name": pool.name,
        "description": pool.description,
        "time_created": timestamp(pool.time_created),
        "time_modified": timestamp(pool.time_modified),
    }


BINDINGS = RemoteBindings(
    create=_create,
    view=lambda client, identifier: client.ip_pool_view(identifier),
    to_state=_to_state,
    update=_update,
    delete=lambda client, identifier: client.ip_pool_delete(identifier),
)

new_engine = engine_factory(BINDINGS)
