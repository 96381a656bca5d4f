"""Generic reconciliation engine for a single resource kind.

The engine drives Create / Read / Update / Delete / Import for one resource
instance per invocation, moving between desired configuration, recorded
state and the remote object:

1. Validate desired configuration against the kind's schema (no remote call)
2. Resolve the creation source union
3. Invoke the API adapter under a bounded timeout
4. Map the remote object back into recorded state

The engine is stateless across invocations. Everything instance-specific
flows through the desired configuration and recorded state parameters, so a
single engine per kind serves concurrent operations without locking.

Failures never escape as exceptions: every per-resource failure becomes an
error diagnostic, and an operation with an error diagnostic returns no new
state. Remote not-found is interpreted per operation (absence on Read,
success on Delete, error on Update and Import).

SECURITY: Timeouts are enforced on all API calls to prevent indefinite hangs.
"""

from __future__ import annotations

import asyncio
import copy
import functools
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from azure.core.exceptions import AzureError
from pydantic import ValidationError

from .client import is_not_found
from .config import ConfigurationError, parse_duration
from .diagnostics import Diagnostics
from .schema import TIMEOUTS_KEY, ResourceSchema, SchemaError, SourceSelection

logger = logging.getLogger(__name__)

State = dict[str, Any]


@dataclass(frozen=True)
class RemoteBindings:
    """Adapter calls and state mapping for one resource kind.

    Attributes:
        create: (client, desired, source selection) -> remote object
        view: (client, identifier) -> remote object
        to_state: remote object -> attribute values
        update: (client, identifier, changed mutable values) -> remote object
        delete: (client, identifier) -> None
    """

    create: Callable[[Any, Mapping[str, Any], SourceSelection | None], Any]
    view: Callable[[Any, str], Any]
    to_state: Callable[[Any], dict[str, Any]]
    update: Callable[[Any, str, dict[str, Any]], Any] | None = None
    delete: Callable[[Any, str], None] | None = None


class PlanAction(str, Enum):
    """What the caller must do to converge an instance."""

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    NO_OP = "no_op"


@dataclass(frozen=True)
class Plan:
    """Planned action with the attributes that caused it."""

    action: PlanAction
    replace_triggers: tuple[str, ...] = ()
    changed: tuple[str, ...] = ()


@dataclass
class OperationResult:
    """Outcome of a single engine operation.

    Attributes:
        state: New recorded state; None after delete or when nothing was recorded.
        diagnostics: Diagnostics accumulated during the operation.
        removed: True when Read found the remote object gone and the caller
            must drop the recorded instance.
    """

    state: State | None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    removed: bool = False

    @property
    def success(self) -> bool:
        return not self.diagnostics.has_error()


class ReconciliationEngine:
    """Reconciliation state machine parameterized by a resource schema.

    Args:
        schema: Attribute schema of the resource kind.
        bindings: Adapter calls and state mapping for the kind.
        client: Remote API adapter shared by all engines.
        default_timeout_seconds: Timeout used when no override is given.

    Raises:
        SchemaError: If the schema declares an operation the bindings lack.
    """

    def __init__(
        self,
        schema: ResourceSchema,
        bindings: RemoteBindings,
        client: Any,
        default_timeout_seconds: int,
    ) -> None:
        if schema.supports_update and bindings.update is None:
            raise SchemaError(f"{schema.kind} supports update but has no update binding")
        if schema.supports_delete and bindings.delete is None:
            raise SchemaError(f"{schema.kind} supports delete but has no delete binding")

        self._schema = schema
        self._bindings = bindings
        self._client = client
        self._default_timeout = default_timeout_seconds

    @property
    def schema(self) -> ResourceSchema:
        return self._schema

    @property
    def kind(self) -> str:
        return self._schema.kind

    @property
    def default_timeout_seconds(self) -> int:
        return self._default_timeout

    @property
    def _noun(self) -> str:
        return self._schema.kind.removeprefix("oxide_").replace("_", " ")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create(
        self,
        desired: Mapping[str, Any],
        timeout: float | None = None,
    ) -> OperationResult:
        """Create the remote object and record its initial state."""
        summary = f"Error creating {self._noun}"
        diagnostics = self._schema.validate(desired)
        if diagnostics.has_error():
            return OperationResult(state=None, diagnostics=diagnostics)

        selection = None
        if self._schema.source_union is not None:
            selection = self._schema.source_union.resolve(desired)

        seconds = self._timeout("create", desired, timeout)
        try:
            remote = await self._call(seconds, self._bindings.create, desired, selection)
        except ValidationError as e:
            diagnostics.add_error(summary, f"Invalid request: {e}")
            return OperationResult(state=None, diagnostics=diagnostics)
        except TimeoutError:
            diagnostics.add_error(summary, self._timeout_detail("create", seconds))
            return OperationResult(state=None, diagnostics=diagnostics)
        except AzureError as e:
            diagnostics.add_error(summary, f"API error: {e}")
            return OperationResult(state=None, diagnostics=diagnostics)

        state = self._merge(desired, self._bindings.to_state(remote))
        logger.info(
            f"Created {self._noun}",
            extra={
                "kind": self.kind,
                "id": state.get("id"),
                "source": selection.tag if selection else None,
            },
        )
        return OperationResult(state=state, diagnostics=diagnostics)

    async def read(
        self,
        state: Mapping[str, Any],
        timeout: float | None = None,
    ) -> OperationResult:
        """Refresh recorded state from the remote object.

        A remote not-found yields ``removed=True`` without an error so the
        caller drops the instance and a later Create recreates it.
        """
        diagnostics = Diagnostics()
        identifier = state.get("id")
        if not identifier:
            diagnostics.add_error(
                f"Unable to read {self._noun}",
                "Recorded state has no identifier",
                attribute="id",
            )
            return OperationResult(state=dict(state), diagnostics=diagnostics)

        refreshed = await self._refresh(
            identifier, state, self._timeout("read", state, timeout), diagnostics
        )
        if refreshed is None and not diagnostics.has_error():
            logger.info(
                f"{self._noun.capitalize()} no longer exists, removing from state",
                extra={"kind": self.kind, "id": identifier},
            )
            return OperationResult(state=None, diagnostics=diagnostics, removed=True)
        if refreshed is None:
            return OperationResult(state=dict(state), diagnostics=diagnostics)
        return OperationResult(state=refreshed, diagnostics=diagnostics)

    async def update(
        self,
        desired: Mapping[str, Any],
        prior: Mapping[str, Any],
        timeout: float | None = None,
    ) -> OperationResult:
        """Apply changed mutable attributes in place.

        Kinds without in-place update always fail with a fixed diagnostic and
        return the prior state unchanged. Immutable changes are rejected
        before any remote call; the caller must destroy and recreate instead.
        """
        summary = f"Error updating {self._noun}"
        unchanged = copy.deepcopy(dict(prior))

        if not self._schema.supports_update:
            diagnostics = Diagnostics()
            diagnostics.add_error(
                summary,
                f"the oxide API currently does not support updating {self._noun}s",
            )
            return OperationResult(state=unchanged, diagnostics=diagnostics)

        diagnostics = self._schema.validate(desired)
        if diagnostics.has_error():
            return OperationResult(state=unchanged, diagnostics=diagnostics)

        triggers = self._schema.replace_triggers(desired, prior)
        if triggers:
            for name in triggers:
                diagnostics.add_error(
                    summary,
                    f"Attribute `{name}` cannot be changed in place; "
                    "the resource must be replaced",
                    attribute=name,
                )
            return OperationResult(state=unchanged, diagnostics=diagnostics)

        identifier = prior.get("id")
        if not identifier:
            diagnostics.add_error(summary, "Recorded state has no identifier", attribute="id")
            return OperationResult(state=unchanged, diagnostics=diagnostics)

        base = {**prior, **{a.name: desired.get(a.name) for a in self._schema.user_attributes()}}
        if TIMEOUTS_KEY in desired:
            base[TIMEOUTS_KEY] = desired[TIMEOUTS_KEY]
        else:
            base.pop(TIMEOUTS_KEY, None)

        changes = {name: desired.get(name) for name in self._schema.changed_mutable(desired, prior)}
        if not changes:
            return OperationResult(state=self._merge(base, {}), diagnostics=diagnostics)

        seconds = self._timeout("update", desired, timeout)
        try:
            remote = await self._call(seconds, self._bindings.update, identifier, changes)
        except ValidationError as e:
            diagnostics.add_error(summary, f"Invalid request: {e}")
            return OperationResult(state=unchanged, diagnostics=diagnostics)
        except TimeoutError:
            diagnostics.add_error(summary, self._timeout_detail("update", seconds))
            return OperationResult(state=unchanged, diagnostics=diagnostics)
        except AzureError as e:
            diagnostics.add_error(summary, f"API error: {e}")
            return OperationResult(state=unchanged, diagnostics=diagnostics)

        state = self._merge(base, self._bindings.to_state(remote))
        logger.info(
            f"Updated {self._noun}",
            extra={"kind": self.kind, "id": identifier, "changed": sorted(changes)},
        )
        return OperationResult(state=state, diagnostics=diagnostics)

    async def delete(
        self,
        state: Mapping[str, Any],
        timeout: float | None = None,
    ) -> OperationResult:
        """Delete the remote object.

        An already-absent object counts as deleted. On any failure the
        recorded state is returned intact so the caller can retry.
        """
        summary = f"Error deleting {self._noun}"
        diagnostics = Diagnostics()
        intact = copy.deepcopy(dict(state))

        if not self._schema.supports_delete:
            diagnostics.add_error(
                summary,
                f"the oxide API currently does not support deleting {self._noun}s",
            )
            return OperationResult(state=intact, diagnostics=diagnostics)

        identifier = state.get("id")
        if not identifier:
            diagnostics.add_error(summary, "Recorded state has no identifier", attribute="id")
            return OperationResult(state=intact, diagnostics=diagnostics)

        seconds = self._timeout("delete", state, timeout)
        try:
            await self._call(seconds, self._bindings.delete, identifier)
        except TimeoutError:
            diagnostics.add_error(summary, self._timeout_detail("delete", seconds))
            return OperationResult(state=intact, diagnostics=diagnostics)
        except AzureError as e:
            if not is_not_found(e):
                diagnostics.add_error(summary, f"API error: {e}")
                return OperationResult(state=intact, diagnostics=diagnostics)
            diagnostics.add_warning(
                f"{self._noun.capitalize()} already deleted",
                f"{self._noun} {identifier} was not found; treating as deleted",
            )

        logger.info(f"Deleted {self._noun}", extra={"kind": self.kind, "id": identifier})
        return OperationResult(state=None, diagnostics=diagnostics)

    async def import_state(
        self,
        identifier: str,
        timeout: float | None = None,
    ) -> OperationResult:
        """Adopt an existing remote object by identifier."""
        diagnostics = Diagnostics()
        if not identifier:
            diagnostics.add_error(f"Cannot import {self._noun}", "Identifier must not be empty")
            return OperationResult(state=None, diagnostics=diagnostics)

        seed = {"id": identifier}
        state = await self._refresh(
            identifier, seed, self._timeout("read", seed, timeout), diagnostics
        )
        if state is None:
            if not diagnostics.has_error():
                diagnostics.add_error(
                    "Cannot import non-existent remote object",
                    f"{self._noun} {identifier} was not found",
                )
            return OperationResult(state=None, diagnostics=diagnostics)

        logger.info(f"Imported {self._noun}", extra={"kind": self.kind, "id": state.get("id")})
        return OperationResult(state=state, diagnostics=diagnostics)

    def plan(self, desired: Mapping[str, Any], prior: Mapping[str, Any] | None) -> Plan:
        """Decide how to converge ``prior`` towards ``desired``.

        Replacement is chosen whenever an immutable attribute differs, so the
        caller never invokes Update for a change it cannot apply in place.
        """
        if prior is None:
            return Plan(PlanAction.CREATE)

        triggers = tuple(self._schema.replace_triggers(desired, prior))
        if triggers:
            return Plan(PlanAction.REPLACE, replace_triggers=triggers)

        changed = tuple(self._schema.changed_mutable(desired, prior))
        if changed:
            return Plan(PlanAction.UPDATE, changed=changed)
        return Plan(PlanAction.NO_OP)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _refresh(
        self,
        identifier: str,
        prior: Mapping[str, Any],
        seconds: float,
        diagnostics: Diagnostics,
    ) -> State | None:
        """View the remote object and merge it over ``prior``.

        Returns None when the object is absent or the call failed; failures
        are recorded in ``diagnostics``.
        """
        summary = f"Unable to read {self._noun}"
        try:
            remote = await self._call(seconds, self._bindings.view, identifier)
        except TimeoutError:
            diagnostics.add_error(summary, self._timeout_detail("read", seconds))
            return None
        except AzureError as e:
            if is_not_found(e):
                return None
            diagnostics.add_error(summary, f"API error: {e}")
            return None

        logger.debug(f"Read {self._noun}", extra={"kind": self.kind, "id": identifier})
        return self._merge(prior, self._bindings.to_state(remote))

    async def _call(self, seconds: float, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking adapter call in the default executor under a timeout."""
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(None, functools.partial(fn, self._client, *args)),
            timeout=seconds,
        )

    def _timeout(
        self,
        operation: str,
        config: Mapping[str, Any],
        explicit: float | None,
    ) -> float:
        """Resolve the timeout for an operation.

        Order: explicit argument, the instance's ``timeouts`` block (for
        operations the kind allows), then the configured default.
        """
        if explicit is not None:
            return explicit

        block = config.get(TIMEOUTS_KEY)
        if isinstance(block, Mapping) and operation in self._schema.timeout_operations:
            value = block.get(operation)
            if value is not None:
                try:
                    return parse_duration(value)
                except ConfigurationError:
                    logger.warning(
                        "Ignoring invalid timeout override",
                        extra={"kind": self.kind, "operation": operation, "value": str(value)},
                    )
        return self._default_timeout

    def _timeout_detail(self, operation: str, seconds: float) -> str:
        return f"{operation} of {self._noun} timed out after {seconds:g}s"

    def _merge(self, base: Mapping[str, Any], remote: Mapping[str, Any]) -> State:
        """Build a full state from ``base`` overlaid with remote values.

        Remote values win, except for attributes that may legitimately be
        absent from the remote object; those keep the base value when the
        remote one is empty.
        """
        state = self._schema.blank_state()
        state.update(
            {k: copy.deepcopy(v) for k, v in base.items() if self._schema.has_attribute(k)}
        )

        for name, value in remote.items():
            if not self._schema.has_attribute(name):
                continue
            if self._schema.attribute(name).preserve_if_absent and value in (None, ""):
                continue
            state[name] = value

        if base.get(TIMEOUTS_KEY) is not None:
            state[TIMEOUTS_KEY] = copy.deepcopy(base[TIMEOUTS_KEY])
        return state
