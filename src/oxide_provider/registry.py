"""Resource Registry - maps resource kinds to reconciliation engines.

Each kind is registered with a schema provider and an engine factory. The
registry wires the shared configuration and API client into every engine
and guarantees exactly one engine instance per kind, reused for all
operations on instances of that kind.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .client import OxideClient
from .config import Config
from .engine import OperationResult, ReconciliationEngine, RemoteBindings
from .schema import ResourceSchema, SchemaError

logger = logging.getLogger(__name__)


class UnknownResourceKindError(ValueError):
    """Raised when resolving a kind that was never registered."""

    pass


@dataclass(frozen=True)
class RegistryContext:
    """Shared, read-only collaborators handed to every engine factory."""

    config: Config
    client: Any


SchemaProvider = Callable[[], ResourceSchema]
EngineFactory = Callable[[ResourceSchema, RegistryContext], ReconciliationEngine]


def engine_factory(bindings: RemoteBindings) -> EngineFactory:
    """Build the standard engine factory for a kind's remote bindings."""

    def factory(schema: ResourceSchema, context: RegistryContext) -> ReconciliationEngine:
        return ReconciliationEngine(
            schema=schema,
            bindings=bindings,
            client=context.client,
            default_timeout_seconds=context.config.default_timeout_seconds,
        )

    return factory


@dataclass(frozen=True)
class ResourceDescriptor:
    """What the host runtime sees for one resource kind.

    Attributes:
        kind: Resource kind name.
        schema: Attribute schema.
        create / read / update / delete / import_state: Bound engine operations.
        supports_update: Whether in-place update is available.
        supports_delete: Whether deletion is available.
        default_timeout_seconds: Timeout applied when no override is given.
    """

    kind: str
    schema: ResourceSchema
    create: Callable[..., Awaitable[OperationResult]]
    read: Callable[..., Awaitable[OperationResult]]
    update: Callable[..., Awaitable[OperationResult]]
    delete: Callable[..., Awaitable[OperationResult]]
    import_state: Callable[..., Awaitable[OperationResult]]
    supports_update: bool
    supports_delete: bool
    default_timeout_seconds: int


class ResourceRegistry:
    """Central registry of resource kinds.

    Args:
        config: Validated provider configuration shared by all engines.
        client_factory: Builds the API client from the configuration. The
            client is created on first use and shared by every engine.
    """

    def __init__(
        self,
        config: Config,
        client_factory: Callable[[Config], Any] = OxideClient,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._client: Any | None = None

        # Registered providers and factories (not instantiated)
        self._schemas: dict[str, ResourceSchema] = {}
        self._engine_factories: dict[str, EngineFactory] = {}

        # One engine per kind, created lazily
        self._engines: dict[str, ReconciliationEngine] = {}

    @property
    def config(self) -> Config:
        return self._config

    @property
    def client(self) -> Any:
        """Shared API client, created on first access."""
        if self._client is None:
            self._client = self._client_factory(self._config)
        return self._client

    def register(
        self,
        kind: str,
        schema_provider: SchemaProvider,
        engine_factory: EngineFactory,
    ) -> None:
        """Register a resource kind.

        Args:
            kind: Resource kind name.
            schema_provider: Returns the kind's attribute schema; called once.
            engine_factory: Builds the kind's engine from schema and context.

        Raises:
            SchemaError: If the schema describes a different kind.
        """
        schema = schema_provider()
        if schema.kind != kind:
            raise SchemaError(
                f"Schema provider for '{kind}' returned a schema for '{schema.kind}'"
            )

        if kind in self._schemas:
            logger.warning(f"Overwriting existing resource kind: {kind}")
            self._engines.pop(kind, None)

        self._schemas[kind] = schema
        self._engine_factories[kind] = engine_factory
        logger.info(
            f"Registered resource kind: {kind}",
            extra={
                "kind": kind,
                "supports_update": schema.supports_update,
                "supports_delete": schema.supports_delete,
            },
        )

    def resolve(self, kind: str) -> ReconciliationEngine:
        """Get the engine for a kind, creating it on first use.

        Raises:
            UnknownResourceKindError: If the kind is not registered.
        """
        self._require(kind)

        if kind not in self._engines:
            context = RegistryContext(config=self._config, client=self.client)
            self._engines[kind] = self._engine_factories[kind](self._schemas[kind], context)
            logger.info(f"Instantiated engine for resource kind: {kind}")

        return self._engines[kind]

    def schema(self, kind: str) -> ResourceSchema:
        """Get the schema of a registered kind without creating its engine."""
        self._require(kind)
        return self._schemas[kind]

    def _require(self, kind: str) -> None:
        if kind not in self._schemas:
            available = ", ".join(sorted(self._schemas)) or "none"
            raise UnknownResourceKindError(
                f"Unknown resource kind: {kind}. Available kinds: {available}"
            )

    def kinds(self) -> list[str]:
        """List registered kind names."""
        return sorted(self._schemas)

    def has_kind(self, kind: str) -> bool:
        return kind in self._schemas

    def descriptor(self, kind: str) -> ResourceDescriptor:
        """Describe a kind for the host runtime."""
        engine = self.resolve(kind)
        return ResourceDescriptor(
            kind=kind,
            schema=engine.schema,
            create=engine.create,
            read=engine.read,
            update=engine.update,
            delete=engine.delete,
            import_state=engine.import_state,
            supports_update=engine.schema.supports_update,
            supports_delete=engine.schema.supports_delete,
            default_timeout_seconds=engine.default_timeout_seconds,
        )

    def close(self) -> None:
        """Close the shared client if one was created."""
        if self._client is not None and hasattr(self._client, "close"):
            self._client.close()
        self._client = None
        self._engines.clear()


def builtin_resources() -> list[Any]:
    """Modules of the built-in resource kinds, each exporting KIND, describe and new_engine."""
    # Imported here: resource modules import engine_factory from this module
    from .resources import disk, image, instance, ip_pool

    return [disk, image, instance, ip_pool]


def build_registry(
    config: Config,
    client_factory: Callable[[Config], Any] = OxideClient,
) -> ResourceRegistry:
    """Create a registry with every built-in resource kind registered."""
    registry = ResourceRegistry(config, client_factory)
    for module in builtin_resources():
        registry.register(module.KIND, module.describe, module.new_engine)
    return registry
