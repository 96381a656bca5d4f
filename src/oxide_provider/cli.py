"""Oxide provider CLI (oxide-provider).

Drives single reconciliation operations against an Oxide rack, reading
desired configuration from YAML and recorded state from JSON.

Usage:
    oxide-provider kinds                           # List resource kinds
    oxide-provider schema oxide_disk               # Show a kind's schema
    oxide-provider validate disk.yaml              # Validate without API calls
    oxide-provider plan disk.yaml -s state.json    # Show the planned action
    oxide-provider create disk.yaml -o state.json  # Create and record state
    oxide-provider read oxide_disk state.json      # Refresh recorded state
    oxide-provider update pool.yaml state.json     # Update in place
    oxide-provider delete oxide_disk state.json    # Delete
    oxide-provider import oxide_disk <id>          # Adopt an existing object

Connection settings come from OXIDE_HOST and OXIDE_TOKEN.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import click

from .config import PROVIDER_VERSION, Config, ConfigurationError
from .diagnostics import Severity
from .engine import OperationResult, ReconciliationEngine
from .main import setup_logging
from .registry import ResourceRegistry, UnknownResourceKindError, build_registry, builtin_resources
from .schema import ResourceSchema
from .spec_loader import SpecLoadError, load_desired, load_state

# Exit codes
EXIT_DIAGNOSTIC_ERROR = 1
EXIT_CONFIG_ERROR = 2

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def builtin_schemas() -> dict[str, ResourceSchema]:
    """Schemas of the built-in kinds, available without provider configuration."""
    return {module.KIND: module.describe() for module in builtin_resources()}


def get_schema(kind: str) -> ResourceSchema:
    """Look up a built-in schema.

    Raises:
        click.ClickException: If the kind is unknown.
    """
    schemas = builtin_schemas()
    if kind not in schemas:
        raise click.ClickException(
            f"Unknown resource kind: {kind}. Available kinds: {', '.join(sorted(schemas))}"
        )
    return schemas[kind]


def open_registry() -> ResourceRegistry:
    """Build the registry from environment configuration.

    Exits with EXIT_CONFIG_ERROR when the configuration is invalid.
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        click.secho(str(e), fg="red", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    return build_registry(config)


def read_desired(path: Path) -> tuple[str, dict[str, Any]]:
    """Load a desired configuration file, returning its kind and attributes."""
    try:
        desired = load_desired(path, known_kinds=sorted(builtin_schemas()))
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e
    return desired.kind, desired.config


def read_state(path: Path) -> dict[str, Any]:
    try:
        return load_state(path)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


def run_operation(
    kind: str,
    operation: Callable[[ReconciliationEngine], Awaitable[OperationResult]],
    output: Path | None,
) -> None:
    """Run one engine operation, print its result and exit with its status."""
    registry = open_registry()
    try:
        try:
            engine = registry.resolve(kind)
        except UnknownResourceKindError as e:
            raise click.ClickException(str(e)) from e
        result = asyncio.run(operation(engine))
    finally:
        registry.close()

    emit_result(result, output)
    if not result.success:
        sys.exit(EXIT_DIAGNOSTIC_ERROR)


def emit_result(result: OperationResult, output: Path | None) -> None:
    """Print an operation result as JSON and optionally persist its state.

    When the operation leaves no state (delete, or the object vanished) an
    existing output file is removed.
    """
    click.echo(
        json.dumps(
            {
                "state": result.state,
                "removed": result.removed,
                "diagnostics": result.diagnostics.to_list(),
            },
            indent=2,
        )
    )

    for diagnostic in result.diagnostics:
        color = "red" if diagnostic.severity is Severity.ERROR else "yellow"
        message = f"{diagnostic.severity.value}: {diagnostic.summary}"
        if diagnostic.detail:
            message = f"{message}: {diagnostic.detail}"
        click.secho(message, fg=color, err=True)

    if output is None:
        return
    if result.state is not None:
        output.write_text(json.dumps(result.state, indent=2) + "\n", encoding="utf-8")
    elif result.success and output.exists():
        output.unlink()


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=PROVIDER_VERSION, prog_name="oxide-provider")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    envvar="OXIDE_LOG_LEVEL",
    help="Log level for JSON logs on stderr",
)
def cli(log_level: str) -> None:
    """Oxide resource provider.

    Reconciles Oxide disks, images, instances and IP pools.

    \b
    Quick Start:
        oxide-provider kinds
        oxide-provider validate disk.yaml
        oxide-provider create disk.yaml -o disk.state.json
    """
    setup_logging(log_level)


# =============================================================================
# Schema Commands
# =============================================================================


@cli.command()
def kinds() -> None:
    """List the supported resource kinds."""
    for kind, schema in sorted(builtin_schemas().items()):
        operations = ["create", "read", "import"]
        if schema.supports_update:
            operations.append("update")
        if schema.supports_delete:
            operations.append("delete")
        click.echo(f"{kind}\t{', '.join(operations)}")


@cli.command()
@click.argument("kind")
def schema(kind: str) -> None:
    """Show the attribute schema of KIND as JSON."""
    click.echo(json.dumps(get_schema(kind).to_dict(), indent=2))


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(spec_file: Path) -> None:
    """Validate a desired configuration without calling the API."""
    kind, desired = read_desired(spec_file)
    diagnostics = get_schema(kind).validate(desired)
    click.echo(json.dumps({"kind": kind, "diagnostics": diagnostics.to_list()}, indent=2))
    if diagnostics.has_error():
        sys.exit(EXIT_DIAGNOSTIC_ERROR)
    click.secho(f"✓ {spec_file} is valid", fg="green", err=True)


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--state",
    "-s",
    "state_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Recorded state to compare against",
)
def plan(spec_file: Path, state_file: Path | None) -> None:
    """Show the action needed to converge recorded state to SPEC_FILE."""
    kind, desired = read_desired(spec_file)
    prior = read_state(state_file) if state_file is not None else None

    schema_ = get_schema(kind)
    diagnostics = schema_.validate(desired)
    if diagnostics.has_error():
        click.echo(json.dumps({"kind": kind, "diagnostics": diagnostics.to_list()}, indent=2))
        sys.exit(EXIT_DIAGNOSTIC_ERROR)

    registry = open_registry()
    try:
        result = registry.resolve(kind).plan(desired, prior)
    finally:
        registry.close()

    click.echo(
        json.dumps(
            {
                "kind": kind,
                "action": result.action.value,
                "replace_triggers": list(result.replace_triggers),
                "changed": list(result.changed),
            },
            indent=2,
        )
    )


# =============================================================================
# Lifecycle Commands
# =============================================================================

timeout_option = click.option(
    "--timeout",
    "-t",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Operation timeout in seconds (overrides the configured default)",
)
output_option = click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the resulting state to this file",
)


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@timeout_option
@output_option
def create(spec_file: Path, timeout: float | None, output: Path | None) -> None:
    """Create the resource described by SPEC_FILE."""
    kind, desired = read_desired(spec_file)
    run_operation(kind, lambda engine: engine.create(desired, timeout=timeout), output)


@cli.command()
@click.argument("kind")
@click.argument("state_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@timeout_option
@output_option
def read(kind: str, state_file: Path, timeout: float | None, output: Path | None) -> None:
    """Refresh the recorded STATE_FILE of a KIND instance."""
    state = read_state(state_file)
    run_operation(kind, lambda engine: engine.read(state, timeout=timeout), output)


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("state_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@timeout_option
@output_option
def update(
    spec_file: Path,
    state_file: Path,
    timeout: float | None,
    output: Path | None,
) -> None:
    """Update a resource in place from SPEC_FILE and its recorded STATE_FILE."""
    kind, desired = read_desired(spec_file)
    prior = read_state(state_file)
    run_operation(kind, lambda engine: engine.update(desired, prior, timeout=timeout), output)


@cli.command()
@click.argument("kind")
@click.argument("state_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@timeout_option
@output_option
def delete(kind: str, state_file: Path, timeout: float | None, output: Path | None) -> None:
    """Delete the KIND instance recorded in STATE_FILE."""
    state = read_state(state_file)
    run_operation(kind, lambda engine: engine.delete(state, timeout=timeout), output)


@cli.command(name="import")
@click.argument("kind")
@click.argument("identifier")
@timeout_option
@output_option
def import_(kind: str, identifier: str, timeout: float | None, output: Path | None) -> None:
    """Adopt the existing remote KIND object IDENTIFIER."""
    run_operation(kind, lambda engine: engine.import_state(identifier, timeout=timeout), output)
