"""Attribute schemas for resource kinds.

A schema is a pure value describing, per resource kind, each attribute's
type, requiredness and mutability class together with the cross-attribute
constraint groups. The reconciliation engine validates desired
configuration and detects replacement-forcing changes from the schema alone,
so no kind-specific validation code exists anywhere else.

CONSTRAINT GROUPS:
- exactly_one_of: exactly one of the listed attributes must be set
- also_requires: when the anchor is set, every listed attribute must be set
- conflicts_with: when the anchor is set, none of the listed attributes may be set

SOURCE UNIONS:
Mutually exclusive creation sources (blank disk vs. image vs. snapshot) are
declared as a tagged union of variants. The union expands into constraint
groups for validation and resolves to the single populated variant at
creation time.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .config import ConfigurationError, parse_duration
from .diagnostics import Diagnostics

# Reserved key carrying per-instance operation timeouts
TIMEOUTS_KEY = "timeouts"

ALL_TIMEOUT_OPERATIONS: tuple[str, ...] = ("create", "read", "update", "delete")


class SchemaError(Exception):
    """Raised when a schema declaration violates its own invariants."""

    pass


class AttributeType(str, Enum):
    """Value types an attribute can hold."""

    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    OBJECT = "object"

    def accepts(self, value: Any) -> bool:
        """Check whether a (non-null) value has this type."""
        match self:
            case AttributeType.STRING:
                return isinstance(value, str)
            case AttributeType.INTEGER:
                return isinstance(value, int) and not isinstance(value, bool)
            case AttributeType.BOOLEAN:
                return isinstance(value, bool)
            case AttributeType.OBJECT:
                return isinstance(value, Mapping)
        return False


class Requiredness(str, Enum):
    """Whether the caller must, may, or must not supply an attribute."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    COMPUTED = "computed"


class Mutability(str, Enum):
    """How a change to an attribute is reconciled.

    IMMUTABLE: any change forces destroy-and-recreate
    MUTABLE: change is applied with an in-place update
    COMPUTED: server-assigned, never user-supplied
    """

    IMMUTABLE = "immutable"
    MUTABLE = "mutable"
    COMPUTED = "computed"


class ConstraintKind(str, Enum):
    """Cross-attribute constraint kinds."""

    EXACTLY_ONE_OF = "exactly_one_of"
    ALSO_REQUIRES = "also_requires"
    CONFLICTS_WITH = "conflicts_with"


def is_set(value: Any) -> bool:
    """An attribute counts as set when it holds a non-null value."""
    return value is not None


@dataclass(frozen=True)
class AttributeDescriptor:
    """Declaration of a single attribute.

    Attributes:
        name: Attribute name as it appears in configuration and state.
        type: Value type.
        requiredness: Required, optional, or computed-only.
        mutability: Immutable, mutable, or computed.
        description: Human-readable description.
        server_default: Optional attribute the server fills in when omitted.
            An omitted desired value, or one missing from recorded state,
            is never treated as a change.
        preserve_if_absent: On read, an empty remote value keeps the recorded
            value instead of clearing it.
    """

    name: str
    type: AttributeType
    requiredness: Requiredness
    mutability: Mutability
    description: str = ""
    server_default: bool = False
    preserve_if_absent: bool = False

    @property
    def computed(self) -> bool:
        return self.mutability == Mutability.COMPUTED

    @property
    def user_settable(self) -> bool:
        return not self.computed

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "requiredness": self.requiredness.value,
            "mutability": self.mutability.value,
            "description": self.description,
        }


def required(
    name: str,
    type_: AttributeType,
    description: str = "",
    *,
    mutable: bool = False,
    preserve_if_absent: bool = False,
) -> AttributeDescriptor:
    """Shorthand for a required user attribute."""
    return AttributeDescriptor(
        name,
        type_,
        Requiredness.REQUIRED,
        Mutability.MUTABLE if mutable else Mutability.IMMUTABLE,
        description,
        preserve_if_absent=preserve_if_absent,
    )


def optional(
    name: str,
    type_: AttributeType,
    description: str = "",
    *,
    mutable: bool = False,
    server_default: bool = False,
    preserve_if_absent: bool = False,
) -> AttributeDescriptor:
    """Shorthand for an optional user attribute."""
    return AttributeDescriptor(
        name,
        type_,
        Requiredness.OPTIONAL,
        Mutability.MUTABLE if mutable else Mutability.IMMUTABLE,
        description,
        server_default=server_default,
        preserve_if_absent=preserve_if_absent,
    )


def computed(name: str, type_: AttributeType, description: str = "") -> AttributeDescriptor:
    """Shorthand for a server-assigned attribute."""
    return AttributeDescriptor(name, type_, Requiredness.COMPUTED, Mutability.COMPUTED, description)


@dataclass(frozen=True)
class Constraint:
    """A cross-attribute constraint group.

    For ALSO_REQUIRES and CONFLICTS_WITH the anchor is the attribute whose
    presence triggers the check against ``attributes``.
    """

    kind: ConstraintKind
    attributes: tuple[str, ...]
    anchor: str | None = None

    def members(self) -> tuple[str, ...]:
        if self.anchor is None:
            return self.attributes
        return (self.anchor, *self.attributes)

    def check(self, desired: Mapping[str, Any], diagnostics: Diagnostics) -> None:
        """Append an error diagnostic if ``desired`` violates this constraint."""
        listed = ", ".join(f"`{a}`" for a in self.attributes)

        match self.kind:
            case ConstraintKind.EXACTLY_ONE_OF:
                populated = [a for a in self.attributes if is_set(desired.get(a))]
                if len(populated) != 1:
                    diagnostics.add_error(
                        "Invalid attribute combination",
                        f"Exactly one of {listed} must be set, got {len(populated)}",
                        attribute=populated[0] if populated else self.attributes[0],
                    )
            case ConstraintKind.ALSO_REQUIRES:
                if not is_set(desired.get(self.anchor)):
                    return
                missing = [a for a in self.attributes if not is_set(desired.get(a))]
                if missing:
                    diagnostics.add_error(
                        "Invalid attribute combination",
                        f"Attribute `{self.anchor}` also requires {listed} to be set; "
                        f"missing: {', '.join(missing)}",
                        attribute=self.anchor,
                    )
            case ConstraintKind.CONFLICTS_WITH:
                if not is_set(desired.get(self.anchor)):
                    return
                clashing = [a for a in self.attributes if is_set(desired.get(a))]
                if clashing:
                    diagnostics.add_error(
                        "Invalid attribute combination",
                        f"Attribute `{self.anchor}` conflicts with {listed}; "
                        f"remove: {', '.join(clashing)}",
                        attribute=self.anchor,
                    )


def exactly_one_of(*attributes: str) -> Constraint:
    return Constraint(ConstraintKind.EXACTLY_ONE_OF, attributes)


def also_requires(anchor: str, *attributes: str) -> Constraint:
    return Constraint(ConstraintKind.ALSO_REQUIRES, attributes, anchor)


def conflicts_with(anchor: str, *attributes: str) -> Constraint:
    return Constraint(ConstraintKind.CONFLICTS_WITH, attributes, anchor)


@dataclass(frozen=True)
class SourceVariant:
    """One creation source of a source union.

    Attributes:
        tag: Variant name (e.g. "blank", "image", "snapshot").
        attribute: Attribute whose presence selects this variant.
        requires: Auxiliary attributes the variant needs.
        conflicts: Attributes the variant forbids.
    """

    tag: str
    attribute: str
    requires: tuple[str, ...] = ()
    conflicts: tuple[str, ...] = ()


@dataclass(frozen=True)
class SourceSelection:
    """The populated variant of a source union and its value."""

    variant: SourceVariant
    value: Any

    @property
    def tag(self) -> str:
        return self.variant.tag


@dataclass(frozen=True)
class SourceUnion:
    """Closed set of mutually exclusive creation sources."""

    name: str
    variants: tuple[SourceVariant, ...]

    def attributes(self) -> tuple[str, ...]:
        return tuple(v.attribute for v in self.variants)

    def constraints(self) -> tuple[Constraint, ...]:
        """Expand the union into constraint groups."""
        groups: list[Constraint] = [exactly_one_of(*self.attributes())]
        for variant in self.variants:
            if variant.requires:
                groups.append(also_requires(variant.attribute, *variant.requires))
            if variant.conflicts:
                groups.append(conflicts_with(variant.attribute, *variant.conflicts))
        return tuple(groups)

    def resolve(self, desired: Mapping[str, Any]) -> SourceSelection:
        """Return the single populated variant.

        Raises:
            ValueError: If zero or several variants are populated.
        """
        populated = [v for v in self.variants if is_set(desired.get(v.attribute))]
        if len(populated) != 1:
            raise ValueError(
                f"{self.name}: exactly one of {list(self.attributes())} must be set, "
                f"got {len(populated)}"
            )
        variant = populated[0]
        return SourceSelection(variant=variant, value=desired[variant.attribute])


@dataclass(frozen=True)
class ResourceSchema:
    """Complete declaration of a resource kind.

    Attributes:
        kind: Resource kind name (e.g. "oxide_disk").
        attributes: Ordered attribute descriptors.
        constraints: Explicit constraint groups.
        source_union: Optional creation source union.
        supports_update: False disables in-place update for the kind.
        supports_delete: False disables deletion for the kind.
        timeout_operations: Operations whose timeout may be overridden per instance.
        description: Human-readable description of the kind.
    """

    kind: str
    attributes: tuple[AttributeDescriptor, ...]
    constraints: tuple[Constraint, ...] = ()
    source_union: SourceUnion | None = None
    supports_update: bool = True
    supports_delete: bool = True
    timeout_operations: tuple[str, ...] = ALL_TIMEOUT_OPERATIONS
    description: str = ""
    _index: dict[str, AttributeDescriptor] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        errors: list[str] = []
        index: dict[str, AttributeDescriptor] = {}

        for attr in self.attributes:
            if attr.name in index:
                errors.append(f"duplicate attribute '{attr.name}'")
            if attr.name == TIMEOUTS_KEY:
                errors.append(f"attribute name '{TIMEOUTS_KEY}' is reserved")
            if (attr.requiredness == Requiredness.COMPUTED) != attr.computed:
                errors.append(
                    f"attribute '{attr.name}': computed requiredness and mutability must match"
                )
            index[attr.name] = attr

        if not self.supports_update:
            for attr in self.attributes:
                if attr.mutability == Mutability.MUTABLE:
                    errors.append(
                        f"attribute '{attr.name}' is mutable but the kind disables update"
                    )

        if "id" not in index or not index["id"].computed:
            errors.append("schema must declare a computed 'id' attribute")

        for constraint in self.all_constraints():
            for name in constraint.members():
                if name not in index:
                    errors.append(f"constraint references unknown attribute '{name}'")
                elif index[name].computed:
                    errors.append(
                        f"computed attribute '{name}' cannot appear in a constraint group"
                    )

        for op in self.timeout_operations:
            if op not in ALL_TIMEOUT_OPERATIONS:
                errors.append(f"unknown timeout operation '{op}'")

        if errors:
            raise SchemaError(f"Invalid schema for {self.kind}: " + "; ".join(errors))

        # frozen dataclass: populate the lookup table in place
        self._index.update(index)

    def describe(self) -> tuple[AttributeDescriptor, ...]:
        """Return the ordered attribute descriptors."""
        return self.attributes

    def attribute(self, name: str) -> AttributeDescriptor:
        return self._index[name]

    def has_attribute(self, name: str) -> bool:
        return name in self._index

    def all_constraints(self) -> tuple[Constraint, ...]:
        union = self.source_union.constraints() if self.source_union else ()
        return (*self.constraints, *union)

    def user_attributes(self) -> list[AttributeDescriptor]:
        return [a for a in self.attributes if a.user_settable]

    def immutable_attributes(self) -> list[AttributeDescriptor]:
        return [a for a in self.attributes if a.mutability == Mutability.IMMUTABLE]

    def mutable_attributes(self) -> list[AttributeDescriptor]:
        return [a for a in self.attributes if a.mutability == Mutability.MUTABLE]

    def computed_attributes(self) -> list[AttributeDescriptor]:
        return [a for a in self.attributes if a.computed]

    def blank_state(self) -> dict[str, Any]:
        """State with every attribute present and unset."""
        return {a.name: None for a in self.attributes}

    def validate(self, desired: Mapping[str, Any]) -> Diagnostics:
        """Validate a desired configuration.

        Checks unknown and computed attributes supplied by the caller, missing
        required attributes, value types, the timeouts block, and every
        constraint group. No remote state is consulted.
        """
        diagnostics = Diagnostics()

        for name, value in desired.items():
            if name == TIMEOUTS_KEY:
                continue
            attr = self._index.get(name)
            if attr is None:
                diagnostics.add_error(
                    "Unsupported attribute",
                    f"An attribute named `{name}` is not expected for {self.kind}",
                    attribute=name,
                )
            elif attr.computed and is_set(value):
                diagnostics.add_error(
                    "Invalid configuration for computed attribute",
                    f"Attribute `{name}` is assigned by the server and cannot be set",
                    attribute=name,
                )
            elif is_set(value) and not attr.type.accepts(value):
                diagnostics.add_error(
                    "Incorrect attribute value type",
                    f"Attribute `{name}` must be of type {attr.type.value}, "
                    f"got {type(value).__name__}",
                    attribute=name,
                )

        for attr in self.attributes:
            if attr.requiredness == Requiredness.REQUIRED and not is_set(desired.get(attr.name)):
                diagnostics.add_error(
                    "Missing required argument",
                    f"The argument `{attr.name}` is required, but no definition was found",
                    attribute=attr.name,
                )

        self._validate_timeouts(desired.get(TIMEOUTS_KEY), diagnostics)

        for constraint in self.all_constraints():
            constraint.check(desired, diagnostics)

        return diagnostics

    def _validate_timeouts(self, timeouts: Any, diagnostics: Diagnostics) -> None:
        if timeouts is None:
            return
        if not isinstance(timeouts, Mapping):
            diagnostics.add_error(
                "Invalid timeouts block",
                "`timeouts` must be a mapping of operation to duration",
                attribute=TIMEOUTS_KEY,
            )
            return

        for op, value in timeouts.items():
            if op not in ALL_TIMEOUT_OPERATIONS:
                diagnostics.add_error(
                    "Invalid timeouts block",
                    f"Unknown timeout operation `{op}`",
                    attribute=TIMEOUTS_KEY,
                )
                continue
            if op not in self.timeout_operations:
                diagnostics.add_warning(
                    "Timeout ignored",
                    f"{self.kind} does not support a `{op}` timeout",
                    attribute=TIMEOUTS_KEY,
                )
                continue
            if value is None:
                continue
            try:
                parse_duration(value)
            except ConfigurationError as e:
                diagnostics.add_error(
                    "Invalid timeouts block",
                    f"`{op}`: {e}",
                    attribute=TIMEOUTS_KEY,
                )

    def _differs(
        self,
        attr: AttributeDescriptor,
        desired: Mapping[str, Any],
        prior: Mapping[str, Any],
    ) -> bool:
        wanted = desired.get(attr.name)
        recorded = prior.get(attr.name)
        if attr.server_default and (wanted is None or recorded is None):
            return False
        return wanted != recorded

    def replace_triggers(self, desired: Mapping[str, Any], prior: Mapping[str, Any]) -> list[str]:
        """Immutable attributes whose desired value differs from the recorded one."""
        return [a.name for a in self.immutable_attributes() if self._differs(a, desired, prior)]

    def changed_mutable(self, desired: Mapping[str, Any], prior: Mapping[str, Any]) -> list[str]:
        """Mutable attributes whose desired value differs from the recorded one."""
        return [a.name for a in self.mutable_attributes() if self._differs(a, desired, prior)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "description": self.description,
            "supports_update": self.supports_update,
            "supports_delete": self.supports_delete,
            "timeout_operations": list(self.timeout_operations),
            "attributes": [a.to_dict() for a in self.attributes],
            "constraints": [
                {"kind": c.kind.value, "anchor": c.anchor, "attributes": list(c.attributes)}
                for c in self.all_constraints()
            ],
        }
