"""Mapping table parsing.

A mapping table is configured as plain strings, one row per entity field:

    identifiant            -> "uid,scalar,rw"
    attributes.mail        -> "mail,scalar,rw"
    address                -> "inseeAdressePostaleDN,address,rw"
    organization           -> "inseeOrganisationDN,organization,rw"

Relation rows need a base path, configured separately:

    organization_source    -> "ou=organisations,o=insee,c=fr"
    address_source         -> "ou=address,o=insee,c=fr"

Usage:
    rules = parse_mapping_table(raw_mapping)
    sources = parse_relation_sources(raw_sources)
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from iamdir.core.exceptions import ConfigurationError


# Identifier attribute used in references when none is configured
DEFAULT_RDN_ATTRIBUTES = {
    "address": "l",
    "organization": "uid",
}

_SOURCE_SUFFIX = "_source"
_RDN_SUFFIX = "_rdn"


class ValueKind(Enum):
    """How a mapped value is encoded in the directory."""

    SCALAR = "scalar"
    ADDRESS = "relation-address"
    ENTITY = "relation-entity"

    @property
    def is_relation(self) -> bool:
        return self is not ValueKind.SCALAR

    def relation_key(self, entity_name: str) -> Optional[str]:
        """Relation name used to look up the base path of this kind.

        ``relation-entity`` is self-referential: it points at entries of the
        mapped entity's own type.
        """
        if self is ValueKind.ADDRESS:
            return "address"
        if self is ValueKind.ENTITY:
            return entity_name
        return None

    @classmethod
    def parse(cls, token: str) -> "ValueKind":
        kind = _VALUE_KIND_TOKENS.get(token.strip().lower())
        if kind is None:
            raise ConfigurationError(f"unknown value kind '{token}'")
        return kind


_VALUE_KIND_TOKENS = {
    "scalar": ValueKind.SCALAR,
    "string": ValueKind.SCALAR,
    "list_string": ValueKind.SCALAR,
    "relation-address": ValueKind.ADDRESS,
    "address": ValueKind.ADDRESS,
    "relation-entity": ValueKind.ENTITY,
    "organization": ValueKind.ENTITY,
}


class Direction(Enum):
    """Which translations a rule takes part in.

    ``read`` populates an entity from directory attributes, ``write``
    materializes directory attributes from an entity.
    """

    READ_ONLY = "read-only"
    WRITE_ONLY = "write-only"
    READ_WRITE = "read-write"

    @property
    def can_read(self) -> bool:
        return self is not Direction.WRITE_ONLY

    @property
    def can_write(self) -> bool:
        return self is not Direction.READ_ONLY

    @classmethod
    def parse(cls, token: str) -> "Direction":
        direction = _DIRECTION_TOKENS.get(token.strip().lower())
        if direction is None:
            raise ConfigurationError(f"unknown direction '{token}'")
        return direction


_DIRECTION_TOKENS = {
    "r": Direction.READ_ONLY,
    "ro": Direction.READ_ONLY,
    "read-only": Direction.READ_ONLY,
    "w": Direction.WRITE_ONLY,
    "wo": Direction.WRITE_ONLY,
    "write-only": Direction.WRITE_ONLY,
    "rw": Direction.READ_WRITE,
    "read-write": Direction.READ_WRITE,
}


@dataclass(frozen=True)
class MappingRule:
    """One configured field translation."""

    source_path: str
    target_attribute: str
    value_kind: ValueKind
    direction: Direction

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(self.source_path.split("."))

    @classmethod
    def parse(cls, source_path: str, spec: str) -> "MappingRule":
        """Build a rule from a ``"targetAttribute,valueKind,direction"`` row.

        Raises:
            ConfigurationError: If the row is malformed
        """
        path = (source_path or "").strip()
        if not path or any(not segment for segment in path.split(".")):
            raise ConfigurationError("source path is empty or has empty segments", key=source_path)

        parts = [part.strip() for part in (spec or "").split(",")]
        if len(parts) != 3:
            raise ConfigurationError(
                f"expected 'targetAttribute,valueKind,direction', got '{spec}'",
                key=source_path,
            )
        target, kind_token, direction_token = parts
        if not target:
            raise ConfigurationError("target attribute is empty", key=source_path)

        try:
            value_kind = ValueKind.parse(kind_token)
            direction = Direction.parse(direction_token)
        except ConfigurationError as exc:
            raise ConfigurationError(exc.message, key=source_path) from exc

        return cls(path, target, value_kind, direction)


@dataclass(frozen=True)
class RelationBasePath:
    """Subtree holding the entries of one relation kind."""

    relation: str
    base_path: str
    rdn_attribute: str

    def reference(self, identifier: str) -> Optional[str]:
        """Encode a reference to the entry with ``identifier``.

        Returns None when the identifier holds a separator, since such a
        reference could not be read back.
        """
        if not identifier or "," in identifier or "=" in identifier:
            return None
        return f"{self.rdn_attribute}={identifier},{self.base_path}"

    def parse_reference(self, value: str) -> Optional[str]:
        """Extract the identifier from a reference, or None if malformed."""
        prefix = f"{self.rdn_attribute}="
        suffix = f",{self.base_path}"
        if len(value) <= len(prefix) + len(suffix):
            return None
        if value[: len(prefix)].lower() != prefix.lower():
            return None
        if value[-len(suffix):].lower() != suffix.lower():
            return None
        identifier = value[len(prefix): -len(suffix)]
        # An identifier containing a separator belongs to a deeper subtree
        if not identifier or "," in identifier or "=" in identifier:
            return None
        return identifier


def parse_mapping_table(raw: Mapping[str, str]) -> tuple[MappingRule, ...]:
    """Parse a raw ``sourcePath -> "target,kind,direction"`` table.

    Raises:
        ConfigurationError: On the first malformed row
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError("mapping table must be a mapping of source path to rule")
    return tuple(MappingRule.parse(path, spec) for path, spec in raw.items())


def parse_relation_sources(raw: Mapping[str, str]) -> dict[str, RelationBasePath]:
    """Parse relation base paths.

    Keys are ``<relation>_source`` (or bare ``<relation>``) for the base path
    and ``<relation>_rdn`` for an explicit identifier attribute.

    Raises:
        ConfigurationError: If a relation has no identifier attribute, or an
            identifier attribute is configured without a base path
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError("relation sources must be a mapping of relation to base path")

    base_paths: dict[str, str] = {}
    rdn_attributes: dict[str, str] = {}
    for key, value in raw.items():
        name = key.strip().lower()
        value = (value or "").strip()
        if name.endswith(_RDN_SUFFIX):
            rdn_attributes[name[: -len(_RDN_SUFFIX)]] = value
        elif name.endswith(_SOURCE_SUFFIX):
            base_paths[name[: -len(_SOURCE_SUFFIX)]] = value
        else:
            base_paths[name] = value

    for relation in rdn_attributes:
        if relation not in base_paths:
            raise ConfigurationError("identifier attribute configured without a base path", key=relation)

    sources = {}
    for relation, base_path in base_paths.items():
        if not base_path:
            raise ConfigurationError("base path is empty", key=relation)
        rdn_attribute = rdn_attributes.get(relation) or DEFAULT_RDN_ATTRIBUTES.get(relation)
        if not rdn_attribute:
            raise ConfigurationError(
                f"no identifier attribute known, set '{relation}{_RDN_SUFFIX}'",
                key=relation,
            )
        sources[relation] = RelationBasePath(relation, base_path, rdn_attribute)
    return sources
