"""Entity ↔ directory attribute mapping.

This module translates typed entities into the flat attribute list an LDAP
client expects (attribute name → one or more string values) and back. Which
field goes to which attribute is configuration only: see
``iamdir.core.mapping`` for the table format.

Usage:
    mapper = AttributeMapper.from_config(mapping, sources)

    # Entity → directory
    pairs = mapper.to_attributes(organization)
    entry = group_attributes(pairs)

    # Directory → entity
    organization = mapper.from_attributes(entry)

Relations are written as references ("uid=<id>,<base path>") and read back
as stubs holding only the identifier. Loading the referenced entry is up to
the caller.
"""
from __future__ import annotations
import dataclasses
import logging
from typing import Any, Iterable, Mapping, MutableMapping, Optional, Sequence, Tuple, Union

from iamdir.core.exceptions import ConfigurationError
from iamdir.core.mapping import (
    MappingRule,
    RelationBasePath,
    ValueKind,
    parse_mapping_table,
    parse_relation_sources,
)
from iamdir.core.model import Organization

logger = logging.getLogger(__name__)

AttributePair = Tuple[str, str]
AttributeInput = Union[Iterable[AttributePair], Mapping[str, Union[str, Sequence[str]]]]

# Key holding the identifier in relation bags (e.g. address)
BAG_IDENTIFIER_KEY = "id"


def group_attributes(pairs: Iterable[AttributePair]) -> dict[str, list[str]]:
    """Group attribute pairs by name, keeping value order per attribute."""
    grouped: dict[str, list[str]] = {}
    for name, value in pairs:
        grouped.setdefault(name, []).append(value)
    return grouped


def _render_scalar(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    text = str(value)
    return text or None


def _child(container: Any, key: str) -> Any:
    if container is None:
        return None
    if isinstance(container, Mapping):
        return container.get(key)
    return getattr(container, key, None)


def _index_attributes(attributes: AttributeInput) -> dict[str, list[str]]:
    """Values per lower-cased attribute name."""
    index: dict[str, list[str]] = {}
    if isinstance(attributes, Mapping):
        items: Iterable[Tuple[str, Any]] = attributes.items()
    else:
        items = attributes
    for name, value in items:
        values = index.setdefault(name.lower(), [])
        if isinstance(value, (list, tuple)):
            values.extend(str(v) for v in value if v is not None)
        elif value is not None:
            values.append(str(value))
    return index


class AttributeMapper:
    """Bidirectional translator between an entity type and directory attributes.

    Configuration is validated once, in the constructor. Afterwards the
    mapper holds no mutable state and can be shared between threads.
    """

    def __init__(
        self,
        rules: Sequence[MappingRule],
        sources: Mapping[str, RelationBasePath],
        entity_cls: type = Organization,
        entity_name: str = "organization",
        identifier_field: str = "identifiant",
    ):
        self.entity_cls = entity_cls
        self.entity_name = entity_name
        self.identifier_field = identifier_field
        self._rules = tuple(rules)
        self._sources = dict(sources)
        self._validate()

    @classmethod
    def from_config(
        cls,
        mapping: Mapping[str, str],
        sources: Mapping[str, str],
        entity_cls: type = Organization,
        entity_name: str = "organization",
        identifier_field: str = "identifiant",
    ) -> "AttributeMapper":
        """Build a mapper from raw configuration strings.

        Raises:
            ConfigurationError: If any row or relation source is invalid
        """
        return cls(
            parse_mapping_table(mapping),
            parse_relation_sources(sources),
            entity_cls=entity_cls,
            entity_name=entity_name,
            identifier_field=identifier_field,
        )

    @property
    def rules(self) -> tuple[MappingRule, ...]:
        return self._rules

    def _validate(self) -> None:
        if dataclasses.is_dataclass(self.entity_cls):
            known_fields = {f.name for f in dataclasses.fields(self.entity_cls)}
            if self.identifier_field not in known_fields:
                raise ConfigurationError(
                    f"{self.entity_cls.__name__} has no field '{self.identifier_field}'",
                    key=self.entity_name,
                )

        # Rules naming a field the entity lacks are skipped at translation time
        for rule in self._rules:
            if rule.value_kind.is_relation and self._source_for(rule) is None:
                raise ConfigurationError(
                    f"no base path configured for relation "
                    f"'{rule.value_kind.relation_key(self.entity_name)}'",
                    key=rule.source_path,
                )

    def _source_for(self, rule: MappingRule) -> Optional[RelationBasePath]:
        relation = rule.value_kind.relation_key(self.entity_name)
        return self._sources.get(relation) if relation else None

    # ─────────────────────────────────────────────────────────────────────────
    # Entity → directory
    # ─────────────────────────────────────────────────────────────────────────
    def to_attributes(self, entity: Any) -> list[AttributePair]:
        """Materialize directory attributes from ``entity``.

        Rules whose value is absent are skipped; no empty or placeholder
        value is ever emitted.
        """
        pairs: list[AttributePair] = []
        for rule in self._rules:
            if not rule.direction.can_write:
                continue
            value = entity
            for segment in rule.segments:
                value = _child(value, segment)
            if value is None:
                continue
            if rule.value_kind.is_relation:
                pairs.extend(self._write_relation(rule, value))
            else:
                pairs.extend(self._write_scalar(rule, value))
        return pairs

    def _write_scalar(self, rule: MappingRule, value: Any) -> list[AttributePair]:
        if isinstance(value, Mapping):
            logger.debug("Skipping %s: bag value cannot be written as a scalar", rule.source_path)
            return []
        values = value if isinstance(value, (list, tuple)) else [value]
        pairs = []
        for item in values:
            text = _render_scalar(item)
            if text is not None:
                pairs.append((rule.target_attribute, text))
        return pairs

    def _write_relation(self, rule: MappingRule, value: Any) -> list[AttributePair]:
        identifier = self._identifier_of(value)
        if not identifier:
            logger.debug("Skipping %s: related entry has no identifier", rule.source_path)
            return []
        source = self._source_for(rule)
        reference = source.reference(str(identifier))
        if reference is None:
            logger.debug(
                "Skipping %s: identifier '%s' cannot be written as a reference",
                rule.source_path, identifier,
            )
            return []
        return [(rule.target_attribute, reference)]

    def _identifier_of(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return value.get(BAG_IDENTIFIER_KEY)
        return getattr(value, self.identifier_field, None)

    # ─────────────────────────────────────────────────────────────────────────
    # Directory → entity
    # ─────────────────────────────────────────────────────────────────────────
    def from_attributes(self, attributes: AttributeInput) -> Any:
        """Populate a new entity from directory attributes.

        Accepts attribute pairs or a ``name -> value(s)`` mapping. Attribute
        names are matched case-insensitively. Relations become identifier
        stubs; malformed references are skipped.
        """
        index = _index_attributes(attributes)
        entity = self.entity_cls()
        for rule in self._rules:
            if not rule.direction.can_read:
                continue
            values = index.get(rule.target_attribute.lower())
            if not values:
                continue
            if rule.value_kind.is_relation:
                value = self._read_relation(rule, values)
            else:
                value = values[0] if len(values) == 1 else list(values)
            if value is not None:
                self._assign(entity, rule, value)
        return entity

    def _read_relation(self, rule: MappingRule, values: list[str]) -> Any:
        if len(values) > 1:
            logger.debug("%s has %d references, keeping the first", rule.target_attribute, len(values))
        source = self._source_for(rule)
        identifier = source.parse_reference(values[0])
        if identifier is None:
            logger.debug(
                "Skipping %s: '%s' is not a reference under %s",
                rule.source_path, values[0], source.base_path,
            )
            return None
        if rule.value_kind is ValueKind.ADDRESS:
            return {BAG_IDENTIFIER_KEY: identifier}
        return self.entity_cls(**{self.identifier_field: identifier})

    def _assign(self, entity: Any, rule: MappingRule, value: Any) -> None:
        *parents, leaf = rule.segments
        if not isinstance(entity, Mapping) and not hasattr(entity, rule.segments[0]):
            logger.debug("Skipping %s: %s has no such field", rule.source_path, type(entity).__name__)
            return
        target = entity
        for segment in parents:
            child = _child(target, segment)
            if child is None:
                child = {}
                if isinstance(target, MutableMapping):
                    target[segment] = child
                else:
                    setattr(target, segment, child)
            elif not isinstance(child, MutableMapping):
                logger.debug("Skipping %s: '%s' is not a bag", rule.source_path, segment)
                return
            target = child
        current = _child(target, leaf)
        if isinstance(current, MutableMapping) and isinstance(value, Mapping):
            # Keep what other rules already wrote under the same bag
            current.update(value)
        elif isinstance(target, MutableMapping):
            target[leaf] = value
        else:
            setattr(target, leaf, value)
