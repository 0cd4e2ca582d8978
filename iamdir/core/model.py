"""Directory domain objects."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class Organization:
    """Organization entry.

    ``attributes`` is an open bag: keys are not known ahead of time and are
    mapped to directory attributes through configuration only. ``address``
    is a bag whose ``id`` key identifies the address entry it references.
    """

    identifiant: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    address: Optional[Dict[str, str]] = None
    organization: Optional["Organization"] = None
    gpg_key: Optional[str] = None

    def add_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def to_dict(self) -> Dict[str, Any]:
        """JSON representation; absent fields are omitted."""
        payload: Dict[str, Any] = {}
        if self.identifiant is not None:
            payload["identifiant"] = self.identifiant
        if self.attributes:
            payload["attributes"] = dict(self.attributes)
        if self.address is not None:
            payload["address"] = dict(self.address)
        if self.organization is not None:
            payload["organization"] = self.organization.to_dict()
        if self.gpg_key is not None:
            payload["gpgKey"] = self.gpg_key
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Organization":
        """Build an organization from its JSON representation.

        Raises:
            ValueError: If a field has the wrong shape
        """
        if not isinstance(payload, dict):
            raise ValueError("Organization must be a JSON object")

        attributes = payload.get("attributes") or {}
        if not isinstance(attributes, dict):
            raise ValueError("'attributes' must be an object")

        address = payload.get("address")
        if address is not None and not isinstance(address, dict):
            raise ValueError("'address' must be an object")

        nested = payload.get("organization")
        if nested is not None:
            nested = cls.from_dict(nested)

        identifiant = payload.get("identifiant")
        if identifiant is not None and not isinstance(identifiant, str):
            raise ValueError("'identifiant' must be a string")

        return cls(
            identifiant=identifiant,
            attributes=dict(attributes),
            address=dict(address) if address is not None else None,
            organization=nested,
            gpg_key=payload.get("gpgKey"),
        )
