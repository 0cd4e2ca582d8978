"""Role-based access control for realms and user storages.

Access is granted per tier (reader < writer < admin). Each tier is
configured as a list of role patterns such as ``ROLE_$(realm)_READER`` or
``ADMIN_$(realm)_$(userStorage)``; placeholders are replaced by the request
context (upper-cased) and the result is compared with the caller's roles,
ignoring case. Holding a higher tier grants every lower one.

Usage:
    matcher = RoleMatcher.from_config(
        reader=["ROLE_$(realm)_READER"],
        writer=["ROLE_$(realm)_WRITER"],
        admin=["ADMIN"],
    )
    matcher.is_authorized("writer", roles, {"realm": "sandbox"})
"""
from __future__ import annotations
import logging
import re
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from iamdir.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$\(([^()]*)\)")


class Tier(Enum):
    """Authorization level, ordered reader < writer < admin."""

    READER = "reader"
    WRITER = "writer"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    def and_higher(self) -> list["Tier"]:
        """This tier followed by every tier that implies it."""
        return list(_TIER_ORDER[self.rank:])

    @classmethod
    def parse(cls, value: Union[str, "Tier"]) -> "Tier":
        if isinstance(value, Tier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"unknown tier '{value}'") from None


_TIER_ORDER = (Tier.READER, Tier.WRITER, Tier.ADMIN)


def collect_roles(*sources) -> list[str]:
    """Collect all roles from ID claims, userinfo, and access token claims."""
    roles = []
    for source in sources:
        if not isinstance(source, dict):
            continue
        realm_access = source.get("realm_access")
        if isinstance(realm_access, dict):
            roles.extend(r for r in realm_access.get("roles", []) if r not in roles)
        resource_access = source.get("resource_access")
        if isinstance(resource_access, dict):
            for client_access in resource_access.values():
                if not isinstance(client_access, dict):
                    continue
                roles.extend(r for r in client_access.get("roles", []) if r not in roles)
    return roles


def _check_pattern(pattern: str) -> None:
    """Reject placeholders that can never be substituted."""
    for match in _PLACEHOLDER.finditer(pattern):
        if not match.group(1).strip():
            raise ConfigurationError("empty placeholder", key=pattern)
    if "$(" in _PLACEHOLDER.sub("", pattern):
        raise ConfigurationError("unterminated placeholder", key=pattern)


class RoleMatcher:
    """Evaluates role patterns against a caller's granted roles.

    Patterns are validated at construction; the matcher is read-only
    afterwards and can be shared between requests.
    """

    def __init__(self, patterns: Mapping[Union[Tier, str], Sequence[str]]):
        self._patterns: dict[Tier, tuple[str, ...]] = {tier: () for tier in Tier}
        for tier, tier_patterns in patterns.items():
            cleaned = tuple(p.strip() for p in tier_patterns if p and p.strip())
            for pattern in cleaned:
                _check_pattern(pattern)
            self._patterns[Tier.parse(tier)] = cleaned

    @classmethod
    def from_config(
        cls,
        reader: Sequence[str] = (),
        writer: Sequence[str] = (),
        admin: Sequence[str] = (),
    ) -> "RoleMatcher":
        return cls({Tier.READER: reader, Tier.WRITER: writer, Tier.ADMIN: admin})

    def patterns(self, tier: Union[Tier, str]) -> tuple[str, ...]:
        return self._patterns[Tier.parse(tier)]

    @staticmethod
    def render(pattern: str, context: Mapping[str, Any]) -> str:
        """Substitute ``$(name)`` placeholders with upper-cased context values.

        Placeholder names are matched case-insensitively.

        Raises:
            ConfigurationError: If the context lacks a required variable
        """
        variables = {str(k).lower(): v for k, v in context.items() if v is not None}

        def _substitute(match: re.Match) -> str:
            name = match.group(1).strip()
            if name.lower() not in variables:
                raise ConfigurationError(f"no value for placeholder '{name}'", key=pattern)
            return str(variables[name.lower()]).upper()

        return _PLACEHOLDER.sub(_substitute, pattern)

    def is_authorized(
        self,
        tier: Union[Tier, str],
        roles: Iterable[str],
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Check whether ``roles`` satisfy ``tier`` or any higher tier.

        Tiers are tried from the requested one upwards and evaluation stops
        at the first matching role, so patterns of unreached tiers are never
        rendered.

        Raises:
            ConfigurationError: If a rendered pattern needs a variable
                missing from ``context``
        """
        granted = {role.upper() for role in roles if isinstance(role, str) and role}
        context = context or {}
        for candidate in Tier.parse(tier).and_higher():
            for pattern in self._patterns[candidate]:
                expected = self.render(pattern, context)
                logger.debug("Checking if user is in: %s (%s)", expected, candidate.value)
                if expected.upper() in granted:
                    return True
        return False

    def is_at_least_reader(self, roles: Iterable[str], realm: str, user_storage: Optional[str] = None) -> bool:
        return self.is_authorized(Tier.READER, roles, {"realm": realm, "userStorage": user_storage})

    def is_at_least_writer(self, roles: Iterable[str], realm: str, user_storage: Optional[str] = None) -> bool:
        return self.is_authorized(Tier.WRITER, roles, {"realm": realm, "userStorage": user_storage})

    def is_admin(self, roles: Iterable[str], **context: Any) -> bool:
        return self.is_authorized(Tier.ADMIN, roles, context)

    def rights(self, roles: Iterable[str], context: Optional[Mapping[str, Any]] = None) -> dict[str, bool]:
        """Tier table for ``roles``, e.g. ``{"reader": True, "writer": True, "admin": False}``."""
        roles = list(roles)
        return {tier.value: self.is_authorized(tier, roles, context) for tier in Tier}
