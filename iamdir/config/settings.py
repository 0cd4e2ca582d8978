"""Settings loader with environment variable and YAML mapping file integration."""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from iamdir.core.exceptions import ConfigurationError


# Organization entries as stored in the directory
DEFAULT_ORGANIZATION_MAPPING = {
    "identifiant": "uid,scalar,rw",
    "attributes.description": "description,scalar,rw",
    "attributes.mail": "mail,scalar,rw",
    "gpg_key": "inseeClefChiffrement,scalar,rw",
    "address": "inseeAdressePostaleDN,address,rw",
    "organization": "inseeOrganisationDN,organization,rw",
}

DEFAULT_ORGANIZATION_SOURCES = {
    "organization_source": "ou=organisations,o=insee,c=fr",
    "address_source": "ou=address,o=insee,c=fr",
}

DEMO_ROLE_PATTERNS = {
    "reader": ["ROLE_$(realm)_$(userStorage)_READER", "ROLE_$(realm)_READER"],
    "writer": ["ROLE_$(realm)_$(userStorage)_WRITER", "ROLE_$(realm)_WRITER"],
    "admin": ["ADMIN"],
}


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # OIDC bearer tokens
    oidc_issuer: str = ""
    oidc_jwks_url: str = ""
    oidc_audience: str = ""

    # Role patterns per tier
    reader_role_patterns: list[str] = field(default_factory=list)
    writer_role_patterns: list[str] = field(default_factory=list)
    admin_role_patterns: list[str] = field(default_factory=list)

    # Organization mapping
    organization_mapping: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ORGANIZATION_MAPPING))
    organization_sources: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ORGANIZATION_SOURCES))
    mapping_file: str = ""

    # Logging
    log_level: str = "INFO"

    @property
    def role_patterns(self) -> dict[str, list[str]]:
        return {
            "reader": self.reader_role_patterns,
            "writer": self.writer_role_patterns,
            "admin": self.admin_role_patterns,
        }


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        print(f"[demo-mode] Using default for {var_name}")
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _role_patterns(tier: str, demo_mode: bool) -> list[str]:
    var_name = f"ROLE_{tier.upper()}_PATTERNS"
    raw = os.environ.get(var_name)
    if raw is not None:
        return _split_list(raw)
    if demo_mode:
        print(f"[demo-mode] Using default for {var_name}")
        return list(DEMO_ROLE_PATTERNS[tier])
    return []


def load_mapping_file(path: str | Path) -> tuple[dict[str, str], dict[str, str]]:
    """Load an organization mapping table and its relation sources from YAML.

    Expected layout:

        mapping:
          identifiant: uid,scalar,rw
          address: inseeAdressePostaleDN,address,rw
        sources:
          address_source: ou=address,o=insee,c=fr

    Returns:
        (mapping, sources) with string values

    Raises:
        ConfigurationError: If the file is unreadable or malformed
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigurationError(f"cannot read mapping file: {exc}", key=str(path)) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML: {exc}", key=str(path)) from exc

    if not isinstance(document, dict):
        raise ConfigurationError("mapping file must contain a YAML mapping", key=str(path))

    tables = []
    for section in ("mapping", "sources"):
        table = document.get(section) or {}
        if not isinstance(table, dict):
            raise ConfigurationError(f"'{section}' must be a mapping", key=str(path))
        tables.append({str(k): str(v) for k, v in table.items()})
    return tables[0], tables[1]


def load_settings() -> AppConfig:
    """Load application settings from the environment and the mapping file."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"

    # OIDC
    oidc_issuer = _get_or_generate(
        "OIDC_ISSUER",
        demo_default="http://localhost:8080/realms/demo",
        demo_mode=demo_mode,
    ).rstrip("/")
    oidc_jwks_url = os.environ.get("OIDC_JWKS_URL") or f"{oidc_issuer}/protocol/openid-connect/certs"
    oidc_audience = os.environ.get("OIDC_AUDIENCE", "").strip()

    # Roles
    reader_role_patterns = _role_patterns("reader", demo_mode)
    writer_role_patterns = _role_patterns("writer", demo_mode)
    admin_role_patterns = _role_patterns("admin", demo_mode)
    if not any((reader_role_patterns, writer_role_patterns, admin_role_patterns)):
        print("[settings] WARNING: No role patterns configured; every request will be refused.")

    # Organization mapping
    mapping_file = os.environ.get("ORGANIZATION_MAPPING_FILE", "").strip()
    if mapping_file:
        organization_mapping, organization_sources = load_mapping_file(mapping_file)
        print(f"[settings] ✓ Loaded organization mapping from {mapping_file}")
    else:
        organization_mapping = dict(DEFAULT_ORGANIZATION_MAPPING)
        organization_sources = dict(DEFAULT_ORGANIZATION_SOURCES)

    log_level = os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(f"[settings] Mode={mode_label}; issuer={oidc_issuer}; mapped fields={len(organization_mapping)}")

    if demo_mode:
        print("[settings] WARNING: Demo role patterns in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        oidc_issuer=oidc_issuer,
        oidc_jwks_url=oidc_jwks_url,
        oidc_audience=oidc_audience,
        reader_role_patterns=reader_role_patterns,
        writer_role_patterns=writer_role_patterns,
        admin_role_patterns=admin_role_patterns,
        organization_mapping=organization_mapping,
        organization_sources=organization_sources,
        mapping_file=mapping_file,
        log_level=log_level,
    )
