"""Pytest shared fixtures."""
import os
import pathlib
import sys
import time
from typing import Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from iamdir.api import decorators
from iamdir.config.settings import (
    AppConfig,
    DEFAULT_ORGANIZATION_MAPPING,
    DEFAULT_ORGANIZATION_SOURCES,
)
from iamdir.flask_app import create_app


ISSUER = "https://localhost/realms/demo"

ROLE_PATTERNS = {
    "reader_role_patterns": ["ROLE_$(realm)_$(userStorage)_READER", "reader_$(realm)"],
    "writer_role_patterns": ["ROLE_$(realm)_$(userStorage)_WRITER"],
    "admin_role_patterns": ["admin_fr"],
}


def make_config(**overrides) -> AppConfig:
    base = dict(
        demo_mode=False,
        oidc_issuer=ISSUER,
        oidc_jwks_url=f"{ISSUER}/protocol/openid-connect/certs",
        oidc_audience="",
        organization_mapping=dict(DEFAULT_ORGANIZATION_MAPPING),
        organization_sources=dict(DEFAULT_ORGANIZATION_SOURCES),
        log_level="DEBUG",
        **ROLE_PATTERNS,
    )
    base.update(overrides)
    return AppConfig(**base)


# ─────────────────────────────────────────────────────────────────────────────
# Organization mapping configuration
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def mapping_config():
    """Mapping table and relation sources of directory organizations."""
    sources = {
        "organization_source": "ou=organisations,o=insee,c=fr",
        "address_source": "ou=address,o=insee,c=fr",
    }
    mapping = {
        "identifiant": "uid,String,rw",
        "attributes.description": "description,String,rw",
        "attributes.mail": "mail,String,rw",
        "address": "inseeAdressePostaleDN,address,rw",
        "organization": "inseeOrganisationDN,organization,rw",
    }
    return mapping, sources


# ─────────────────────────────────────────────────────────────────────────────
# RSA Key Pair for JWT Testing
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(scope="session")
def rsa_key_pair():
    """Generate RSA key pair for JWT signing in tests."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return {
        "private_key": private_key,
        "public_key": private_key.public_key(),
    }


def create_valid_jwt(
    rsa_key_pair: dict,
    issuer: str = ISSUER,
    username: str = "alice",
    roles: Optional[list[str]] = None,
    exp_offset: int = 3600,
) -> str:
    """Create an RS256-signed JWT for testing."""
    now = int(time.time())
    payload = {
        "iss": issuer,
        "sub": "user-123",
        "exp": now + exp_offset,
        "iat": now,
        "preferred_username": username,
        "realm_access": {"roles": roles if roles is not None else []},
    }
    return jwt.encode(
        payload,
        rsa_key_pair["private_key"],
        algorithm="RS256",
        headers={"kid": "default-key-id"},
    )


@pytest.fixture()
def stub_jwks(monkeypatch, rsa_key_pair):
    """Serve the test public key instead of fetching the JWKS endpoint."""

    class _SigningKey:
        key = rsa_key_pair["public_key"]

    class _JWKSClient:
        def get_signing_key_from_jwt(self, token):
            return _SigningKey()

    monkeypatch.setattr(decorators, "_jwks_client", None)
    monkeypatch.setattr(decorators, "get_jwks_client", lambda: _JWKSClient())


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def client(stub_jwks):
    """Flask test client with JWKS stubbed."""
    flask_app = create_app(make_config())
    flask_app.config.update(TESTING=True)
    with flask_app.test_client() as client:
        yield client


def bearer(rsa_key_pair, roles, **kwargs) -> dict:
    return {"Authorization": f"Bearer {create_valid_jwt(rsa_key_pair, roles=roles, **kwargs)}"}


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "critical: marks tests as critical security tests (P0 priority)"
    )
