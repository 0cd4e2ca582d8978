from types import SimpleNamespace

import pytest
from flask import Flask, jsonify
from jwt.exceptions import ExpiredSignatureError, InvalidIssuerError

from iamdir.api import decorators
from iamdir.core.permissions import RoleMatcher


@pytest.fixture
def app_ctx():
    app = Flask(__name__)
    app.config["APP_CONFIG"] = SimpleNamespace(
        oidc_jwks_url="https://issuer/realms/demo/protocol/openid-connect/certs",
        oidc_issuer="https://issuer/realms/demo",
        oidc_audience="",
    )
    with app.app_context():
        yield app


class DummySigningKey:
    key = "secret"


class DummyJWKS:
    def get_signing_key_from_jwt(self, token):
        return DummySigningKey()


@pytest.mark.parametrize(
    "error,message",
    [
        (ExpiredSignatureError("expired"), "Token expired"),
        (InvalidIssuerError("bad issuer"), "Invalid issuer"),
    ],
)
def test_validate_jwt_token_errors_wrapped(monkeypatch, app_ctx, error, message):
    monkeypatch.setattr(decorators, "get_jwks_client", lambda: DummyJWKS())

    def raise_error(*args, **kwargs):
        raise error

    monkeypatch.setattr(decorators.jwt, "decode", raise_error)

    with pytest.raises(decorators.TokenValidationError) as exc:
        decorators.validate_jwt_token("header.payload.signature")

    assert message in str(exc.value)


def test_validate_jwt_token_success(monkeypatch, app_ctx):
    monkeypatch.setattr(decorators, "get_jwks_client", lambda: DummyJWKS())
    captured = {}

    def decode_success(token, key, **kwargs):
        captured.update(kwargs)
        return {"sub": "user-123"}

    monkeypatch.setattr(decorators.jwt, "decode", decode_success)

    claims = decorators.validate_jwt_token("header.payload.signature")

    assert claims["sub"] == "user-123"
    assert captured["issuer"] == "https://issuer/realms/demo"
    assert captured["algorithms"] == ["RS256"]
    assert captured["options"]["verify_aud"] is False


def _make_protected_app(monkeypatch, validator, tier="writer"):
    app = Flask(__name__)
    app.config["ROLE_MATCHER"] = RoleMatcher.from_config(
        reader=["ROLE_$(realm)_$(userStorage)_READER"],
        writer=["ROLE_$(realm)_$(userStorage)_WRITER"],
        admin=["ADMIN"],
    )
    monkeypatch.setattr(decorators, "validate_jwt_token", validator)

    @app.route("/realms/<realm>/storages/<storage>/protected")
    @decorators.require_tier(tier)
    def protected(realm, storage):
        return jsonify({"user": decorators.current_username(), "realm": realm})

    return app


def _claims(*roles):
    return lambda _token: {"preferred_username": "alice", "realm_access": {"roles": list(roles)}}


URL = "/realms/sandbox/storages/default/protected"


def test_require_tier_missing_header(monkeypatch):
    app = _make_protected_app(monkeypatch, _claims())
    with app.test_client() as client:
        response = client.get(URL)
    assert response.status_code == 401


def test_require_tier_non_bearer(monkeypatch):
    app = _make_protected_app(monkeypatch, _claims())
    with app.test_client() as client:
        response = client.get(URL, headers={"Authorization": "Basic abc"})
    assert response.status_code == 401


def test_require_tier_handles_validation_error(monkeypatch):
    def validator(_token):
        raise decorators.TokenValidationError("boom")

    app = _make_protected_app(monkeypatch, validator)
    with app.test_client() as client:
        response = client.get(URL, headers={"Authorization": "Bearer token"})
    assert response.status_code == 401
    assert response.get_json()["message"] == "boom"


def test_require_tier_insufficient_roles(monkeypatch):
    app = _make_protected_app(monkeypatch, _claims("role_sandbox_default_reader"))
    with app.test_client() as client:
        response = client.get(URL, headers={"Authorization": "Bearer token"})
    assert response.status_code == 403
    assert "writer" in response.get_json()["message"]


def test_require_tier_other_storage_refused(monkeypatch):
    app = _make_protected_app(monkeypatch, _claims("role_sandbox_other_writer"))
    with app.test_client() as client:
        response = client.get(URL, headers={"Authorization": "Bearer token"})
    assert response.status_code == 403


@pytest.mark.parametrize("roles", [("ROLE_SANDBOX_DEFAULT_WRITER",), ("admin",)])
def test_require_tier_success(monkeypatch, roles):
    app = _make_protected_app(monkeypatch, _claims(*roles))
    with app.test_client() as client:
        response = client.get(URL, headers={"Authorization": "Bearer token"})
    assert response.status_code == 200
    assert response.get_json() == {"user": "alice", "realm": "sandbox"}
