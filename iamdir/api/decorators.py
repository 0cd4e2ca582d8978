"""
Flask decorators for authentication and authorization.

Callers authenticate with an OAuth 2.0 Bearer token (RFC 6750) issued by the
OIDC provider. Roles are read from the token claims and checked against the
configured role patterns for the realm and user storage of the route.

Security:
- RSA-SHA256 signature verification via JWKS (RFC 7517)
- Expiration, issuer, audience validation (RFC 7519)
- JWKS caching for performance (1-hour refresh)
"""

import logging
from functools import wraps
from typing import Optional, Dict, Any

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    ExpiredSignatureError,
    InvalidIssuerError,
    InvalidAudienceError,
    InvalidSignatureError,
    DecodeError,
    PyJWTError,
)
from flask import request, jsonify, current_app, g

from iamdir.core.permissions import Tier, collect_roles

logger = logging.getLogger(__name__)

# Global JWKS client (cached singleton)
_jwks_client: Optional[PyJWKClient] = None


class TokenValidationError(Exception):
    """Exception raised when JWT token validation fails."""
    pass


def get_jwks_client() -> PyJWKClient:
    """
    Get cached JWKS client (singleton pattern).

    Returns:
        PyJWKClient: Client for the configured JWKS endpoint
    """
    global _jwks_client

    if _jwks_client is None:
        cfg = current_app.config["APP_CONFIG"]
        logger.info(f"Initializing JWKS client for: {cfg.oidc_jwks_url}")
        _jwks_client = PyJWKClient(
            cfg.oidc_jwks_url,
            cache_keys=True,
            max_cached_keys=16,
            lifespan=3600,
        )

    return _jwks_client


def validate_jwt_token(token: str) -> Dict[str, Any]:
    """
    Validate JWT Bearer token.

    Validations performed:
    1. Signature verification (RSA-SHA256 via JWKS)
    2. Expiration (exp claim, mandatory)
    3. Issuer (iss claim)
    4. Audience (aud claim, if configured)

    Args:
        token: JWT token string (without "Bearer " prefix)

    Returns:
        dict: Validated token claims

    Raises:
        TokenValidationError: If any validation fails
    """
    cfg = current_app.config["APP_CONFIG"]

    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=cfg.oidc_issuer,
            audience=cfg.oidc_audience or None,
            options={
                "verify_aud": bool(cfg.oidc_audience),
                "require": ["exp"],
            },
            leeway=5,
        )
    except ExpiredSignatureError:
        raise TokenValidationError("Token expired (exp claim)")
    except InvalidIssuerError as e:
        raise TokenValidationError(f"Invalid issuer: {e}")
    except InvalidAudienceError as e:
        raise TokenValidationError(f"Invalid audience (token not for this API): {e}")
    except InvalidSignatureError:
        raise TokenValidationError("Invalid signature (token tampered or wrong key)")
    except DecodeError as e:
        raise TokenValidationError(f"Token decode error (malformed JWT): {e}")
    except PyJWTError as e:
        logger.error(f"JWT validation failed: {e}")
        raise TokenValidationError(f"Token validation failed: {e}")

    logger.debug(f"JWT validated for subject: {claims.get('sub')}")
    return claims


def _error(status: int, error: str, message: str):
    return jsonify({"error": error, "message": message}), status


def _bearer_token() -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def require_tier(tier):
    """
    Decorator requiring a Bearer token whose roles satisfy ``tier``.

    The ``realm`` and ``storage`` route arguments feed the role pattern
    placeholders ``$(realm)`` and ``$(userStorage)``.

    Returns:
        401 Unauthorized: Missing, invalid, or expired token
        403 Forbidden: Roles do not satisfy the tier (or a higher one)

    Example:
        @bp.route("/realms/<realm>/storages/<storage>/whoami")
        @require_tier("reader")
        def whoami(realm, storage):
            ...
    """
    required = Tier.parse(tier)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = _bearer_token()
            if not token:
                logger.warning("Request without Bearer token: %s", request.path)
                return _error(401, "Unauthorized", "Authorization header required. Use 'Authorization: Bearer <token>'")

            try:
                claims = validate_jwt_token(token)
            except TokenValidationError as e:
                logger.warning(f"JWT validation failed: {e}")
                return _error(401, "Unauthorized", str(e))

            roles = collect_roles(claims)
            context = {
                "realm": kwargs.get("realm"),
                "userStorage": kwargs.get("storage"),
            }
            matcher = current_app.config["ROLE_MATCHER"]
            if not matcher.is_authorized(required, roles, context):
                logger.warning(
                    "Access denied to %s: %s required, roles=%s",
                    request.path, required.value, roles,
                )
                return _error(403, "Forbidden", f"Required tier: {required.value}")

            g.claims = claims
            g.roles = roles
            g.authorization_context = context
            return fn(*args, **kwargs)

        return wrapper
    return decorator


def current_username() -> str:
    """Get current caller's name from validated claims."""
    claims = g.get("claims") or {}
    for key in ("preferred_username", "email", "name", "sub"):
        value = claims.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
