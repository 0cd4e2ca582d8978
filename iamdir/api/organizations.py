"""Realm/storage scoped endpoints.

Routes:
    GET  /realms/<realm>/storages/<storage>/whoami
    POST /realms/<realm>/storages/<storage>/organizations/attributes
    POST /realms/<realm>/storages/<storage>/organizations/from-attributes
"""
from __future__ import annotations
import logging

from flask import Blueprint, current_app, g, jsonify, request

from iamdir.api.decorators import current_username, require_tier
from iamdir.core.ldap_mapper import group_attributes
from iamdir.core.model import Organization

logger = logging.getLogger(__name__)

bp = Blueprint("organizations", __name__, url_prefix="/realms/<realm>/storages/<storage>")


def _json_body():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return None
    return payload


@bp.route("/whoami", methods=["GET"])
@require_tier("reader")
def whoami(realm: str, storage: str):
    """Caller identity and tier table for this realm and storage."""
    matcher = current_app.config["ROLE_MATCHER"]
    return jsonify({
        "username": current_username(),
        "realm": realm,
        "storage": storage,
        "roles": g.roles,
        "rights": matcher.rights(g.roles, g.authorization_context),
    })


@bp.route("/organizations/attributes", methods=["POST"])
@require_tier("writer")
def organization_attributes(realm: str, storage: str):
    """Directory attributes an organization would be written with."""
    payload = _json_body()
    if payload is None:
        return jsonify({"error": "Bad Request", "message": "Request body must be a JSON object"}), 400
    try:
        organization = Organization.from_dict(payload)
    except ValueError as exc:
        return jsonify({"error": "Bad Request", "message": str(exc)}), 400

    mapper = current_app.config["ORGANIZATION_MAPPER"]
    attributes = group_attributes(mapper.to_attributes(organization))
    logger.debug("Mapped organization %s to %d attributes", organization.identifiant, len(attributes))
    return jsonify({"attributes": attributes})


@bp.route("/organizations/from-attributes", methods=["POST"])
@require_tier("reader")
def organization_from_attributes(realm: str, storage: str):
    """Organization read back from a directory entry's attributes."""
    payload = _json_body()
    attributes = payload.get("attributes") if payload else None
    if not isinstance(attributes, dict):
        return jsonify({"error": "Bad Request", "message": "'attributes' must be a JSON object"}), 400

    mapper = current_app.config["ORGANIZATION_MAPPER"]
    organization = mapper.from_attributes(attributes)
    return jsonify(organization.to_dict())
