"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with all blueprints and configuration.

Run with Gunicorn:
    gunicorn "iamdir.flask_app:create_app()"
"""
from __future__ import annotations
import logging
from typing import Optional

from flask import Flask

from iamdir.config import AppConfig, load_settings
from iamdir.core.ldap_mapper import AttributeMapper
from iamdir.core.model import Organization
from iamdir.core.permissions import RoleMatcher

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None) -> Flask:
    """Create and configure Flask application.

    The organization mapper and the role matcher are built here, before any
    request is served; a configuration error aborts startup.
    """
    if cfg is None:
        cfg = load_settings()

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg
    app.config["ORGANIZATION_MAPPER"] = AttributeMapper.from_config(
        cfg.organization_mapping,
        cfg.organization_sources,
        entity_cls=Organization,
        entity_name="organization",
        identifier_field="identifiant",
    )
    app.config["ROLE_MATCHER"] = RoleMatcher(cfg.role_patterns)

    # Register blueprints
    from iamdir.api import health, errors, organizations

    app.register_blueprint(health.bp)
    app.register_blueprint(organizations.bp)

    # Register error handlers
    errors.register_error_handlers(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    logger.info(
        "Mode=%s; %d organization mapping rules loaded",
        mode_label, len(app.config["ORGANIZATION_MAPPER"].rules),
    )

    return app
