"""Error handlers for the application."""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from iamdir.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(ConfigurationError)
    def configuration_error(error):
        """Misconfigured mapping or role pattern met while serving a request."""
        logger.error(f"Configuration error: {error}", exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "Service is misconfigured"}), 500

    @app.errorhandler(HTTPException)
    def http_error(error):
        """Render HTTP errors (400, 404, 405, ...) as JSON."""
        return jsonify({"error": error.name, "message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500
