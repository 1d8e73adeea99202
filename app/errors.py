from flask import jsonify
from app import db


class FeedUnavailableError(Exception):
    """Raised when one of the event feed sources cannot be read."""

    def __init__(self, source, message=None):
        self.source = source
        super().__init__(message or f"Could not read {source} source")


def register_error_handlers(app):
    """Register error handlers with the Flask application"""

    @app.errorhandler(401)
    def unauthorized_error(error):
        return jsonify({'success': False, 'error': 'Authentication required'}), 401

    @app.errorhandler(403)
    def forbidden_error(error):
        return jsonify({'success': False, 'error': 'Access denied'}), 403

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(429)
    def rate_limit_error(error):
        return jsonify({'success': False, 'error': 'Too many requests'}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'success': False, 'error': 'Internal server error'}), 500
