#!/usr/bin/env python3
"""
TeachDash - Teacher Planning Dashboard API
==========================================
Run: python3 -m teachdash.app
Then point the frontend at: http://localhost:3000
"""
import logging

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .config import HOST, PORT, DEBUG, LOG_LEVEL, MAX_UPLOAD_MB
from .routes import register_routes

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    )


def create_app(test_config: dict = None) -> Flask:
    """Build the Flask app with CORS, JSON error handlers and every blueprint."""
    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_MB * 1024 * 1024
    app.config['JSON_SORT_KEYS'] = False
    if test_config:
        app.config.update(test_config)

    CORS(app)
    register_routes(app)

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"error": f"Upload too large (max {MAX_UPLOAD_MB} MB)"}), 413

    @app.errorhandler(Exception)
    def unhandled(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        logger.exception("Unhandled error")
        return jsonify({"error": str(e)}), 500

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({"status": "ok"})

    return app


# ══════════════════════════════════════════════════════════════
# MAIN
# ══════════════════════════════════════════════════════════════

if __name__ == '__main__':
    configure_logging()

    print()
    print("+" + "=" * 50 + "+")
    print("|  TeachDash - Teacher Planning Dashboard          |")
    print("+" + "=" * 50 + "+")
    print(f"|  API listening on http://{HOST}:{PORT}".ljust(51) + "|")
    print("|  Press Ctrl+C to stop                            |")
    print("+" + "=" * 50 + "+")
    print()

    create_app().run(host=HOST, port=PORT, debug=DEBUG)
