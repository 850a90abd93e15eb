"""
Helpers shared by the route blueprints.
"""
import logging

from flask import request, jsonify

from ..config import PUBLIC_BASE_URL
from ..db import load_settings
from ..services import ai_client
from ..services.ai_client import AIConfigError

logger = logging.getLogger(__name__)


def public_base_url() -> str:
    """Base for shareable links: PUBLIC_BASE_URL, else the caller's Origin, else this host."""
    if PUBLIC_BASE_URL:
        return PUBLIC_BASE_URL
    origin = request.headers.get('Origin') or request.headers.get('X-Forwarded-Host')
    if origin:
        return origin.rstrip('/') if origin.startswith('http') else f"https://{origin.rstrip('/')}"
    return request.host_url.rstrip('/')


def request_provider(db, settings: dict = None):
    """Resolve the AI provider once for this request from the saved settings."""
    return ai_client.provider_from_settings(settings if settings is not None else load_settings(db))


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def error_response(e: Exception, context: str):
    """Missing AI configuration is the teacher's to fix (400); anything else is a 500."""
    if isinstance(e, AIConfigError):
        return jsonify({"error": str(e)}), 400
    logger.exception("%s error", context)
    return jsonify({"error": str(e)}), 500


def parse_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def text_value(value) -> str:
    """Stripped string, or '' for anything that is not a string."""
    return value.strip() if isinstance(value, str) else ''
