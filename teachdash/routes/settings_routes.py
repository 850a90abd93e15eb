"""
Settings API routes for TeachDash.
Handles app settings (school info, AI provider and keys) and classes.
"""
import logging

from flask import Blueprint, request, jsonify

from ..config import RESEND_API_KEY
from ..db import get_supabase, get_row, load_settings, upsert_settings
from ..services.ai_client import load_ai_config
from ..services.school_calendar import monday_of_week, parse_iso_date
from .common import error_response, json_body, parse_int, text_value

logger = logging.getLogger(__name__)

settings_bp = Blueprint('settings', __name__)

SECRET_KEYS = ('gemini_api_key', 'anthropic_api_key', 'resend_api_key')
MASK_PREFIX = '****'
HISTORY_LIMIT = 50


def mask_secret(value: str) -> str:
    if not value:
        return ''
    return MASK_PREFIX + value[-4:]


def _public_settings(settings: dict) -> dict:
    """Settings safe to return to the browser: keys masked, plus *_configured flags."""
    public = dict(settings)
    for key in SECRET_KEYS:
        value = settings.get(key) or ''
        public[key] = mask_secret(value)
        public[key.replace('_api_key', '_configured')] = bool(value)
    return public


# ============ Settings ============

@settings_bp.route('/api/settings', methods=['GET'])
def get_settings():
    try:
        return jsonify(_public_settings(load_settings(get_supabase())))
    except Exception as e:
        return error_response(e, "Get settings")


@settings_bp.route('/api/settings', methods=['POST'])
def save_settings():
    """Upsert settings. A masked key echoed back by the form is left unchanged."""
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Body must be a key-value object"}), 400
        if not data:
            return jsonify({"error": "No settings provided"}), 400

        values = {}
        for key, value in data.items():
            if key in SECRET_KEYS and isinstance(value, str) and value.startswith(MASK_PREFIX):
                continue
            values[key] = '' if value is None else value
        if 'ai_provider' in values and values['ai_provider'] not in ('gemini', 'anthropic'):
            return jsonify({"error": "ai_provider must be gemini or anthropic"}), 400

        db = get_supabase()
        upsert_settings(db, values)
        logger.info("Saved settings: %s", ', '.join(sorted(values)) or '(none)')
        return jsonify(_public_settings(load_settings(db)))

    except Exception as e:
        return error_response(e, "Save settings")


@settings_bp.route('/api/settings/check-api-keys', methods=['GET'])
def check_api_keys():
    """Which providers have a key (settings or environment) and which one is active."""
    try:
        settings = load_settings(get_supabase())
        ai_config = load_ai_config(settings)
        return jsonify({
            "provider": ai_config.provider,
            "gemini": bool(ai_config.gemini_api_key),
            "anthropic": bool(ai_config.anthropic_api_key),
            "resend": bool(settings.get('resend_api_key') or RESEND_API_KEY),
            "gemini_model": ai_config.gemini_model,
            "anthropic_model": ai_config.anthropic_model,
        })
    except Exception as e:
        return error_response(e, "Check API keys")


# ============ Classes ============

@settings_bp.route('/api/classes', methods=['GET'])
def list_classes():
    try:
        result = get_supabase().table('classes').select('*').order('id').execute()
        return jsonify(result.data or [])
    except Exception as e:
        return error_response(e, "List classes")


@settings_bp.route('/api/classes', methods=['POST'])
def create_class():
    try:
        data = json_body()
        name = text_value(data.get('name'))
        if not name:
            return jsonify({"error": "name is required"}), 400

        result = get_supabase().table('classes').insert({
            "name": name,
            "periods": data.get('periods') or None,
            "color": data.get('color') or None,
        }).execute()
        return jsonify(result.data[0]), 201
    except Exception as e:
        return error_response(e, "Create class")


@settings_bp.route('/api/classes/<int:class_id>', methods=['PATCH'])
def update_class(class_id):
    try:
        data = json_body()
        updates = {k: data[k] for k in ('name', 'periods', 'color') if k in data}
        if 'name' in updates:
            updates['name'] = text_value(updates['name'])
            if not updates['name']:
                return jsonify({"error": "name cannot be empty"}), 400
        if not updates:
            return jsonify({"error": "No updatable fields provided"}), 400

        result = get_supabase().table('classes').update(updates).eq('id', class_id).execute()
        if not result.data:
            return jsonify({"error": "Class not found"}), 404
        return jsonify(result.data[0])
    except Exception as e:
        return error_response(e, "Update class")


@settings_bp.route('/api/classes/<int:class_id>', methods=['DELETE'])
def delete_class(class_id):
    """Refuses while activities still reference the class."""
    try:
        db = get_supabase()
        if not get_row(db, 'classes', class_id, 'id'):
            return jsonify({"error": "Class not found"}), 404

        in_use = db.table('activities').select('id').eq('class_id', class_id).limit(1).execute()
        if in_use.data:
            return jsonify({"error": "Class still has activities. Move or delete them first."}), 400

        db.table('classes').delete().eq('id', class_id).execute()
        return jsonify({"success": True})
    except Exception as e:
        return error_response(e, "Delete class")


@settings_bp.route('/api/classes/<int:class_id>/history', methods=['GET'])
def class_history(class_id):
    """Dated activities for one class, newest first, grouped by week."""
    try:
        limit = parse_int(request.args.get('limit')) or HISTORY_LIMIT
        db = get_supabase()
        cls = get_row(db, 'classes', class_id)
        if not cls:
            return jsonify({"error": "Class not found"}), 404

        activities = db.table('activities').select('*').eq('class_id', class_id) \
            .order('date', desc=True).order('sort_order').execute().data or []
        activities = [a for a in activities if a.get('date')][:limit]

        weeks = {}
        for activity in activities:
            week = monday_of_week(parse_iso_date(activity['date'])).isoformat()
            weeks.setdefault(week, []).append(activity)

        return jsonify({
            "class": cls,
            "activities": activities,
            "weeks": weeks,
            "stats": {
                "total": len(activities),
                "done": sum(1 for a in activities if a.get('is_done')),
                "ready": sum(1 for a in activities if a.get('material_status') in ('ready', 'not_needed')),
                "recent_titles": [a['title'] for a in activities[:5]],
            },
        })
    except Exception as e:
        return error_response(e, "Class history")
