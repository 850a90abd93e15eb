"""
SubDash API routes for TeachDash.
Substitute-teacher packets: the classroom profile, a media library, and
shareable per-day snapshots served read-only at /api/subdash/<token>.
"""
import json
import logging
import re
import time

from flask import Blueprint, request, jsonify

from ..config import STORAGE_BUCKET, SUPPORTED_IMAGE_TYPES
from ..db import get_supabase, get_row, load_profile, now_iso
from ..services.school_calendar import is_iso_date
from ..services.subdash_generator import PLAN_STATUSES, build_snapshot, new_share_token
from .common import error_response, json_body, parse_int, public_base_url

logger = logging.getLogger(__name__)

subdash_bp = Blueprint('subdash', __name__)

PLAN_LIST_COLUMNS = 'id, date, share_token, custom_notes, sub_name, sub_contact, status, mode, created_at, updated_at'
PLAN_MODES = ('planned', 'emergency')
LINK_MEDIA_TYPES = ('link', 'video')
SUB_INFO_FIELDS = ('sub_name', 'sub_contact', 'custom_notes')
TOKEN_ATTEMPTS = 5
MEDIA_PREFIX = 'sub-media'
_UNSAFE_FILENAME = re.compile(r'[^a-zA-Z0-9._-]')


def _share_url(token: str) -> str:
    return f"{public_base_url()}/subdash/{token}"


def _unique_token(db) -> str:
    """A share token not already in use."""
    for _ in range(TOKEN_ATTEMPTS):
        token = new_share_token()
        clash = db.table('subdash_plans').select('id').eq('share_token', token).limit(1).execute()
        if not clash.data:
            return token
        logger.warning("Share token collision, retrying")
    raise RuntimeError("Could not generate a unique share token")


def _upload(db, data: bytes, filename: str, mime_type: str) -> str:
    """Store bytes under sub-media/ in the uploads bucket and return the public URL."""
    path = f"{MEDIA_PREFIX}/{int(time.time() * 1000)}_{_UNSAFE_FILENAME.sub('_', filename)}"
    bucket = db.storage.from_(STORAGE_BUCKET)
    bucket.upload(path, data, {"content-type": mime_type, "upsert": "true"})
    return bucket.get_public_url(path)


def _remove_upload(db, public_url: str):
    """Best-effort storage cleanup; the database row is already gone."""
    marker = f"/{STORAGE_BUCKET}/"
    if not public_url or marker not in public_url:
        return
    path = public_url.split(marker, 1)[1].split('?', 1)[0]
    try:
        db.storage.from_(STORAGE_BUCKET).remove([path])
    except Exception as e:
        logger.warning("Could not remove %s from storage: %s", path, e)


def _media_ids(value):
    if value is None:
        return []
    if not isinstance(value, list):
        return None
    ids = [parse_int(v) for v in value]
    return None if any(i is None for i in ids) else ids


# ============ Plans ============

@subdash_bp.route('/api/sub/plans', methods=['GET'])
def list_plans():
    try:
        db = get_supabase()
        result = db.table('subdash_plans').select(PLAN_LIST_COLUMNS).order('created_at', desc=True).execute()
        return jsonify(result.data or [])
    except Exception as e:
        return error_response(e, "List sub plans")


@subdash_bp.route('/api/sub/plans', methods=['POST'])
def create_plan():
    """
    Build and store a snapshot for a date. Emergency mode is shared
    immediately; planned mode starts as a draft.
    """
    try:
        data = json_body()
        date = data.get('date')
        if not is_iso_date(date):
            return jsonify({"error": "Valid date (YYYY-MM-DD) is required"}), 400
        mode = data.get('mode') or 'planned'
        if mode not in PLAN_MODES:
            return jsonify({"error": f"mode must be one of: {', '.join(PLAN_MODES)}"}), 400
        media_ids = _media_ids(data.get('media_ids'))
        if media_ids is None:
            return jsonify({"error": "media_ids must be a list of ids"}), 400

        db = get_supabase()
        snapshot = build_snapshot(db, date, data.get('custom_notes'), media_ids, public_base_url())
        snapshot['sub_name'] = data.get('sub_name')
        snapshot['sub_contact'] = data.get('sub_contact')

        token = _unique_token(db)
        plan = db.table('subdash_plans').insert({
            "date": date,
            "share_token": token,
            "custom_notes": data.get('custom_notes'),
            "sub_name": data.get('sub_name'),
            "sub_contact": data.get('sub_contact'),
            "status": 'shared' if mode == 'emergency' else 'draft',
            "mode": mode,
            "snapshot": snapshot,
        }).execute().data[0]

        if media_ids:
            db.table('subdash_media').insert([
                {"subdash_plan_id": plan['id'], "media_library_id": media_id} for media_id in media_ids
            ]).execute()

        logger.info("Created %s SubDash plan %s for %s", mode, plan['id'], date)
        return jsonify({**plan, "share_url": _share_url(token)}), 201

    except Exception as e:
        return error_response(e, "Create sub plan")


@subdash_bp.route('/api/sub/plans/preview', methods=['POST'])
def preview_plan():
    try:
        data = json_body()
        date = data.get('date')
        if not is_iso_date(date):
            return jsonify({"error": "Valid date (YYYY-MM-DD) is required"}), 400
        media_ids = _media_ids(data.get('media_ids'))
        if media_ids is None:
            return jsonify({"error": "media_ids must be a list of ids"}), 400

        db = get_supabase()
        return jsonify(build_snapshot(db, date, data.get('custom_notes'), media_ids, public_base_url()))
    except Exception as e:
        return error_response(e, "Preview sub plan")


@subdash_bp.route('/api/sub/plans/<int:plan_id>', methods=['GET'])
def get_plan(plan_id):
    try:
        plan = get_row(get_supabase(), 'subdash_plans', plan_id)
        if not plan:
            return jsonify({"error": "Not found"}), 404
        return jsonify({**plan, "share_url": _share_url(plan['share_token'])})
    except Exception as e:
        return error_response(e, "Get sub plan")


@subdash_bp.route('/api/sub/plans/<int:plan_id>', methods=['PATCH'])
def update_plan(plan_id):
    """
    Update sub info or share the plan. The snapshot itself is never rebuilt;
    only its sub_name, sub_contact and custom_notes are kept in step.
    Status only moves draft -> shared.
    """
    try:
        data = json_body()
        db = get_supabase()
        plan = get_row(db, 'subdash_plans', plan_id)
        if not plan:
            return jsonify({"error": "Not found"}), 404

        updates = {k: data[k] for k in SUB_INFO_FIELDS if k in data}
        if 'status' in data:
            status = data['status']
            if status not in PLAN_STATUSES:
                return jsonify({"error": f"status must be one of: {', '.join(PLAN_STATUSES)}"}), 400
            if plan['status'] == 'shared' and status != 'shared':
                return jsonify({"error": "A shared plan cannot be moved back to draft"}), 400
            updates['status'] = status
        if not updates:
            return jsonify({"error": "No updatable fields provided"}), 400

        sub_info = {k: updates[k] for k in SUB_INFO_FIELDS if k in updates}
        if sub_info and isinstance(plan.get('snapshot'), dict):
            updates['snapshot'] = {**plan['snapshot'], **sub_info}
        updates['updated_at'] = now_iso()

        result = db.table('subdash_plans').update(updates).eq('id', plan_id).execute()
        updated = result.data[0] if result.data else {**plan, **updates}
        return jsonify({**updated, "share_url": _share_url(updated['share_token'])})

    except Exception as e:
        return error_response(e, "Update sub plan")


@subdash_bp.route('/api/sub/plans/<int:plan_id>', methods=['DELETE'])
def delete_plan(plan_id):
    try:
        db = get_supabase()
        db.table('subdash_media').delete().eq('subdash_plan_id', plan_id).execute()
        db.table('subdash_plans').delete().eq('id', plan_id).execute()
        return jsonify({"success": True})
    except Exception as e:
        return error_response(e, "Delete sub plan")


@subdash_bp.route('/api/subdash/<token>', methods=['GET'])
def shared_snapshot(token):
    """Public read-only packet. Drafts are not visible."""
    try:
        db = get_supabase()
        result = db.table('subdash_plans').select('snapshot').eq('share_token', token) \
            .eq('status', 'shared').limit(1).execute()
        if not result.data:
            return jsonify({"error": "SubDash not found or not shared"}), 404
        return jsonify(result.data[0]['snapshot'])
    except Exception as e:
        return error_response(e, "Get shared SubDash")


# ============ Classroom profile ============

@subdash_bp.route('/api/sub/profile', methods=['GET'])
def get_profile():
    try:
        return jsonify(load_profile(get_supabase()))
    except Exception as e:
        return error_response(e, "Get classroom profile")


@subdash_bp.route('/api/sub/profile', methods=['POST'])
def save_profile():
    """Upsert profile keys. Lists and objects are stored as JSON text."""
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Body must be a key-value object"}), 400
        if not data:
            return jsonify({"error": "No profile data provided"}), 400

        db = get_supabase()
        rows = [{"key": key, "value": _profile_value(value)} for key, value in data.items()]
        db.table('classroom_profiles').upsert(rows, on_conflict='key').execute()
        return jsonify(load_profile(db))
    except Exception as e:
        return error_response(e, "Save classroom profile")


def _profile_value(value) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def _seating_chart_urls(db) -> list:
    urls = load_profile(db).get('seating_chart_urls')
    return urls if isinstance(urls, list) else []


def _save_seating_chart_urls(db, urls: list):
    db.table('classroom_profiles').upsert(
        {"key": "seating_chart_urls", "value": _profile_value(urls)}, on_conflict='key').execute()


@subdash_bp.route('/api/sub/profile/seating-chart', methods=['POST'])
def upload_seating_chart():
    try:
        image = request.files.get('image')
        if image is None:
            return jsonify({"error": "image is required"}), 400
        mime_type = image.mimetype or 'image/png'
        if mime_type not in SUPPORTED_IMAGE_TYPES:
            return jsonify({"error": f"Unsupported image type: {mime_type}"}), 400

        db = get_supabase()
        url = _upload(db, image.read(), f"seating_chart.{mime_type.split('/')[1]}", mime_type)
        urls = _seating_chart_urls(db) + [url]
        _save_seating_chart_urls(db, urls)
        return jsonify({"url": url, "urls": urls})
    except Exception as e:
        return error_response(e, "Upload seating chart")


@subdash_bp.route('/api/sub/profile/seating-chart', methods=['DELETE'])
def delete_seating_chart():
    try:
        url = json_body().get('url')
        if not url:
            return jsonify({"error": "url is required"}), 400

        db = get_supabase()
        urls = [u for u in _seating_chart_urls(db) if u != url]
        _save_seating_chart_urls(db, urls)
        _remove_upload(db, url)
        return jsonify({"urls": urls})
    except Exception as e:
        return error_response(e, "Delete seating chart")


# ============ Media library ============

@subdash_bp.route('/api/sub/media', methods=['GET'])
def list_media():
    try:
        result = get_supabase().table('media_library').select('*').order('uploaded_at', desc=True).execute()
        return jsonify(result.data or [])
    except Exception as e:
        return error_response(e, "List media")


@subdash_bp.route('/api/sub/media', methods=['POST'])
def add_media():
    """Multipart `file` upload, or a JSON link/video with name and url."""
    try:
        db = get_supabase()

        if request.files:
            upload = request.files.get('file')
            if upload is None or not upload.filename:
                return jsonify({"error": "file is required"}), 400
            tags = [t.strip() for t in (request.form.get('tags') or '').split(',') if t.strip()]
            url = _upload(db, upload.read(), upload.filename, upload.mimetype or 'application/octet-stream')
            row = {
                "name": request.form.get('name') or upload.filename,
                "file_path": url,
                "media_type": "file",
                "class_id": parse_int(request.form.get('class_id')),
                "tags": tags,
            }
        else:
            data = json_body()
            if not data.get('name') or not data.get('url'):
                return jsonify({"error": "name and url are required"}), 400
            if data.get('media_type') not in LINK_MEDIA_TYPES:
                return jsonify({"error": "media_type must be link or video"}), 400
            row = {
                "name": data['name'],
                "url": data['url'],
                "media_type": data['media_type'],
                "class_id": data.get('class_id') or None,
                "tags": data.get('tags') or [],
            }

        result = db.table('media_library').insert(row).execute()
        return jsonify(result.data[0]), 201

    except Exception as e:
        return error_response(e, "Add media")


@subdash_bp.route('/api/sub/media/<int:media_id>', methods=['PATCH'])
def update_media(media_id):
    try:
        data = json_body()
        updates = {k: data[k] for k in ('name', 'url', 'tags') if k in data}
        if 'class_id' in data:
            updates['class_id'] = data['class_id'] or None
        if not updates:
            return jsonify({"error": "No updates provided"}), 400

        result = get_supabase().table('media_library').update(updates).eq('id', media_id).execute()
        if not result.data:
            return jsonify({"error": "Not found"}), 404
        return jsonify(result.data[0])
    except Exception as e:
        return error_response(e, "Update media")


@subdash_bp.route('/api/sub/media/<int:media_id>', methods=['DELETE'])
def delete_media(media_id):
    try:
        db = get_supabase()
        item = get_row(db, 'media_library', media_id)
        if not item:
            return jsonify({"error": "Not found"}), 404

        db.table('subdash_media').delete().eq('media_library_id', media_id).execute()
        db.table('media_library').delete().eq('id', media_id).execute()
        if item.get('media_type') == 'file':
            _remove_upload(db, item.get('file_path'))
        return jsonify({"success": True})
    except Exception as e:
        return error_response(e, "Delete media")
