"""
Bellringer API routes for TeachDash.
Daily warm-ups: four journal prompt slots plus one ACT-style grammar
question, generated, edited, approved and reused from the library.
"""
import base64
import logging
import time
from datetime import date as date_cls

from flask import Blueprint, request, jsonify

from ..config import STORAGE_BUCKET, SUPPORTED_IMAGE_TYPES
from ..db import (
    get_supabase, get_row, get_bellringer, get_or_create_bellringer, load_prompts, now_iso,
)
from ..services.bellringer_generator import (
    DEFAULT_SUBPROMPT, PROMPT_SLOTS, build_context, generate_act_question,
    generate_from_image, generate_full_bellringer, generate_single_prompt,
)
from ..services.school_calendar import batch_week_start, is_iso_date, parse_iso_date, week_dates
from .common import error_response, json_body, parse_int, request_provider

logger = logging.getLogger(__name__)

bellringer_bp = Blueprint('bellringers', __name__)

ACT_FIELDS = ('act_skill_category', 'act_skill', 'act_question', 'act_choice_a', 'act_choice_b',
              'act_choice_c', 'act_choice_d', 'act_correct_answer', 'act_explanation', 'act_rule')
COPY_FIELDS = ('journal_type', 'journal_prompt', 'journal_subprompt', 'journal_image_path') + ACT_FIELDS
RECENT_BELLRINGERS = 10


def _act_values(result: dict) -> dict:
    return {field: result.get(field) or None for field in ACT_FIELDS}


def _prompt_row(bellringer_id, slot, prompt: dict) -> dict:
    return {
        "bellringer_id": bellringer_id,
        "slot": slot,
        "journal_type": prompt.get('journal_type') or None,
        "journal_prompt": prompt.get('journal_prompt') or None,
        "journal_subprompt": prompt.get('journal_subprompt') or DEFAULT_SUBPROMPT,
    }


def _valid_slot(value):
    slot = parse_int(value)
    return slot if slot is not None and 0 <= slot < PROMPT_SLOTS else None


def _upsert_prompt(db, row: dict) -> dict:
    result = db.table('bellringer_prompts').upsert(row, on_conflict='bellringer_id,slot').execute()
    return result.data[0] if result.data else row


def _with_prompts(db, bellringer_id):
    return jsonify({
        "bellringer": get_row(db, 'bellringers', bellringer_id),
        "prompts": load_prompts(db, bellringer_id),
    })


def _generation_context(db):
    recent = db.table('bellringers').select('act_skill, journal_type') \
        .order('date', desc=True).limit(RECENT_BELLRINGERS).execute().data or []
    return build_context(recent)


@bellringer_bp.route('/api/bellringers/<date>', methods=['GET'])
def get_bellringer_for_date(date):
    try:
        db = get_supabase()
        bellringer = get_bellringer(db, date)
        if not bellringer:
            return jsonify({"bellringer": None, "prompts": []})
        return jsonify({"bellringer": bellringer, "prompts": load_prompts(db, bellringer['id'])})
    except Exception as e:
        return error_response(e, "Get bellringer")


# ============ Generation ============

@bellringer_bp.route('/api/bellringers/generate', methods=['POST'])
def generate_bellringer():
    """
    Fill all four prompt slots (and the ACT question unless promptsOnly).
    promptsOnly leaves the ACT columns alone so a separate ACT generation isn't overwritten.
    """
    try:
        data = json_body()
        date = data.get('date')
        if not is_iso_date(date):
            return jsonify({"error": "date (YYYY-MM-DD) is required"}), 400

        db = get_supabase()
        provider = request_provider(db)
        result, error = generate_full_bellringer(provider, _generation_context(db), data.get('notes') or '')
        if error:
            return jsonify({"error": error}), 500

        bellringer = get_or_create_bellringer(db, date)
        updates = {
            "journal_type": result.get('journal_type') or None,
            "journal_prompt": result.get('journal_prompt') or None,
            "journal_subprompt": result.get('journal_subprompt') or DEFAULT_SUBPROMPT,
            "status": "draft",
            "updated_at": now_iso(),
        }
        if not data.get('promptsOnly'):
            updates.update(_act_values(result))
        db.table('bellringers').update(updates).eq('id', bellringer['id']).execute()

        for slot, prompt in enumerate(result['prompts']):
            _upsert_prompt(db, _prompt_row(bellringer['id'], slot, prompt))

        return _with_prompts(db, bellringer['id'])

    except Exception as e:
        return error_response(e, "Generate bellringer")


@bellringer_bp.route('/api/bellringers/generate-prompt', methods=['POST'])
def generate_prompt():
    try:
        data = json_body()
        date = data.get('date')
        slot = _valid_slot(data.get('slot'))
        if not is_iso_date(date) or slot is None:
            return jsonify({"error": f"date (YYYY-MM-DD) and slot (0-{PROMPT_SLOTS - 1}) are required"}), 400

        db = get_supabase()
        result, error = generate_single_prompt(request_provider(db), data.get('prompt_type'), data.get('notes') or '')
        if error:
            return jsonify({"error": error}), 500

        bellringer = get_or_create_bellringer(db, date)
        return jsonify({"prompt": _upsert_prompt(db, _prompt_row(bellringer['id'], slot, result))})

    except Exception as e:
        return error_response(e, "Generate prompt")


@bellringer_bp.route('/api/bellringers/generate-act', methods=['POST'])
def generate_act():
    try:
        data = json_body()
        date = data.get('date')
        if not is_iso_date(date):
            return jsonify({"error": "date (YYYY-MM-DD) is required"}), 400

        db = get_supabase()
        result, error = generate_act_question(request_provider(db), _generation_context(db), data.get('notes') or '')
        if error:
            return jsonify({"error": error}), 500

        bellringer = get_or_create_bellringer(db, date)
        db.table('bellringers').update({**_act_values(result), "updated_at": now_iso()}) \
            .eq('id', bellringer['id']).execute()
        return jsonify({"bellringer": get_row(db, 'bellringers', bellringer['id'])})

    except Exception as e:
        return error_response(e, "Generate ACT question")


@bellringer_bp.route('/api/bellringers/generate-image-prompt', methods=['POST'])
def generate_image_prompt():
    """
    Multipart: image, date, slot, optional notes and generate_prompt.
    Stores the image in the uploads bucket, attaches it to the slot and,
    unless generate_prompt is false, writes a journal prompt for it.
    """
    try:
        image = request.files.get('image')
        date = request.form.get('date')
        slot = _valid_slot(request.form.get('slot'))
        if image is None or not is_iso_date(date) or slot is None:
            return jsonify({"error": "image, date (YYYY-MM-DD), and slot are required"}), 400

        mime_type = image.mimetype or 'image/png'
        if mime_type not in SUPPORTED_IMAGE_TYPES:
            return jsonify({"error": f"Unsupported image type: {mime_type}"}), 400
        data = image.read()
        if not data:
            return jsonify({"error": "Uploaded image is empty"}), 400

        db = get_supabase()
        # A missing AI key fails before anything is stored
        wants_prompt = request.form.get('generate_prompt', 'true').lower() in ('true', '1')
        provider = request_provider(db) if wants_prompt else None

        ext = mime_type.split('/')[1]
        storage_path = f"bellringers/bellringer_{date}_slot{slot}_{int(time.time() * 1000)}.{ext}"
        bucket = db.storage.from_(STORAGE_BUCKET)
        bucket.upload(storage_path, data, {"content-type": mime_type, "upsert": "true"})
        public_url = bucket.get_public_url(storage_path)

        bellringer = get_or_create_bellringer(db, date)
        row = {"bellringer_id": bellringer['id'], "slot": slot, "image_path": public_url}

        generated = None
        if provider is not None:
            result, error = generate_from_image(
                provider, base64.b64encode(data).decode('ascii'), mime_type,
                request.form.get('notes') or '')
            if error:
                logger.warning("Image prompt generation failed for %s slot %d: %s", date, slot, error)
            else:
                row.update(_prompt_row(bellringer['id'], slot, result))
                generated = result

        prompt = _upsert_prompt(db, row)
        return jsonify({"path": public_url, "prompt": prompt, "generated": generated})

    except Exception as e:
        return error_response(e, "Generate image prompt")


@bellringer_bp.route('/api/bellringers/remove-image', methods=['POST'])
def remove_image():
    try:
        data = json_body()
        date = data.get('date')
        slot = _valid_slot(data.get('slot'))
        if not is_iso_date(date) or slot is None:
            return jsonify({"error": "date (YYYY-MM-DD) and slot are required"}), 400

        db = get_supabase()
        bellringer = get_bellringer(db, date)
        if not bellringer:
            return jsonify({"error": "No bellringer found for this date"}), 404
        result = db.table('bellringer_prompts').update({"image_path": None}) \
            .eq('bellringer_id', bellringer['id']).eq('slot', slot).execute()
        return jsonify({"ok": True, "prompt": result.data[0] if result.data else None})

    except Exception as e:
        return error_response(e, "Remove image")


@bellringer_bp.route('/api/bellringers/generate-batch', methods=['POST'])
def generate_batch():
    """Generate Monday-Friday for a week; days that already have a bellringer are skipped by default."""
    try:
        data = json_body()
        start = parse_iso_date(data.get('week_of')) if data.get('week_of') else None
        if data.get('week_of') and not start:
            return jsonify({"error": "week_of must be YYYY-MM-DD"}), 400
        monday = batch_week_start(start or date_cls.today())
        skip_existing = data.get('skip_existing') is not False
        notes = data.get('notes') or ''

        db = get_supabase()
        provider = request_provider(db)
        results = []
        for date in week_dates(monday):
            if skip_existing:
                existing = get_bellringer(db, date)
                if existing:
                    results.append({"date": date, "success": True, "bellringer_id": existing['id'], "skipped": True})
                    continue

            result, error = generate_full_bellringer(provider, _generation_context(db), notes)
            if error:
                results.append({"date": date, "success": False, "error": error})
                continue

            bellringer = db.table('bellringers').insert({
                "date": date,
                "journal_type": result.get('journal_type') or None,
                "journal_prompt": result.get('journal_prompt') or None,
                "journal_subprompt": result.get('journal_subprompt') or DEFAULT_SUBPROMPT,
                **_act_values(result),
                "status": "draft",
                "is_approved": False,
            }).execute().data[0]

            rows = [_prompt_row(bellringer['id'], slot, p) for slot, p in enumerate(result['prompts'])]
            if rows:
                db.table('bellringer_prompts').upsert(rows, on_conflict='bellringer_id,slot').execute()
            results.append({"date": date, "success": True, "bellringer_id": bellringer['id']})

        summary = {
            "generated": sum(1 for r in results if r['success'] and not r.get('skipped')),
            "skipped": sum(1 for r in results if r.get('skipped')),
            "failed": sum(1 for r in results if not r['success']),
        }
        logger.info("Batch bellringers for week of %s: %s", monday, summary)
        return jsonify({"week_of": monday.isoformat(), "results": results, "summary": summary})

    except Exception as e:
        return error_response(e, "Generate batch")


# ============ Editing ============

@bellringer_bp.route('/api/bellringers/save', methods=['POST'])
def save_bellringer():
    """Save teacher edits. Slot 0 is mirrored onto the bellringer row."""
    try:
        data = json_body()
        date = data.get('date')
        if not is_iso_date(date):
            return jsonify({"error": "date (YYYY-MM-DD) is required"}), 400

        prompts = data.get('prompts') or []
        if not isinstance(prompts, list):
            return jsonify({"error": "prompts must be a list"}), 400
        for prompt in prompts:
            if not isinstance(prompt, dict):
                return jsonify({"error": "each prompt must be an object"}), 400
            if _valid_slot(prompt.get('slot')) is None:
                return jsonify({"error": f"slot must be between 0 and {PROMPT_SLOTS - 1}"}), 400

        db = get_supabase()
        bellringer = get_or_create_bellringer(db, date)

        updates = {field: data[field] for field in ACT_FIELDS if field in data}
        if prompts:
            first = next((p for p in prompts if parse_int(p.get('slot')) == 0), prompts[0])
            updates['journal_type'] = first.get('journal_type')
            updates['journal_prompt'] = first.get('journal_prompt')
            updates['journal_subprompt'] = first.get('journal_subprompt') or DEFAULT_SUBPROMPT
        updates['updated_at'] = now_iso()
        db.table('bellringers').update(updates).eq('id', bellringer['id']).execute()

        for prompt in prompts:
            _upsert_prompt(db, _prompt_row(bellringer['id'], parse_int(prompt['slot']), prompt))

        return _with_prompts(db, bellringer['id'])

    except Exception as e:
        return error_response(e, "Save bellringer")


@bellringer_bp.route('/api/bellringers/approve', methods=['POST'])
def approve_bellringer():
    try:
        date = json_body().get('date')
        if not is_iso_date(date):
            return jsonify({"error": "date (YYYY-MM-DD) is required"}), 400

        db = get_supabase()
        bellringer = get_bellringer(db, date)
        if not bellringer:
            return jsonify({"error": "No bellringer found for this date"}), 404

        db.table('bellringers').update({
            "is_approved": True,
            "status": "approved",
            "updated_at": now_iso(),
        }).eq('id', bellringer['id']).execute()
        return jsonify({"bellringer": get_row(db, 'bellringers', bellringer['id'])})

    except Exception as e:
        return error_response(e, "Approve bellringer")


@bellringer_bp.route('/api/bellringers/reuse', methods=['POST'])
def reuse_bellringer():
    """Copy a past bellringer (all slots and the ACT question) onto another date as a draft."""
    try:
        data = json_body()
        source_id = data.get('source_id')
        target_date = data.get('target_date')
        if not source_id or not target_date:
            return jsonify({"error": "source_id and target_date are required"}), 400
        if not is_iso_date(target_date):
            return jsonify({"error": "target_date must be YYYY-MM-DD"}), 400

        db = get_supabase()
        source = get_row(db, 'bellringers', source_id)
        if not source:
            return jsonify({"error": "Source bellringer not found"}), 404

        target = get_or_create_bellringer(db, target_date)
        db.table('bellringers').update({
            **{field: source.get(field) for field in COPY_FIELDS},
            "status": "draft",
            "is_approved": False,
            "updated_at": now_iso(),
        }).eq('id', target['id']).execute()

        for prompt in load_prompts(db, source_id):
            _upsert_prompt(db, {
                "bellringer_id": target['id'],
                "slot": prompt['slot'],
                "journal_type": prompt.get('journal_type'),
                "journal_prompt": prompt.get('journal_prompt'),
                "journal_subprompt": prompt.get('journal_subprompt'),
                "image_path": prompt.get('image_path'),
            })

        return _with_prompts(db, target['id'])

    except Exception as e:
        return error_response(e, "Reuse bellringer")


@bellringer_bp.route('/api/bellringers/send-to-slot', methods=['POST'])
def send_to_slot():
    """Copy one library prompt into a slot on another date."""
    try:
        data = json_body()
        prompt_id = data.get('prompt_id')
        target_date = data.get('target_date')
        slot = _valid_slot(data.get('slot'))
        if not prompt_id or not target_date or data.get('slot') is None:
            return jsonify({"error": "prompt_id, target_date, and slot are required"}), 400
        if slot is None:
            return jsonify({"error": f"slot must be between 0 and {PROMPT_SLOTS - 1}"}), 400
        if not is_iso_date(target_date):
            return jsonify({"error": "target_date must be YYYY-MM-DD"}), 400

        db = get_supabase()
        source = get_row(db, 'bellringer_prompts', prompt_id)
        if not source:
            return jsonify({"error": "Source prompt not found"}), 404

        target = get_or_create_bellringer(db, target_date)
        prompt = _upsert_prompt(db, {
            "bellringer_id": target['id'],
            "slot": slot,
            "journal_type": source.get('journal_type'),
            "journal_prompt": source.get('journal_prompt'),
            "journal_subprompt": source.get('journal_subprompt'),
            "image_path": source.get('image_path'),
        })
        return jsonify({"prompt": prompt})

    except Exception as e:
        return error_response(e, "Send to slot")


# ============ Library ============

@bellringer_bp.route('/api/bellringers/library', methods=['GET'])
def library():
    """Every saved prompt, newest first, with its bellringer's date and status."""
    try:
        db = get_supabase()
        prompts = db.table('bellringer_prompts').select('*').order('id', desc=True).execute().data or []
        ids = list({p['bellringer_id'] for p in prompts})
        bellringers = {}
        if ids:
            rows = db.table('bellringers').select('id, date, status, is_approved').in_('id', ids).execute().data or []
            bellringers = {b['id']: b for b in rows}

        listing = []
        for p in prompts:
            parent = bellringers.get(p['bellringer_id'])
            if not parent:
                continue
            listing.append({
                "id": p['id'],
                "bellringer_id": p['bellringer_id'],
                "slot": p.get('slot'),
                "journal_type": p.get('journal_type'),
                "journal_prompt": p.get('journal_prompt'),
                "journal_subprompt": p.get('journal_subprompt'),
                "image_path": p.get('image_path'),
                "date": parent.get('date'),
                "status": parent.get('status'),
                "is_approved": bool(parent.get('is_approved')),
            })
        return jsonify({"prompts": listing})

    except Exception as e:
        return error_response(e, "Bellringer library")


@bellringer_bp.route('/api/bellringers/library/<int:prompt_id>', methods=['PATCH'])
def update_library_prompt(prompt_id):
    try:
        data = json_body()
        updates = {k: data[k] for k in ('journal_type', 'journal_prompt', 'journal_subprompt') if k in data}
        if not updates:
            return jsonify({"error": "No fields to update"}), 400

        db = get_supabase()
        result = db.table('bellringer_prompts').update(updates).eq('id', prompt_id).execute()
        if not result.data:
            return jsonify({"error": "Prompt not found"}), 404
        return jsonify({"prompt": result.data[0]})

    except Exception as e:
        return error_response(e, "Update library prompt")


@bellringer_bp.route('/api/bellringers/library/<int:prompt_id>', methods=['DELETE'])
def delete_library_prompt(prompt_id):
    try:
        db = get_supabase()
        db.table('bellringer_prompts').delete().eq('id', prompt_id).execute()
        return jsonify({"ok": True})
    except Exception as e:
        return error_response(e, "Delete library prompt")
