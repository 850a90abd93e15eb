"""
Lesson plan API routes for TeachDash.
Handles the brainstorm chat, turning a chat or a Word document into the
weekly activity grid, publishing to the principal, and exports.
"""
import logging
import uuid

from flask import Blueprint, request, jsonify, Response

from ..db import (
    get_supabase, get_row, load_settings, load_classes, attach_classes,
    attach_standards, now_iso,
)
from ..services.class_matcher import load_rules, match_class_name
from ..services.email_service import PlanEmailer
from ..services.export_service import build_lesson_plan_html, build_lesson_plan_docx
from ..services.lesson_plan_generator import (
    brainstorm_with_ai, parse_brainstorm_to_activities,
    normalize_activity_type, normalize_material_status,
)
from ..services.lesson_plan_importer import (
    DocumentReadError, extract_docx_text, import_lesson_plan_docx, is_docx_upload, DOCX_MIMETYPE,
)
from ..services.school_calendar import monday_of_week, parse_iso_date, week_dates
from ..services.standards_tagger import (
    compute_coverage, format_gap_lines, load_hits, suggest_for_gaps, tag_and_save,
)
from .common import error_response, json_body, parse_int, public_base_url, request_provider, text_value

logger = logging.getLogger(__name__)

lesson_plan_bp = Blueprint('lesson_plans', __name__)

PLAN_STATUSES = ('draft', 'imported', 'published')
LIST_LIMIT = 20


def _history(plan) -> list:
    history = (plan or {}).get('brainstorm_history')
    return list(history) if isinstance(history, list) else []


def _plan_for_week(db, monday: str):
    result = db.table('lesson_plans').select('*').eq('week_of', monday) \
        .order('created_at', desc=True).limit(1).execute()
    return result.data[0] if result.data else None


def _plan_activities(db, plan_id) -> list:
    rows = db.table('activities').select('*').eq('lesson_plan_id', plan_id) \
        .order('date').order('sort_order').execute().data or []
    return attach_classes(db, rows)


# ============ CRUD ============

@lesson_plan_bp.route('/api/lesson-plans', methods=['GET'])
def list_lesson_plans():
    """Plans, newest first. `list=true` returns the compact sidebar listing."""
    try:
        db = get_supabase()

        if request.args.get('list') == 'true':
            include_all = request.args.get('all') == 'true'
            query = db.table('lesson_plans').select('id, week_of, status, brainstorm_history, created_at') \
                .order('week_of', desc=True)
            if not include_all:
                query = query.limit(LIST_LIMIT)
            plans = query.execute().data or []

            counts = {}
            if include_all and plans:
                rows = db.table('activities').select('lesson_plan_id') \
                    .in_('lesson_plan_id', [p['id'] for p in plans]).execute().data or []
                for row in rows:
                    counts[row['lesson_plan_id']] = counts.get(row['lesson_plan_id'], 0) + 1

            listing = []
            for p in plans:
                item = {
                    "id": p['id'],
                    "week_of": p['week_of'],
                    "status": p['status'],
                    "message_count": len(_history(p)),
                    "created_at": p.get('created_at'),
                }
                if include_all:
                    item["activity_count"] = counts.get(p['id'], 0)
                listing.append(item)
            return jsonify(listing)

        query = db.table('lesson_plans').select('*').order('created_at', desc=True)
        if request.args.get('week_of'):
            query = query.eq('week_of', request.args['week_of'])
        if request.args.get('status'):
            query = query.eq('status', request.args['status'])
        return jsonify(query.execute().data or [])

    except Exception as e:
        return error_response(e, "List lesson plans")


@lesson_plan_bp.route('/api/lesson-plans', methods=['POST'])
def create_lesson_plan():
    """Create (or return the existing) plan for a week."""
    try:
        data = json_body()
        week = parse_iso_date(data.get('week_of'))
        if not week:
            return jsonify({"error": "week_of is required (YYYY-MM-DD format)"}), 400

        db = get_supabase()
        monday = monday_of_week(week).isoformat()
        existing = _plan_for_week(db, monday)
        if existing:
            return jsonify(existing), 200

        result = db.table('lesson_plans').insert({
            "week_of": monday,
            "status": "draft",
            "brainstorm_history": [],
        }).execute()
        return jsonify(result.data[0]), 201

    except Exception as e:
        return error_response(e, "Create lesson plan")


@lesson_plan_bp.route('/api/lesson-plans/<int:plan_id>', methods=['GET'])
def get_lesson_plan(plan_id):
    try:
        db = get_supabase()
        plan = get_row(db, 'lesson_plans', plan_id)
        if not plan:
            return jsonify({"error": "Lesson plan not found"}), 404
        plan['activities'] = attach_standards(db, _plan_activities(db, plan_id))
        return jsonify(plan)
    except Exception as e:
        return error_response(e, "Get lesson plan")


@lesson_plan_bp.route('/api/lesson-plans/<int:plan_id>', methods=['PATCH'])
def update_lesson_plan(plan_id):
    """Edit announcements, the per-class writer's corner, raw notes or status."""
    try:
        data = json_body()
        db = get_supabase()
        plan = get_row(db, 'lesson_plans', plan_id)
        if not plan:
            return jsonify({"error": "Lesson plan not found"}), 404

        updates = {}
        if 'announcements' in data:
            updates['announcements'] = data['announcements']
        if 'raw_input' in data:
            updates['raw_input'] = data['raw_input']
        if 'writers_corner' in data:
            if not isinstance(data['writers_corner'], dict):
                return jsonify({"error": "writers_corner must be an object keyed by class"}), 400
            updates['writers_corner'] = data['writers_corner']
        if 'status' in data:
            if data['status'] not in PLAN_STATUSES:
                return jsonify({"error": f"status must be one of: {', '.join(PLAN_STATUSES)}"}), 400
            updates['status'] = data['status']

        if not updates:
            return jsonify({"error": "No updatable fields provided"}), 400

        updates['updated_at'] = now_iso()
        result = db.table('lesson_plans').update(updates).eq('id', plan_id).execute()
        return jsonify(result.data[0] if result.data else {**plan, **updates})

    except Exception as e:
        return error_response(e, "Update lesson plan")


# ============ Brainstorm / parse ============

@lesson_plan_bp.route('/api/lesson-plans/brainstorm', methods=['POST'])
def brainstorm():
    """
    Send one teacher message to the planning chat.
    Accepts lesson_plan_id, or week_of to start (or continue) that week's plan.
    """
    try:
        data = json_body()
        message = text_value(data.get('message'))
        plan_id = data.get('lesson_plan_id')
        week = parse_iso_date(data.get('week_of'))

        if not message:
            return jsonify({"error": "message is required"}), 400
        if not plan_id and not week:
            return jsonify({"error": "lesson_plan_id or week_of is required"}), 400

        db = get_supabase()
        if plan_id:
            plan = get_row(db, 'lesson_plans', plan_id)
            if not plan:
                return jsonify({"error": "Lesson plan not found"}), 404
        else:
            plan = _plan_for_week(db, monday_of_week(week).isoformat())

        settings = load_settings(db)
        provider = request_provider(db, settings)

        history = _history(plan)
        history.append({"role": "user", "content": message})

        existing = [a['title'] for a in _plan_activities(db, plan['id'])] if plan else []
        week_of = plan['week_of'] if plan else monday_of_week(week).isoformat()
        reply, error = brainstorm_with_ai(provider, history, {
            "classes": load_classes(db),
            "week_of": week_of,
            "existing_activities": existing,
            "teacher_name": settings.get('teacher_name'),
            "school_name": settings.get('school_name'),
        })
        if error:
            return jsonify({"error": error}), 500

        history.append({"role": "assistant", "content": reply})

        if plan:
            db.table('lesson_plans').update({
                "brainstorm_history": history,
                "updated_at": now_iso(),
            }).eq('id', plan['id']).execute()
            created = False
        else:
            plan = db.table('lesson_plans').insert({
                "week_of": week_of,
                "status": "draft",
                "raw_input": message,
                "brainstorm_history": history,
            }).execute().data[0]
            created = True
            logger.info("Started lesson plan %s for week of %s", plan['id'], week_of)

        return jsonify({
            "lesson_plan_id": plan['id'],
            "created": created,
            "response": reply,
            "history": history,
        }), 201 if created else 200

    except Exception as e:
        return error_response(e, "Brainstorm")


def _resolve_class_id(raw, classes_by_id, classes, rules):
    class_id = parse_int(raw.get('class_id'))
    if class_id in classes_by_id:
        return class_id
    matched = match_class_name(text_value(raw.get('class_name')), classes, rules)
    return matched['id'] if matched else None


def _tag_activities(db, provider, activities: list) -> list:
    summary = []
    cache = {}
    for activity in activities:
        if not activity.get('class_name'):
            continue
        result = tag_and_save(db, provider, activity, cache)
        summary.append({"activity_id": result['activity_id'], "codes": result['codes'], "error": result['error']})
    return summary


@lesson_plan_bp.route('/api/lesson-plans/parse', methods=['POST'])
def parse_lesson_plan():
    """
    Turn the brainstorm chat into activities for the plan's week.
    The new activities replace the plan's old ones and are auto-tagged.
    """
    try:
        data = json_body()
        plan_id = data.get('lesson_plan_id')
        if not plan_id:
            return jsonify({"error": "lesson_plan_id is required"}), 400

        db = get_supabase()
        plan = get_row(db, 'lesson_plans', plan_id)
        if not plan:
            return jsonify({"error": "Lesson plan not found"}), 404

        history = _history(plan)
        if not history:
            return jsonify({"error": "No brainstorm history to parse. Chat with the AI first!"}), 400

        classes = load_classes(db)
        if not classes:
            return jsonify({"error": "No classes found. Create classes in Settings first."}), 400

        settings = load_settings(db)
        provider = request_provider(db, settings)
        week = week_dates(parse_iso_date(plan['week_of']))

        result, error = parse_brainstorm_to_activities(provider, history, classes, week)
        if error:
            return jsonify({"error": error}), 500

        classes_by_id = {c['id']: c for c in classes}
        rules = load_rules(settings)
        rows = []
        skipped = 0
        for day in result['days']:
            for i, raw in enumerate(day['activities']):
                class_id = _resolve_class_id(raw, classes_by_id, classes, rules)
                title = text_value(raw.get('title'))
                if class_id is None or not title:
                    skipped += 1
                    continue
                rows.append({
                    "class_id": class_id,
                    "lesson_plan_id": plan['id'],
                    "date": day['date'],
                    "title": title,
                    "description": text_value(raw.get('description')) or None,
                    "activity_type": normalize_activity_type(raw.get('activity_type')),
                    "material_status": normalize_material_status(raw.get('material_status')),
                    "sort_order": i,
                })
        if skipped:
            logger.warning("Parse skipped %d activities without a known class", skipped)

        # New rows go in before the old ones are removed.
        old_ids = [a['id'] for a in db.table('activities').select('id').eq('lesson_plan_id', plan['id']).execute().data or []]
        created = db.table('activities').insert(rows).execute().data or [] if rows else []
        if old_ids:
            db.table('activities').delete().in_('id', old_ids).execute()

        created = attach_classes(db, created)
        tagging = _tag_activities(db, provider, created)

        db.table('lesson_plans').update({"updated_at": now_iso()}).eq('id', plan['id']).execute()

        return jsonify({
            "activities": attach_standards(db, created),
            "days": result['days'],
            "tagging": tagging,
            "skipped": skipped,
        })

    except Exception as e:
        return error_response(e, "Parse lesson plan")


# ============ Import ============

@lesson_plan_bp.route('/api/lesson-plans/import', methods=['POST'])
def import_lesson_plan():
    """Create a plan from an uploaded .docx (multipart: file, week_of)."""
    try:
        upload = request.files.get('file')
        if upload is None or not upload.filename:
            return jsonify({"error": "A .docx file is required"}), 400

        week = parse_iso_date(request.form.get('week_of'))
        if not week:
            return jsonify({"error": "week_of is required (YYYY-MM-DD format)"}), 400

        if not is_docx_upload(upload.filename, upload.mimetype):
            return jsonify({"error": "Only .docx files are supported"}), 400

        try:
            text = extract_docx_text(upload.read())
        except DocumentReadError as e:
            return jsonify({"error": str(e)}), 400

        db = get_supabase()
        classes = load_classes(db)
        if not classes:
            return jsonify({"error": "No classes found. Create classes in Settings first."}), 400

        settings = load_settings(db)
        provider = request_provider(db, settings)
        monday = monday_of_week(week)
        week = week_dates(monday)

        result, error = import_lesson_plan_docx(provider, text, week, [c['name'] for c in classes])
        if error:
            return jsonify({"error": error}), 500

        plan = db.table('lesson_plans').insert({
            "week_of": monday.isoformat(),
            "status": "imported",
            "raw_input": f"Imported from: {upload.filename}",
            "brainstorm_history": [],
        }).execute().data[0]

        rules = load_rules(settings)
        rows = []
        unmatched = []
        for day in result['days']:
            for i, raw in enumerate(day['activities']):
                class_name = text_value(raw.get('class_name'))
                title = text_value(raw.get('title'))
                matched = match_class_name(class_name, classes, rules)
                if not matched or not title:
                    unmatched.append(class_name)
                    continue
                rows.append({
                    "class_id": matched['id'],
                    "lesson_plan_id": plan['id'],
                    "date": day['date'],
                    "title": title,
                    "description": text_value(raw.get('description')) or None,
                    "activity_type": normalize_activity_type(raw.get('activity_type')),
                    "material_status": "not_needed",
                    "sort_order": i,
                })

        created = db.table('activities').insert(rows).execute().data or [] if rows else []
        logger.info("Imported %s: %d activities, %d unmatched", upload.filename, len(created), len(unmatched))

        return jsonify({
            "lesson_plan_id": plan['id'],
            "activities_created": len(created),
            "unmatched_classes": sorted({u for u in unmatched if u}),
            "days": result['days'],
        }), 201

    except Exception as e:
        return error_response(e, "Import lesson plan")


# ============ Publish / standards / export ============

@lesson_plan_bp.route('/api/lesson-plans/publish', methods=['POST'])
def publish_lesson_plan():
    """Publish a plan at a stable public link and email the principal if configured."""
    try:
        data = json_body()
        plan_id = data.get('lesson_plan_id')
        if not plan_id:
            return jsonify({"error": "lesson_plan_id is required"}), 400

        db = get_supabase()
        plan = get_row(db, 'lesson_plans', plan_id)
        if not plan:
            return jsonify({"error": "Lesson plan not found"}), 404

        token = plan.get('publish_token') or str(uuid.uuid4())
        db.table('lesson_plans').update({
            "status": "published",
            "publish_token": token,
            "updated_at": now_iso(),
        }).eq('id', plan['id']).execute()

        url = f"{public_base_url()}/plans/{token}"

        settings = load_settings(db)
        email = {"success": False, "message": "No principal email configured"}
        if settings.get('principal_email'):
            email = PlanEmailer(settings).send_plan_published(
                settings['principal_email'], url, plan['week_of'], settings.get('teacher_name') or 'Teacher')

        return jsonify({
            "token": token,
            "url": url,
            "email_sent": email['success'],
            "email_message": email['message'],
        })

    except Exception as e:
        return error_response(e, "Publish lesson plan")


@lesson_plan_bp.route('/api/lesson-plans/tag-standards', methods=['POST'])
def tag_lesson_plan_standards():
    try:
        data = json_body()
        plan_id = data.get('lesson_plan_id')
        if not plan_id:
            return jsonify({"error": "lesson_plan_id is required"}), 400

        db = get_supabase()
        activities = _plan_activities(db, plan_id)
        if not activities:
            return jsonify({"results": [], "message": "No activities found for this plan"})

        provider = request_provider(db)
        cache = {}
        results = []
        for activity in activities:
            activity['class_name'] = activity.get('class_name') or 'English-1'
            result = tag_and_save(db, provider, activity, cache)
            results.append(result)
        return jsonify({"results": results})

    except Exception as e:
        return error_response(e, "Tag lesson plan standards")


@lesson_plan_bp.route('/api/lesson-plans/suggest-standards', methods=['POST'])
def suggest_standards():
    """Chat suggestions for working never-hit or stale standards into this week."""
    try:
        data = json_body()
        plan_id = data.get('lesson_plan_id')
        if not plan_id:
            return jsonify({"error": "lesson_plan_id is required"}), 400

        db = get_supabase()
        plan = get_row(db, 'lesson_plans', plan_id)
        if not plan:
            return jsonify({"error": "Lesson plan not found"}), 404

        activities = attach_standards(db, _plan_activities(db, plan_id))
        if not activities:
            return jsonify({"error": "No activities found. Generate a plan first, then try again."}), 400

        standards = db.table('standards').select('*').order('code').execute().data or []
        coverage = compute_coverage(load_classes(db), standards, load_hits(db))
        gap_lines = format_gap_lines(coverage)
        if not gap_lines:
            return jsonify({"suggestions": "Great news! All standards are covered within the last 4 weeks. "
                                           "No gaps to address right now."})

        activity_lines = [
            f"- [{a.get('date') or 'no date'}] {a.get('class_name') or 'Unknown'}: \"{a['title']}\" "
            f"(type: {a.get('activity_type')}, tags: {', '.join(s['code'] for s in a['standards']) or 'none'})"
            for a in activities
        ]

        provider = request_provider(db)
        text, error = suggest_for_gaps(provider, plan['week_of'], activity_lines, gap_lines)
        if error:
            return jsonify({"error": error}), 500
        return jsonify({"suggestions": text})

    except Exception as e:
        return error_response(e, "Suggest standards")


@lesson_plan_bp.route('/api/lesson-plans/export', methods=['GET'])
def export_lesson_plan():
    """Printable HTML (default) or a Word document with ?format=docx."""
    try:
        raw_id = request.args.get('lesson_plan_id') or request.args.get('id')
        if not raw_id:
            return jsonify({"error": "lesson_plan_id query parameter is required"}), 400
        plan_id = parse_int(raw_id)
        if plan_id is None:
            return jsonify({"error": "lesson_plan_id must be a number"}), 400

        db = get_supabase()
        plan = get_row(db, 'lesson_plans', plan_id)
        if not plan:
            return jsonify({"error": "Lesson plan not found"}), 404

        activities = _plan_activities(db, plan_id)
        settings = load_settings(db)

        if request.args.get('format') == 'docx':
            return Response(
                build_lesson_plan_docx(plan, activities, settings),
                mimetype=DOCX_MIMETYPE,
                headers={"Content-Disposition": f'attachment; filename="lesson-plan-{plan["week_of"]}.docx"'},
            )
        return Response(build_lesson_plan_html(plan, activities, settings), mimetype='text/html')

    except Exception as e:
        return error_response(e, "Export lesson plan")
