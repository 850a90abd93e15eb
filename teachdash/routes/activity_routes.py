"""
Activity API routes for TeachDash.
One row per class per day in the weekly grid: inline edits, bumping to the
next school day, AI regeneration, standards tags and generated materials.
"""
import logging

from flask import Blueprint, request, jsonify, Response

from ..db import (
    get_supabase, get_row, load_settings, attach_classes, attach_standards,
    save_activity_standards,
)
from ..services.export_service import build_material_docx
from ..services.lesson_plan_generator import (
    ACTIVITY_TYPES, MATERIAL_STATUSES, normalize_activity_type, regenerate_activity,
)
from ..services.lesson_plan_importer import DOCX_MIMETYPE
from ..services.material_generator import MATERIAL_TYPES, generate_material
from ..services.school_calendar import is_iso_date, next_school_day, parse_iso_date
from ..services.standards_tagger import tag_and_save
from .common import error_response, json_body, parse_int, request_provider, text_value

logger = logging.getLogger(__name__)

activity_bp = Blueprint('activities', __name__)

EDITABLE_FIELDS = ('title', 'description', 'date', 'class_id', 'activity_type', 'material_status',
                   'sort_order', 'is_done', 'is_graded', 'lesson_plan_id')


def _load_activity(db, activity_id):
    activity = get_row(db, 'activities', activity_id)
    if activity:
        attach_classes(db, [activity])
    return activity


def _full_activity(db, activity_id):
    activity = _load_activity(db, activity_id)
    if activity:
        attach_standards(db, [activity])
    return activity


def _class_exists(db, class_id) -> bool:
    return get_row(db, 'classes', class_id, 'id') is not None


@activity_bp.route('/api/activities', methods=['GET'])
def list_activities():
    try:
        db = get_supabase()
        query = db.table('activities').select('*').order('sort_order').order('created_at')
        if request.args.get('date'):
            query = query.eq('date', request.args['date'])
        if request.args.get('class_id'):
            class_id = parse_int(request.args['class_id'])
            if class_id is None:
                return jsonify({"error": "class_id must be a number"}), 400
            query = query.eq('class_id', class_id)
        if request.args.get('lesson_plan_id'):
            query = query.eq('lesson_plan_id', parse_int(request.args['lesson_plan_id']))

        activities = attach_classes(db, query.execute().data or [])
        return jsonify(attach_standards(db, activities))
    except Exception as e:
        return error_response(e, "List activities")


@activity_bp.route('/api/activities', methods=['POST'])
def create_activity():
    try:
        data = json_body()
        class_id = parse_int(data.get('class_id'))
        title = text_value(data.get('title'))
        if class_id is None or not title:
            return jsonify({"error": "class_id and title are required"}), 400
        if data.get('date') and not is_iso_date(data['date']):
            return jsonify({"error": "date must be YYYY-MM-DD"}), 400

        db = get_supabase()
        if not _class_exists(db, class_id):
            return jsonify({"error": "Class not found"}), 400

        material_status = data.get('material_status') or 'not_needed'
        if material_status not in MATERIAL_STATUSES:
            return jsonify({"error": f"material_status must be one of: {', '.join(MATERIAL_STATUSES)}"}), 400

        result = db.table('activities').insert({
            "class_id": class_id,
            "date": data.get('date') or None,
            "title": title,
            "description": data.get('description') or None,
            "activity_type": normalize_activity_type(data.get('activity_type')),
            "lesson_plan_id": data.get('lesson_plan_id') or None,
            "material_status": material_status,
            "sort_order": data.get('sort_order') or 0,
        }).execute()
        return jsonify(attach_classes(db, result.data)[0]), 201

    except Exception as e:
        return error_response(e, "Create activity")


@activity_bp.route('/api/activities/<int:activity_id>', methods=['PATCH'])
def update_activity(activity_id):
    """Inline grid edits. Unknown fields are ignored."""
    try:
        data = json_body()
        updates = {k: data[k] for k in EDITABLE_FIELDS if k in data}
        if not updates:
            return jsonify({"error": "No updatable fields provided"}), 400

        if 'title' in updates:
            updates['title'] = text_value(updates['title'])
            if not updates['title']:
                return jsonify({"error": "title cannot be empty"}), 400
        if 'activity_type' in updates and updates['activity_type'] not in ACTIVITY_TYPES:
            return jsonify({"error": f"activity_type must be one of: {', '.join(ACTIVITY_TYPES)}"}), 400
        if 'material_status' in updates and updates['material_status'] not in MATERIAL_STATUSES:
            return jsonify({"error": f"material_status must be one of: {', '.join(MATERIAL_STATUSES)}"}), 400
        if updates.get('date') and not is_iso_date(updates['date']):
            return jsonify({"error": "date must be YYYY-MM-DD"}), 400
        for flag in ('is_done', 'is_graded'):
            if flag in updates:
                updates[flag] = bool(updates[flag])

        db = get_supabase()
        if not get_row(db, 'activities', activity_id, 'id'):
            return jsonify({"error": "Activity not found"}), 404
        if 'class_id' in updates and not _class_exists(db, updates['class_id']):
            return jsonify({"error": "Class not found"}), 400

        db.table('activities').update(updates).eq('id', activity_id).execute()
        return jsonify(_full_activity(db, activity_id))

    except Exception as e:
        return error_response(e, "Update activity")


@activity_bp.route('/api/activities/<int:activity_id>', methods=['DELETE'])
def delete_activity(activity_id):
    try:
        db = get_supabase()
        if not get_row(db, 'activities', activity_id, 'id'):
            return jsonify({"error": "Activity not found"}), 404
        db.table('activity_standards').delete().eq('activity_id', activity_id).execute()
        db.table('activities').delete().eq('id', activity_id).execute()
        return jsonify({"success": True})
    except Exception as e:
        return error_response(e, "Delete activity")


@activity_bp.route('/api/activities/<int:activity_id>/bump', methods=['POST'])
def bump_activity(activity_id):
    """Move an activity to the next school day (Friday -> Monday)."""
    try:
        db = get_supabase()
        activity = get_row(db, 'activities', activity_id)
        if not activity:
            return jsonify({"error": "Activity not found"}), 404

        current = parse_iso_date(activity.get('date'))
        if not current:
            return jsonify({"error": "Activity has no date to bump from"}), 400

        next_day = next_school_day(current).isoformat()
        db.table('activities').update({"date": next_day, "moved_to_date": next_day}) \
            .eq('id', activity_id).execute()

        return jsonify({
            "activity": _load_activity(db, activity_id),
            "bumped_from": activity['date'],
            "bumped_to": next_day,
        })
    except Exception as e:
        return error_response(e, "Bump activity")


@activity_bp.route('/api/activities/<int:activity_id>/regenerate', methods=['POST'])
def regenerate(activity_id):
    """Replace the activity in place with a different AI suggestion, then re-tag it."""
    try:
        db = get_supabase()
        activity = _load_activity(db, activity_id)
        if not activity:
            return jsonify({"error": "Activity not found"}), 404

        history = []
        if activity.get('lesson_plan_id'):
            plan = get_row(db, 'lesson_plans', activity['lesson_plan_id'], 'brainstorm_history')
            if plan and isinstance(plan.get('brainstorm_history'), list):
                history = plan['brainstorm_history']

        provider = request_provider(db)
        class_name = activity.get('class_name') or 'Unknown Class'
        result, error = regenerate_activity(provider, activity, class_name, history)
        if error:
            return jsonify({"error": error}), 500

        db.table('activities').update(result).eq('id', activity_id).execute()

        tag_and_save(db, provider, {**activity, **result}, replace=True)
        return jsonify(_full_activity(db, activity_id))

    except Exception as e:
        return error_response(e, "Regenerate activity")


# ============ Standards ============

@activity_bp.route('/api/activities/<int:activity_id>/tag-standards', methods=['POST'])
def tag_activity_standards(activity_id):
    try:
        db = get_supabase()
        activity = _load_activity(db, activity_id)
        if not activity:
            return jsonify({"error": "Activity not found"}), 404
        activity['class_name'] = activity.get('class_name') or 'English-1'

        result = tag_and_save(db, request_provider(db), activity)
        if result['error']:
            return jsonify({"error": result['error']}), 500

        tagged = []
        if result['codes']:
            tagged = db.table('standards').select('id, code, description, strand') \
                .in_('code', result['codes']).execute().data or []
        return jsonify({"activity_id": activity_id, "tagged": tagged, "reasoning": result['reasoning']})

    except Exception as e:
        return error_response(e, "Tag activity standards")


@activity_bp.route('/api/activities/<int:activity_id>/standards', methods=['POST'])
def add_activity_standard(activity_id):
    """Manual tag by standard_id or code."""
    try:
        data = json_body()
        db = get_supabase()
        if not get_row(db, 'activities', activity_id, 'id'):
            return jsonify({"error": "Activity not found"}), 404

        if data.get('standard_id') is not None:
            standard = get_row(db, 'standards', data['standard_id'], 'id, code, description, strand')
        elif data.get('code'):
            result = db.table('standards').select('id, code, description, strand') \
                .eq('code', data['code']).limit(1).execute()
            standard = result.data[0] if result.data else None
        else:
            return jsonify({"error": "standard_id or code is required"}), 400
        if not standard:
            return jsonify({"error": "Standard not found"}), 404

        save_activity_standards(db, activity_id, [standard['id']], tagged_by='manual')
        return jsonify({"activity_id": activity_id, "standard": standard, "tagged_by": "manual"}), 201

    except Exception as e:
        return error_response(e, "Add activity standard")


@activity_bp.route('/api/activities/<int:activity_id>/standards/<int:standard_id>', methods=['DELETE'])
def remove_activity_standard(activity_id, standard_id):
    try:
        db = get_supabase()
        db.table('activity_standards').delete() \
            .eq('activity_id', activity_id).eq('standard_id', standard_id).execute()
        return jsonify({"success": True})
    except Exception as e:
        return error_response(e, "Remove activity standard")


# ============ Materials ============

@activity_bp.route('/api/materials/generate', methods=['POST'])
def generate_activity_material():
    try:
        data = json_body()
        activity_id = data.get('activity_id')
        material_type = data.get('material_type')
        if not activity_id or not material_type:
            return jsonify({"error": "activity_id and material_type are required"}), 400
        if material_type not in MATERIAL_TYPES:
            return jsonify({"error": f"Unknown material_type: {material_type}"}), 400

        db = get_supabase()
        activity = _load_activity(db, activity_id)
        if not activity:
            return jsonify({"error": "Activity not found"}), 404

        settings = load_settings(db)
        result, error = generate_material(
            request_provider(db, settings),
            activity.get('class_name') or 'Unknown Class',
            activity['title'],
            material_type,
            description=activity.get('description') or '',
            teacher_notes=data.get('teacher_notes') or '',
            school_name=settings.get('school_name') or '',
        )
        if error:
            return jsonify({"error": error}), 500

        db.table('activities').update({
            "material_content": result,
            "material_status": "ready",
        }).eq('id', activity_id).execute()

        return jsonify({"material": result, "activity_id": activity_id, "material_type": material_type})

    except Exception as e:
        return error_response(e, "Generate material")


@activity_bp.route('/api/activities/<int:activity_id>/material.docx', methods=['GET'])
def download_material(activity_id):
    try:
        db = get_supabase()
        activity = _load_activity(db, activity_id)
        if not activity:
            return jsonify({"error": "Activity not found"}), 404
        if not activity.get('material_content'):
            return jsonify({"error": "No material generated for this activity"}), 404

        return Response(
            build_material_docx(activity, activity['material_content']),
            mimetype=DOCX_MIMETYPE,
            headers={"Content-Disposition": f'attachment; filename="material-{activity_id}.docx"'},
        )
    except Exception as e:
        return error_response(e, "Download material")
