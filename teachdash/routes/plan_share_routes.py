"""
Public lesson plan routes for TeachDash.
No login: the publish token in the URL is the only credential. Only plans
with status 'published' are visible.
"""
import logging

from flask import Blueprint, request, jsonify

from ..db import get_supabase, attach_classes, attach_standards, load_settings
from .common import error_response, json_body, parse_int, text_value

logger = logging.getLogger(__name__)

plan_share_bp = Blueprint('plan_share', __name__)

COMMENT_COLUMNS = 'id, parent_id, author_role, author_name, content, created_at'
PUBLIC_ACTIVITY_COLUMNS = ('id, class_id, date, title, description, activity_type, sort_order, '
                           'material_status, material_content, is_done, is_graded')


def _published_plan(db, token):
    result = db.table('lesson_plans').select('*').eq('publish_token', token) \
        .eq('status', 'published').limit(1).execute()
    return result.data[0] if result.data else None


def _not_found():
    return jsonify({"error": "Published lesson plan not found"}), 404


def _comments(db, plan_id) -> list:
    return db.table('lesson_plan_comments').select(COMMENT_COLUMNS).eq('lesson_plan_id', plan_id) \
        .order('created_at').execute().data or []


@plan_share_bp.route('/api/plans/<token>', methods=['GET'])
def get_published_plan(token):
    try:
        db = get_supabase()
        plan = _published_plan(db, token)
        if not plan:
            return _not_found()

        activities = db.table('activities').select(PUBLIC_ACTIVITY_COLUMNS).eq('lesson_plan_id', plan['id']) \
            .order('date').order('sort_order').execute().data or []
        activities = attach_standards(db, attach_classes(db, activities))

        settings = load_settings(db)
        return jsonify({
            "plan": plan,
            "activities": activities,
            "comments": _comments(db, plan['id']),
            "school_name": settings.get('school_name') or '',
            "teacher_name": settings.get('teacher_name') or '',
        })
    except Exception as e:
        return error_response(e, "Get published plan")


@plan_share_bp.route('/api/plans/<token>/comments', methods=['GET'])
def list_comments(token):
    try:
        db = get_supabase()
        plan = _published_plan(db, token)
        if not plan:
            return _not_found()
        return jsonify(_comments(db, plan['id']))
    except Exception as e:
        return error_response(e, "List comments")


@plan_share_bp.route('/api/plans/<token>/comments', methods=['POST'])
def add_comment(token):
    """Add a comment or a reply (parent_id). Replies must stay inside the same plan."""
    try:
        data = json_body()
        author_name = text_value(data.get('author_name'))
        content = text_value(data.get('content'))
        if not author_name or not content:
            return jsonify({"error": "author_name and content are required"}), 400

        db = get_supabase()
        plan = _published_plan(db, token)
        if not plan:
            return _not_found()

        parent_id = data.get('parent_id')
        if parent_id:
            parent = db.table('lesson_plan_comments').select('id').eq('id', parent_id) \
                .eq('lesson_plan_id', plan['id']).limit(1).execute()
            if not parent.data:
                return jsonify({"error": "Parent comment not found on this plan"}), 400

        result = db.table('lesson_plan_comments').insert({
            "lesson_plan_id": plan['id'],
            "author_name": author_name,
            "author_role": text_value(data.get('author_role')) or 'principal',
            "content": content,
            "parent_id": parent_id or None,
        }).execute()
        logger.info("New %s comment on plan %s", result.data[0]['author_role'], plan['id'])
        return jsonify(result.data[0]), 201

    except Exception as e:
        return error_response(e, "Add comment")


@plan_share_bp.route('/api/plans/<token>/comments', methods=['PATCH'])
def edit_comment(token):
    try:
        data = json_body()
        comment_id = data.get('comment_id')
        content = text_value(data.get('content'))
        if not comment_id or not content:
            return jsonify({"error": "comment_id and content are required"}), 400

        db = get_supabase()
        plan = _published_plan(db, token)
        if not plan:
            return _not_found()

        result = db.table('lesson_plan_comments').update({"content": content}) \
            .eq('id', comment_id).eq('lesson_plan_id', plan['id']).execute()
        if not result.data:
            return jsonify({"error": "Comment not found"}), 404
        return jsonify(result.data[0])

    except Exception as e:
        return error_response(e, "Edit comment")


@plan_share_bp.route('/api/plans/<token>/comments', methods=['DELETE'])
def delete_comment(token):
    try:
        comment_id = parse_int(request.args.get('comment_id'))
        if comment_id is None:
            return jsonify({"error": "comment_id query param is required"}), 400

        db = get_supabase()
        plan = _published_plan(db, token)
        if not plan:
            return _not_found()

        db.table('lesson_plan_comments').delete().eq('id', comment_id) \
            .eq('lesson_plan_id', plan['id']).execute()
        return jsonify({"success": True})

    except Exception as e:
        return error_response(e, "Delete comment")
