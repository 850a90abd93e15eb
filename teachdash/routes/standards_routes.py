"""
Standards API routes for TeachDash.
Academic standards catalog, seeding and upload, plus per-class coverage
(which standards were hit, when, and which are gaps).
"""
import json
import logging

from flask import Blueprint, request, jsonify

from ..config import STANDARDS_SEED_FILE, STALE_STANDARD_DAYS
from ..db import get_supabase, attach_classes, load_classes
from ..services.standards_tagger import (
    SUBJECT_MAP, compute_coverage, load_hits, parse_standards_text, seed_rows,
)
from .common import error_response, json_body, request_provider, text_value

logger = logging.getLogger(__name__)

standards_bp = Blueprint('standards', __name__)

INSERT_BATCH_SIZE = 100


def _unique_by_code(rows: list) -> list:
    return list({r['code']: r for r in rows}.values())


def _save_standards(db, rows: list) -> dict:
    """Insert new codes and update existing ones in place. A repeated code keeps its last row. Returns counts."""
    rows = _unique_by_code(rows)
    codes = [r['code'] for r in rows]
    existing = db.table('standards').select('code').in_('code', codes).execute().data or []
    existing_codes = {r['code'] for r in existing}

    to_insert = [r for r in rows if r['code'] not in existing_codes]
    to_update = [r for r in rows if r['code'] in existing_codes]

    inserted = 0
    for i in range(0, len(to_insert), INSERT_BATCH_SIZE):
        batch = to_insert[i:i + INSERT_BATCH_SIZE]
        result = db.table('standards').insert(batch).execute()
        inserted += len(result.data or batch)

    for row in to_update:
        db.table('standards').update({
            "subject": row['subject'],
            "grade_band": row['grade_band'],
            "description": row['description'],
            "strand": row.get('strand'),
        }).eq('code', row['code']).execute()

    return {"inserted": inserted, "updated": len(to_update)}


def _standard_rows(items, subject: str, grade_band: str) -> list:
    rows = []
    for item in items:
        if not isinstance(item, dict):
            continue
        code = str(item.get('code') or '').strip()
        description = text_value(item.get('description'))
        if not code or not description:
            continue
        rows.append({
            "code": code,
            "description": description,
            "strand": text_value(item.get('strand')) or None,
            "subject": subject,
            "grade_band": grade_band,
        })
    return _unique_by_code(rows)


@standards_bp.route('/api/standards', methods=['GET'])
def list_standards():
    """All standards with how many activities are tagged with each."""
    try:
        db = get_supabase()
        query = db.table('standards').select('*').order('subject').order('grade_band').order('code')
        if request.args.get('subject'):
            query = query.ilike('subject', request.args['subject'])
        standards = query.execute().data or []

        counts = {}
        if standards:
            links = db.table('activity_standards').select('standard_id') \
                .in_('standard_id', [s['id'] for s in standards]).execute().data or []
            for link in links:
                counts[link['standard_id']] = counts.get(link['standard_id'], 0) + 1

        for standard in standards:
            standard['activity_count'] = counts.get(standard['id'], 0)
        return jsonify(standards)

    except Exception as e:
        return error_response(e, "List standards")


@standards_bp.route('/api/standards', methods=['DELETE'])
def delete_all_standards():
    """Wipe the catalog along with every activity tag pointing at it."""
    try:
        db = get_supabase()
        db.table('activity_standards').delete().neq('standard_id', 0).execute()
        db.table('standards').delete().neq('id', 0).execute()
        logger.warning("Deleted all standards and activity tags")
        return jsonify({"success": True})
    except Exception as e:
        return error_response(e, "Delete standards")


@standards_bp.route('/api/standards/seed', methods=['POST'])
def seed_standards():
    try:
        with open(STANDARDS_SEED_FILE, 'r', encoding='utf-8') as f:
            rows = seed_rows(json.load(f))
        if not rows:
            return jsonify({"error": "No standards found in data file"}), 400

        counts = _save_standards(get_supabase(), rows)
        logger.info("Seeded standards: %s", counts)
        return jsonify({
            "success": True,
            "count": counts['inserted'] + counts['updated'],
            **counts,
            "subjects": list(SUBJECT_MAP),
        })
    except Exception as e:
        return error_response(e, "Seed standards")


@standards_bp.route('/api/standards/upload', methods=['POST'])
def upload_standards():
    """
    Add standards for one subject and grade band.
    Body: subject, grade_band, and either `standards` (a list of
    {code, description, strand}) or `text` to be parsed by the AI.
    """
    try:
        data = json_body()
        subject = text_value(data.get('subject'))
        grade_band = data.get('grade_band')
        grade_band = str(grade_band) if isinstance(grade_band, int) else text_value(grade_band)
        if not subject:
            return jsonify({"error": "subject is required"}), 400
        if not grade_band:
            return jsonify({"error": "grade_band is required"}), 400

        db = get_supabase()
        if isinstance(data.get('standards'), list):
            items = data['standards']
        elif text_value(data.get('text')):
            items, error = parse_standards_text(request_provider(db), data['text'], subject, grade_band)
            if error:
                return jsonify({"error": error}), 400 if error.startswith('No standards') else 500
        else:
            return jsonify({"error": "standards (list) or text is required"}), 400

        rows = _standard_rows(items, subject, grade_band)
        if not rows:
            return jsonify({"error": "No valid standards provided (each needs code and description)"}), 400

        counts = _save_standards(db, rows)
        return jsonify({
            "success": True,
            "parsed": len(rows),
            **counts,
            "standards": [{k: r[k] for k in ('code', 'description', 'strand')} for r in rows],
        })
    except Exception as e:
        return error_response(e, "Upload standards")


@standards_bp.route('/api/standards/coverage', methods=['GET'])
def standards_coverage():
    try:
        db = get_supabase()
        standards = db.table('standards').select('*').order('code').execute().data or []
        coverage = compute_coverage(load_classes(db), standards, load_hits(db))
        return jsonify({"classes": coverage, "stale_after_days": STALE_STANDARD_DAYS})
    except Exception as e:
        return error_response(e, "Standards coverage")


@standards_bp.route('/api/standards/detail', methods=['GET'])
def standard_detail():
    """One standard with every activity tagged with it, newest first."""
    try:
        code = request.args.get('code')
        if not code:
            return jsonify({"error": "code parameter is required"}), 400

        db = get_supabase()
        result = db.table('standards').select('id, code, description, strand, subject, grade_band') \
            .eq('code', code).limit(1).execute()
        if not result.data:
            return jsonify({"error": "Standard not found"}), 404
        standard = result.data[0]

        links = db.table('activity_standards').select('activity_id').eq('standard_id', standard['id']).execute().data or []
        activities = []
        if links:
            rows = db.table('activities').select('id, title, date, class_id, lesson_plan_id') \
                .in_('id', [link['activity_id'] for link in links]).execute().data or []
            activities = [{
                "id": a['id'],
                "title": a['title'],
                "date": a.get('date'),
                "className": a.get('class_name') or 'Unknown',
                "lesson_plan_id": a.get('lesson_plan_id'),
            } for a in attach_classes(db, rows)]
            dated = sorted((a for a in activities if a['date']), key=lambda a: a['date'], reverse=True)
            activities = dated + [a for a in activities if not a['date']]

        return jsonify({**standard, "hit_count": len(activities), "activities": activities})

    except Exception as e:
        return error_response(e, "Standard detail")
