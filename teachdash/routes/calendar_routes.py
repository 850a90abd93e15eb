"""
Calendar API routes for TeachDash.
Tasks (quick-entry to-dos), calendar events with CSV, PDF and seed-file
imports, and the per-day view that pulls events, tasks, the bellringer and
activities together.
"""
import base64
import csv
import io
import logging

from flask import Blueprint, request, jsonify

from ..config import SCHOOL_CALENDAR_FILE
from ..db import (
    get_supabase, get_row, get_bellringer, load_classes, load_prompts, load_settings,
    attach_classes, now_iso,
)
from ..services.calendar_importer import load_seed_events, new_events, parse_calendar_pdf
from ..services.class_matcher import load_rules, match_class_shortcut
from ..services.school_calendar import is_iso_date, parse_natural_date
from .common import error_response, json_body, request_provider, text_value

logger = logging.getLogger(__name__)

calendar_bp = Blueprint('calendar', __name__)

DONE_TASKS_SHOWN = 10


# ============ Tasks ============

@calendar_bp.route('/api/tasks', methods=['GET'])
def list_tasks():
    """Open tasks (soonest due first, undated last) and the last few completed."""
    try:
        db = get_supabase()
        todo = db.table('tasks').select('*').eq('is_done', False).order('created_at', desc=True).execute().data or []
        todo.sort(key=lambda t: (t.get('due_date') is None, t.get('due_date') or ''))

        done = db.table('tasks').select('*').eq('is_done', True) \
            .order('completed_at', desc=True).limit(DONE_TASKS_SHOWN).execute().data or []
        return jsonify({"todo": todo, "done": done})
    except Exception as e:
        return error_response(e, "List tasks")


@calendar_bp.route('/api/tasks', methods=['POST'])
def create_task():
    """
    Add a task. `due_date` may be ISO or natural ("fri", "tmrw", "3/14");
    `class` may be a shortcut like "e1" or "fr".
    """
    try:
        data = json_body()
        text = data.get('text')
        if not isinstance(text, str) or not text.strip():
            return jsonify({"error": "text is required"}), 400

        row = {"text": text.strip(), "is_done": False}
        if data.get('due_date'):
            due = parse_natural_date(str(data['due_date']))
            if not due:
                return jsonify({"error": f"Could not understand due date '{data['due_date']}'"}), 400
            row['due_date'] = due

        db = get_supabase()
        if data.get('class'):
            matched = match_class_shortcut(data['class'], load_classes(db), load_rules(load_settings(db)))
            row['class_id'] = matched['id'] if matched else None

        result = db.table('tasks').insert(row).execute()
        return jsonify(result.data[0]), 201
    except Exception as e:
        return error_response(e, "Create task")


@calendar_bp.route('/api/tasks/<int:task_id>', methods=['PATCH'])
def update_task(task_id):
    """Edit text/due date, or toggle done (which stamps or clears completed_at)."""
    try:
        data = json_body()
        updates = {}
        if 'text' in data:
            text = text_value(data['text'])
            if not text:
                return jsonify({"error": "text cannot be empty"}), 400
            updates['text'] = text
        if 'due_date' in data:
            if data['due_date']:
                due = parse_natural_date(str(data['due_date']))
                if not due:
                    return jsonify({"error": f"Could not understand due date '{data['due_date']}'"}), 400
                updates['due_date'] = due
            else:
                updates['due_date'] = None
        if 'is_done' in data:
            updates['is_done'] = bool(data['is_done'])
            updates['completed_at'] = now_iso() if updates['is_done'] else None
        if not updates:
            return jsonify({"error": "No updatable fields provided"}), 400

        result = get_supabase().table('tasks').update(updates).eq('id', task_id).execute()
        if not result.data:
            return jsonify({"error": "Task not found"}), 404
        return jsonify(result.data[0])
    except Exception as e:
        return error_response(e, "Update task")


@calendar_bp.route('/api/tasks/<int:task_id>', methods=['DELETE'])
def delete_task(task_id):
    try:
        get_supabase().table('tasks').delete().eq('id', task_id).execute()
        return jsonify({"success": True})
    except Exception as e:
        return error_response(e, "Delete task")


# ============ Events ============

@calendar_bp.route('/api/calendar/events', methods=['GET'])
def list_events():
    try:
        query = get_supabase().table('calendar_events').select('*').order('date')
        start, end = request.args.get('start'), request.args.get('end')
        if start and end:
            query = query.gte('date', start).lte('date', end)
        return jsonify(query.execute().data or [])
    except Exception as e:
        return error_response(e, "List events")


@calendar_bp.route('/api/calendar/events', methods=['POST'])
def create_event():
    try:
        data = json_body()
        if not data.get('date') or not data.get('event_type') or not data.get('title'):
            return jsonify({"error": "date, event_type, and title are required"}), 400
        if not is_iso_date(data['date']):
            return jsonify({"error": "date must be YYYY-MM-DD"}), 400

        result = get_supabase().table('calendar_events').insert({
            "date": data['date'],
            "event_type": data['event_type'],
            "title": data['title'],
            "notes": data.get('notes'),
        }).execute()
        return jsonify(result.data[0]), 201
    except Exception as e:
        return error_response(e, "Create event")


@calendar_bp.route('/api/calendar/events/<int:event_id>', methods=['DELETE'])
def delete_event(event_id):
    try:
        db = get_supabase()
        if not get_row(db, 'calendar_events', event_id, 'id'):
            return jsonify({"error": "Event not found"}), 404
        db.table('calendar_events').delete().eq('id', event_id).execute()
        return jsonify({"success": True})
    except Exception as e:
        return error_response(e, "Delete event")


@calendar_bp.route('/api/calendar/import-csv', methods=['POST'])
def import_events_csv():
    """CSV columns: date, type or event_type, title, notes. Rows without a YYYY-MM-DD date are skipped."""
    try:
        upload = request.files.get('file')
        if upload is None:
            return jsonify({"error": "CSV file is required"}), 400

        text = upload.read().decode('utf-8-sig', errors='replace')
        reader = csv.DictReader(io.StringIO(text.strip()))
        events = []
        for raw in reader:
            row = {(k or '').strip().lower(): text_value(v) for k, v in raw.items()}
            if not is_iso_date(row.get('date')) or not (row.get('title') or row.get('event_type') or row.get('type')):
                continue
            events.append({
                "date": row['date'],
                "event_type": row.get('event_type') or row.get('type') or 'event',
                "title": row.get('title') or '',
                "notes": row.get('notes') or None,
            })

        if not events:
            return jsonify({"error": "No valid rows found. CSV must have columns: date, type/event_type, title, notes"}), 400

        get_supabase().table('calendar_events').insert(events).execute()
        logger.info("Imported %d calendar events from %s", len(events), upload.filename)
        return jsonify({"imported": len(events)}), 201
    except Exception as e:
        return error_response(e, "Import events CSV")


@calendar_bp.route('/api/calendar/import-pdf', methods=['POST'])
def import_events_pdf():
    """Multipart `file`: a district calendar PDF. The model turns it into dated, typed events."""
    try:
        upload = request.files.get('file')
        if upload is None:
            return jsonify({"error": "A PDF file is required"}), 400
        filename = upload.filename or ''
        if not filename.lower().endswith('.pdf') and 'pdf' not in (upload.mimetype or ''):
            return jsonify({"error": "Only PDF files are supported"}), 400
        data = upload.read()
        if not data:
            return jsonify({"error": "Uploaded PDF is empty"}), 400

        db = get_supabase()
        parsed, error = parse_calendar_pdf(request_provider(db), base64.b64encode(data).decode('ascii'), filename)
        if error:
            return jsonify({"error": error}), 400 if error.startswith('No calendar events') else 500
        parsed_events, skipped = parsed

        existing = db.table('calendar_events').select('date, title').execute().data or []
        events = new_events(parsed_events, existing)
        created = db.table('calendar_events').insert(events).execute().data if events else []
        logger.info("Imported %d calendar events from %s", len(events), filename)
        return jsonify({
            "events_created": len(events),
            "skipped": skipped,
            "duplicates": len(parsed_events) - len(events),
            "events": created or [],
        }), 201
    except Exception as e:
        return error_response(e, "Import events PDF")


@calendar_bp.route('/api/calendar/seed', methods=['POST'])
def seed_events():
    """Load the bundled school-year calendar, skipping events already stored by date and title."""
    try:
        db = get_supabase()
        existing = db.table('calendar_events').select('date, title').execute().data or []
        events = new_events(load_seed_events(SCHOOL_CALENDAR_FILE), existing)
        if not events:
            return jsonify({"message": "All school calendar events are already imported.", "seeded": 0})

        db.table('calendar_events').insert(events).execute()
        logger.info("Seeded %d school calendar events", len(events))
        return jsonify({"message": f"Imported {len(events)} school calendar events", "seeded": len(events)})
    except Exception as e:
        return error_response(e, "Seed calendar")


# ============ Day view ============

@calendar_bp.route('/api/day/<date>', methods=['GET'])
def day_view(date):
    try:
        if not is_iso_date(date):
            return jsonify({"error": "Invalid date format. Use YYYY-MM-DD."}), 400

        db = get_supabase()
        events = db.table('calendar_events').select('*').eq('date', date).order('id').execute().data or []
        tasks = db.table('tasks').select('*').eq('due_date', date).order('created_at', desc=True).execute().data or []
        unscheduled = db.table('tasks').select('*').is_('due_date', 'null').eq('is_done', False) \
            .order('created_at', desc=True).execute().data or []
        activities = db.table('activities').select('*').eq('date', date) \
            .order('class_id').order('sort_order').execute().data or []

        bellringer = get_bellringer(db, date)
        if bellringer:
            bellringer = {**bellringer, "prompts": load_prompts(db, bellringer['id'])}

        return jsonify({
            "date": date,
            "events": events,
            "tasks": tasks,
            "unscheduled_tasks": unscheduled,
            "bellringer": bellringer,
            "activities": attach_classes(db, activities),
        })
    except Exception as e:
        return error_response(e, "Day view")
