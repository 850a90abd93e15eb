"""
Supabase access for TeachDash.

The client is created lazily on first use so the app (and the tests) can
import every module without credentials. Joins are done here in Python
instead of PostgREST embedded selects to keep each query a single table.
"""
import json
import logging
from datetime import datetime, timezone

from supabase import create_client, Client

from .config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)

supabase: Client = None


def get_supabase() -> Client:
    """Get or create Supabase client."""
    global supabase
    if supabase is None:
        if not SUPABASE_URL or not SUPABASE_KEY:
            raise Exception("Supabase credentials not configured. Check SUPABASE_URL and SUPABASE_SERVICE_KEY in .env")
        supabase = create_client(SUPABASE_URL, SUPABASE_KEY)
    return supabase


def set_supabase(client):
    """Swap the shared client (tests install an in-memory fake here)."""
    global supabase
    supabase = client


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def first_row(result):
    """Return the first row of a query result, or None."""
    if result is None or not result.data:
        return None
    return result.data[0]


def get_row(db, table: str, row_id, columns: str = '*'):
    return first_row(db.table(table).select(columns).eq('id', row_id).limit(1).execute())


# ============ Settings ============

def load_settings(db) -> dict:
    """All settings rows as a flat {key: value} map."""
    result = db.table('settings').select('key, value').execute()
    return {row['key']: row['value'] for row in (result.data or [])}


def upsert_settings(db, values: dict):
    rows = []
    for key, value in values.items():
        if value is not None and not isinstance(value, str):
            value = json.dumps(value)
        rows.append({"key": key, "value": value})
    if rows:
        db.table('settings').upsert(rows, on_conflict='key').execute()


# ============ Classes ============

def load_classes(db) -> list:
    return db.table('classes').select('*').order('name').execute().data or []


def attach_classes(db, rows: list) -> list:
    """Add class_name / class_color to each row that has a class_id."""
    class_ids = list({r['class_id'] for r in rows if r.get('class_id')})
    if not class_ids:
        return rows
    classes = db.table('classes').select('id, name, color').in_('id', class_ids).execute().data or []
    by_id = {c['id']: c for c in classes}
    for row in rows:
        cls = by_id.get(row.get('class_id'))
        row['class_name'] = cls['name'] if cls else None
        row['class_color'] = cls.get('color') if cls else None
    return rows


# ============ Standards ============

def attach_standards(db, activities: list) -> list:
    """Add a `standards` list (code, description, tagged_by) to each activity."""
    for activity in activities:
        activity['standards'] = []
    ids = [a['id'] for a in activities if a.get('id') is not None]
    if not ids:
        return activities

    links = db.table('activity_standards').select('activity_id, standard_id, tagged_by').in_('activity_id', ids).execute().data or []
    if not links:
        return activities
    standard_ids = list({link['standard_id'] for link in links})
    standards = db.table('standards').select('id, code, description, strand').in_('id', standard_ids).execute().data or []
    by_id = {s['id']: s for s in standards}

    by_activity = {a['id']: a for a in activities}
    for link in links:
        standard = by_id.get(link['standard_id'])
        activity = by_activity.get(link['activity_id'])
        if standard and activity is not None:
            activity['standards'].append({**standard, "tagged_by": link.get('tagged_by')})
    return activities


def save_activity_standards(db, activity_id, standard_ids, tagged_by='ai'):
    """Link standards to an activity; an existing (activity, standard) pair is left alone."""
    if not standard_ids:
        return
    rows = [{"activity_id": activity_id, "standard_id": sid, "tagged_by": tagged_by} for sid in standard_ids]
    db.table('activity_standards').upsert(rows, on_conflict='activity_id,standard_id', ignore_duplicates=True).execute()


# ============ Bellringers ============

def get_bellringer(db, date: str):
    return first_row(db.table('bellringers').select('*').eq('date', date).limit(1).execute())


def get_or_create_bellringer(db, date: str) -> dict:
    existing = get_bellringer(db, date)
    if existing:
        return existing
    result = db.table('bellringers').insert({"date": date, "status": "draft"}).execute()
    logger.info("Created bellringer row for %s", date)
    return result.data[0]


def load_prompts(db, bellringer_id) -> list:
    result = db.table('bellringer_prompts').select('*').eq('bellringer_id', bellringer_id).order('slot').execute()
    return result.data or []


# ============ Classroom profile ============

def load_profile(db) -> dict:
    """Classroom profile rows, JSON values decoded where possible."""
    result = db.table('classroom_profiles').select('key, value').execute()
    profile = {}
    for row in result.data or []:
        value = row['value']
        if isinstance(value, str) and value[:1] in ('{', '['):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                pass
        profile[row['key']] = value
    return profile
