"""
SubDash: a read-only packet for a substitute teacher covering one day.

The snapshot is built once and stored as JSON on the plan row, so later
edits to activities or the classroom profile don't change a packet that
has already been shared.
"""
import logging
import secrets

from ..db import get_bellringer, load_prompts, load_profile, load_settings, now_iso

logger = logging.getLogger(__name__)

SHARE_TOKEN_BYTES = 16
PLAN_STATUSES = ('draft', 'shared')


def new_share_token() -> str:
    return secrets.token_urlsafe(SHARE_TOKEN_BYTES)


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _bellringer_section(db, date: str, base_url: str):
    bellringer = get_bellringer(db, date)
    if not bellringer:
        return None

    prompts = [{"type": p.get('journal_type') or 'prompt', "prompt": p.get('journal_prompt') or ''}
               for p in load_prompts(db, bellringer['id'])]
    prompts = [p for p in prompts if p['prompt']]
    if not prompts and bellringer.get('journal_prompt'):
        prompts = [{"type": bellringer.get('journal_type') or 'prompt', "prompt": bellringer['journal_prompt']}]

    choices = [bellringer.get(f'act_choice_{letter}') for letter in 'abcd']
    return {
        "display_url": f"{base_url}/display/{date}",
        "prompts": prompts,
        "act_question": bellringer.get('act_question'),
        "act_choices": [c for c in choices if c],
        "act_correct": bellringer.get('act_correct_answer'),
        "act_explanation": bellringer.get('act_explanation'),
    }


def _periods(schedule: list, classes: list, activities_by_class: dict) -> list:
    """One entry per schedule row; without a saved schedule, one per class."""
    def instructions(class_id):
        return [{
            "title": a.get('title'),
            "description": a.get('description'),
            "activity_type": a.get('activity_type'),
            "material_file_path": a.get('material_file_path'),
        } for a in activities_by_class.get(class_id, [])]

    if schedule:
        return [{
            "period": entry.get('period'),
            "time": entry.get('time'),
            "class_name": entry.get('class_name'),
            "instructions": instructions(entry.get('class_id')) if entry.get('class_id') else [],
        } for entry in schedule]

    return [{
        "period": cls.get('periods'),
        "time": None,
        "class_name": cls['name'],
        "instructions": instructions(cls['id']),
    } for cls in classes]


def build_snapshot(db, date: str, custom_notes: str = None, media_ids: list = None,
                   base_url: str = '') -> dict:
    """Gather profile, schedule, activities, bellringer and media for `date`."""
    profile = load_profile(db)
    settings = load_settings(db)
    classes = db.table('classes').select('*').order('id').execute().data or []

    activities = db.table('activities').select('*').eq('date', date) \
        .order('class_id').order('sort_order').execute().data or []
    by_class = {}
    for activity in activities:
        by_class.setdefault(activity.get('class_id'), []).append(activity)

    media = []
    if media_ids:
        rows = db.table('media_library').select('*').in_('id', media_ids).execute().data or []
        media = [{
            "id": m['id'],
            "name": m.get('name'),
            "file_path": m.get('file_path'),
            "url": m.get('url'),
            "media_type": m.get('media_type'),
        } for m in rows]

    schedule = _as_list(profile.get('schedule_json'))

    snapshot = {
        "date": date,
        "teacher_name": settings.get('teacher_name') or 'Teacher',
        "school_name": settings.get('school_name') or 'School',
        "room_number": profile.get('room_number') or '',
        "office_phone": profile.get('office_phone') or '',
        "sub_name": None,
        "sub_contact": None,
        "custom_notes": custom_notes,
        "schedule": schedule,
        "periods": _periods(schedule, classes, by_class),
        "bellringer": _bellringer_section(db, date, base_url),
        "management_notes": profile.get('management_notes') or '',
        "behavior_policy": profile.get('behavior_policy') or '',
        "seating_chart_urls": _as_list(profile.get('seating_chart_urls')),
        "emergency_contacts": profile.get('emergency_contacts') or '',
        "standing_instructions": profile.get('standing_instructions') or '',
        "backup_activities": _as_list(profile.get('default_backup_activities')),
        "media": media,
        "generated_at": now_iso(),
    }
    logger.info("Built SubDash snapshot for %s (%d activities, %d media)", date, len(activities), len(media))
    return snapshot
