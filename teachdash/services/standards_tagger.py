"""
Standards tagging and coverage.

Tagging narrows the standards table to the class's subject and grade band
first, then lets the model choose among those candidates only. Codes the
model invents are dropped.
"""
import logging
import re
from datetime import date, timedelta

from ..config import STALE_STANDARD_DAYS
from ..db import save_activity_standards
from .ai_client import AIGenerationError
from .json_repair import JSONRepairError

logger = logging.getLogger(__name__)

MAX_GAPS_PER_CLASS = 15

# Keys in the seed file -> (subject, grade_band) rows in the standards table
SUBJECT_MAP = {
    'English 9': ('English', '9'),
    'English 10': ('English', '10'),
    'French 1 (World Languages - Novice)': ('French', '1'),
}

TAGGER_SYSTEM_PROMPT = """You are an Oklahoma academic standards tagger. Given an activity and a list of available standards, pick the 1-3 most relevant standard codes.

Rules:
- Pick 1-3 codes that BEST match the activity
- ONLY return codes from the provided list
- Keep reasoning to one short sentence

Respond with ONLY valid JSON. Example:
{"codes": ["9.3.R.1"], "reasoning": "Matches literary analysis"}"""

SUGGEST_SYSTEM_PROMPT = """You are a standards alignment advisor for a high school English and French teacher in Oklahoma.

You will receive:
1. The teacher's current lesson plan activities for the week (with any existing standard tags)
2. A list of "gap" standards that have never been covered or haven't been covered in 4+ weeks

Your job is to suggest 3-5 specific, actionable modifications or additions to the existing activities that would address the gap standards. Be practical and concrete: suggest specific activities, discussion prompts, writing assignments, or warm-ups that could be added to the week.

Format your response as a readable message (not JSON). Use bullet points. For each suggestion:
- Name the gap standard code and what it covers
- Suggest a specific activity modification or addition
- Indicate which day/class it could fit into

Keep it concise and teacher-friendly. Prioritize never-hit standards over stale ones."""

PARSE_STANDARDS_PROMPT = """You are a standards parser. Given freeform text containing academic standards (pasted from a document, PDF, or spreadsheet), extract each standard into structured data.

Rules:
- Extract the standard code/identifier (e.g., "9.3.R.1", "FL.1.C.2")
- Extract the full description text
- Identify the strand/category if present (e.g., "Reading", "Writing", "Communication")
- If codes aren't clearly formatted, infer a reasonable code pattern
- Skip headers, section labels, and non-standard text
- Return ALL standards found in the text

Respond with ONLY valid JSON:
{"standards": [{"code": "9.3.R.1", "description": "Full description text", "strand": "Reading"}]}"""

_FIRST_NUMBER = re.compile(r'(\d+)')


def class_to_subject(class_name: str) -> str:
    return 'French' if 'french' in (class_name or '').lower() else 'English'


def class_to_grade_band(class_name: str):
    """'English-1' -> '9', 'English-2' -> '10', 'French-1' -> '1', 'English 11' -> '11'."""
    lower = (class_name or '').lower()
    if 'french' in lower:
        return '1'
    if any(k in lower for k in ('english-1', 'english 1', 'eng 1')) and not lower.rstrip().endswith(('10', '11', '12')):
        return '9'
    if any(k in lower for k in ('english-2', 'english 2', 'eng 2')):
        return '10'
    match = _FIRST_NUMBER.search(class_name or '')
    if match:
        num = int(match.group(1))
        if num <= 2:
            return '9' if num == 1 else '10'
        return str(num)
    return None


def candidate_standards(db, class_name: str) -> list:
    """Standards for the class's subject (and grade band when one can be inferred)."""
    subject = class_to_subject(class_name)
    grade_band = class_to_grade_band(class_name)
    query = db.table('standards').select('id, code, description, strand').eq('subject', subject)
    if grade_band:
        query = query.eq('grade_band', grade_band)
    return query.order('code').execute().data or []


def tag_activity(provider, activity: dict, candidates: list) -> dict:
    """
    Ask the model for 1-3 codes out of `candidates`.

    Returns:
        {"codes": [...], "reasoning": str, "error": str or None}.
        `codes` is always a subset of the candidate codes.
    """
    class_name = activity.get('class_name') or 'Unknown Class'
    if not candidates:
        return {"codes": [], "reasoning": "",
                "error": f"No standards found for {class_to_subject(class_name)} grade band "
                         f"{class_to_grade_band(class_name)}. Seed standards first."}

    standards_list = '\n'.join(
        f"{s['code']} [{s.get('strand') or 'General'}]: {s.get('description', '')}" for s in candidates)
    user_prompt = (
        "ACTIVITY:\n"
        f"Title: {activity.get('title')}\n"
        f"Description: {activity.get('description') or '(no description)'}\n"
        f"Class: {class_name}\n\n"
        f"AVAILABLE STANDARDS ({class_to_subject(class_name)} - Grade {class_to_grade_band(class_name)}):\n"
        f"{standards_list}\n\n"
        "Select the 1-3 most relevant standard codes. Respond with ONLY valid JSON."
    )

    try:
        result = provider.generate_json(TAGGER_SYSTEM_PROMPT, user_prompt, temperature=0.3, max_tokens=1024)
    except (JSONRepairError, AIGenerationError) as e:
        return {"codes": [], "reasoning": "", "error": f"Standards tagging failed: {e}"}

    codes = result.get('codes') or []
    if isinstance(codes, str):
        codes = [codes]
    reasoning = result.get('reasoning') or ''

    valid = {s['code'] for s in candidates}
    filtered = []
    for code in codes:
        code = str(code).strip()
        if code in valid and code not in filtered:
            filtered.append(code)

    if not filtered and codes:
        logger.warning("Tagger returned unknown codes: %s", codes)
        return {"codes": [], "reasoning": reasoning,
                "error": f"AI returned codes that don't match any known standards: {', '.join(map(str, codes))}"}
    return {"codes": filtered[:3], "reasoning": reasoning, "error": None}


def tag_and_save(db, provider, activity: dict, candidates_cache: dict = None, replace: bool = False) -> dict:
    """
    Tag one activity (which must carry `class_name`) and store the links as
    tagged_by='ai'. With replace=True the activity's existing links are
    cleared first, but only when the model returned at least one code.
    """
    class_name = activity.get('class_name') or ''
    cache = candidates_cache if candidates_cache is not None else {}
    if class_name not in cache:
        cache[class_name] = candidate_standards(db, class_name)
    candidates = cache[class_name]

    result = tag_activity(provider, activity, candidates)
    if result['codes']:
        ids_by_code = {s['code']: s['id'] for s in candidates}
        if replace:
            db.table('activity_standards').delete().eq('activity_id', activity['id']).execute()
        save_activity_standards(db, activity['id'], [ids_by_code[c] for c in result['codes']], tagged_by='ai')
    return {"activity_id": activity['id'], **result}


def load_hits(db) -> list:
    """Every activity/standard link with the activity's class and date."""
    links = db.table('activity_standards').select('activity_id, standard_id').execute().data or []
    if not links:
        return []
    activity_ids = list({link['activity_id'] for link in links})
    activities = db.table('activities').select('id, class_id, date').in_('id', activity_ids).execute().data or []
    by_id = {a['id']: a for a in activities}
    hits = []
    for link in links:
        activity = by_id.get(link['activity_id'])
        if activity:
            hits.append({"standard_id": link['standard_id'], "class_id": activity['class_id'],
                         "date": activity.get('date')})
    return hits


def compute_coverage(classes: list, standards: list, hits: list, today: date = None) -> list:
    """
    Per-class coverage.

    Args:
        classes: class rows
        standards: standard rows (id, code, description, strand, subject, grade_band)
        hits: one {"standard_id", "class_id", "date"} per activity/standard link
        today: reference date for the stale cutoff

    A standard is a gap for a class when it was never hit, or last hit more
    than STALE_STANDARD_DAYS ago. Each class only sees the standards for its
    own subject and grade band, or every standard when none match.
    """
    today = today or date.today()
    cutoff = (today - timedelta(days=STALE_STANDARD_DAYS)).isoformat()

    coverage = {}
    for hit in hits:
        key = (hit['class_id'], hit['standard_id'])
        entry = coverage.setdefault(key, {"hit_count": 0, "last_hit_date": None})
        entry['hit_count'] += 1
        hit_date = hit.get('date')
        if hit_date and (entry['last_hit_date'] is None or hit_date > entry['last_hit_date']):
            entry['last_hit_date'] = hit_date

    results = []
    for cls in classes:
        subject = class_to_subject(cls['name'])
        band = class_to_grade_band(cls['name'])
        relevant = [s for s in standards
                    if s.get('subject') == subject and (band is None or s.get('grade_band') == band)]
        if not relevant:
            relevant = standards

        rows = []
        for std in relevant:
            entry = coverage.get((cls['id'], std['id']), {"hit_count": 0, "last_hit_date": None})
            last = entry['last_hit_date']
            is_gap = entry['hit_count'] == 0 or (last is not None and last < cutoff)
            rows.append({
                "id": std['id'],
                "code": std['code'],
                "description": std.get('description'),
                "strand": std.get('strand'),
                "subject": std.get('subject'),
                "grade_band": std.get('grade_band'),
                "hit_count": entry['hit_count'],
                "last_hit_date": last,
                "is_gap": is_gap,
            })

        covered = sum(1 for r in rows if r['hit_count'] > 0)
        results.append({
            "id": cls['id'],
            "name": cls['name'],
            "color": cls.get('color'),
            "total_standards": len(rows),
            "covered_standards": covered,
            "coverage_pct": round(covered * 100 / len(rows)) if rows else 0,
            "standards": rows,
        })
    return results


def format_gap_lines(coverage: list) -> list:
    lines = []
    for cls in coverage:
        gaps = []
        for std in cls['standards']:
            if not std['is_gap']:
                continue
            label = 'NEVER COVERED' if std['hit_count'] == 0 else f"stale (last: {std['last_hit_date']})"
            gaps.append(f"  {std['code']} [{label}]: {std['description']}")
        if gaps:
            lines.append(f"{cls['name']}:\n" + '\n'.join(gaps[:MAX_GAPS_PER_CLASS]))
            if len(gaps) > MAX_GAPS_PER_CLASS:
                lines.append(f"  ... and {len(gaps) - MAX_GAPS_PER_CLASS} more gaps")
    return lines


def suggest_for_gaps(provider, week_of: str, activity_lines: list, gap_lines: list):
    """Chat-mode suggestions for covering gap standards. Returns (text, error)."""
    user_prompt = (
        f"CURRENT WEEK: {week_of}\n\n"
        f"CURRENT ACTIVITIES:\n{chr(10).join(activity_lines)}\n\n"
        f"GAP STANDARDS BY CLASS:\n{chr(10).join(gap_lines)}\n\n"
        "Please suggest 3-5 specific modifications or additions to address the most critical gaps."
    )
    try:
        text = provider.chat(SUGGEST_SYSTEM_PROMPT, [{"role": "user", "content": user_prompt}],
                             temperature=0.7, max_tokens=2000)
    except AIGenerationError as e:
        return None, f"Failed to generate suggestions: {e}"
    except Exception as e:
        logger.exception("Standards suggestion chat failed")
        return None, f"Failed to generate suggestions: {e}"
    return text, None


def parse_standards_text(provider, text: str, subject: str, grade_band: str):
    """Free-form pasted standards -> [{"code", "description", "strand"}]. Returns (list, error)."""
    user_prompt = (
        f"Parse the following text and extract all academic standards. The subject is \"{subject}\" "
        f"and the grade band is \"{grade_band}\".\n\nTEXT:\n{text.strip()}\n\n"
        "Extract every standard into structured JSON. Respond with ONLY valid JSON."
    )
    try:
        result = provider.generate_json(PARSE_STANDARDS_PROMPT, user_prompt, temperature=0.2, max_tokens=4000)
    except (JSONRepairError, AIGenerationError) as e:
        return None, f"Failed to parse standards: {e}"
    parsed = [s for s in (result.get('standards') or []) if isinstance(s, dict) and s.get('code')]
    if not parsed:
        return None, "No standards could be parsed from the text"
    return parsed, None


def seed_rows(seed_data: dict) -> list:
    """Flatten the seed file into standards rows."""
    rows = []
    for key, standards in seed_data.items():
        mapping = SUBJECT_MAP.get(key)
        if not mapping:
            continue
        subject, grade_band = mapping
        for s in standards:
            rows.append({
                "subject": subject,
                "grade_band": grade_band,
                "code": s['id'],
                "description": s['description'],
                "strand": s.get('category') or None,
            })
    return rows
