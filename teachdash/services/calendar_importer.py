"""
School calendar import.

A district calendar PDF goes to the model as a document part and comes back
as one event per date. The bundled seed file covers the current school year.
Both paths skip events already stored under the same date and title.
"""
import json
import logging

from .ai_client import AIGenerationError
from .json_repair import JSONRepairError
from .school_calendar import is_iso_date

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = 'application/pdf'

CALENDAR_PARSE_PROMPT = """You are a school calendar parser. Parse this school calendar document and extract all dates with events.

Return ONLY valid JSON:
{
  "events": [
    {"date": "YYYY-MM-DD", "event_type": "holiday|break|testing|assembly|school_day|custom", "title": "Event name"}
  ]
}

RULES:
- Extract EVERY date with a meaningful event
- Event types:
  - "holiday" = no school (Christmas, Thanksgiving, MLK Day, etc.)
  - "break" = multi-day no school (Spring Break, Fall Break, etc.)
  - "testing" = standardized testing days (ACT, state tests, etc.)
  - "assembly" = school assemblies, pep rallies, etc.
  - "school_day" = first and last day of school, regular days if listed
  - "custom" = anything else (parent-teacher conferences, early dismissal, etc.)
- For date ranges (e.g. "Spring Break March 10-14"), create a separate entry for each date
- If a year is ambiguous, assume the current or upcoming school year
- Skip vague entries that have no concrete date
- Keep event titles concise but descriptive"""


def normalize_event_type(value) -> str:
    """Map the model's event type onto the stored set; unknown values become 'custom'."""
    lower = value.strip().lower() if isinstance(value, str) else ''
    if 'holiday' in lower:
        return 'holiday'
    if 'break' in lower:
        return 'break'
    if 'test' in lower:
        return 'testing'
    if 'assembl' in lower or 'rally' in lower:
        return 'assembly'
    if lower in ('school_day', 'school day'):
        return 'school_day'
    return 'custom'


def event_key(event: dict) -> str:
    return f"{event.get('date')}::{event.get('title')}"


def clean_events(raw_events, notes: str = None) -> tuple:
    """
    Keep events with an ISO date and a title. Returns (events, skipped).

    Repeats of the same date and title inside the batch are dropped.
    """
    if not isinstance(raw_events, list):
        return [], 0
    events, seen, skipped = [], set(), 0
    for raw in raw_events:
        if not isinstance(raw, dict):
            skipped += 1
            continue
        title = raw.get('title').strip() if isinstance(raw.get('title'), str) else ''
        if not title or not is_iso_date(raw.get('date')):
            skipped += 1
            continue
        event = {
            "date": raw['date'].strip(),
            "event_type": normalize_event_type(raw.get('event_type')),
            "title": title,
            "notes": (raw.get('notes') if isinstance(raw.get('notes'), str) else None) or notes,
        }
        if event_key(event) in seen:
            continue
        seen.add(event_key(event))
        events.append(event)
    return events, skipped


def new_events(events: list, existing: list) -> list:
    """Events whose date and title are not already stored."""
    stored = {event_key(e) for e in existing}
    return [e for e in events if event_key(e) not in stored]


def parse_calendar_pdf(provider, pdf_b64: str, filename: str):
    """PDF (base64) -> cleaned event rows. Returns ((events, skipped), error)."""
    user_prompt = ("Parse this school calendar PDF. Extract all dates with events. "
                   "Respond with ONLY valid JSON.")
    try:
        result = provider.generate_json_from_image(
            CALENDAR_PARSE_PROMPT, user_prompt, pdf_b64, PDF_MIME_TYPE,
            temperature=0.2, max_tokens=8000)
    except (JSONRepairError, AIGenerationError) as e:
        return None, f"Failed to parse calendar PDF: {e}"

    events, skipped = clean_events(result.get('events'), notes=f"Imported from: {filename}")
    if not events:
        return None, "No calendar events could be extracted from the PDF"
    logger.info("Parsed %d calendar events from %s (%d skipped)", len(events), filename, skipped)
    return (events, skipped), None


def load_seed_events(path) -> list:
    with open(path, 'r', encoding='utf-8') as f:
        events, skipped = clean_events(json.load(f))
    if skipped:
        logger.warning("Calendar seed file has %d unusable rows", skipped)
    return events
