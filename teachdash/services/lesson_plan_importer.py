"""
Import a weekly lesson plan from a Word (.docx) document.

Text comes out of the document with mammoth (HTML keeps the table and
heading structure that marks days and classes); python-docx paragraphs and
tables are the fallback when mammoth finds almost nothing. The model then
turns the text into days and activities.
"""
import io
import logging

import mammoth
from docx import Document

from .ai_client import AIGenerationError
from .json_repair import JSONRepairError
from .lesson_plan_generator import clean_days
from .school_calendar import DAY_NAMES, date_for_day_name

logger = logging.getLogger(__name__)

DOCX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'

IMPORT_SYSTEM_PROMPT = """You are a lesson plan document parser for a high school English and French teacher.

Parse this lesson plan document. Extract activities organized by day (Monday-Friday) and class.

The teacher typically teaches these classes: {class_names}.
- Look for mentions of class names, period numbers, or subject headings
- Match activities to the correct class based on context clues
- If a class name is ambiguous, use your best judgment based on the content (French activities for French class, etc.)

Return ONLY valid JSON in this exact format:
{{
  "days": [
    {{
      "date": "YYYY-MM-DD",
      "day_name": "Monday",
      "activities": [
        {{
          "class_name": "English-1",
          "title": "Short activity title (3-8 words)",
          "description": "Brief description of the activity (1-2 sentences)",
          "activity_type": "lesson|game|discussion|writing|assessment|warmup|review|project|homework"
        }}
      ]
    }}
  ]
}}

RULES:
- Extract every concrete activity mentioned in the document
- Keep titles concise (3-8 words)
- Keep descriptions to 1-2 sentences
- Use the correct activity_type based on the nature of the activity
- If a specific date isn't in the document, use the provided week dates
- If a class is not mentioned, omit it for that day
- Do NOT invent activities that aren't in the document
- Preserve the original intent and content of each activity"""


class DocumentReadError(Exception):
    """The upload could not be read as a Word document."""


def is_docx_upload(filename: str, mimetype: str) -> bool:
    return (filename or '').lower().endswith('.docx') or 'wordprocessingml' in (mimetype or '')


def _python_docx_text(data: bytes) -> str:
    doc = Document(io.BytesIO(data))
    parts = [p.text for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(' | '.join(cells))
    return '\n'.join(parts)


def extract_docx_text(data: bytes) -> str:
    """
    Pull readable text out of a .docx.

    Raises:
        DocumentReadError: unreadable file, or fewer than 10 characters of text
    """
    try:
        html = mammoth.convert_to_html(io.BytesIO(data)).value
        text = html
        if not text or len(text.strip()) < 20:
            text = mammoth.extract_raw_text(io.BytesIO(data)).value
        if not text or len(text.strip()) < 20:
            text = _python_docx_text(data)
    except Exception as e:
        logger.warning("Failed to read Word document: %s", e)
        raise DocumentReadError(f"Failed to read Word document: {e}") from e

    if not text or len(text.strip()) < 10:
        raise DocumentReadError("Could not extract text from the document. The file may be empty or corrupted.")
    return text


def import_lesson_plan_docx(provider, text: str, week: list, class_names: list = None):
    """
    Parse extracted document text into {"days": [...]}.

    Args:
        provider: AIProvider for this request
        text: document text from extract_docx_text
        week: Mon-Fri ISO dates for the plan's week
        class_names: names of the teacher's classes, for the prompt

    Returns:
        (result, error)
    """
    date_map = ', '.join(f"{DAY_NAMES[i]}: {d}" for i, d in enumerate(week))
    user_prompt = (
        f"WEEK DATES: {date_map}\n\n"
        f"LESSON PLAN DOCUMENT CONTENT:\n{text}\n\n"
        "Parse this lesson plan document into structured activities. Output ONLY valid JSON."
    )
    system = IMPORT_SYSTEM_PROMPT.format(
        class_names=', '.join(class_names) if class_names else 'English-1, English-2, and French-1')

    try:
        result = provider.generate_json(system, user_prompt, temperature=0.3, max_tokens=4000)
    except (JSONRepairError, AIGenerationError) as e:
        return None, f"Failed to parse lesson plan: {e}"

    days = result.get('days')
    if not isinstance(days, list):
        return None, "Failed to parse lesson plan: Invalid response structure: missing days array"

    result['days'] = clean_days(days)
    for day in result['days']:
        if not day.get('date') and day.get('day_name'):
            day['date'] = date_for_day_name(day['day_name'], week)
    return result, None
