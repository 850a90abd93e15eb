"""
Weekly lesson planning: brainstorm chat, turning the chat into activities,
and regenerating a single activity.
"""
import logging

from .ai_client import AIGenerationError
from .json_repair import JSONRepairError
from .school_calendar import is_iso_date

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = [
    'lesson', 'game', 'discussion', 'writing', 'assessment',
    'warmup', 'review', 'project', 'homework', 'other',
]
MATERIAL_STATUSES = ['not_needed', 'pending', 'ready']

REGENERATE_HISTORY_MESSAGES = 6

BRAINSTORM_PROMPT = """You are a helpful AI assistant for a high school English and French teacher ({teacher_name}) at {school_name}.

You are helping them brainstorm and plan their week of lessons. Your role is to:
- Suggest creative activities, games, discussions, and lesson ideas
- Ask clarifying questions about what topics they're covering, what texts they're reading, etc.
- Offer variety: mix lectures, group work, games, writing exercises, discussions, and hands-on activities
- Consider pacing across the week (don't front-load everything)
- Be aware they teach both English and French classes
- Keep suggestions practical for a rural Oklahoma high school
- Be conversational and collaborative, not just listing things

IMPORTANT: Do NOT suggest bellringers, journal prompts, warm-ups, or daily openers. Bellringers are handled by a completely separate system. Focus ONLY on the main lesson activities, games, projects, assessments, and classwork.

When suggesting activities, think about:
- Engagement level (students should WANT to participate)
- Material prep needed (keep it realistic)
- Variety of activity types throughout the week
- Building on previous days' work
- Fun games like Jeopardy, relay races, Four Corners, vocabulary bingo, etc.

When you've discussed enough activities to fill a full week for each class, let the teacher know they can click the "Generate Plan" button at the top of the chat to populate their weekly grid automatically. Do NOT try to format activities into a structured plan yourself; the system does that automatically when they click the button.

Keep your responses concise but helpful. Ask follow-up questions to understand what they need."""

PARSE_SYSTEM_PROMPT = """You are a lesson plan parser. Given a brainstorm conversation between a teacher and an AI assistant, extract ALL planned activities and organize them by day and class.

Output ONLY valid JSON in this exact format:
{
  "days": [
    {
      "date": "YYYY-MM-DD",
      "activities": [
        {
          "class_id": <number>,
          "title": "Short activity title",
          "description": "Brief description of the activity",
          "activity_type": "lesson|game|discussion|writing|assessment|warmup|review|project|homework",
          "material_status": "not_needed|needs_material"
        }
      ]
    }
  ]
}

RULES:
- Extract every concrete activity mentioned in the conversation
- If a specific day isn't mentioned, distribute activities sensibly across the week
- Set material_status to "needs_material" for activities that need worksheets, handouts, slides, or game materials
- Set material_status to "not_needed" for discussions, reading aloud, verbal activities, etc.
- Use the correct class_id from the provided class list
- Keep titles concise (3-8 words)
- Keep descriptions to 1-2 sentences
- If the conversation is too vague to extract activities, return {"days": []} with empty days
- Do NOT invent activities that weren't discussed
- Do NOT include bellringers, journal prompts, warm-ups, or daily openers; those are handled by a separate system
- Each day should have at least an activity per class if discussed"""

REGENERATE_SYSTEM_PROMPT = """You are a creative lesson plan assistant for a high school teacher. Generate ONE alternative activity to replace an existing one.

Rules:
- Keep the same general slot (same class, same day)
- Suggest something DIFFERENT from the original activity
- Keep it practical for a high school classroom
- Do NOT suggest bellringers, journal prompts, warm-ups, or daily openers
- Keep the title concise (3-8 words)
- Keep the description to 1-2 sentences

Respond with ONLY valid JSON:
{"title": "Short activity title", "description": "Brief description", "activity_type": "lesson|game|discussion|writing|assessment|review|project|homework"}"""


def normalize_activity_type(value, default='lesson') -> str:
    value = value.strip().lower() if isinstance(value, str) else ''
    return value if value in ACTIVITY_TYPES else default


def normalize_material_status(value) -> str:
    """The parser says needs_material; the grid tracks it as pending until generated."""
    value = value.strip().lower() if isinstance(value, str) else ''
    if value == 'needs_material':
        return 'pending'
    return value if value in MATERIAL_STATUSES else 'not_needed'


def clean_days(days: list) -> list:
    """Keep only object-shaped days and activities. Bad dates become None; a missing activity list becomes []."""
    cleaned = []
    for day in days:
        if not isinstance(day, dict):
            continue
        if not is_iso_date(day.get('date')):
            day['date'] = None
        activities = day.get('activities')
        day['activities'] = [a for a in activities if isinstance(a, dict)] if isinstance(activities, list) else []
        cleaned.append(day)
    return cleaned


def _transcript(history, teacher_label='TEACHER', ai_label='AI') -> str:
    return '\n\n'.join(
        f"{teacher_label if m.get('role') == 'user' else ai_label}: {m.get('content', '')}"
        for m in history
    )


def brainstorm_with_ai(provider, history: list, context: dict):
    """
    Continue the planning chat.

    Args:
        provider: AIProvider for this request
        history: [{"role": "user"|"assistant", "content": str}, ...] ending with the teacher's message
        context: week_of, classes, existing_activities, teacher_name, school_name

    Returns:
        (reply_text, error)
    """
    context_lines = []
    if context.get('week_of'):
        context_lines.append(f"Planning for the week of: {context['week_of']}")
    classes = context.get('classes') or []
    if classes:
        names = ', '.join(f"{c['name']} ({c['periods']})" if c.get('periods') else c['name'] for c in classes)
        context_lines.append(f"Classes: {names}")
    if context.get('existing_activities'):
        context_lines.append(f"Already planned: {', '.join(context['existing_activities'])}")

    system = BRAINSTORM_PROMPT.format(
        teacher_name=context.get('teacher_name') or 'Teacher',
        school_name=context.get('school_name') or 'the school',
    )
    if context_lines:
        system += "\n\nCurrent context:\n" + '\n'.join(context_lines)

    try:
        return provider.chat(system, history, temperature=0.9, max_tokens=2000), None
    except AIGenerationError as e:
        return '', f"Brainstorm failed: {e}"
    except Exception as e:
        logger.exception("Brainstorm chat failed")
        return '', f"Brainstorm failed: {e}"


def parse_brainstorm_to_activities(provider, history: list, classes: list, week: list):
    """Turn the chat into {"days": [{"date", "activities": [...]}]}."""
    class_list = '\n'.join(f"ID {c['id']}: {c['name']}" for c in classes)
    user_prompt = (
        f"CLASSES:\n{class_list}\n\n"
        f"WEEK DATES (Mon-Fri): {', '.join(week)}\n\n"
        f"BRAINSTORM CONVERSATION:\n{_transcript(history)}\n\n"
        "Parse this conversation into structured activities. Output ONLY valid JSON."
    )

    try:
        result = provider.generate_json(PARSE_SYSTEM_PROMPT, user_prompt, temperature=0.3, max_tokens=4000)
    except (JSONRepairError, AIGenerationError) as e:
        return None, f"Parse failed: {e}"

    if not isinstance(result.get('days'), list):
        return None, "Parse failed: Invalid response structure: missing days array"
    result['days'] = clean_days(result['days'])
    return result, None


def regenerate_activity(provider, activity: dict, class_name: str, history: list = None):
    """A different activity for the same class and day: {title, description, activity_type}."""
    recent = (history or [])[-REGENERATE_HISTORY_MESSAGES:]
    user_prompt = (
        f"Generate one alternative activity for \"{class_name}\" on {activity.get('date') or 'unscheduled day'}.\n\n"
        "Current activity being replaced:\n"
        f"- Title: {activity.get('title')}\n"
        f"- Description: {activity.get('description') or '(none)'}\n"
        f"- Type: {activity.get('activity_type')}\n"
    )
    if recent:
        user_prompt += "\nContext from the teacher's brainstorm conversation:\n" + \
            _transcript(recent, teacher_label='Teacher').replace('\n\n', '\n') + "\n"
    user_prompt += "\nGenerate a DIFFERENT activity that fits this class and day. Respond with ONLY valid JSON."

    try:
        result = provider.generate_json(REGENERATE_SYSTEM_PROMPT, user_prompt, temperature=0.9, max_tokens=500)
    except (JSONRepairError, AIGenerationError) as e:
        return None, f"Failed to regenerate activity: {e}"

    return {
        "title": result.get('title') or 'Untitled Activity',
        "description": result.get('description') or '',
        "activity_type": normalize_activity_type(result.get('activity_type'), activity.get('activity_type') or 'lesson'),
    }, None
