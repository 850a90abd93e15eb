"""
Classroom material generation (quizzes, worksheets, games, French drills)
for a single activity.
"""
import logging

from .ai_client import AIGenerationError
from .json_repair import JSONRepairError

logger = logging.getLogger(__name__)

MATERIAL_TYPES = [
    'quiz', 'vocabulary_test', 'grammar_test', 'sentence_dressup',
    'worksheet', 'discussion_questions', 'writing_prompt', 'reading_guide',
    'jeopardy', 'dice_game', 'card_match', 'relay_race',
    'buzzer_quiz', 'guess_who', 'four_corners', 'vocab_bingo',
    'flashcard_set', 'conjugation_drill', 'dialogue_builder', 'cultural_activity',
]

MATERIAL_SYSTEM_PROMPT = """You are a material generator for a high school English and French teacher at {school_name}.

Generate classroom materials based on the provided context. Output ONLY valid JSON, no markdown.

For each material type, use this JSON structure:

QUIZ/TEST:
{{"title": "...", "instructions": "...", "questions": [{{"question": "...", "choices": ["A. ...", "B. ...", "C. ...", "D. ..."], "correct": "A", "explanation": "..."}}]}}

WORKSHEET:
{{"title": "...", "instructions": "...", "sections": [{{"heading": "...", "type": "matching|fill_in|short_answer|multiple_choice", "items": [{{"prompt": "...", "answer": "..."}}]}}]}}

DISCUSSION QUESTIONS:
{{"title": "...", "questions": [{{"question": "...", "follow_up": "...", "type": "open|analytical|evaluative"}}]}}

WRITING PROMPT + RUBRIC:
{{"title": "...", "prompt": "...", "requirements": ["..."], "rubric": [{{"category": "...", "points": 25, "criteria": "..."}}]}}

READING GUIDE:
{{"title": "...", "before_reading": ["..."], "during_reading": [{{"page_or_section": "...", "question": "..."}}], "after_reading": ["..."]}}

GAME (Jeopardy):
{{"title": "...", "setup": "...", "categories": [{{"name": "...", "questions": [{{"points": 100, "question": "...", "answer": "..."}}]}}]}}

GAME (Dice/Card/Relay/Buzzer/FourCorners/Bingo):
{{"title": "...", "setup": "...", "rules": ["..."], "items": [{{"prompt": "...", "answer": "..."}}]}}

SENTENCE DRESSUP:
{{"title": "...", "instructions": "...", "sentences": [{{"base": "...", "technique": "...", "example": "..."}}]}}

RULES:
- Keep content appropriate for the grade level
- Make games genuinely fun; students should WANT to play
- For physical games, include clear setup instructions a substitute teacher could follow
- Generate 10-20 items for quizzes/worksheets, 5 categories with 5 questions for Jeopardy
- Always include answer keys"""

FRENCH_SYSTEM_PROMPT = """You are a French language material generator for a high school French 1 class at {school_name}. Students are beginners.

Generate materials based on the provided context. Output ONLY valid JSON, no markdown.

FLASHCARD SET:
{{"title": "...", "instructions": "...", "cards": [{{"front": "...", "back": "...", "pronunciation": "...", "example_sentence": "..."}}]}}

CONJUGATION DRILL:
{{"title": "...", "instructions": "...", "verbs": [{{"infinitive": "...", "english": "...", "conjugations": {{"je": "...", "tu": "...", "il/elle": "...", "nous": "...", "vous": "...", "ils/elles": "..."}}, "example": "..."}}], "exercises": [{{"prompt": "...", "answer": "..."}}]}}

DIALOGUE BUILDER:
{{"title": "...", "scenario": "...", "vocabulary": [{{"french": "...", "english": "..."}}], "model_dialogue": [{{"speaker": "A|B", "french": "...", "english": "..."}}], "practice_prompts": ["..."]}}

CULTURAL ACTIVITY:
{{"title": "...", "topic": "...", "background": "...", "activities": [{{"type": "discussion|comparison|research|creative", "description": "...", "instructions": "..."}}], "vocabulary": [{{"french": "...", "english": "..."}}]}}

RULES:
- All French text should include pronunciation guides for beginners
- Keep vocabulary and grammar at French 1 level
- Include English translations for all French content
- Make activities engaging and interactive
- For cultural activities, connect to students' own experiences"""


def grade_level_for_class(class_name: str) -> str:
    name = (class_name or '').lower()
    if 'french' in name:
        return 'French 1'
    if '9' in name or '1' in name:
        return '9th'
    return '10th'


def generate_material(provider, class_name: str, activity_title: str, material_type: str,
                      description: str = '', teacher_notes: str = '', school_name: str = ''):
    """Returns (material_json, error)."""
    is_french = 'french' in (class_name or '').lower()
    template = FRENCH_SYSTEM_PROMPT if is_french else MATERIAL_SYSTEM_PROMPT
    system = template.format(school_name=school_name or 'a rural Oklahoma high school')

    lines = [
        "Generate material for:",
        f"CLASS: {class_name} ({grade_level_for_class(class_name)})",
        f"ACTIVITY: {activity_title}",
    ]
    if description:
        lines.append(f"DESCRIPTION: {description}")
    lines.append(f"MATERIAL TYPE: {material_type}")
    if teacher_notes:
        lines.append(f"TEACHER NOTES: {teacher_notes}")
    lines.append("\nRespond with ONLY valid JSON.")

    try:
        result = provider.generate_json(system, '\n'.join(lines), temperature=0.8, max_tokens=4000)
    except (JSONRepairError, AIGenerationError) as e:
        return None, f"Material generation failed: {e}"
    logger.info("Generated %s material for '%s'", material_type, activity_title)
    return result, None
