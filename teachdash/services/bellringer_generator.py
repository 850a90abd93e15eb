"""
Bellringer generation: four journal prompts for the classroom TV plus one
ACT-style grammar question.

All functions take an AIProvider and return (result, error) so routes can
pass the error string straight to the teacher.
"""
import logging
import re
from datetime import date

from .ai_client import AIGenerationError
from .json_repair import JSONRepairError
from .school_calendar import day_name

logger = logging.getLogger(__name__)

DEFAULT_SUBPROMPT = "WRITE A PARAGRAPH IN YOUR JOURNAL!"
PROMPT_SLOTS = 4

JOURNAL_TYPES = [
    'creative', 'quote', 'emoji', 'reflective', 'critical_thinking', 'descriptive',
    'poetry', 'list', 'debate', 'would_you_rather', 'image', 'emoji_story_starter',
]

SYSTEM_PROMPT = """You generate bellringer content for 9th/10th grade English. TWO parts:

PART 1 - JOURNAL PROMPTS: Generate 4 SHORT prompts, each a DIFFERENT type. Keep them brief - 1-2 sentences max. Examples of good length:
- "Two strangers are stuck in an elevator. What happens next?"
- "If you could have dinner with anyone in history, who and why?"
- "'The only way out is through.' - Robert Frost. What does this mean to you?"
- (for emoji type) "Tell a story using these emojis:" followed by 4-6 emojis

PART 2 - ACT PREP: Generate ONE ACT English-style grammar question. IMPORTANT: The ACT question must be COMPLETELY INDEPENDENT of any teacher theme/notes. It is purely a grammar/mechanics skill question.

SKILL AREAS (pick one, vary each time): commas (introductory phrases, appositives, compound sentences, restrictive/nonrestrictive), apostrophes (possessives vs plurals, its/it's), semicolons & colons, subject-verb agreement (each/neither/compound subjects), pronoun errors (ambiguous reference, who/whom, case), verb tense consistency, parallelism, dangling/misplaced modifiers, wordiness/redundancy, fragments/run-ons/comma splices, word choice (affect/effect, than/then, less/fewer, lie/lay).

ACT QUESTION RULES:
- Write a realistic, natural-sounding sentence (like from an article about science, history, daily life) with ONE error
- Wrap the tested part in <b> tags
- 4 choices are SHORT replacement options for the bolded part only - NOT the whole sentence
- One choice must be "No change" (this is sometimes correct - vary it!)
- Vary which letter (A/B/C/D) is correct - NOT always A
- Rule = one short, student-friendly sentence
- NEVER put quotation marks around words in choices

JSON format:
{
    "prompts": [
        {"journal_type": "creative", "journal_prompt": "...", "journal_subprompt": "WRITE A PARAGRAPH IN YOUR JOURNAL!"},
        {"journal_type": "quote", "journal_prompt": "...", "journal_subprompt": "WRITE A PARAGRAPH IN YOUR JOURNAL!"},
        {"journal_type": "emoji", "journal_prompt": "...", "journal_subprompt": "WRITE A PARAGRAPH IN YOUR JOURNAL!"},
        {"journal_type": "reflective", "journal_prompt": "...", "journal_subprompt": "WRITE A PARAGRAPH IN YOUR JOURNAL!"}
    ],
    "act_skill": "Skill Name",
    "act_question": "Realistic sentence with <b>tested part</b> bolded.",
    "act_choices": "A. option1\\nB. option2\\nC. option3\\nD. No change",
    "act_answer": "B",
    "act_rule": "Short rule here."
}"""

SINGLE_PROMPT_SYSTEM = """You generate ONE journal prompt for 9th/10th grade English. Keep it SHORT - 1-2 sentences max.

Types:
- creative: Fun scenario ("Two strangers are stuck in an elevator...")
- quote: Real quote + "What does this mean to you?"
- emoji: "Tell a story using these emojis:" then 4-6 emojis (ONLY emojis after the colon, no descriptions)
- reflective: Personal question ("Who deserves a thank you letter from you?")
- critical_thinking: Thought-provoking ("Is it ever okay to lie?")
- descriptive: Describe something ("Describe the color Red to someone who has never seen it")
- poetry: Write a poem about...
- list: "List your top 5..."
- debate: Two-sided question
- would_you_rather: Two choices + explain why
- image: Very short - "Write a story about this image" or "What does this picture mean to you?"

For emoji type: Give a SHORT lead-in (max 8 words like "Tell a story using these emojis:") then the emojis. Nothing else.
For image type: One short instruction, no description of the image.

JSON format:
{"journal_type": "creative", "journal_prompt": "The prompt text", "journal_subprompt": "WRITE A PARAGRAPH IN YOUR JOURNAL!"}"""

IMAGE_PROMPT_SYSTEM = """You generate a journal prompt for 9th/10th grade English based on an image. Be VERY brief - do NOT describe the image. Just give a short writing instruction.

Good examples:
- "Write a story inspired by this image."
- "What does this picture mean to you?"
- "What happened right before this moment?"
- "Give this image a title and explain why."

BAD (too long): "In this image we see a sunset over mountains with clouds. Write about a time you felt peaceful watching nature..."
GOOD (short): "What would you title this photo? Why?"

JSON format:
{"journal_type": "image", "journal_prompt": "Short prompt here", "journal_subprompt": "WRITE A PARAGRAPH IN YOUR JOURNAL!"}"""

ACT_SYSTEM_PROMPT = """You generate ONE ACT English test-style question for 9th/10th graders. These must look and feel like REAL ACT English questions: a natural-sounding sentence with a grammar/mechanics error that students must identify and fix.

SKILL CATEGORIES (pick one, vary each time):
1. COMMAS: introductory phrases, compound sentences, appositives, items in a series, coordinate adjectives, restrictive vs nonrestrictive clauses
2. APOSTROPHES: possessives vs plurals, its/it's, whose/who's, their/they're/there
3. SEMICOLONS & COLONS: joining independent clauses, before lists, semicolons vs commas
4. SUBJECT-VERB AGREEMENT: compound subjects, indefinite pronouns (everyone/each/neither), inverted sentences, collective nouns
5. PRONOUN ERRORS: ambiguous reference, pronoun-antecedent agreement, who/whom, case errors (me vs I)
6. VERB TENSE: consistency, past perfect vs simple past, conditional mood
7. PARALLELISM: items in a list, paired constructions (not only...but also)
8. MODIFIERS: dangling modifiers, misplaced modifiers, adjective vs adverb
9. WORDINESS & REDUNDANCY: eliminating unnecessary words, concise alternatives
10. SENTENCE STRUCTURE: fragments, run-ons, comma splices, subordination vs coordination
11. WORD CHOICE: affect/effect, than/then, accept/except, less/fewer, lie/lay

FORMAT: Write a realistic, natural-sounding sentence (the kind you'd find in a passage about science, history, art, daily life, etc.) with ONE error. Wrap the tested part in <b> tags. Give 4 answer choices that are REPLACEMENT OPTIONS for the bolded part only.

CRITICAL RULES:
- The sentence must sound like it belongs in a real article or essay, not a contrived grammar exercise
- Choices must be SHORT: just the replacement words/phrase for the bolded part, NOT the whole sentence
- Exactly ONE choice must be correct
- One choice must be "No change" (this is sometimes the correct answer! Vary it.)
- The correct answer should NOT always be A; vary which letter is correct (A, B, C, or D)
- The rule must be a SHORT, memorable, student-friendly explanation (one sentence)
- NEVER put quotation marks around individual words in the choices
- Do NOT restate the full sentence in choices

EXAMPLE 1 (Commas):
{"act_skill": "Commas with Introductory Phrases", "act_question": "After finishing the experiment <b>the students</b> recorded their observations in the lab notebook.", "act_choices": "A. the students,\\nB. , the students\\nC. the students:\\nD. No change", "act_answer": "B", "act_rule": "Use a comma after an introductory phrase or clause."}

EXAMPLE 2 (Parallelism):
{"act_skill": "Parallel Structure", "act_question": "The coach told the team to stay focused, work together, and <b>they should keep a positive attitude.</b>", "act_choices": "A. keeping a positive attitude.\\nB. maintain a positive attitude.\\nC. a positive attitude should be kept.\\nD. No change", "act_answer": "B", "act_rule": "Items in a series must follow the same grammatical pattern."}

EXAMPLE 3 (Wordiness):
{"act_skill": "Concision", "act_question": "The mayor <b>made the decision to implement</b> new recycling guidelines for the entire city.", "act_choices": "A. decided to implement\\nB. decided on implementing\\nC. made a decision about implementing\\nD. No change", "act_answer": "A", "act_rule": "Replace wordy phrases with concise alternatives when possible."}

Generate ONE question in valid JSON. Do NOT wrap in markdown. Vary the skill from the examples above."""

_EMOJI = re.compile(
    '[\U0001F300-\U0001FAFF\u2702-\u27B0\uFE00-\uFE0F\u200D\u2600-\u26FF\u2700-\u27BF]+'
)
_TRAILING_PUNCT = re.compile(r'[\s:,]+$')
_ACT_FIELDS = ('act_choice_a', 'act_choice_b', 'act_choice_c', 'act_choice_d')


def normalize_act_fields(result: dict) -> dict:
    """Split `act_choices` into four columns and fill the optional ACT fields."""
    if result.get('act_choices') and not result.get('act_choice_a'):
        lines = [line.strip() for line in str(result['act_choices']).split('\n') if line.strip()]
        for i, field in enumerate(_ACT_FIELDS):
            result[field] = lines[i] if i < len(lines) else ''
    if result.get('act_answer') and not result.get('act_correct_answer'):
        result['act_correct_answer'] = result['act_answer']
    if not result.get('act_explanation'):
        result['act_explanation'] = ''
    if not result.get('act_skill_category'):
        result['act_skill_category'] = ''
    return result


def split_emojis(text: str) -> dict:
    """'Tell a story using these emojis: 🐶🌧️' -> instruction + emoji string for the display."""
    if not text:
        return {"instruction": "", "emojis": ""}
    emojis = ''.join(_EMOJI.findall(text))
    instruction = _TRAILING_PUNCT.sub('', _EMOJI.sub('', text).strip()).strip()
    return {"instruction": instruction, "emojis": emojis}


def build_context(recent: list, today: date = None) -> dict:
    """Recent ACT skills and journal types (newest first) so the model can vary them."""
    today = today or date.today()
    return {
        "today": today.isoformat(),
        "day_of_week": day_name(today),
        "recent_act_skills": [r['act_skill'] for r in recent if r.get('act_skill')],
        "recent_journal_types": [r['journal_type'] for r in recent if r.get('journal_type')],
    }


def _recent(items) -> str:
    return ', '.join(items[:5]) or 'None'


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _as_prompt(item):
    """A prompt entry as a dict; a bare string becomes the prompt text, anything else is dropped."""
    if isinstance(item, str) and item.strip():
        item = {"journal_prompt": item.strip()}
    if not isinstance(item, dict):
        return None
    item.setdefault('journal_subprompt', DEFAULT_SUBPROMPT)
    return item


def generate_full_bellringer(provider, context: dict, teacher_notes: str = ''):
    """Four prompts plus an ACT question. The first prompt is mirrored onto the top-level journal fields."""
    user_prompt = (
        f"Generate a bellringer for {context.get('day_of_week', 'today')}.\n"
        f"Avoid these recent ACT skills: {_recent(context.get('recent_act_skills', []))}\n"
        f"Vary from these recent journal types: {_recent(context.get('recent_journal_types', []))}"
    )
    if teacher_notes:
        user_prompt += f"\nTeacher idea/theme: {teacher_notes}"
    user_prompt += "\nKeep prompts SHORT. Respond with ONLY valid JSON."

    try:
        result = provider.generate_json(SYSTEM_PROMPT, user_prompt, temperature=0.9, max_tokens=2000)
    except JSONRepairError as e:
        return None, f"Failed to parse AI response: {e}"
    except AIGenerationError as e:
        return None, f"AI error: {e}"

    prompts = [_as_prompt(p) for p in _as_list(result.get('prompts'))]
    prompts = [p for p in prompts if p]
    result['prompts'] = prompts[:PROMPT_SLOTS]
    if prompts:
        first = prompts[0]
        result['journal_type'] = first.get('journal_type')
        result['journal_prompt'] = first.get('journal_prompt')
        result['journal_subprompt'] = first.get('journal_subprompt') or DEFAULT_SUBPROMPT

    return normalize_act_fields(result), None


def generate_single_prompt(provider, prompt_type: str = None, notes: str = ''):
    user_prompt = "Generate ONE short journal prompt."
    if prompt_type:
        user_prompt += f" Type: {prompt_type}"
    if notes:
        user_prompt += f"\nTeacher idea: {notes}"
    user_prompt += "\nKeep it SHORT - 1-2 sentences. Respond with ONLY valid JSON."

    try:
        result = provider.generate_json(SINGLE_PROMPT_SYSTEM, user_prompt, temperature=0.9, max_tokens=500)
    except (JSONRepairError, AIGenerationError) as e:
        return None, f"Failed to generate prompt: {e}"
    result.setdefault('journal_subprompt', DEFAULT_SUBPROMPT)
    return result, None


def generate_from_image(provider, image_b64: str, mime_type: str, notes: str = ''):
    user_prompt = "Write a SHORT journal prompt for this image. Do NOT describe the image. Just a brief writing instruction."
    if notes:
        user_prompt += f"\nTeacher idea: {notes}"
    user_prompt += "\nRespond with ONLY valid JSON."

    try:
        result = provider.generate_json_from_image(
            IMAGE_PROMPT_SYSTEM, user_prompt, image_b64, mime_type, temperature=0.9, max_tokens=300)
    except (JSONRepairError, AIGenerationError) as e:
        return None, f"Image prompt generation error: {e}"
    result['journal_type'] = 'image'
    result.setdefault('journal_subprompt', DEFAULT_SUBPROMPT)
    return result, None


def generate_act_question(provider, context: dict, notes: str = ''):
    user_prompt = (
        "Generate ONE short grammar/vocabulary question.\n"
        f"Avoid: {_recent(context.get('recent_act_skills', []))}"
    )
    if notes:
        user_prompt += f"\nTeacher idea: {notes}"
    user_prompt += "\nKeep it SHORT. Respond with ONLY valid JSON, no markdown."

    try:
        result = provider.generate_json(ACT_SYSTEM_PROMPT, user_prompt, temperature=0.9, max_tokens=800)
    except (JSONRepairError, AIGenerationError) as e:
        return None, f"Failed to generate ACT question: {e}"
    return normalize_act_fields(result), None
