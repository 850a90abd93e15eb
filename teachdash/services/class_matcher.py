"""
Match free-text class names (from imported documents or quick entry) to
rows in the `classes` table.

The subject keywords and period-number hints are school-specific, so they
live in data/class_matching.json and can be replaced per deployment with a
`class_match_rules` settings row holding the same JSON shape.
"""
import json
import logging
import re

from ..config import CLASS_MATCHING_FILE

logger = logging.getLogger(__name__)

_ORDINAL = re.compile(r'\b(\d+)(?:st|nd|rd|th)\b')
_NUMBER = re.compile(r'(\d+)')
_SHORTCUT = re.compile(r'^([a-z])(\d+)$')


def load_rules(settings: dict = None) -> dict:
    """Rules from the data file, replaced key-by-key by a `class_match_rules` setting."""
    with open(CLASS_MATCHING_FILE, 'r') as f:
        rules = json.load(f)

    override = (settings or {}).get('class_match_rules')
    if override:
        try:
            custom = json.loads(override) if isinstance(override, str) else override
        except json.JSONDecodeError:
            logger.warning("Ignoring invalid class_match_rules setting")
            custom = None
        if isinstance(custom, dict):
            rules.update(custom)
    return rules


def _by_keyword(classes, keyword):
    return next((c for c in classes if keyword in c['name'].lower()), None)


def _by_periods_column(lower, classes):
    """Use each class's `periods` text ('4th and 6th') when no explicit rule matched."""
    mentioned = set(_ORDINAL.findall(lower))
    if not mentioned:
        return None
    for cls in classes:
        periods = set(_ORDINAL.findall((cls.get('periods') or '').lower()))
        if mentioned & periods:
            return cls
    return None


def match_class_name(parsed_name: str, classes: list, rules: dict = None):
    """
    Find the class a parsed name refers to.

    Order: exact, parsed name contains a class name, class name contains the
    parsed name, subject keywords, then period hints. Returns the class row
    or None.
    """
    if not isinstance(parsed_name, str) or not parsed_name.strip():
        return None
    rules = rules if rules is not None else load_rules()
    lower = parsed_name.strip().lower()

    for cls in classes:
        if cls['name'].lower() == lower:
            return cls
    for cls in classes:
        if cls['name'].lower() in lower:
            return cls
    for cls in classes:
        if lower in cls['name'].lower():
            return cls

    for rule in rules.get('subject_keywords', []):
        if not any(k in lower for k in rule.get('keywords', [])):
            continue
        keyword = rule.get('class_keyword', '').lower()
        if rule.get('match_number'):
            number = _NUMBER.search(lower)
            if number:
                specific = next((c for c in classes
                                 if keyword in c['name'].lower() and number.group(1) in c['name']), None)
                if specific:
                    return specific
        found = _by_keyword(classes, keyword)
        if found:
            return found

    for rule in rules.get('period_rules', []):
        if any(marker in lower for marker in rule.get('markers', [])):
            found = _by_keyword(classes, rule.get('class_name', '').lower())
            if found:
                return found

    return _by_periods_column(lower, classes)


def match_class_shortcut(text: str, classes: list, rules: dict = None):
    """Quick-entry matching ('e1', 'fr', 'English-2'). 'general' and blanks mean no class."""
    if not isinstance(text, str) or not text.strip():
        return None
    rules = rules if rules is not None else load_rules()
    s = text.strip().lower()
    if s in rules.get('general_aliases', []):
        return None

    for cls in classes:
        if cls['name'].lower() == s:
            return cls
    for cls in classes:
        if cls['name'].lower().startswith(s):
            return cls
    abbr = _SHORTCUT.match(s)
    if abbr:
        letter, number = abbr.groups()
        for cls in classes:
            name = cls['name'].lower()
            if name.startswith(letter) and number in name:
                return cls
    for cls in classes:
        if s in cls['name'].lower():
            return cls
    return None
