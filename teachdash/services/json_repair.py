"""
JSON recovery for model output.

Models are asked for JSON but regularly wrap it in markdown fences, leave
trailing commas, put raw newlines inside strings, or get cut off by the
token limit. `clean_json_response` runs an ordered list of recovery
strategies and returns the first object one of them produces.

Each strategy is a plain function `text -> dict` that raises ValueError
when it cannot produce an object, so strategies can be tested (and
reordered) on their own.
"""
import json
import logging
import re

logger = logging.getLogger(__name__)


class JSONRepairError(ValueError):
    """Raised when no strategy could recover an object."""

    def __init__(self, message="Could not parse JSON from AI response"):
        super().__init__(message)


_TRAILING_COMMA_OBJ = re.compile(r',\s*}')
_TRAILING_COMMA_ARR = re.compile(r',\s*]')
_STRING_VALUE = re.compile(r'(?<=": ")(.*?)(?="[,\s}])', re.DOTALL)
_TRAILING_COMMA_EOL = re.compile(r',\s*$')
_STRING_PAIR = re.compile(r'"(\w+)"\s*:\s*"((?:[^"\\]|\\.)*)"')
_SCALAR_PAIR = re.compile(r'"(\w+)"\s*:\s*(true|false|null|-?\d+(?:\.\d+)?)\s*[,}\]]')


def strip_fences(text: str) -> str:
    """Remove ``` fences and a leading `json` language tag."""
    text = (text or "").strip()
    if text.startswith("```"):
        newline = text.find("\n")
        text = text[newline + 1:] if newline != -1 else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    if text.startswith("json"):
        text = text[4:]
    return text.strip()


def _loads_object(text: str) -> dict:
    try:
        value = json.loads(text)
    except RecursionError as e:
        raise ValueError("JSON nested too deeply") from e
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value


def _object_fragment(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("no {...} fragment in text")
    return text[start:end + 1]


def _without_trailing_commas(text: str) -> str:
    fragment = _object_fragment(text)
    return _TRAILING_COMMA_ARR.sub(']', _TRAILING_COMMA_OBJ.sub('}', fragment))


# ============ Strategies ============

def parse_direct(text: str) -> dict:
    return _loads_object(text)


def parse_fragment(text: str) -> dict:
    """Parse the span between the first `{` and the last `}`."""
    return _loads_object(_object_fragment(text))


def parse_without_trailing_commas(text: str) -> dict:
    return _loads_object(_without_trailing_commas(text))


def parse_with_escaped_controls(text: str) -> dict:
    """Escape raw newlines and tabs inside string values, drop carriage returns."""
    def _escape(match):
        return match.group(0).replace('\n', '\\n').replace('\t', '\\t').replace('\r', '')

    return _loads_object(_STRING_VALUE.sub(_escape, _without_trailing_commas(text)))


def parse_truncated(text: str) -> dict:
    """Drop trailing lines one at a time and close the object again."""
    lines = _without_trailing_commas(text).split('\n')
    for i in range(len(lines) - 1, 0, -1):
        attempt = _TRAILING_COMMA_EOL.sub('', '\n'.join(lines[:i]).rstrip()) + '\n}'
        try:
            return _loads_object(attempt)
        except ValueError:
            continue
    raise ValueError("no truncation point yields an object")


def rebuild_flat_object(text: str) -> dict:
    """Last resort: collect `"key": value` pairs by regex, ignoring nesting."""
    cleaned = _without_trailing_commas(text)
    result = {}
    for key, value in _STRING_PAIR.findall(cleaned):
        result[key] = value.replace('\\n', '\n')
    for key, value in _SCALAR_PAIR.findall(cleaned):
        if key in result:
            continue
        if value == 'true':
            result[key] = True
        elif value == 'false':
            result[key] = False
        elif value == 'null':
            result[key] = None
        elif '.' in value:
            result[key] = float(value)
        else:
            result[key] = int(value)
    if not result:
        raise ValueError("no key/value pairs found")
    return result


STRATEGIES = (
    parse_direct,
    parse_fragment,
    parse_without_trailing_commas,
    parse_with_escaped_controls,
    parse_truncated,
    rebuild_flat_object,
)


def clean_json_response(text: str, strategies=STRATEGIES) -> dict:
    """
    Recover a JSON object from raw model output.

    Args:
        text: Raw model response
        strategies: Ordered recovery functions (defaults to STRATEGIES)

    Returns:
        The parsed object from the first strategy that succeeds

    Raises:
        JSONRepairError: if every strategy fails
    """
    stripped = strip_fences(text)
    for strategy in strategies:
        try:
            result = strategy(stripped)
        except ValueError:
            continue
        if strategy is not strategies[0]:
            logger.debug("Recovered AI JSON with %s", strategy.__name__)
        return result
    raise JSONRepairError()
