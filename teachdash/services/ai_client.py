"""
Provider-agnostic AI generation client.

Routes resolve an AIConfig once per request (from the settings table with
env fallbacks) and hand it to `get_provider`, which returns a Gemini or
Anthropic provider. Generators only ever talk to the AIProvider interface:

    provider = get_provider(load_ai_config(settings))
    result = provider.generate_json(SYSTEM_PROMPT, user_prompt, temperature=0.9)

Retry policy shared by both vendors:
- rate limit / quota errors sleep for the hinted "retry in N" seconds plus a
  margin (or a fixed fallback) and try again
- any other vendor error lowers the temperature one step and tries again
- missing credentials fail before any network call
"""
import base64
import logging
import re
import time
from dataclasses import dataclass

from ..config import (
    ANTHROPIC_API_KEY, GEMINI_API_KEY, DEFAULT_AI_PROVIDER,
    DEFAULT_ANTHROPIC_MODEL, DEFAULT_GEMINI_MODEL,
)
from .json_repair import clean_json_response

logger = logging.getLogger(__name__)

RATE_LIMIT_MARGIN_SECONDS = 5
RATE_LIMIT_FALLBACK_SECONDS = 30
TEMPERATURE_FLOOR = 0.3
CHAT_ATTEMPTS = 3

RATE_LIMIT_MARKERS = ('429', 'Too Many Requests', 'quota', 'rate_limit')
_RETRY_HINT = re.compile(r'retry in (\d+)', re.IGNORECASE)


class AIConfigError(Exception):
    """No usable provider/credentials. Shown to the teacher as-is."""


class AIGenerationError(Exception):
    """The provider kept failing after every retry."""


@dataclass(frozen=True)
class AIConfig:
    provider: str = DEFAULT_AI_PROVIDER
    gemini_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL


def load_ai_config(settings: dict) -> AIConfig:
    """Build an AIConfig from a settings map; blank rows fall back to env/defaults."""
    settings = settings or {}
    return AIConfig(
        provider=(settings.get('ai_provider') or DEFAULT_AI_PROVIDER).strip().lower(),
        gemini_api_key=settings.get('gemini_api_key') or GEMINI_API_KEY,
        anthropic_api_key=settings.get('anthropic_api_key') or ANTHROPIC_API_KEY,
        gemini_model=settings.get('gemini_model') or DEFAULT_GEMINI_MODEL,
        anthropic_model=settings.get('anthropic_model') or DEFAULT_ANTHROPIC_MODEL,
    )


def rate_limit_delay(error) -> float:
    """
    Seconds to wait before retrying a rate-limited call.

    Returns None when the error is not a rate limit.
    """
    message = str(error)
    if not any(marker in message for marker in RATE_LIMIT_MARKERS):
        return None
    match = _RETRY_HINT.search(message)
    if match:
        return int(match.group(1)) + RATE_LIMIT_MARGIN_SECONDS
    return RATE_LIMIT_FALLBACK_SECONDS


class AIProvider:
    """Common retry logic. Subclasses implement the vendor request."""

    name = ""
    temperature_step = 0.3
    max_temperature = None

    def __init__(self, api_key: str, model: str, sleep=time.sleep):
        self.api_key = api_key
        self.model = model
        self._sleep = sleep

    # Vendor hooks. `messages` is a list of {"role": "user"|"assistant", "content": str}.
    def _complete(self, system: str, messages: list, temperature: float, max_tokens: int) -> str:
        raise NotImplementedError

    def _complete_with_image(self, system: str, text: str, image_b64: str, mime_type: str,
                             temperature: float, max_tokens: int) -> str:
        raise NotImplementedError

    def _clamp(self, temperature: float) -> float:
        if self.max_temperature is not None:
            return min(temperature, self.max_temperature)
        return temperature

    def _with_retry(self, call, temperature: float, max_retries: int) -> str:
        temperature = self._clamp(temperature)
        last_error = None
        attempts = max_retries + 1
        for attempt in range(attempts):
            try:
                return call(temperature)
            except Exception as e:
                last_error = e
                delay = rate_limit_delay(e)
                if delay is not None:
                    logger.warning("%s rate limited (attempt %d/%d), waiting %ss",
                                   self.name, attempt + 1, attempts, delay)
                    if attempt < attempts - 1:
                        self._sleep(delay)
                    continue
                temperature = max(TEMPERATURE_FLOOR, temperature - self.temperature_step)
                logger.warning("%s call failed (attempt %d/%d): %s; retrying at temperature %.1f",
                               self.name, attempt + 1, attempts, e, temperature)
        raise AIGenerationError(str(last_error)) from last_error

    def generate_json(self, system: str, user: str, temperature: float = 0.7,
                      max_tokens: int = 2048, max_retries: int = 2) -> dict:
        """Single-turn JSON generation. JSONRepairError from the normalizer propagates."""
        messages = [{"role": "user", "content": user}]
        text = self._with_retry(
            lambda t: self._complete(system, messages, t, max_tokens),
            temperature, max_retries)
        return clean_json_response(text)

    def generate_json_from_image(self, system: str, user: str, image_b64: str, mime_type: str,
                                 temperature: float = 0.7, max_tokens: int = 2048,
                                 max_retries: int = 2) -> dict:
        text = self._with_retry(
            lambda t: self._complete_with_image(system, user, image_b64, mime_type, t, max_tokens),
            temperature, max_retries)
        return clean_json_response(text)

    def chat(self, system: str, messages: list, temperature: float = 0.7,
             max_tokens: int = 2048) -> str:
        """Multi-turn chat returning plain text. Only rate limits are retried."""
        temperature = self._clamp(temperature)
        for attempt in range(CHAT_ATTEMPTS):
            try:
                return self._complete(system, messages, temperature, max_tokens)
            except Exception as e:
                delay = rate_limit_delay(e)
                if delay is None:
                    raise
                logger.warning("%s chat rate limited (attempt %d/%d), waiting %ss",
                               self.name, attempt + 1, CHAT_ATTEMPTS, delay)
                if attempt < CHAT_ATTEMPTS - 1:
                    self._sleep(delay)
        raise AIGenerationError("Rate limited. Please wait a minute and try again.")


class GeminiProvider(AIProvider):
    name = "gemini"
    temperature_step = 0.3

    def _model(self, system: str):
        import google.generativeai as genai
        genai.configure(api_key=self.api_key)
        return genai, genai.GenerativeModel(self.model, system_instruction=system)

    def _complete(self, system, messages, temperature, max_tokens):
        genai, model = self._model(system)
        contents = [{
            "role": "model" if m.get("role") == "assistant" else "user",
            "parts": [m.get("content", "")],
        } for m in messages]
        response = model.generate_content(
            contents,
            generation_config=genai.GenerationConfig(temperature=temperature, max_output_tokens=max_tokens),
        )
        return response.text

    def _complete_with_image(self, system, text, image_b64, mime_type, temperature, max_tokens):
        genai, model = self._model(system)
        image_part = {"mime_type": mime_type, "data": base64.b64decode(image_b64)}
        response = model.generate_content(
            [image_part, text],
            generation_config=genai.GenerationConfig(temperature=temperature, max_output_tokens=max_tokens),
        )
        return response.text


class AnthropicProvider(AIProvider):
    name = "anthropic"
    temperature_step = 0.2
    max_temperature = 1.0

    def _create(self, system, messages, temperature, max_tokens) -> str:
        import anthropic
        client = anthropic.Anthropic(api_key=self.api_key)
        message = client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=messages,
        )
        return "".join(block.text for block in message.content if block.type == "text")

    def _complete(self, system, messages, temperature, max_tokens):
        anthropic_messages = [{
            "role": "assistant" if m.get("role") == "assistant" else "user",
            "content": m.get("content", ""),
        } for m in messages]
        return self._create(system, anthropic_messages, temperature, max_tokens)

    def _complete_with_image(self, system, text, image_b64, mime_type, temperature, max_tokens):
        # PDFs go up as a document block, everything else as an image
        content = [
            {
                "type": "document" if mime_type == "application/pdf" else "image",
                "source": {"type": "base64", "media_type": mime_type, "data": image_b64},
            },
            {"type": "text", "text": text},
        ]
        return self._create(system, [{"role": "user", "content": content}], temperature, max_tokens)


def get_provider(ai_config: AIConfig, sleep=time.sleep) -> AIProvider:
    """Pick the provider for this request. Raises AIConfigError without touching the network."""
    if ai_config.provider == "anthropic":
        if not ai_config.anthropic_api_key:
            raise AIConfigError("Anthropic API key not configured. Go to Settings to add your API key.")
        return AnthropicProvider(ai_config.anthropic_api_key, ai_config.anthropic_model, sleep=sleep)
    if ai_config.provider == "gemini":
        if not ai_config.gemini_api_key:
            raise AIConfigError("Gemini API key not configured. Go to Settings to add your API key.")
        return GeminiProvider(ai_config.gemini_api_key, ai_config.gemini_model, sleep=sleep)
    raise AIConfigError(f"Unknown AI provider '{ai_config.provider}'. Choose gemini or anthropic in Settings.")


def provider_from_settings(settings: dict) -> AIProvider:
    """Route-boundary shortcut: settings map -> AIConfig -> provider."""
    return get_provider(load_ai_config(settings))
