"""Completion API clients that turn a church's context into listing content."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from churchdir.core.config import ConfigError, Settings
from churchdir.etl.normalize import normalize_worship_styles
from churchdir.models import EnrichmentResult, ServiceTime

logger = logging.getLogger(__name__)
_SESSION = requests.Session()

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
MAX_TOKENS = 1500
REQUEST_TIMEOUT = 60
MAX_PROMPT_WEBSITE_CHARS = 12000

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class AIClientError(RuntimeError):
    """Raised when a completion API call fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = (body or "")[:200]


class EnrichmentParseError(ValueError):
    """Raised when model output cannot be turned into an ``EnrichmentResult``."""


class NoJsonFoundError(EnrichmentParseError):
    """The model text contains no brace-delimited block."""


class MalformedEnrichmentError(EnrichmentParseError):
    """A block was found but is not a usable JSON object."""


@dataclass(slots=True)
class ChurchContext:
    name: str
    city: str
    state: str
    denomination: Optional[str] = None
    website: Optional[str] = None
    website_content: Optional[str] = None


def build_enrichment_prompt(context: ChurchContext) -> str:
    lines = [
        "You are writing content for a church directory listing. Analyze the church below and provide "
        "both descriptive content and structured data.",
        "",
        f"Church: {context.name}",
        f"Location: {context.city}, {context.state}",
    ]
    if context.denomination:
        lines.append(f"Denomination: {context.denomination}")
    if context.website:
        lines.append(f"Website: {context.website}")
    lines.append("")
    if context.website_content:
        lines.append("Website content:")
        lines.append(context.website_content[:MAX_PROMPT_WEBSITE_CHARS])
    else:
        lines.append("No website content available.")

    lines.append(
        """
Return ONLY one JSON object with exactly these keys (no markdown, no commentary):
{
  "description": "2-3 factual, welcoming sentences in third person mentioning the location, the denomination if known and any notable features.",
  "whatToExpect": "A first-time visitor guide with sections separated by \\n: dress code, service format, tips for first-time visitors such as parking and where to go.",
  "denomination": "string or null, only when clearly known",
  "worshipStyle": ["Contemporary", "Traditional", "Blended", "Liturgical", "Gospel", "Charismatic"] or null,
  "serviceTimes": [{"day": "Sunday", "time": "9:00 AM", "name": "Morning Worship"}] or null,
  "hasKidsMinistry": true, false or null,
  "hasYouthGroup": true, false or null,
  "hasSmallGroups": true, false or null
}

Rules:
- Return null for any structured field that is not clearly supported by the information above. Do not guess.
- serviceTimes lists worship services only, never office hours.
- worshipStyle only uses the values shown above."""
    )
    return "\n".join(lines)


def extract_json_block(text: Optional[str]) -> str:
    match = _JSON_BLOCK.search(text or "")
    if not match:
        raise NoJsonFoundError("No JSON found in model response")
    return match.group(0)


def _text_field(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedEnrichmentError(f"{key} must be a string, got {type(value).__name__}")
    return value.strip()


def _flag(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _service_times(value: Any) -> Optional[List[ServiceTime]]:
    if not isinstance(value, list):
        return None
    entries: List[ServiceTime] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        day, time = item.get("day"), item.get("time")
        if not isinstance(day, str) or not isinstance(time, str) or not day.strip() or not time.strip():
            continue
        name = item.get("name")
        entries.append(ServiceTime(day=day.strip(), time=time.strip(), name=name.strip() if isinstance(name, str) and name.strip() else None))
    return entries or None


def parse_enrichment(text: Optional[str]) -> EnrichmentResult:
    """Parse and coerce model output; empty texts come back as ``""``."""
    block = extract_json_block(text)
    try:
        payload = json.loads(block)
    except json.JSONDecodeError as exc:
        raise MalformedEnrichmentError(f"Failed to parse JSON response: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedEnrichmentError("Model response JSON is not an object")

    denomination = payload.get("denomination")
    worship_style = payload.get("worshipStyle")
    styles = normalize_worship_styles(worship_style) if isinstance(worship_style, list) else []

    return EnrichmentResult(
        description=_text_field(payload, "description"),
        what_to_expect=_text_field(payload, "whatToExpect"),
        denomination=denomination.strip() if isinstance(denomination, str) and denomination.strip() else None,
        worship_style=styles or None,
        service_times=_service_times(payload.get("serviceTimes")),
        has_kids_ministry=_flag(payload.get("hasKidsMinistry")),
        has_youth_group=_flag(payload.get("hasYouthGroup")),
        has_small_groups=_flag(payload.get("hasSmallGroups")),
    )


class _CompletionClient:
    provider = ""

    def __init__(self, api_key: str, model: str, *, session: Optional[requests.Session] = None, timeout: float = REQUEST_TIMEOUT) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> requests.Session:
        return self._session or _SESSION

    def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AIClientError(f"{self.provider} request failed: {exc}") from exc
        if not 200 <= response.status_code < 300:
            body = response.text or ""
            raise AIClientError(
                f"{self.provider} API error: {response.status_code} - {body[:200]}",
                status_code=response.status_code,
                body=body,
            )
        return response.json() or {}

    def complete(self, prompt: str) -> str:
        raise NotImplementedError

    def generate_combined_enrichment(self, context: ChurchContext) -> EnrichmentResult:
        text = self.complete(build_enrichment_prompt(context))
        return parse_enrichment(text)


class AnthropicClient(_CompletionClient):
    provider = "Anthropic"

    def __init__(self, api_key: str, model: str = DEFAULT_ANTHROPIC_MODEL, **kwargs: Any) -> None:
        super().__init__(api_key, model, **kwargs)

    def complete(self, prompt: str) -> str:
        data = self._post(
            ANTHROPIC_URL,
            {"model": self.model, "max_tokens": MAX_TOKENS, "messages": [{"role": "user", "content": prompt}]},
            {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION, "Content-Type": "application/json"},
        )
        content = data.get("content") or []
        return content[0].get("text", "") if content and isinstance(content[0], dict) else ""


class OpenAIClient(_CompletionClient):
    provider = "OpenAI"

    def __init__(self, api_key: str, model: str = DEFAULT_OPENAI_MODEL, **kwargs: Any) -> None:
        super().__init__(api_key, model, **kwargs)

    def complete(self, prompt: str) -> str:
        data = self._post(
            OPENAI_URL,
            {
                "model": self.model,
                "max_tokens": MAX_TOKENS,
                "messages": [{"role": "user", "content": prompt}],
                "response_format": {"type": "json_object"},
            },
            {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
        )
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""


def create_ai_client(settings: Settings, *, session: Optional[requests.Session] = None) -> _CompletionClient:
    """Anthropic when its key is present, otherwise OpenAI."""
    if settings.anthropic_api_key:
        return AnthropicClient(settings.anthropic_api_key, settings.anthropic_model or DEFAULT_ANTHROPIC_MODEL, session=session)
    if settings.openai_api_key:
        return OpenAIClient(settings.openai_api_key, settings.openai_model or DEFAULT_OPENAI_MODEL, session=session)
    raise ConfigError("ANTHROPIC_API_KEY or OPENAI_API_KEY must be set in the environment.")


def ai_provider_name(settings: Settings) -> str:
    if settings.anthropic_api_key:
        return "anthropic"
    if settings.openai_api_key:
        return "openai"
    return "none"
