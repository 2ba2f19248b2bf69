import json
from dataclasses import dataclass
from collections.abc import Sequence

import openai
from django.conf import settings
from openai import OpenAI

from .errors import ConfigurationError, ResponseShapeError
from .retry import call_with_retry

SYSTEM_PROMPT = (
    "You are a YouTube SEO and engagement expert who helps creators write better video titles. "
    "Always respond with valid JSON only."
)

USER_PROMPT = """You are a YouTube title optimization expert. Below are {count} video titles from the channel "{channel_name}".
For each video title, provide:
1. An improved version that is more engaging, SEO-friendly, and likely to get more clicks.
2. A brief rationale (1-2 sentences) explaining why the improved title is better.

Guidelines:
- Keep the core topic and authenticity
- Use action verbs, numbers, and specific value propositions
- Make it curiosity-inducing without being clickbait
- Optimize for searchability and clarity

Video titles:
{titles}

Respond in JSON format, with one entry per video in the same order:
{{
  "titles": [
    {{
      "original": "string",
      "improved": "string",
      "rationale": "string"
    }}
  ]
}}
"""


@dataclass(frozen=True)
class TitleImproverConfig:
    api_key: str
    base_url: str
    model: str
    timeout: float
    max_attempts: int
    temperature: float = 0.7

    @classmethod
    def from_settings(cls) -> "TitleImproverConfig":
        if not settings.GEMINI_API_KEY:
            raise ConfigurationError("GEMINI_API_KEY")
        return cls(
            api_key=settings.GEMINI_API_KEY,
            base_url=settings.TITLE_MODEL_BASE_URL,
            model=settings.TITLE_MODEL,
            timeout=settings.ADAPTER_TIMEOUT_SECONDS,
            max_attempts=settings.ADAPTER_MAX_ATTEMPTS,
        )


@dataclass(frozen=True)
class TitleSuggestion:
    original: str
    improved: str
    rationale: str


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError))


def build_prompt(titles: Sequence[str], channel_name: str) -> str:
    numbered = "\n".join(f'{idx}. "{title}"' for idx, title in enumerate(titles, start=1))
    return USER_PROMPT.format(count=len(titles), channel_name=channel_name, titles=numbered)


def parse_suggestions(content: str | None) -> list[TitleSuggestion]:
    """
    Parse the model's JSON answer.

    Raises:
        ResponseShapeError: If the answer is empty, not JSON, or lacks the titles array
    """
    if not content:
        raise ResponseShapeError("No titles returned")
    try:
        parsed = json.loads(content)
    except ValueError as exc:
        raise ResponseShapeError("Invalid response format: not valid JSON") from exc

    entries = parsed.get("titles") if isinstance(parsed, dict) else None
    if not isinstance(entries, list):
        raise ResponseShapeError("Invalid response format: missing titles array")

    suggestions = []
    for idx, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise ResponseShapeError(f"Invalid response format: entry {idx} is not an object")
        improved = entry.get("improved")
        # older prompts asked for "rational"
        rationale = entry.get("rationale", entry.get("rational"))
        if not isinstance(improved, str) or not isinstance(rationale, str):
            raise ResponseShapeError(f"Invalid response format: entry {idx} lacks improved/rationale")
        suggestions.append(TitleSuggestion(
            original=str(entry.get("original", "")),
            improved=improved,
            rationale=rationale,
        ))
    return suggestions


class TitleImprover:
    """Asks an OpenAI-compatible chat model for better video titles."""

    def __init__(self, config: TitleImproverConfig, client: OpenAI | None = None):
        self.config = config
        self.client = client or OpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=0,
        )

    @classmethod
    def from_settings(cls) -> "TitleImprover":
        return cls(TitleImproverConfig.from_settings())

    def improve(self, titles: Sequence[str], channel_name: str) -> list[TitleSuggestion]:
        def _request():
            return self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(titles, channel_name)},
                ],
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
            )

        response = call_with_retry(
            _request,
            service="Title model",
            max_attempts=self.config.max_attempts,
            is_transient=_is_transient,
            wrap=(openai.OpenAIError,),
            describe=lambda exc: str(exc) or exc.__class__.__name__,
        )
        if not response.choices:
            raise ResponseShapeError("No titles returned")
        return parse_suggestions(response.choices[0].message.content)
