"""GenerationClient: stateless adapter around the Anthropic Messages API.

One invocation = one API call. Nothing here retries: the retry controller
re-prompts with verifier feedback, which a plain resend could never do.

Every failure mode (SDK error, timeout, malformed envelope, empty body,
unparseable code payload) is raised as GenerationServiceError so callers
handle a single error kind.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import anthropic
import structlog

from appbuilder.core.config import Settings, get_settings
from appbuilder.core.exceptions import GenerationServiceError
from appbuilder.generation.prompts import SYSTEM_PROMPT

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Completion:
    """Raw text answer of one API call plus usage accounting."""

    text: str
    tokens_used: int
    model: str


@dataclass(frozen=True)
class GeneratedCode:
    """Code payload extracted from a generation call."""

    code: str
    tokens_used: int
    model: str


def _strip_json_fences(content: str) -> str:
    """Remove markdown code fences wrapping JSON output."""
    content = content.strip()
    if content.startswith("```"):
        first_newline = content.find("\n")
        if first_newline != -1:
            content = content[first_newline + 1 :]
        if content.endswith("```"):
            content = content[:-3].rstrip()
    return content


def parse_json_object(content: str) -> dict:
    """Parse a JSON object from an LLM answer, stripping fences first.

    Raises:
        ValueError: if the text is not JSON or not a JSON object
    """
    parsed = json.loads(_strip_json_fences(content))
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def _extract_text(response: Any) -> str:
    """Concatenate the text blocks of a Messages API response.

    Raises GenerationServiceError when the envelope has no text blocks.
    """
    blocks = getattr(response, "content", None)
    if not blocks:
        raise GenerationServiceError("Invalid response from AI service")

    texts = [block.text for block in blocks if getattr(block, "type", "text") == "text" and hasattr(block, "text")]
    if not texts:
        raise GenerationServiceError("Invalid response from AI service")
    return "".join(texts)


def _total_tokens(response: Any) -> int:
    usage = getattr(response, "usage", None)
    if usage is None:
        return 0
    return (getattr(usage, "input_tokens", 0) or 0) + (getattr(usage, "output_tokens", 0) or 0)


class GenerationClient:
    """Adapter around ``anthropic.AsyncAnthropic`` for code generation and extraction.

    Args:
        settings: Application settings (model names, token limits, timeout)
        client: Pre-built AsyncAnthropic (or compatible) client. Built from
            settings on first use when omitted.
    """

    def __init__(self, settings: Settings | None = None, client: Any | None = None) -> None:
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.settings.anthropic_api_key)
        return self._client

    async def complete(
        self,
        system: str,
        user: str,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> Completion:
        """Send one system+user prompt pair and return the text answer.

        Raises:
            GenerationServiceError: on any API failure, timeout, malformed
                envelope or empty text body
        """
        model_name = model or self.settings.generation_model
        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=model_name,
                    max_tokens=max_tokens or self.settings.generation_max_tokens,
                    system=system,
                    messages=[{"role": "user", "content": user}],
                ),
                timeout=self.settings.generation_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("ai_service_timeout", model=model_name, timeout=self.settings.generation_timeout_seconds)
            raise GenerationServiceError("AI service request timed out") from exc
        except anthropic.APIError as exc:
            logger.warning("ai_service_error", model=model_name, error=str(exc), error_type=type(exc).__name__)
            raise GenerationServiceError(f"AI service error: {exc}") from exc

        if response is None:
            raise GenerationServiceError("Invalid response from AI service")

        text = _extract_text(response)
        if not text.strip():
            logger.warning("ai_service_empty_response", model=model_name)
            raise GenerationServiceError("Empty response from AI service")

        return Completion(text=text.strip(), tokens_used=_total_tokens(response), model=model_name)

    async def generate(self, prompt_text: str) -> GeneratedCode:
        """Generate app code for a fully-built prompt.

        The model is instructed to answer ``{"code": "..."}``; the code string is
        extracted and returned with the call's token usage.

        Raises:
            GenerationServiceError: on call failure or when the answer carries no code
        """
        completion = await self.complete(SYSTEM_PROMPT, prompt_text)

        try:
            payload = parse_json_object(completion.text)
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError subclass
            logger.warning("generated_code_unparseable", error=str(exc), preview=completion.text[:200])
            raise GenerationServiceError("Failed to parse generated code structure") from exc

        code = payload.get("code")
        if not isinstance(code, str) or not code.strip():
            raise GenerationServiceError("AI response did not contain any code")

        return GeneratedCode(code=code, tokens_used=completion.tokens_used, model=completion.model)
