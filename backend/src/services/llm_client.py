"""Thin wrapper around the Anthropic Messages API for structured (JSON) output."""
import json
import logging
import re
from typing import TypeVar

from anthropic import AsyncAnthropic
from pydantic import BaseModel, ValidationError

from core.config import Settings
from services.exceptions import ConfigurationError, UpstreamServiceError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_MAX_TOKENS = 1024

# Models sometimes wrap JSON in a ```json fence despite instructions
_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json(text: str) -> str:
    """
    Pull the JSON object out of a model response.

    Handles fenced code blocks and leading/trailing prose around a single object.
    """
    match = _FENCE.search(text)
    if match:
        text = match.group(1)
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise ValueError("No JSON object found in model response")
    return text[start:end + 1]


class LLMClient:
    """Generates pydantic-validated output from a single prompt."""

    def __init__(self, settings: Settings, client: AsyncAnthropic | None = None) -> None:
        self._model = settings.anthropic_model
        if client is None:
            if not settings.anthropic_api_key:
                raise ConfigurationError("ANTHROPIC_API_KEY")
            client = AsyncAnthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.ai_timeout_seconds,
            )
        self._client = client

    async def generate(
        self,
        prompt: str,
        output_model: type[ModelT],
        system: str = "Respond with a single valid JSON object and nothing else.",
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> ModelT:
        """
        Send ``prompt`` and validate the JSON reply against ``output_model``.

        Raises:
            UpstreamServiceError: If the API call fails or the reply does not
                match the schema.
        """
        schema = json.dumps(output_model.model_json_schema(by_alias=True))
        message = await self._client.messages.create(
            model=self._model,
            max_tokens=max_tokens,
            system=f"{system}\nThe JSON must match this JSON Schema: {schema}",
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        if not text:
            raise UpstreamServiceError("Model returned no text content")

        try:
            return output_model.model_validate_json(extract_json(text))
        except (ValueError, ValidationError) as e:
            logger.warning(
                "llm_output_invalid",
                extra={"model": self._model, "error": str(e), "preview": text[:200]},
            )
            raise UpstreamServiceError("Model returned output in an unexpected format") from e
