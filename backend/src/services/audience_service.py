"""Target audience suggestions for the onboarding flow."""
import logging

from anthropic import AnthropicError

from schemas.actions import AudienceSuggestionsInput, AudienceSuggestionsOutput
from services.exceptions import ActionError
from services.llm_client import LLMClient

logger = logging.getLogger(__name__)

# Shown when the model is unavailable; the client starts with the same list
FALLBACK_SUGGESTIONS: tuple[str, ...] = (
    "Tech Professionals",
    "Young Parents",
    "Fitness Enthusiasts",
    "Eco-conscious Foodies",
)

PROMPT_TEMPLATE = """\
You are a brand strategist helping define target audiences.

Brand Name: {brand_name}
Elevator Pitch: {elevator_pitch}

Generate exactly 4 concise, highly relevant target audience suggestions for this brand.
Each suggestion should be:
- Short (2-4 words)
- Specific to this brand's value proposition
- Actionable and clear
- Different from each other (cover different angles)

Examples of good suggestions:
- "Enterprise IT Teams"
- "Remote-First Startups"
- "B2B SaaS Leaders"
- "DevOps Engineers"

Return the 4 suggestions as JSON: {{"suggestions": ["...", "...", "...", "..."]}}
"""


def build_prompt(data: AudienceSuggestionsInput) -> str:
    return PROMPT_TEMPLATE.format(
        brand_name=data.brand_name,
        elevator_pitch=data.elevator_pitch,
    )


def fallback_suggestions() -> AudienceSuggestionsOutput:
    return AudienceSuggestionsOutput(suggestions=list(FALLBACK_SUGGESTIONS))


async def generate_audience_suggestions(
    data: AudienceSuggestionsInput,
    llm: LLMClient | None,
) -> AudienceSuggestionsOutput:
    """
    Ask the LLM for four audience suggestions.

    Never fails: any model, network or format problem is logged and the generic
    fallback list is returned, since suggestions are a convenience only.
    """
    if llm is None:
        logger.warning("audience_suggestions_fallback", extra={"reason": "llm_not_configured"})
        return fallback_suggestions()

    try:
        return await llm.generate(build_prompt(data), AudienceSuggestionsOutput)
    except (ActionError, AnthropicError) as e:
        logger.error("Error generating audience suggestions: %s", e, exc_info=True)
        return fallback_suggestions()
