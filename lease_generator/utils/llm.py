"""Shared LLM helpers: client construction and JSON extraction."""

import json
import logging
import re
from typing import Optional

from lease_generator.utils.config import Settings

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


def create_async_anthropic(settings: Settings):
    """Build an AsyncAnthropic client from settings."""
    from anthropic import AsyncAnthropic

    if not settings.anthropic_api_key:
        raise RuntimeError(
            "ANTHROPIC_API_KEY not set. Add it to your .env file."
        )
    return AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
    )


def create_async_groq(settings: Settings):
    """Build an AsyncGroq client from settings."""
    from groq import AsyncGroq

    if not settings.groq_api_key:
        raise RuntimeError(
            "GROQ_API_KEY not set. Add it to your .env file."
        )
    return AsyncGroq(
        api_key=settings.groq_api_key,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
    )


def estimate_cost(
    prompt_tokens: int,
    completion_tokens: int,
    input_cost_per_mtok: float,
    output_cost_per_mtok: float,
) -> float:
    """Estimated USD spend for one call."""
    return (
        prompt_tokens * input_cost_per_mtok + completion_tokens * output_cost_per_mtok
    ) / 1_000_000


def parse_json_from_text(text: Optional[str]) -> dict | list | None:
    """Extract and parse JSON from text that may contain markdown fences.

    Returns None when nothing parseable is found.
    """
    if not text:
        return None

    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        parts = text.split("```")
        if len(parts) >= 3:
            text = parts[1].strip()
    else:
        text = text.strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Try to find JSON array or object in the text
        match = _JSON_BLOCK.search(text)
        if match:
            try:
                return json.loads(match.group(1))
            except json.JSONDecodeError:
                pass
        logger.debug(f"Failed to parse LLM JSON ({len(text)} chars)")
        return None
