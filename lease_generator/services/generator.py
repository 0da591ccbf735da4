"""Lease content generation backends.

Every backend implements ``LeaseGenerator.generate``. The backend is chosen
once at startup from ``LLM_PROVIDER`` via ``create_generator``; requests
never pick their own backend.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

import anthropic
import groq

from lease_generator.models.lease import LeaseInput, LeaseOutput
from lease_generator.models.usage import GenerationResult, TokenUsage
from lease_generator.services.errors import GenerationBackendError
from lease_generator.utils.config import Settings
from lease_generator.utils.llm import (
    create_async_anthropic,
    create_async_groq,
    estimate_cost,
    parse_json_from_text,
)

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You draft residential lease agreements.

You receive the landlord's lease terms as JSON. Return the complete lease as a
single JSON object and nothing else, matching this JSON schema exactly:

{schema}

Rules:
- Keep every value the landlord supplied. Do not change amounts, dates, names or addresses.
- Use the same camelCase field names as the schema.
- "tenant" is a list with one entry per tenant.
- State the pet policy explicitly; when pets are not allowed, use 0 for every pet amount.
- Add "clauses" for standard lease sections (use of premises, maintenance and repairs,
  entry by landlord, default and termination, governing law) written for the given
  jurisdiction, including any disclosures that jurisdiction requires.
- Add "disclaimers" noting that the document is a template and not legal advice.
- Dates use YYYY-MM-DD. Money values are plain numbers without currency symbols."""


def build_messages(lease_input: LeaseInput) -> tuple[str, str]:
    """Build (system, user) prompt text for a lease request."""
    schema = json.dumps(LeaseOutput.model_json_schema(by_alias=True), indent=2)
    system = SYSTEM_PROMPT.format(schema=schema)
    terms = lease_input.model_dump(
        mode="json", by_alias=True, exclude_none=True, exclude={"captcha_token"}
    )
    user = "Lease terms:\n" + json.dumps(terms, indent=2)
    return system, user


class LeaseGenerator(ABC):
    """Abstract lease content generator."""

    provider: str = ""
    default_model: str = ""

    def __init__(self, settings: Settings, model: Optional[str] = None):
        self.settings = settings
        self.model = model or settings.llm_model or self.default_model

    @classmethod
    def from_settings(cls, settings: Settings) -> "LeaseGenerator":
        return cls(settings)

    @abstractmethod
    async def generate(self, lease_input: LeaseInput) -> GenerationResult:
        """Produce raw lease data for ``lease_input``.

        The returned ``lease_data`` is unvalidated. Raises
        GenerationBackendError if the backend cannot be reached.
        """

    def _result(self, text: Optional[str], prompt_tokens: int, completion_tokens: int) -> GenerationResult:
        usage = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            provider=self.provider,
            model=self.model,
        )
        cost = estimate_cost(
            prompt_tokens,
            completion_tokens,
            self.settings.llm_input_cost_per_mtok,
            self.settings.llm_output_cost_per_mtok,
        )
        return GenerationResult(
            lease_data=parse_json_from_text(text),
            token_usage=usage,
            estimated_cost=cost,
        )


class AnthropicLeaseGenerator(LeaseGenerator):
    """Generate leases with Claude through the Messages API."""

    provider = "anthropic"
    default_model = "claude-sonnet-4-20250514"

    def __init__(self, settings: Settings, model: Optional[str] = None, client=None):
        super().__init__(settings, model)
        self.client = client or create_async_anthropic(settings)

    async def generate(self, lease_input: LeaseInput) -> GenerationResult:
        system, user = build_messages(lease_input)
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.settings.llm_max_tokens,
                temperature=self.settings.llm_temperature,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
        except anthropic.APIError as e:
            raise GenerationBackendError(self.provider, str(e), e) from e

        text = "".join(block.text for block in response.content if hasattr(block, "text"))
        return self._result(text, response.usage.input_tokens, response.usage.output_tokens)


class GroqLeaseGenerator(LeaseGenerator):
    """Generate leases with an open model served by Groq."""

    provider = "groq"
    default_model = "llama-3.3-70b-versatile"

    def __init__(self, settings: Settings, model: Optional[str] = None, client=None):
        super().__init__(settings, model)
        self.client = client or create_async_groq(settings)

    async def generate(self, lease_input: LeaseInput) -> GenerationResult:
        system, user = build_messages(lease_input)
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=self.settings.llm_temperature,
                max_tokens=self.settings.llm_max_tokens,
                response_format={"type": "json_object"},
            )
        except groq.APIError as e:
            raise GenerationBackendError(self.provider, str(e), e) from e

        text = response.choices[0].message.content if response.choices else None
        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        return self._result(text, prompt_tokens, completion_tokens)


GENERATOR_BACKENDS: dict[str, type[LeaseGenerator]] = {
    "anthropic": AnthropicLeaseGenerator,
    "groq": GroqLeaseGenerator,
}


def create_generator(settings: Settings) -> LeaseGenerator:
    """Instantiate the backend named by ``settings.llm_provider``."""
    name = settings.llm_provider.lower()
    backend = GENERATOR_BACKENDS.get(name)
    if backend is None:
        available = ", ".join(sorted(GENERATOR_BACKENDS))
        raise ValueError(f"Unknown LLM_PROVIDER '{settings.llm_provider}'. Available: {available}")
    generator = backend.from_settings(settings)
    logger.info(f"Lease generator: {generator.provider} ({generator.model})")
    return generator
