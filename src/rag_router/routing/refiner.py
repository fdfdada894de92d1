"""Prompt refinement: rewrite a rough prompt into schema-checked variants."""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from rag_router.config import SamplingConfig
from rag_router.errors import SchemaError
from rag_router.llm.backend import ModelHandle
from rag_router.routing.sessions import Session
from rag_router.templates import TemplateRenderer

PREFERENCES: tuple[str, ...] = ("deterministic", "balanced", "creative")

REFINE_TEMPLATE_NAME = "prompt_refiner"

REFINER_SYSTEM_PROMPT = (
    "You are Prompt Refiner. Your job is to transform rough prompts into precise, "
    "testable instructions for other models."
)

DEFAULT_REFINE_TEMPLATE = """\
You are Prompt Refiner. Your job is to transform rough prompts into precise, testable instructions for other models.

Operating rules:
- Preserve the user's intent and domain terms.
- Remove ambiguity; add only minimal missing constraints.
- Do not reveal chain-of-thought or internal reasoning.
- Output valid JSON that matches the schema EXACTLY. No extra text outside JSON.

Output schema (must match precisely):
{
  "raw_prompt": "string",                          // the rough prompt, verbatim
  "clarifying_questions": [string],                // only if essential details are missing; at most 3 items
  "prompts": {
    "deterministic": "string",                     // concise, reproducible
    "balanced": "string",                          // practical default
    "creative": "string"                           // more open-ended
  },
  "rationale_bullets": [string],                   // 3 to 6 short bullets
  "suggested_parameters": {
    "temperature": number,
    "top_p": number,
    "max_tokens": number,
    "stop": [string],
    "seed": number
  },
  "quick_tests": [string, string, string]          // 3 short inputs to validate the prompt
}

Improve the following prompt and return JSON ONLY per the schema.

Rough prompt:
<<<
{{ prompt }}
>>>
"""


class RecommendedPrompt(BaseModel):
    """Parsed refiner output. Immutable; unknown fields are rejected."""

    model_config = ConfigDict(frozen=True, strict=True, extra="forbid")

    raw_prompt: str
    clarifying_questions: list[str] = Field(default_factory=list, max_length=3)
    prompts: dict[str, str]
    rationale_bullets: list[str] = Field(min_length=3, max_length=6)
    suggested_parameters: dict[str, Any]
    quick_tests: list[str] = Field(min_length=3, max_length=3)

    @field_validator("prompts")
    @classmethod
    def _has_every_variant(cls, value: dict[str, str]) -> dict[str, str]:
        missing = [name for name in PREFERENCES if name not in value]
        if missing:
            raise ValueError(f"missing prompt variants: {', '.join(missing)}")
        return value

    def recommended_prompt(self, preference: str) -> str:
        return select(self, preference)


def select(recommended: RecommendedPrompt, preference: str) -> str:
    """The variant named `preference`, else `raw_prompt`.

    There is no fallback to any other variant: an unknown preference always
    yields the raw prompt unchanged.
    """

    return recommended.prompts.get(preference, recommended.raw_prompt)


def parse_recommended_prompt(text: str) -> RecommendedPrompt:
    try:
        return RecommendedPrompt.model_validate_json(text.strip())
    except ValidationError as exc:
        logger.warning("Rejected refiner response ({} errors)", exc.error_count())
        raise SchemaError(
            "Refiner response does not match the RecommendedPrompt schema", details=str(exc)
        ) from exc


class PromptRefiner:
    """Runs the refinement meta-prompt through a model in an isolated session.

    Every call uses a fresh `Session` seeded only with the refiner system
    prompt, so refinement never reads or writes the model's own history.
    """

    def __init__(
        self,
        model: ModelHandle,
        renderer: TemplateRenderer,
        template_name: str = REFINE_TEMPLATE_NAME,
        *,
        system_prompt: str = REFINER_SYSTEM_PROMPT,
        sampling: SamplingConfig | None = None,
    ) -> None:
        self.model = model
        self.renderer = renderer
        self.template_name = template_name
        self.system_prompt = system_prompt
        self.sampling = sampling
        if template_name not in renderer:
            renderer.register(template_name, DEFAULT_REFINE_TEMPLATE)

    def refine(self, raw_prompt: str) -> RecommendedPrompt:
        instruction = self.renderer.render(self.template_name, {"prompt": raw_prompt})
        session = Session(self.system_prompt)
        reply = self.model.chat_in(session, instruction, self.sampling)
        recommended = parse_recommended_prompt(reply)
        logger.debug(
            "Refined prompt into {} variant(s), {} clarifying question(s)",
            len(recommended.prompts),
            len(recommended.clarifying_questions),
        )
        return recommended
