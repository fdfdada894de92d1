import json

import pytest
from pydantic import ValidationError

from rag_router.errors import SchemaError
from rag_router.llm import InferenceBackend
from rag_router.routing.refiner import (
    REFINER_SYSTEM_PROMPT,
    PromptRefiner,
    RecommendedPrompt,
    parse_recommended_prompt,
    select,
)
from rag_router.templates import TemplateRenderer
from rag_router.types import ChatMessage


def _recommended(refined_json, **overrides) -> RecommendedPrompt:
    return parse_recommended_prompt(refined_json("R", **overrides))


def test_select_returns_named_variant_or_raw_prompt(refined_json) -> None:
    recommended = _recommended(
        refined_json, prompts={"deterministic": "A", "balanced": "B", "creative": "C"}
    )

    assert select(recommended, "creative") == "C"
    assert select(recommended, "deterministic") == "A"
    assert select(recommended, "unknown") == "R"
    assert recommended.recommended_prompt("balanced") == "B"
    assert recommended.recommended_prompt("") == "R"


def test_recommended_prompt_is_immutable(refined_json) -> None:
    recommended = _recommended(refined_json)

    with pytest.raises(ValidationError):
        recommended.raw_prompt = "changed"  # type: ignore[misc]


def test_surrounding_whitespace_is_tolerated(refined_json) -> None:
    recommended = parse_recommended_prompt("\n  " + refined_json("R") + "\n\n")

    assert recommended.raw_prompt == "R"
    assert recommended.clarifying_questions == []
    assert len(recommended.quick_tests) == 3


@pytest.mark.parametrize(
    "overrides",
    [
        {"prompts": {"deterministic": "A", "balanced": "B"}},
        {"quick_tests": ["one", "two"]},
        {"quick_tests": ["one", "two", "three", "four"]},
        {"rationale_bullets": ["only", "two"]},
        {"rationale_bullets": ["1", "2", "3", "4", "5", "6", "7"]},
        {"clarifying_questions": ["a?", "b?", "c?", "d?"]},
        {"clarifying_questions": "not a list"},
        {"confidence": 0.9},
    ],
)
def test_schema_violations_are_rejected(refined_json, overrides) -> None:
    with pytest.raises(SchemaError):
        parse_recommended_prompt(refined_json("R", **overrides))


def test_missing_required_field_is_rejected(refined_json) -> None:
    payload = json.loads(refined_json("R"))
    del payload["suggested_parameters"]

    with pytest.raises(SchemaError):
        parse_recommended_prompt(json.dumps(payload))


@pytest.mark.parametrize(
    "reply",
    ["", "not json", "Sure! Here is the JSON: {}", '```json\n{"raw_prompt": "R"}\n```'],
)
def test_non_json_replies_are_rejected(reply: str) -> None:
    with pytest.raises(SchemaError):
        parse_recommended_prompt(reply)


def test_refine_runs_in_an_isolated_session(scripted_engine, refined_json) -> None:
    engine = scripted_engine([refined_json("Tell me about the sky")])
    handle = InferenceBackend(engines={"refiner": engine}).load_model("refiner", "handle system")
    handle.add_inference_to_prompt("unrelated context")
    refiner = PromptRefiner(handle, TemplateRenderer())

    recommended = refiner.refine("Tell me about the sky")

    assert recommended.raw_prompt == "Tell me about the sky"
    (messages,) = engine.calls
    assert messages[0] == ChatMessage("system", REFINER_SYSTEM_PROMPT)
    assert len(messages) == 2
    assert messages[1].role == "user"
    assert "Tell me about the sky" in messages[1].text
    assert "quick_tests" in messages[1].text
    assert handle.messages[-1] == ChatMessage("assistant", "unrelated context")


def test_refine_surfaces_schema_errors(scripted_engine) -> None:
    handle = InferenceBackend(engines={"refiner": scripted_engine(["{}"])}).load_model(
        "refiner", "sys"
    )

    with pytest.raises(SchemaError):
        PromptRefiner(handle, TemplateRenderer()).refine("anything")


def test_refiner_uses_a_custom_registered_template(scripted_engine, refined_json) -> None:
    engine = scripted_engine([refined_json("short")])
    handle = InferenceBackend(engines={"refiner": engine}).load_model("refiner", "sys")
    renderer = TemplateRenderer()
    renderer.register("terse", "Refine: {{ prompt }}")

    PromptRefiner(handle, renderer, "terse").refine("short")

    assert engine.calls[0][1] == ChatMessage("user", "Refine: short")
