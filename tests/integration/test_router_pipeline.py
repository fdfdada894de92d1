import pytest

from rag_router.errors import SchemaError
from rag_router.retrieval.store import KnowledgeStore
from rag_router.types import ChatMessage

_DOC = "The sky is blue. Grass is green."


def _kb_route(router, tmp_path, **overrides):
    config = {
        "chat_model": "chat",
        "embed_model": "embedder",
        "db_path": str(tmp_path / "kb"),
        "chunk_size": 20,
        "chunk_overlap": 5,
        **overrides,
    }
    return router.register_route("kb", config)


def test_end_to_end_rag_retrieval(make_router, tmp_path) -> None:
    router, _, _ = make_router()
    route = _kb_route(router, tmp_path)

    route.add_document("doc1", _DOC)
    vector = route.embed(["sky color"])[0]
    neighbors = route.store.query(vector, "sky", k=1, alpha=0.7, max_score=1.0)

    assert len(route.store) == 2
    assert len(neighbors) == 1
    assert "sky" in neighbors[0].metadata["text"]
    assert neighbors[0].score <= 1.0
    assert router.query_vecstore("kb", "sky")[0] == "The sky is blue. Gra"


def test_chat_dispatches_the_preferred_variant(make_router, refined_json) -> None:
    router, prompt_engine, chat_engine = make_router(
        prompt_replies=[refined_json("Tell me about the sky")] * 2,
        chat_replies=["Because of Rayleigh scattering.", "It is blue."],
    )
    router.register_route("qa", {"chat_model": "chat"})

    assert router.chat("qa", "Tell me about the sky") == "Because of Rayleigh scattering."
    assert chat_engine.calls[0][-1] == ChatMessage("user", "Explain why the sky looks blue.")

    router.query_preference = "unknown"
    router.chat("qa", "Tell me about the sky")
    assert chat_engine.calls[1][-1] == ChatMessage("user", "Tell me about the sky")
    assert len(prompt_engine.calls) == 2
    assert prompt_engine.sampling[0].temperature == 0.2


def test_chat_fails_when_refinement_is_malformed(make_router) -> None:
    router, _, chat_engine = make_router(prompt_replies=["I think you mean..."], chat_replies=["x"])
    router.register_route("qa", {"chat_model": "chat"})

    with pytest.raises(SchemaError):
        router.chat("qa", "hello")

    assert chat_engine.calls == []
    assert len(router.get_route("qa").chat_model.messages) == 1


def test_rag_adds_rendered_context_before_chatting(make_router, refined_json, tmp_path) -> None:
    router, _, chat_engine = make_router(
        prompt_replies=[refined_json("sky color")], chat_replies=["Blue."]
    )
    _kb_route(router, tmp_path)
    router.get_route("kb").add_document("doc1", _DOC)
    router.register_template("context", "Context [{{ id }}]: {{ text }}")

    assert router.rag("kb", "context", "sky color") == "Blue."

    messages = chat_engine.calls[0]
    assert messages[0].role == "system"
    expected = ChatMessage("assistant", "Context [doc1-chunk-0000]: The sky is blue. Gra")
    assert messages[1] == expected
    assert messages[-1] == ChatMessage("user", "Explain why the sky looks blue.")


def test_query_retrieves_with_the_refined_prompt(make_router, refined_json, tmp_path) -> None:
    router, _, _ = make_router(
        prompt_replies=[
            refined_json(
                "grass",
                prompts={
                    "deterministic": "grass",
                    "balanced": "What colour is grass?",
                    "creative": "grass poem",
                },
            )
        ]
    )
    _kb_route(router, tmp_path)
    router.get_route("kb").add_document("doc1", _DOC)
    router.register_template("plain", "{{ text }}")

    results = router.query("kb", "grass", "plain")

    assert results[0] == ". Grass is green."


def test_session_chat_uses_route_model_and_session_history(make_router) -> None:
    router, _, chat_engine = make_router(chat_replies=["Hello there."])
    router.register_route("qa", {"chat_model": "chat"})
    router.open_session("s1", "You are a greeter.", max_length=4)
    router.append_user("s1", "My name is Ada.")
    router.append_assistant("s1", "Noted.")

    assert router.session_chat("qa", "s1", "Greet me.") == "Hello there."

    assert chat_engine.calls[0][0] == ChatMessage("system", "You are a greeter.")
    assert [m.text for m in router.get_session("s1").messages][-2:] == ["Greet me.", "Hello there."]
    assert len(router.get_route("qa").chat_model.messages) == 1


def test_catalog_round_trip(make_router, tmp_path) -> None:
    router, _, _ = make_router()

    route_id = router.add_route_to_catalog("Answers questions about weather and the sky", "kb")
    router.add_url_to_catalog("Botanical encyclopedia of grasses", "https://example.org/grass")
    router.add_endpoint_to_catalog("rest", "Currency exchange rates", "https://example.org/fx")

    hits = router.query_catalog("sky weather", k=1)
    assert hits[0].id == route_id
    assert hits[0].metadata["tag:route"] == "kb"
    assert hits[0].metadata["tag:type"] == "route"

    router.save_catalog()
    reopened = KnowledgeStore.open(tmp_path / "catalog")
    assert len(reopened) == 3
    assert reopened.get(route_id).metadata["text"] == "Answers questions about weather and the sky"


def test_route_store_survives_router_restart(make_router, tmp_path) -> None:
    router, _, _ = make_router()
    route = _kb_route(router, tmp_path)
    route.add_document("doc1", _DOC)
    route.save()

    restarted, _, _ = make_router()
    again = _kb_route(restarted, tmp_path)

    assert len(again.store) == 2
    assert again.query_texts("sky", k=1) == ["The sky is blue. Gra"]


def test_rule_evaluation_through_the_router(make_router) -> None:
    router, _, _ = make_router()
    router.define_rules("R1", "when total > 100 then discount = 10")
    router.set_fact("F1", "total", 150)

    router.evaluate("R1", "F1")

    assert router.facts("F1")["discount"] == 10
