import pytest

from rag_router.config import RouteConfig, RouterConfig
from rag_router.errors import ConfigurationError, NotFoundError
from rag_router.ingest import HashingEmbeddings
from rag_router.llm import InferenceBackend, LangChainEngine
from rag_router.routing.registry import RouteRegistry, build_route
from rag_router.routing.router import Router


def _backend(scripted_engine) -> InferenceBackend:
    return InferenceBackend(
        engines={
            "chat": scripted_engine(["one", "two"]),
            "embedder": LangChainEngine(embeddings=HashingEmbeddings()),
        }
    )


def test_register_get_replace_and_remove(tmp_path, scripted_engine) -> None:
    registry = RouteRegistry(_backend(scripted_engine))

    first = registry.register("qa", {"chat_model": "chat"})
    second = registry.register("qa", RouteConfig(chat_model="chat", system_prompt="Second."))

    assert registry.get("qa") is second
    assert second is not first
    assert registry.names() == {"qa"}

    registry.remove("qa")
    assert registry.names() == set()
    with pytest.raises(NotFoundError):
        registry.get("qa")
    with pytest.raises(NotFoundError):
        registry.remove("qa")


@pytest.mark.parametrize(
    "config",
    [
        {"embed_model": "embedder"},
        {"chat_model": ""},
        {"chat_model": "chat", "chunk_size": 10, "chunk_overlap": 10},
        {"chat_model": "chat", "alpha": 1.5},
        {"chat_model": "chat", "unexpected": True},
    ],
)
def test_invalid_route_config_registers_nothing(tmp_path, scripted_engine, config) -> None:
    registry = RouteRegistry(_backend(scripted_engine))
    db_path = tmp_path / "kb"

    with pytest.raises(ConfigurationError):
        registry.register("qa", {**config, "db_path": str(db_path)})

    assert registry.names() == set()
    assert not db_path.exists()


def test_unloadable_model_creates_no_store_directory(tmp_path, scripted_engine) -> None:
    registry = RouteRegistry(_backend(scripted_engine))
    db_path = tmp_path / "kb"

    with pytest.raises(ConfigurationError):
        registry.register(
            "qa", {"chat_model": "chat", "embed_model": "missing", "db_path": str(db_path)}
        )

    assert registry.names() == set()
    assert not db_path.exists()


def test_registration_creates_the_store_directory(tmp_path, scripted_engine) -> None:
    db_path = tmp_path / "stores" / "kb"

    route = build_route(
        "qa",
        {"chat_model": "chat", "embed_model": "embedder", "db_path": str(db_path)},
        _backend(scripted_engine),
    )

    assert db_path.is_dir()
    assert route.store is not None
    assert route.embed_model is not None


def test_missing_components_are_configuration_errors(scripted_engine) -> None:
    backend = _backend(scripted_engine)
    chat_only = build_route("chat-only", {"chat_model": "chat"}, backend)

    with pytest.raises(ConfigurationError):
        chat_only.embed(["text"])
    with pytest.raises(ConfigurationError):
        chat_only.add_document("doc", "text")
    with pytest.raises(ConfigurationError):
        chat_only.query("text")

    assert chat_only.chat("hello") == "one"


def test_route_chat_and_ask_share_the_model_history(scripted_engine) -> None:
    route = build_route("qa", {"chat_model": "chat"}, _backend(scripted_engine))

    route.chat("hello")
    route.ask("peek")

    assert [m.role for m in route.chat_model.messages] == ["system", "user", "assistant"]
    route.reset()
    assert len(route.chat_model.messages) == 1


def test_router_requires_both_models(tmp_path, scripted_engine) -> None:
    catalog = tmp_path / "catalog"

    with pytest.raises(ConfigurationError):
        Router(
            {"default_embed_model": "embedder", "catalog_path": str(catalog)},
            _backend(scripted_engine),
        )
    with pytest.raises(ConfigurationError):
        Router(
            RouterConfig(
                prompt_model="missing",
                default_embed_model="embedder",
                catalog_path=str(catalog),
            ),
            _backend(scripted_engine),
        )

    assert not catalog.exists()


def test_routes_cannot_share_a_store_directory(tmp_path, scripted_engine) -> None:
    registry = RouteRegistry(_backend(scripted_engine))
    shared = str(tmp_path / "kb")
    registry.register("qa", {"chat_model": "chat", "embed_model": "embedder", "db_path": shared})

    with pytest.raises(ConfigurationError):
        registry.register(
            "other", {"chat_model": "chat", "embed_model": "embedder", "db_path": shared + "/."}
        )

    assert registry.names() == {"qa"}
    replaced = registry.register(
        "qa", {"chat_model": "chat", "embed_model": "embedder", "db_path": shared}
    )
    assert registry.get("qa") is replaced


def test_route_cannot_reuse_the_catalog_directory(make_router) -> None:
    router, _, _ = make_router([])
    catalog = str(router.catalog.path)

    with pytest.raises(ConfigurationError):
        router.register_route(
            "qa", {"chat_model": "chat", "embed_model": "embedder", "db_path": catalog}
        )

    assert router.list_routes() == set()
