"""Tests for the dispatch stages: initializer, middleware chain, controllers."""

import json

import pytest

from perch._internal.binding import ArgumentBinder
from perch.config import AppConfig
from perch.dispatch import (
    ControllerRegistry,
    ControllerResolver,
    DispatchPipeline,
    MiddlewareChainRunner,
    MiddlewareRegistry,
    RequestInitializer,
)
from perch.errors import (
    ConfigurationError,
    Halt,
    HTTPError,
    InvalidInput,
    NotFound,
    ValidationFailure,
)
from perch.http.response import Redirect, Response
from perch.providers import ProviderRegistry
from perch.routing.context import RouteContext
from perch.session import Session
from perch.validation import number, string


def _route(path: str = "/", method: str = "GET", **kwargs) -> RouteContext:
    return RouteContext(route_path=path, method=method, **kwargs)


def _initializer() -> RequestInitializer:
    return RequestInitializer(ArgumentBinder(ProviderRegistry()))


# ---------------------------------------------------------------------------
# Input assembly and validation
# ---------------------------------------------------------------------------


class TestReadInput:
    async def test_get_uses_query_and_path_params(self, make_reception) -> None:
        route = _route("/posts/{id:int}", path_params={"id": 5})
        reception = make_reception(route=route, query=b"id=9&tab=comments")
        await _initializer().initialize(reception)
        assert reception.input() == {"id": 5, "tab": "comments"}

    async def test_json_body_merged(self, make_reception) -> None:
        reception = make_reception(
            "POST",
            route=_route(method="POST", path_params={"id": 1}),
            query=b"a=q&b=q",
            headers={"Content-Type": "application/json"},
            body=json.dumps({"b": "body", "id": 99}).encode(),
        )
        await _initializer().initialize(reception)
        assert reception.input() == {"a": "q", "b": "body", "id": 1}

    async def test_json_non_object_ignored(self, make_reception) -> None:
        reception = make_reception(
            "POST",
            route=_route(method="POST"),
            headers={"Content-Type": "application/json"},
            body=b"[1]",
        )
        await _initializer().initialize(reception)
        assert reception.input() == {}

    async def test_form_fields_nested(self, make_reception) -> None:
        reception = make_reception(
            "POST",
            route=_route(method="POST"),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            body=b"user%5Bname%5D=ann",
        )
        await _initializer().initialize(reception)
        assert reception.input("user.name") == "ann"

    async def test_body_too_large(self, make_reception) -> None:
        reception = make_reception(
            "POST",
            route=_route(method="POST"),
            headers={"Content-Type": "application/json"},
            body=b'{"a": 1}',
            config=AppConfig(max_content_length=4),
        )
        with pytest.raises(HTTPError) as exc_info:
            await _initializer().initialize(reception)
        assert exc_info.value.status == 413


class TestValidators:
    async def test_validated_data_replaces_input(self, make_reception) -> None:
        route = _route(validators={"page": number(min_value=1)})
        reception = make_reception(route=route, query=b"page=2&extra=x")
        await _initializer().initialize(reception)
        assert reception.input() == {"page": 2}

    async def test_get_failure_without_handler(self, make_reception) -> None:
        route = _route(validators={"page": number()})
        reception = make_reception(route=route, query=b"page=x")
        with pytest.raises(NotFound) as exc_info:
            await _initializer().initialize(reception)
        assert exc_info.value.code == 2001

    async def test_post_failure_without_handler(self, make_reception) -> None:
        route = _route(method="POST", validators={"title": string(max_len=3)})
        reception = make_reception(
            "POST",
            route=route,
            headers={"Content-Type": "application/json"},
            body=b'{"title": "toolong"}',
        )
        with pytest.raises(InvalidInput) as exc_info:
            await _initializer().initialize(reception)
        assert exc_info.value.status == 422
        assert exc_info.value.code == 1004

    async def test_failure_handler_flashes_errors(self, make_reception) -> None:
        route = _route(
            method="POST",
            validators={"title": string(), "body": string()},
            fails=Redirect("/posts/new"),
        )
        reception = make_reception("POST", route=route)
        token = reception.activate()
        try:
            with pytest.raises(Halt):
                await _initializer().initialize(reception)
        finally:
            reception.deactivate(token)
        assert reception.response.status == 302
        assert reception.response.header("Location") == "http://testserver/posts/new"
        assert set(reception.session.outgoing_flash["errors"]) == {"title", "body"}

    async def test_failure_handler_must_be_terminal(self, make_reception) -> None:
        route = _route(validators={"q": string()}, fails={"not": "terminal"})
        with pytest.raises(ConfigurationError):
            await _initializer().initialize(make_reception(route=route))


class TestCallback:
    async def test_true_adopts_bound_values(self, make_reception) -> None:
        def check(page, q):
            return True

        route = _route(validators={"page": number(), "n": number()}, callback=check)
        reception = make_reception(route=route, query=b"page=3&q=hi&n=4")
        await _initializer().initialize(reception)
        assert reception.input() == {"page": "3", "q": "hi"}

    async def test_false_fails_under_match_key(self, make_reception) -> None:
        route = _route(callback=lambda: False, fails=Redirect("/"))
        reception = make_reception(route=route)
        with pytest.raises(Halt):
            await _initializer().initialize(reception)
        assert "match" in reception.session.outgoing_flash["errors"]

    async def test_false_without_handler_uses_default_message(self, make_reception) -> None:
        reception = make_reception(route=_route(callback=lambda: False))
        with pytest.raises(NotFound, match="Request validation failed."):
            await _initializer().initialize(reception)

    async def test_raised_failure_keeps_code(self, make_reception) -> None:
        def check(name):
            raise ValidationFailure("taken", 7)

        reception = make_reception("POST", route=_route(method="POST", callback=check))
        with pytest.raises(InvalidInput) as exc_info:
            await _initializer().initialize(reception)
        assert exc_info.value.code == 7
        assert exc_info.value.detail == "taken"

    async def test_mapping_merged_over_validated(self, make_reception) -> None:
        async def enrich(page):
            return {"offset": (int(page) - 1) * 10}

        route = _route(validators={"page": number()}, callback=enrich)
        reception = make_reception(route=route, query=b"page=3")
        await _initializer().initialize(reception)
        assert reception.input() == {"page": 3, "offset": 20}

    async def test_mapping_without_validators_replaces_input(self, make_reception) -> None:
        def check(q):
            return {"x": 1}

        reception = make_reception(route=_route(callback=check), query=b"q=hi")
        await _initializer().initialize(reception)
        assert reception.input() == {"x": 1}

    async def test_passthrough_without_validators_keeps_builtins(self, make_reception) -> None:
        def check(q):
            return None

        reception = make_reception(route=_route(callback=check), query=b"q=hi&other=x")
        await _initializer().initialize(reception)
        assert reception.input() == {"q": "hi"}

    async def test_response_short_circuits(self, make_reception) -> None:
        route = _route(callback=lambda: Response("early", status=403))
        reception = make_reception(route=route)
        with pytest.raises(Halt):
            await _initializer().initialize(reception)
        assert reception.response.status == 403

    async def test_no_validation_leaves_input(self, make_reception) -> None:
        reception = make_reception(route=_route(), query=b"a=1")
        await _initializer().initialize(reception)
        assert reception.input() == {"a": "1"}


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


calls: list[str] = []


class First:
    def handle(self):
        calls.append("first")
        return {"user": "ann"}


class Second:
    def handle(self, user: str):
        calls.append(f"second:{user}")


class Deny:
    def handle(self):
        calls.append("deny")
        return Response("no", status=401)


class Reject:
    def handle(self):
        raise ValidationFailure("not allowed", 9)


class NoHandle:
    pass


def _runner() -> MiddlewareChainRunner:
    registry = MiddlewareRegistry()
    for name, cls in {
        "first": First,
        "second": Second,
        "deny": Deny,
        "reject": Reject,
        "broken": NoHandle,
    }.items():
        registry.register(name, cls)
    registry.freeze()
    providers = ProviderRegistry()
    return MiddlewareChainRunner(registry, providers, ArgumentBinder(providers))


@pytest.fixture
def call_log():
    calls.clear()
    yield calls
    calls.clear()


class TestMiddleware:
    async def test_order_and_patch_merge(self, make_reception, call_log) -> None:
        reception = make_reception(route=_route(middleware=("first", "second")))
        await _runner().run(reception)
        assert call_log == ["first", "second:ann"]
        assert reception.input("user") == "ann"

    async def test_response_halts_chain(self, make_reception, call_log) -> None:
        reception = make_reception(route=_route(middleware=("deny", "first")))
        with pytest.raises(Halt):
            await _runner().run(reception)
        assert call_log == ["deny"]
        assert reception.response.status == 401

    async def test_failure_uses_name_as_key(self, make_reception, call_log) -> None:
        route = _route(middleware=("reject", "first"), fails=Redirect("/login"))
        reception = make_reception(route=route)
        with pytest.raises(Halt):
            await _runner().run(reception)
        assert call_log == []
        assert reception.session.outgoing_flash["errors"]["reject"] == {
            "code": 9,
            "message": "not allowed",
        }

    async def test_failure_keeps_earlier_patches(self, make_reception, call_log) -> None:
        route = _route(middleware=("first", "reject", "second"), fails=Redirect("/login"))
        reception = make_reception(route=route)
        with pytest.raises(Halt):
            await _runner().run(reception)
        assert call_log == ["first"]
        assert reception.input("user") == "ann"
        assert "reject" in reception.session.outgoing_flash["errors"]

    async def test_failure_without_handler(self, make_reception) -> None:
        reception = make_reception("POST", route=_route(method="POST", middleware=("reject",)))
        with pytest.raises(InvalidInput):
            await _runner().run(reception)

    async def test_unknown_name(self, make_reception) -> None:
        with pytest.raises(ConfigurationError, match="Unknown middleware"):
            await _runner().run(make_reception(route=_route(middleware=("missing",))))

    async def test_missing_handle(self, make_reception) -> None:
        with pytest.raises(ConfigurationError, match="handle"):
            await _runner().run(make_reception(route=_route(middleware=("broken",))))

    def test_register_after_freeze(self) -> None:
        registry = MiddlewareRegistry()
        registry.freeze()
        with pytest.raises(RuntimeError):
            registry.register("late", First)


# ---------------------------------------------------------------------------
# Controllers
# ---------------------------------------------------------------------------


class Posts:
    def index(self):
        return "index"

    def edit(self, id: int):
        return f"edit {id}"

    def post_edit(self, id: int):
        return f"save {id}"

    def _secret(self):
        return "hidden"


def _resolver() -> ControllerResolver:
    registry = ControllerRegistry()
    registry.register("posts", Posts)
    return ControllerResolver(registry, ProviderRegistry())


class TestControllerResolver:
    def test_index_by_convention(self, make_reception) -> None:
        method = _resolver().resolve(make_reception(route=_route("/posts")))
        assert method() == "index"

    def test_second_segment_names_method(self, make_reception) -> None:
        method = _resolver().resolve(make_reception(route=_route("/posts/{id}/edit")))
        assert method(1) == "edit 1"

    def test_verb_prefixed_method_preferred(self, make_reception) -> None:
        reception = make_reception("POST", route=_route("/posts/{id}/edit", method="POST"))
        assert _resolver().resolve(reception)(1) == "save 1"

    def test_private_method_not_routable(self, make_reception) -> None:
        with pytest.raises(NotFound):
            _resolver().resolve(make_reception(route=_route("/posts/_secret")))

    def test_unknown_controller(self, make_reception) -> None:
        with pytest.raises(NotFound):
            _resolver().resolve(make_reception(route=_route("/users")))

    def test_explicit_pair(self, make_reception) -> None:
        reception = make_reception(route=_route("/x", controller=(Posts, "index")))
        assert _resolver().resolve(reception)() == "index"

    def test_explicit_pair_missing_method(self, make_reception) -> None:
        reception = make_reception(route=_route("/x", controller=(Posts, "nope")))
        with pytest.raises(ConfigurationError):
            _resolver().resolve(reception)

    def test_explicit_callable(self, make_reception) -> None:
        def handler():
            return "ok"

        assert _resolver().resolve(make_reception(route=_route(controller=handler))) is handler


class TestDispatchPipeline:
    async def test_stages_in_order(self, make_reception, call_log) -> None:
        providers = ProviderRegistry()
        binder = ArgumentBinder(providers)
        registry = MiddlewareRegistry()
        registry.register("first", First)

        def show(page: int, user: str):
            return {"page": page, "user": user}

        pipeline = DispatchPipeline(
            RequestInitializer(binder),
            MiddlewareChainRunner(registry, providers, binder),
            ControllerResolver(ControllerRegistry(), providers),
            binder,
        )
        route = _route(validators={"page": number()}, middleware=("first",), controller=show)
        response = await pipeline.dispatch(make_reception(route=route, query=b"page=4"))
        assert json.loads(response.text) == {"page": 4, "user": "ann"}
        assert call_log == ["first"]

    async def test_session_injected_into_controller(self, make_reception) -> None:
        providers = ProviderRegistry()
        binder = ArgumentBinder(providers)

        def whoami(session: Session):
            return session.get("name", "anonymous")

        pipeline = DispatchPipeline(
            RequestInitializer(binder),
            MiddlewareChainRunner(MiddlewareRegistry(), providers, binder),
            ControllerResolver(ControllerRegistry(), providers),
            binder,
        )
        session = Session({"name": "ann"})
        response = await pipeline.dispatch(
            make_reception(route=_route(controller=whoami), session=session)
        )
        assert response.text == "ann"
