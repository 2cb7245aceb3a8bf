"""Tests for Reception, its ContextVar accessors and DomainCache."""

import pytest

from perch.reception import DomainCache, Reception, current_reception, get_reception
from perch.session import Session

from conftest import build_request


class TestInput:
    def test_input_is_live_dict(self, make_reception) -> None:
        reception = make_reception()
        reception.input()["a"] = 1
        assert reception.input("a") == 1

    def test_dot_path_and_default(self, make_reception) -> None:
        reception = make_reception()
        reception.overwrite({"user": {"name": "ann"}})
        assert reception.input("user.name") == "ann"
        assert reception.input("user.age", 30) == 30

    def test_has(self, make_reception) -> None:
        reception = make_reception()
        reception.overwrite({"user": {"name": None}})
        assert reception.has("user.name")
        assert not reception.has("user.age")

    def test_get_object(self, make_reception) -> None:
        reception = make_reception()
        reception.overwrite({"user": {"name": "ann", "tags": [{"id": 1}]}})
        user = reception.get_object("user")
        assert user.name == "ann"
        assert user.tags[0].id == 1

    def test_merge_wins_on_collision(self, make_reception) -> None:
        reception = make_reception()
        reception.overwrite({"a": 1, "b": 2})
        reception.merge({"b": 3, "c": 4})
        assert reception.input() == {"a": 1, "b": 3, "c": 4}

    def test_old_reads_flashed_input(self, make_reception) -> None:
        session = Session(incoming_flash={"input": {"title": "draft"}})
        reception = make_reception(session=session)
        assert reception.old("title") == "draft"
        assert reception.old("missing", "") == ""
        assert reception.old() == {"title": "draft"}

    def test_flash_consumed_on_creation(self, make_reception) -> None:
        session = Session(incoming_flash={"values": {"notice": "hi"}})
        reception = make_reception(session=session)
        assert reception.flash == {"notice": "hi"}
        assert session.get_flash_once() == {}


class TestRequestState:
    def test_method_helpers(self, make_reception) -> None:
        reception = make_reception("HEAD")
        assert reception.is_method("head")
        assert reception.is_safe_method
        assert not make_reception("POST").is_safe_method

    def test_emit_records_response(self, make_reception) -> None:
        from perch.http.response import Response

        reception = make_reception()
        response = Response("x")
        reception.emit(response)
        assert reception.response is response


class TestContextVar:
    def test_outside_request(self) -> None:
        assert current_reception() is None
        with pytest.raises(LookupError):
            get_reception()

    def test_activated(self, activated) -> None:
        assert get_reception() is activated
        assert current_reception() is activated

    def test_deactivate_restores(self, make_reception) -> None:
        reception = make_reception()
        token = reception.activate()
        Reception.deactivate(token)
        assert current_reception() is None


class TestDomainCache:
    def test_uses_host_header(self) -> None:
        cache = DomainCache()
        assert cache.resolve(build_request(headers={"Host": "example.com"})) == "http://example.com"

    def test_first_request_wins(self) -> None:
        cache = DomainCache()
        cache.resolve(build_request(headers={"Host": "a.test"}))
        assert cache.resolve(build_request(headers={"Host": "b.test"})) == "http://a.test"

    def test_forwarded_proto_ignored_by_default(self) -> None:
        request = build_request(headers={"Host": "a.test", "X-Forwarded-Proto": "https"})
        assert DomainCache().resolve(request) == "http://a.test"

    def test_forwarded_proto_trusted(self) -> None:
        request = build_request(headers={"Host": "a.test", "X-Forwarded-Proto": "https, http"})
        assert DomainCache(trust_forwarded_proto=True).resolve(request) == "https://a.test"
