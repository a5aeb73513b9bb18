"""Tests for the Sync bridge and wrap_error."""

import json

import pytest

from tether import METHOD_MAP, Model, Sync, SyncError, wrap_error


class _RecordingTransport:
    def __init__(self):
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return "handle"

    @property
    def last(self):
        return self.requests[-1]


def _bridge():
    transport = _RecordingTransport()
    return Sync(transport), transport


class TestMethodMap:
    def test_crud_to_http(self):
        assert METHOD_MAP == {
            "create": "POST",
            "update": "PUT",
            "delete": "DELETE",
            "read": "GET",
        }


class TestSync:
    def test_create_sends_json_body(self):
        sync, transport = _bridge()
        m = Model(attributes={"name": "a"}, url_root="/items")
        assert sync("create", m) == "handle"
        request = transport.last
        assert request["method"] == "POST"
        assert request["url"] == "/items"
        assert request["headers"]["Content-Type"] == "application/json"
        assert json.loads(request["data"]) == {"name": "a"}

    def test_update_uses_model_url(self):
        sync, transport = _bridge()
        sync("update", Model(7, {"name": "a"}, url_root="/items"))
        assert transport.last["method"] == "PUT"
        assert transport.last["url"] == "/items/7"

    @pytest.mark.parametrize("verb, method", [("read", "GET"), ("delete", "DELETE")])
    def test_read_and_delete_have_no_body(self, verb, method):
        sync, transport = _bridge()
        sync(verb, Model(1, url_root="/items"))
        assert transport.last["method"] == method
        assert "data" not in transport.last
        assert "Content-Type" not in transport.last["headers"]

    def test_settings_override_derived_fields(self):
        sync, transport = _bridge()
        m = Model(1, {"a": 1}, url_root="/items")
        sync("update", m, {"method": "PATCH", "url": "/elsewhere", "headers": {"X-Token": "t"}})
        assert transport.last["method"] == "PATCH"
        assert transport.last["url"] == "/elsewhere"
        assert transport.last["headers"] == {"X-Token": "t"}

    def test_url_setting_skips_model_url(self):
        sync, transport = _bridge()
        sync("read", Model(), {"url": "/explicit"})
        assert transport.last["url"] == "/explicit"

    def test_attrs_setting_replaces_body(self):
        sync, transport = _bridge()
        sync("update", Model(1, {"a": 1}, url_root="/items"), {"attrs": {"a": 2}})
        assert json.loads(transport.last["data"]) == {"a": 2}
        assert "attrs" not in transport.last

    def test_callbacks_forwarded(self):
        sync, transport = _bridge()

        def on_success(body, meta):
            pass

        sync("read", Model(1, url_root="/items"), {"success": on_success})
        assert transport.last["success"] is on_success

    def test_unknown_verb(self):
        sync, transport = _bridge()
        with pytest.raises(SyncError):
            sync("patch", Model(1, url_root="/items"))
        assert transport.requests == []

    def test_settings_not_mutated(self):
        sync, _ = _bridge()
        settings = {"attrs": {"a": 1}}
        sync("create", Model(url_root="/items"), settings)
        assert settings == {"attrs": {"a": 1}}


class TestWrapError:
    def test_calls_handler(self):
        m = Model()
        calls = []
        options = {"k": 1}
        handler = wrap_error(lambda *args: calls.append(args), m, options)
        handler("resp")
        assert calls == [(m, "resp", options)]

    def test_accepts_model_response_pair(self):
        m = Model()
        calls = []
        handler = wrap_error(lambda *args: calls.append(args), m, {})
        handler(m, "resp")
        assert calls == [(m, "resp", {})]

    def test_falls_back_to_error_event(self):
        m = Model()
        events = []
        m.on("error", lambda *args: events.append(args))
        options = {}
        wrap_error(None, m, options)("resp")
        assert events == [(m, "resp", options)]
