"""Sync bridge — maps a CRUD verb plus a model onto a transport request.

The bridge owns no transport. It builds a request dict and hands it to an
injected transport callable, which returns a handle and later calls either
request["success"](body, meta) or request["error"](response).

    sync = Sync(RequestsTransport())
    user = Model(attributes={"name": "ada"}, url_root="/users", sync=sync)
    user.save()  # POST /users
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Callable

from tether.errors import SyncError

logger = logging.getLogger("tether.sync")

# CRUD verb -> HTTP method for the default bridge.
METHOD_MAP = {
    "create": "POST",
    "update": "PUT",
    "delete": "DELETE",
    "read": "GET",
}

Transport = Callable[[dict], Any]


class Sync:
    """Callable sync bridge: sync(verb, model, settings) -> transport handle."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def __call__(self, verb: str, model, settings: Mapping[str, Any] | None = None):
        try:
            method = METHOD_MAP[verb]
        except KeyError:
            raise SyncError(f"unknown sync verb {verb!r}") from None

        settings = dict(settings) if settings else {}
        attrs = settings.pop("attrs", None)

        request: dict[str, Any] = {
            "method": method,
            "url": settings["url"] if "url" in settings else model.url(),
            "headers": {"Accept": "application/json"},
        }
        if verb in ("create", "update"):
            request["headers"]["Content-Type"] = "application/json"
            request["data"] = json.dumps(attrs if attrs is not None else model.to_json())

        # Caller settings win over anything derived above.
        request.update(settings)
        logger.debug("sync %s %s %s", verb, request["method"], request["url"])
        return self.transport(request)


def wrap_error(on_error: Callable | None, model, options: Mapping[str, Any]):
    """Wrap an optional error callback with a fallback "error" event.

    The returned callback accepts (response) or (model, response). Either
    on_error(model, response, options) runs, or the model triggers
    "error" with the same payload. Failures are never dropped.
    """

    def _error(*args):
        if len(args) > 1 and args[0] is model:
            response = args[1]
        else:
            response = args[0] if args else None
        if on_error is not None:
            on_error(model, response, options)
        else:
            model.trigger("error", model, response, options)

    return _error
