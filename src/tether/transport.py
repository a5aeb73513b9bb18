"""HTTP transport for the sync bridge, built on requests.

A transport is any callable taking the request dict built by Sync and
returning a handle. RequestsTransport runs the request (on a daemon thread
by default) and completes it by calling request["success"](body, response)
or request["error"](response).

Completion callbacks run on the transport thread unless a scheduler is
registered with set_scheduler(); then they are marshaled to the thread
that registered it. Completion on that thread stays synchronous.

There is no cancellation. Discarding the handle does not stop completion.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

import requests

logger = logging.getLogger("tether.transport")

# ─── Completion marshaling ───────────────────────────────────────────────────
_scheduler = None
_scheduler_thread = None


def set_scheduler(scheduler: Callable | None) -> None:
    """Set the scheduler used to deliver transport completions.

    Call once from the main/UI thread:
        tether.set_scheduler(app.call_from_thread)

    Pass None to deliver completions on the transport thread again.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def _deliver(fn: Callable, *args: Any) -> None:
    if _scheduler is not None and threading.current_thread() != _scheduler_thread:
        _scheduler(lambda: fn(*args))
    else:
        fn(*args)


class TransportHandle:
    """Awaitable handle for one in-flight request."""

    __slots__ = ("_done", "response", "error")

    def __init__(self) -> None:
        self._done = threading.Event()
        self.response: requests.Response | None = None
        self.error: BaseException | None = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the request completes. Returns False on timeout."""
        return self._done.wait(timeout)

    def __repr__(self) -> str:
        state = "done" if self.done else "pending"
        return f"TransportHandle({state})"


# Request keys forwarded to Session.request().
_REQUEST_KEYS = ("params", "data", "json", "headers", "cookies", "auth")


class RequestsTransport:
    """Perform sync requests with a requests.Session."""

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float | None = None,
        background: bool = True,
    ) -> None:
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.background = background

    def __call__(self, request: dict) -> TransportHandle:
        handle = TransportHandle()
        if self.background:
            threading.Thread(target=self._run, args=(request, handle), daemon=True).start()
        else:
            self._run(request, handle)
        return handle

    def _run(self, request: dict, handle: TransportHandle) -> None:
        try:
            self._perform(request, handle)
        except Exception as exc:
            if not self.background:
                raise
            # Nobody can catch this on a daemon thread.
            handle.error = exc
            logger.exception("Completion callback failed for %s %s", request.get("method"), request.get("url"))
        finally:
            handle._done.set()

    def _perform(self, request: dict, handle: TransportHandle) -> None:
        kwargs = {key: request[key] for key in _REQUEST_KEYS if key in request}
        timeout = request.get("timeout", self.timeout)
        try:
            response = self.session.request(request["method"], request["url"], timeout=timeout, **kwargs)
            handle.response = response
            response.raise_for_status()
            body = response.json() if response.content else None
        except requests.RequestException as exc:
            logger.debug("%s %s failed: %s", request["method"], request["url"], exc)
            handle.error = exc
            on_error = request.get("error")
            if on_error is not None:
                _deliver(on_error, exc.response if exc.response is not None else exc)
            return

        on_success = request.get("success")
        if on_success is not None:
            _deliver(on_success, body, response)
