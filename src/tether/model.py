"""Model — an observable attribute document with change tracking.

A Model holds a flat key -> value document. Every set() is one mutation
cycle: diff against the current values and the baseline, commit, then
broadcast "change:<attr>" for each changed key followed by one "change".

Three notions of "changed" are kept apart:
- the keys changed by the current call (queued for broadcast),
- _pending: keys diverging from the baseline that have not been announced,
- changed: every key whose value or presence differs from the baseline.

The baseline is the last state known to match the server: it is taken at
construction and refreshed after every successful fetch/save commit.

Nested mutation: a set() made by a change listener commits immediately but
never re-enters broadcasting. Its keys are queued and the outer change()
announces them in a follow-up pass before the outer set() returns.

Persistence goes through an injected sync bridge (see tether.sync):
fetch/save/destroy return the transport handle and commit on completion.
"""

from __future__ import annotations

import enum
import html
import inspect
import logging
from collections.abc import Mapping
from typing import Any, Callable, overload
from urllib.parse import quote

from tether._ids import unique_id
from tether.errors import SyncError, UrlError
from tether.events import Events
from tether.sync import wrap_error

logger = logging.getLogger("tether.model")


class _Absent:
    """Marks a key as not present (unset), as opposed to present with None."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<absent>"


_ABSENT = _Absent()
_NO_VALUE = object()


class Phase(enum.Enum):
    IDLE = "idle"
    MUTATING = "mutating"
    BROADCASTING = "broadcasting"


def _same(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if a is _ABSENT or b is _ABSENT:
        return False
    return a == b


def _normalize(key: Any, value: Any) -> dict | None:
    """Turn ("key", value) or ({key: value}) arguments into a fresh dict."""
    if key is None:
        return None
    if isinstance(key, Model):
        return dict(key.attributes)
    if isinstance(key, Mapping):
        return dict(key)
    return {key: None if value is _NO_VALUE else value}


class Model:
    """An attribute store that broadcasts its changes."""

    id_attribute = "id"
    url_root: str | None = None
    # Sync bridge: sync(verb, model, settings). Subclasses may set it to a
    # plain function; it is called unbound.
    sync: Callable | None = None

    def __init__(
        self,
        id: Any = None,
        attributes: Mapping[str, Any] | None = None,
        *,
        sync: Callable | None = None,
        url: str | Callable[[], str] | None = None,
        url_root: str | None = None,
        id_attribute: str | None = None,
        validate: Callable[[dict], bool] | None = None,
        parse: Callable[[Any, Any], Any] | None = None,
    ) -> None:
        self._events = Events(owner=self)
        self.cid = unique_id("c")
        if sync is not None:
            self.sync = sync
        if url_root is not None:
            self.url_root = url_root
        if id_attribute is not None:
            self.id_attribute = id_attribute
        self._url = url
        self._validator = validate
        self._parser = parse

        # Model({"name": "a"}) is shorthand for Model(attributes={"name": "a"}).
        if attributes is None and isinstance(id, Mapping):
            id, attributes = None, id
        self.attributes: dict[str, Any] = dict(attributes) if attributes else {}
        if id is None:
            id = self.attributes.get(self.id_attribute)
        self.id = id

        self.changed: dict[str, Any] = {}
        self._pending: set[str] = set()
        self._silent: set[str] = set()
        self._changes: dict[str, dict] = {}  # ordered broadcast queue: attr -> set() options
        self._escaped_attributes: dict[str, str] = {}
        self._phase = Phase.IDLE
        self._previous_attributes: dict[str, Any] = dict(self.attributes)

    # --- Events (composition) ---

    @property
    def events(self) -> Events:
        return self._events

    def on(self, event: str, fn: Callable[..., Any], context: Any = None) -> str:
        return self._events.on(event, fn, context)

    def off(self, event: str, fn: Callable[..., Any] | None = None, *, listener_id: str | None = None) -> None:
        self._events.off(event, fn, listener_id=listener_id)

    def trigger(self, event: str, *args: Any) -> None:
        self._events.trigger(event, *args)

    # --- Readers ---

    def get(self, attr: str) -> Any:
        return self.attributes.get(attr)

    def has(self, attr: str) -> bool:
        return self.get(attr) is not None

    def escape(self, attr: str) -> str:
        """HTML-escaped string form of attr, memoized until attr changes."""
        cached = self._escaped_attributes.get(attr)
        if cached is not None:
            return cached
        val = self.get(attr)
        escaped = html.escape("" if val is None else str(val))
        self._escaped_attributes[attr] = escaped
        return escaped

    def to_json(self) -> dict[str, Any]:
        return dict(self.attributes)

    def has_changed(self, attr: str | None = None) -> bool:
        if attr is None:
            return bool(self.changed)
        return attr in self.changed

    def changed_attributes(self, diff: Mapping[str, Any] | None = None) -> dict | bool:
        """Attributes differing from the baseline, or False if none.

        With diff, report which of its entries would differ from the baseline.
        """
        if diff is None:
            return dict(self.changed) if self.changed else False
        prev = self._previous_attributes
        result = {k: v for k, v in diff.items() if not _same(prev.get(k, _ABSENT), v)}
        return result or False

    def previous(self, attr: str) -> Any:
        return self._previous_attributes.get(attr)

    def previous_attributes(self) -> dict[str, Any]:
        return dict(self._previous_attributes)

    def is_new(self) -> bool:
        return self.id is None

    def url(self) -> str:
        if self._url is not None:
            return self._url() if callable(self._url) else self._url
        if self.url_root is None:
            raise UrlError(f"{self!r} has neither a url nor a url_root")
        if self.is_new():
            return self.url_root
        return f"{self.url_root.rstrip('/')}/{quote(str(self.id), safe='')}"

    @property
    def _changing(self) -> bool:
        return self._phase is Phase.BROADCASTING

    # --- Hooks ---

    def validate(self, attrs: dict[str, Any]) -> bool:
        """Return False to reject an update. Accepts everything by default."""
        if self._validator is None:
            return True
        return bool(self._validator(attrs))

    def parse(self, response: Any, meta: Any = None) -> Any:
        """Turn a server response into an attribute document."""
        if self._parser is None:
            return response
        return self._parser(response, meta)

    def _validate(self, attrs: dict[str, Any]) -> bool:
        proposed = {k: None if v is _ABSENT else v for k, v in attrs.items()}
        if self.validate(proposed):
            return True
        logger.debug("Validation rejected %r for %r", proposed, self)
        return False

    # --- Mutation ---

    @overload
    def set(self, key: str, value: Any, /, **options: Any) -> bool: ...

    @overload
    def set(self, key: Mapping[str, Any] | Model | None, /, **options: Any) -> bool: ...

    def set(self, key, value=_NO_VALUE, /, **options):
        """Apply an attribute update. Returns False if nothing was applied."""
        attrs = _normalize(key, value)
        if not attrs:
            return False
        silent = bool(options.get("silent"))
        if options.get("unset"):
            attrs = dict.fromkeys(attrs, _ABSENT)

        if not self._validate(attrs):
            return False

        if self.id_attribute in attrs:
            new_id = attrs[self.id_attribute]
            self.id = None if new_id is _ABSENT else new_id

        outer = self._phase
        self._phase = Phase.MUTATING
        try:
            now = self.attributes
            prev = self._previous_attributes
            for attr, val in attrs.items():
                # The absent sentinel makes presence part of both comparisons.
                if not _same(now.get(attr, _ABSENT), val):
                    self._escaped_attributes.pop(attr, None)
                    if silent:
                        self._silent.add(attr)
                    else:
                        self._silent.discard(attr)
                        self._changes[attr] = options

                if val is _ABSENT:
                    now.pop(attr, None)
                else:
                    now[attr] = val

                if not _same(prev.get(attr, _ABSENT), val):
                    self.changed[attr] = None if val is _ABSENT else val
                    if not silent:
                        self._pending.add(attr)
                else:
                    self.changed.pop(attr, None)
                    self._pending.discard(attr)
        finally:
            self._phase = outer

        if not silent:
            self.change(**options)
        return True

    def unset(self, key: Any, /, **options: Any) -> bool:
        options["unset"] = True
        return self.set(key, None, **options)

    def clear(self, silent: bool = False, **options: Any) -> bool:
        """Unset every attribute. Honors silent like set() does."""
        return self.unset(dict(self.attributes), silent=silent, **options)

    def change(self, **options: Any) -> bool:
        """Broadcast queued changes: "change:<attr>" per key, then "change".

        Each key is announced with the options of the set() that changed it.
        Returns False when called during a broadcast; the running broadcast
        picks up whatever was queued. If a listener raises, the keys not yet
        announced stay queued for the next broadcast.
        """
        if self._phase is Phase.BROADCASTING:
            return False
        outer = self._phase
        self._phase = Phase.BROADCASTING
        pass_options = options
        remaining: list[tuple[str, dict]] = []
        try:
            while self._changes:
                remaining = list(self._changes.items())
                self._changes.clear()
                while remaining:
                    attr, attr_options = remaining.pop(0)
                    self.trigger(f"change:{attr}", self, self.get(attr), attr_options)
                self.trigger("change", self, pass_options)
                # Follow-up passes belong to the nested set() that queued them.
                if self._changes:
                    pass_options = next(reversed(self._changes.values()))
            self._pending.clear()
            self._silent.clear()
        finally:
            if remaining:
                self._changes = {**dict(remaining), **self._changes}
            self._phase = outer
        return True

    def _commit_baseline(self) -> None:
        self._previous_attributes = dict(self.attributes)
        self.changed = {}
        self._pending.clear()

    # --- Persistence ---

    def _sync_bridge(self) -> Callable | None:
        # A plain function stored as a class attribute must not bind to self.
        bridge = inspect.getattr_static(self, "sync", None)
        if isinstance(bridge, staticmethod):
            bridge = bridge.__func__
        return bridge

    def _require_sync(self) -> Callable:
        bridge = self._sync_bridge()
        if bridge is None:
            raise SyncError(f"{self!r} has no sync bridge")
        return bridge

    def _commit_response(self, attrs: Any, options: dict) -> bool:
        """Apply parsed server attributes. False means the round trip failed."""
        if attrs is None or (isinstance(attrs, Mapping) and not attrs):
            self._commit_baseline()
            return True
        if not isinstance(attrs, (Mapping, Model)):
            logger.warning("Ignoring malformed server response %r for %r", attrs, self)
            return False
        if not self.set(attrs, **options):
            logger.warning("Server attributes rejected for %r", self)
            return False
        self._commit_baseline()
        return True

    def fetch(self, **options: Any):
        """Read the model from the server and set() the result."""
        sync = self._require_sync()
        success = options.get("success")

        def on_success(response, meta=None):
            if not self._commit_response(self.parse(response, meta), options):
                return False
            if success is not None:
                success(self, response)
            return True

        settings = dict(options, success=on_success)
        settings["error"] = wrap_error(options.get("error"), self, options)
        return sync("read", self, settings)

    @overload
    def save(self, key: str, value: Any, /, **options: Any): ...

    @overload
    def save(self, key: Mapping[str, Any] | None = None, /, **options: Any): ...

    def save(self, key=None, value=_NO_VALUE, /, **options):
        """Set attributes and persist the model.

        With wait=True nothing is committed locally until the server
        confirms; the proposed document is sent instead.
        """
        sync = self._require_sync()
        attrs = _normalize(key, value)
        wait = bool(options.get("wait"))

        if wait:
            if attrs and not self._validate(attrs):
                return False
        elif attrs and not self.set(attrs, **options):
            return False

        success = options.get("success")
        verb = "create" if self.is_new() else "update"

        def on_success(response, meta=None):
            server_attrs = self.parse(response, meta)
            if wait and attrs and (server_attrs is None or isinstance(server_attrs, Mapping)):
                server_attrs = {**attrs, **(server_attrs or {})}
            if not self._commit_response(server_attrs, options):
                return False
            if success is not None:
                success(self, response)
            else:
                self.trigger("sync", self, response, options)
            return True

        settings = dict(options, success=on_success)
        settings["error"] = wrap_error(options.get("error"), self, options)
        if wait and attrs:
            settings["attrs"] = {**self.attributes, **attrs}
        return sync(verb, self, settings)

    def destroy(self, **options: Any):
        """Delete the model on the server. A new model only triggers "destroy"."""
        wait = bool(options.get("wait"))
        if self.is_new():
            self.trigger("destroy", self, options)
            return False

        sync = self._require_sync()
        success = options.get("success")

        def on_success(response, meta=None):
            if wait:
                self.trigger("destroy", self, options)
            if success is not None:
                success(self, response)
            else:
                self.trigger("sync", self, response, options)
            return True

        settings = dict(options, success=on_success)
        settings["error"] = wrap_error(options.get("error"), self, options)
        if not wait:
            self.trigger("destroy", self, options)
        return sync("delete", self, settings)

    def clone(self) -> Model:
        return type(self)(
            attributes=self.to_json(),
            sync=self._sync_bridge(),
            url=self._url,
            url_root=self.url_root,
            id_attribute=self.id_attribute,
            validate=self._validator,
            parse=self._parser,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, {self.attributes!r})"
