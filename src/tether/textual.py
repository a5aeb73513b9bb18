"""Textual integration for tether. Opt-in — requires textual.

A Textual widget is a view: it listens to model events and redraws. bind()
puts the guards on that listener, so call sites don't have to.

_paused_apps is owned by this module and keyed by id(app), so multiple apps
work in tests. An id is present exactly while inside its pause() block.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound listeners during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def bind(app, model, event, fn):
    """model.on(event, fn) that safely bridges to Textual widgets.

    Skips events while the app is paused or not running, swallows NoMatches
    from widget queries, and marshals events raised off the UI thread (e.g.
    by a transport completing a save) via call_from_thread.

    Returns the listener id, for unbind().
    """
    _main = threading.get_ident()

    def _guarded(*args):
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    def _safe(*args):
        try:
            fn(*args)
        except NoMatches:
            pass

    return model.on(event, _guarded)


def unbind(model, event, listener_id) -> None:
    model.off(event, listener_id=listener_id)
