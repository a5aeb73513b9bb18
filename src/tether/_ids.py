"""Unique id generation shared by dispatchers and models.

Listener ids and model cids come from one counter, so an id is never
reused within a process.
"""

import itertools

# itertools.count is thread-safe (C-level GIL atomic)
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


def unique_id(prefix: str = "") -> str:
    return f"{prefix}{new_id()}"
