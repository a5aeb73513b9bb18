"""tether: observable models with change tracking and pluggable persistence."""

from importlib.metadata import version as _version

__version__ = _version("tether")

from tether.errors import TetherError, SyncError, UrlError
from tether.events import Events, Listener
from tether.model import Model, Phase
from tether.sync import METHOD_MAP, Sync, wrap_error
from tether.transport import RequestsTransport, TransportHandle, set_scheduler
# textual NOT auto-imported — opt-in only

__all__ = [
    "Events",
    "Listener",
    "Model",
    "Phase",
    "Sync",
    "METHOD_MAP",
    "wrap_error",
    "RequestsTransport",
    "TransportHandle",
    "set_scheduler",
    "TetherError",
    "SyncError",
    "UrlError",
]
