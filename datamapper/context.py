"""
Process-wide default connection.

Only the Model façade and app wiring consult this; backends never do.
"""

from typing import Optional

from .connections.base import Connection
from .errors import NoDefaultConnectionError

_default_connection: Optional[Connection] = None


def set_default_connection(connection: Optional[Connection]) -> None:
    """Set (or clear with None) the connection used when none is given."""
    global _default_connection
    _default_connection = connection


def get_default_connection() -> Connection:
    if _default_connection is None:
        raise NoDefaultConnectionError()
    return _default_connection


def has_default_connection() -> bool:
    return _default_connection is not None
