"""Adapters package - Bridge between the engine and the host runtime.

Host client interface, blockers file persistence and permission
interception. Exports resolve lazily; permission.py depends on the
engine, which itself writes through blockers_file.py.
"""
from __future__ import annotations

__all__ = [
    "HostClient",
    "HostLogger",
    "PermissionHandler",
    "append_blocker",
    "read_blockers",
    "redact_sensitive_data",
]


def __getattr__(name: str):
    if name in ("HostClient", "HostLogger"):
        from . import host
        return getattr(host, name)
    if name in ("append_blocker", "read_blockers"):
        from . import blockers_file
        return getattr(blockers_file, name)
    if name in ("PermissionHandler", "redact_sensitive_data"):
        from . import permission
        return getattr(permission, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
