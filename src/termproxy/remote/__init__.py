"""Remote shell module for termproxy.

Opens and drives one interactive shell on one remote target through a
pluggable backend.

Public API:
    RemoteShell -- Abstract base class
    AsyncSSHShell -- SSH backend built on asyncssh
"""

from termproxy.remote.base import RemoteShell, ShellClosed, ShellEvent, ShellOutput

__all__ = ["RemoteShell", "ShellClosed", "ShellEvent", "ShellOutput", "AsyncSSHShell"]


def __getattr__(name: str) -> type:
    """Lazy import for the backend that requires asyncssh."""
    if name == "AsyncSSHShell":
        from termproxy.remote.ssh_backend import AsyncSSHShell
        return AsyncSSHShell
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
