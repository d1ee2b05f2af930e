"""termproxy -- WebSocket to SSH terminal proxy.

Accepts duplex WebSocket connections from browser-side terminal
emulators, opens an interactive SSH shell on a pre-provisioned target
machine, and relays bytes between the two until either side goes away.
"""

__version__ = "0.1.0"
