"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the HTTP layer:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Creates the listening socket, runs the accept() loop             │
    │  • Stops cleanly on SIGTERM / SIGINT or shutdown()                  │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one Connection per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Buffered reading of complete requests (TCP is a byte stream)     │
    │  • Sending, keep-alive state, graceful close                        │
    │  • Hijacking: handing the raw socket to a handler                   │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState, HijackError
from .socket_server import SocketServer

__all__ = [
    "Connection",
    "ConnectionState",
    "HijackError",
    "SocketServer",
]
