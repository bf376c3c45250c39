"""netgraph — LAN discovery and connection graph server.

Quickstart::

    uvicorn netgraph.server:app --host 0.0.0.0 --port 3002

The server keeps an in-memory registry of scanned devices, browser users and
the typed connections between them, and pushes every change to connected
clients over a WebSocket.
"""

__version__ = "1.0.0"
