"""WebSocket rendezvous relay for peer-to-peer call signaling."""

__version__ = "1.0.0"
