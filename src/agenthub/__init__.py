"""Multi-agent AI chat service.

Users talk to configured AI agents over HTTP (``POST /api/chat``) or a
WebSocket room. The ASGI app lives in ``agenthub.app``.
"""

__version__ = "1.0.0"
