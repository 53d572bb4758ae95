"""Live session domain services.

Everything that keeps a quiz session running lives here: the in-memory
registry, the question lifecycle and its timers, scoring, leaderboards,
reconnection, and disconnect supervision. Socket handlers and HTTP routes
talk only to ``SessionManager``.
"""

from .manager import SessionManager
from .runtime import LiveSettings, Runtime

__all__ = ['SessionManager', 'LiveSettings', 'Runtime']
