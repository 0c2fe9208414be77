"""
Sessions Module

Per-session chat transcripts: storage contract and history manager.
"""

from veritas.sessions.store import SessionStore, KeyValueSessionStore
from veritas.sessions.history import SessionHistoryManager

__all__ = [
    "SessionStore",
    "KeyValueSessionStore",
    "SessionHistoryManager",
]
