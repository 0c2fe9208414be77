"""
Services Module

The query orchestrator that composes cache tiers, ranking, session history
and the model provider.
"""

from veritas.services.orchestrator import QueryOrchestrator, returns_result

__all__ = ["QueryOrchestrator", "returns_result"]
