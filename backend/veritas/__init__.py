"""
Veritas Backend Application Package

Query-answer cache in front of a language-model provider.
Serves human-edited and promoted answers, records model answers, ranks
daily popular queries and keeps per-session chat transcripts.

Version: 0.1.0
"""

__version__ = "0.1.0"
