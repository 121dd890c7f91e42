# Knowledge Base Package
"""
Static agricultural reference data and its lookup service.
"""

from .store import KnowledgeBase

__all__ = ["KnowledgeBase"]
