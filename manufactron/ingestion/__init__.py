"""
Ingestion Module

Pulls namespaces, types and instances from the upstream I3X services.
"""

from .adapter import I3XSourceAdapter, SourceFetchResult

__all__ = ["I3XSourceAdapter", "SourceFetchResult"]
