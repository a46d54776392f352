"""
Briefcase Module

Assembles manufacturing context around a starting element and shapes it
into compact summaries for the agent layer.
"""

from .assembler import ContextBuilder, ContextBuildResult
from .templates import ContextTemplates

__all__ = ["ContextBuilder", "ContextBuildResult", "ContextTemplates"]
