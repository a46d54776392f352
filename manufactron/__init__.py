"""
Manufactron I3X Aggregator - Unified Manufacturing Graph Service

Merges the ERP, MES and SCADA I3X services into one in-memory graph and
answers manufacturing-context queries against it.
"""

__version__ = "0.1.0"
__author__ = "Manufactron Team"
