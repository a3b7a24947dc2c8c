"""
Extraction Module

Flattens screening bundles into typed records.

Components:
- resource_index.py: Resources by type and Observation:<code>
- extraction_engine.py: Event, participant and screening extraction
"""

from .resource_index import ResourceIndex
from .extraction_engine import ExtractionEngine, get_extraction_engine

__all__ = [
    "ResourceIndex",
    "ExtractionEngine",
    "get_extraction_engine",
]
