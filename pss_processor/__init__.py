"""
PSS Screening Bundle Processor

Validates clinical-screening bundles against versioned rule metadata and
flattens them into typed event, participant and screening records.
"""

__version__ = "0.1.0"

from . import config
from . import models
from . import utils
from .processor import ScreeningProcessor, get_processor

__all__ = [
    "config",
    "models",
    "utils",
    "ScreeningProcessor",
    "get_processor",
]
