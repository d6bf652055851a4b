"""Manufacturing API endpoints"""

from . import process_costing

__all__ = ["process_costing"]
