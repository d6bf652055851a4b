"""
Stock Costing Engine
Valued stock ledger, bins, reposting and multi-stage process costing
"""

__version__ = "1.0.0"
