"""
Ledger storage used as the state backend of the simulated exchange.
"""

from src.exchangehub.storage.json_storage import JsonStorage, Storage

__all__ = ["Storage", "JsonStorage"]
