"""
HTTP transport for the REST adapters.
"""

from src.exchangehub.http.client import HttpClient

__all__ = ["HttpClient"]
