"""
Angel One SmartAPI adapter package.
"""

from .client import AngelOneClient, AngelOneClientError  # noqa: F401
