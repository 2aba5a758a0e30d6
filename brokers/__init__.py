"""
Broker integrations supplying instrument lookup and market data to the scanner.
"""

from .base_client import BrokerDataService, NotAuthenticatedError, SessionContext  # noqa: F401
