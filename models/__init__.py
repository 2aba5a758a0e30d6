"""
Model package exposing pipeline schemas, classifier adapters, and the gateway.
"""

from .schemas import Candle, Instrument, Snapshot, TradeSignal  # noqa: F401
from .registry import AdapterRegistry  # noqa: F401
from .gateway import ClassificationError, ClassifierGateway  # noqa: F401
