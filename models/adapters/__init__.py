"""
Adapter implementations for individual LLM providers.
"""

from .deepseek import DeepSeekAdapter  # noqa: F401
from .gemini import GeminiAdapter  # noqa: F401
