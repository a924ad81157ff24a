"""Model adaptors for react-loop.

This module provides implementations of ModelAdaptor for various LLM providers.
"""

from react_loop.adaptors.openai import OpenAIAdaptor

__all__ = ["OpenAIAdaptor"]

# Conditional imports for optional SDK-based adaptors
try:
    from react_loop.adaptors.anthropic import AnthropicAdaptor

    __all__.append("AnthropicAdaptor")
except ImportError:
    pass
