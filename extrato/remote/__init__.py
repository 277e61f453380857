"""Remote (Gemini) extraction path."""
from .gemini_client import GeminiClient, RetryPolicy, call_with_retry, strip_fences

__all__ = ["GeminiClient", "RetryPolicy", "call_with_retry", "strip_fences"]
