"""gotcha — terminal chat assistant with a streaming Responses API client."""

__version__ = "0.3.0"
