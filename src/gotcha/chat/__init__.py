"""Chat turns: transcript reconciliation and the turn pump."""

from gotcha.chat.reconciler import KindState, StreamReconciler, extract_query
from gotcha.chat.session import ChatSession

__all__ = ["ChatSession", "KindState", "StreamReconciler", "extract_query"]
