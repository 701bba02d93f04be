"""Context compression: summarization and relevance selection."""

from .selector import ContextSelector
from .summarizer import ContextSummarizer, fallback_summary

__all__ = [
    "ContextSelector",
    "ContextSummarizer",
    "fallback_summary",
]
