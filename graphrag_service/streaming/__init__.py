"""
Incremental event streaming for query runs.
"""

from .stream_manager import StreamEvent, ResponseStream, StreamingResponseManager

__all__ = ["StreamEvent", "ResponseStream", "StreamingResponseManager"]
