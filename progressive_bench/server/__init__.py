from .paced import ChunkEvent, PacedContentServer, ServerTrace, TraceCollector

__all__ = ["ChunkEvent", "PacedContentServer", "ServerTrace", "TraceCollector"]
