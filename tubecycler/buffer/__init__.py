"""Phased content prefetching."""

from .content_buffer import BufferConfig, ContentBufferManager, LaneBufferStatus

__all__ = ["BufferConfig", "ContentBufferManager", "LaneBufferStatus"]
