"""Shared configuration and logging for the assistant backend."""

from shared.config import Settings
from shared.log import bind_context, get_logger

__all__ = ["Settings", "bind_context", "get_logger"]
