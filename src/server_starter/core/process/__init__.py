"""Process inspection helpers for supervised children."""

from .inspector import describe_process, is_process_alive

__all__ = ["describe_process", "is_process_alive"]
