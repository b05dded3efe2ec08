"""Core module - logging setup and the chat session controller."""

from .logging_config import setup_logging, LoggerAdapter, filter_sensitive_data, truncate_large_data

__all__ = ['setup_logging', 'LoggerAdapter', 'filter_sensitive_data', 'truncate_large_data']
