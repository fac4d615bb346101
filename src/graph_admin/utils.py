# -*- coding: utf-8 -*-
"""
Shared utility functions for Graph admin operations.

This module provides the console logger and debug flag helpers used across
all other modules.
"""

import os


# Console prefix per log level
LOG_PREFIXES = {
    'debug': '[DEBUG]',
    'info': '[=]',
    'progress': '[*]',
    'success': '[✓]',
    'warning': '[!]',
    'error': '[!]',
}


def is_debug_enabled():
    """
    Check if general debug mode is enabled via DEBUG environment variable.

    Controls per-request detail: URLs, Content-Range values, backoff waits
    and response snippets. Summaries and errors are always printed.

    Returns:
        bool: True if debug mode is enabled, False otherwise
    """
    return os.environ.get('DEBUG', 'false').lower() == 'true'


def log(level, message):
    """
    Print a message with the bracketed prefix for its level.

    Debug messages are only printed when DEBUG=true.

    Args:
        level (str): One of 'debug', 'info', 'progress', 'success', 'warning', 'error'
        message (str): Text to print
    """
    if level == 'debug' and not is_debug_enabled():
        return
    prefix = LOG_PREFIXES.get(level, '[=]')
    if level == 'error':
        message = f"Error: {message}"
    print(f"{prefix} {message}")


def truncate(text, limit=300):
    """Shorten response bodies for log output."""
    if text is None:
        return ''
    text = str(text)
    if len(text) <= limit:
        return text
    return text[:limit] + '...'
