# -*- coding: utf-8 -*-
"""
File handling operations for Graph admin uploads.

This module provides SharePoint name sanitization, local file discovery and
the scoped byte source the uploader reads from.
"""

import glob
import os

import xxhash

from .utils import is_debug_enabled


def sanitize_sharepoint_name(name, is_folder=False):
    r"""
    Sanitize file/folder names to be compatible with SharePoint/OneDrive.

    SharePoint/OneDrive has strict naming rules:
    - Cannot contain: # % & * : < > ? / \ | " { } ~
    - Cannot start with: ~ $
    - Cannot end with: . (period)
    - Cannot be reserved names: CON, PRN, AUX, NUL, COM1-9, LPT1-9
    - Maximum length: 255 for file/folder name

    Args:
        name (str): Original file or folder name
        is_folder (bool): Whether this is a folder name

    Returns:
        str: Sanitized name safe for SharePoint
    """
    if not name:
        return name

    # Visually similar full-width characters are allowed where the ASCII ones are not
    char_replacements = {
        '#': '＃',
        '%': '％',
        '&': '＆',
        '*': '＊',
        ':': '：',
        '<': '＜',
        '>': '＞',
        '?': '？',
        '/': '／',
        '\\': '＼',
        '|': '｜',
        '"': '＂',
        '{': '｛',
        '}': '｝',
        '~': '～',
    }

    sanitized = name
    for char, replacement in char_replacements.items():
        sanitized = sanitized.replace(char, replacement)

    while sanitized and sanitized[0] in ['~', '$', '～']:
        sanitized = sanitized[1:]

    sanitized = sanitized.rstrip('. ')

    reserved_names = [
        'CON', 'PRN', 'AUX', 'NUL',
        'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
        'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
    ]

    name_without_ext = sanitized.split('.')[0] if not is_folder else sanitized
    if name_without_ext.upper() in reserved_names:
        sanitized = f"_{sanitized}"

    if not sanitized:
        sanitized = "_unnamed"

    if len(sanitized) > 255:
        # Keep the extension when truncating a file name
        if not is_folder and '.' in sanitized:
            ext = sanitized.split('.')[-1]
            base = sanitized[:255 - len(ext) - 1]
            sanitized = f"{base}.{ext}"
        else:
            sanitized = sanitized[:255]

    if sanitized != name and is_debug_enabled():
        print(f"[!] Sanitized name: '{name}' -> '{sanitized}'")

    return sanitized


def sanitize_folder_path(path):
    """
    Sanitize every component of a SharePoint folder path.

    Args:
        path (str): Folder path, '/' or '\\' separated

    Returns:
        str: Path with each component made SharePoint-safe, no leading/trailing '/'
    """
    components = [c for c in path.replace('\\', '/').split('/') if c]
    return '/'.join(sanitize_sharepoint_name(c, is_folder=True) for c in components)


def discover_files(pattern, recursive=False):
    """
    Find local files matching a glob pattern.

    Directories matched by the pattern are ignored; only regular files are
    returned, sorted so uploads run in a stable order.

    Args:
        pattern (str): Glob pattern, e.g. 'reports/*.csv' or 'out/**/*.xlsx'
        recursive (bool): Allow '**' to match across directories

    Returns:
        list: Paths of matching files
    """
    return sorted(path for path in glob.glob(pattern, recursive=recursive) if os.path.isfile(path))


class FileSource:
    """
    Sequential byte source over a local file with a known total length.

    The handle is opened on entry and closed on exit, whether the upload
    finished or failed. An xxh64 digest of everything read is kept so the
    caller can report what was actually sent.

    Example:
        with FileSource('report.csv') as source:
            result = uploader.upload(target, source, token)
    """

    def __init__(self, path):
        self.path = path
        self.size = os.path.getsize(path)
        self._handle = None
        self._hasher = xxhash.xxh64()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def open(self):
        if self._handle is None:
            self._handle = open(self.path, 'rb')
        return self

    def close(self):
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    @property
    def closed(self):
        return self._handle is None

    def read(self, n):
        """Read up to n bytes from the current position."""
        if self._handle is None:
            raise ValueError(f"FileSource for {self.path} is not open")
        data = self._handle.read(n)
        self._hasher.update(data)
        return data

    def read_all(self):
        """Read the remaining content in one call."""
        return self.read(self.size)

    def hexdigest(self):
        return self._hasher.hexdigest()
