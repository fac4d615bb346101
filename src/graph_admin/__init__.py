# -*- coding: utf-8 -*-
"""
Graph Admin Tools Package
=========================

Building blocks for tenant administration scripts that talk to Microsoft
Graph: large-file uploads to SharePoint document libraries and paginated,
throttle-aware queries (audit logs, directory objects, room calendars).

Modules:
--------
- config: Configuration and argument parsing
- auth: Microsoft authentication and token expiry tracking
- graph_api: Graph request helper and drive URL builders
- uploader: Direct, single-session and chunked uploads
- pager: Cursor pagination with 429 backoff
- results: Upload/page result types and error kinds
- file_handler: Name sanitization, file discovery, scoped file source
- monitoring: Rate limiting monitoring and run statistics
- utils: Console logging and debug flags

Usage Example:
-------------
    from graph_admin.auth import TokenProvider
    from graph_admin.pager import ResilientPager

    tokens = TokenProvider(tenant_id, client_id, client_secret)
    result = ResilientPager(tokens).fetch_all(
        "https://graph.microsoft.com/v1.0/auditLogs/directoryAudits"
    )
    if result.partial:
        print(f"Stopped early: {result.error_kind}")
"""

__version__ = "1.0.0"

from .config import parse_config, Config
from .auth import acquire_token, AuthError, TokenProvider
from .results import ErrorKind, Fragment, PageResult, UploadResult, UploadSession, UploadTarget
from .uploader import ChunkedUploader, plan_fragments
from .pager import ResilientPager
from .file_handler import FileSource, discover_files, sanitize_sharepoint_name
from .monitoring import RateLimitMonitor, RunStatistics
from .utils import log, is_debug_enabled

__all__ = [
    # Configuration
    'parse_config',
    'Config',
    # Authentication
    'acquire_token',
    'AuthError',
    'TokenProvider',
    # Results
    'ErrorKind',
    'Fragment',
    'PageResult',
    'UploadResult',
    'UploadSession',
    'UploadTarget',
    # Upload / query
    'ChunkedUploader',
    'plan_fragments',
    'ResilientPager',
    # File operations
    'FileSource',
    'discover_files',
    'sanitize_sharepoint_name',
    # Monitoring
    'RateLimitMonitor',
    'RunStatistics',
    # Utilities
    'log',
    'is_debug_enabled',
]
