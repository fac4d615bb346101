# -*- coding: utf-8 -*-
"""
Configuration management for Graph admin tools.

This module handles command-line argument parsing and configuration setup.
Optional values missing from the command line are read from the environment,
which may be populated from a .env file.
"""

import os
import sys

from dotenv import load_dotenv

from .uploader import CHUNK_ALIGNMENT, DEFAULT_CHUNK_SIZE


COMMANDS = ('upload', 'query')


def _arg(argv, index, default=None):
    """Positional argument at index, or default when absent or empty."""
    if len(argv) > index and argv[index]:
        return argv[index]
    return default


def _flag(value):
    return str(value).lower() == 'true'


class Config:
    """Configuration for upload and query runs"""

    def __init__(self, argv=None):
        """
        Parse command-line arguments and initialize configuration.

        upload:
            1. command - 'upload'
            2. tenant_id - Azure AD tenant ID
            3. client_id - App registration client ID
            4. credential - Client secret, or 'cert:<thumbprint>:<private_key_path>'
            5. site_id - SharePoint site ID (or 'host,site-guid,web-guid')
            6. folder - Destination folder under the drive root
            7. file_path - Local file/glob pattern to upload
            8. graph_endpoint (optional) - default GRAPH_ENDPOINT or graph.microsoft.com
            9. login_endpoint (optional) - default LOGIN_ENDPOINT or login.microsoftonline.com
            10. chunk_size (optional) - default UPLOAD_CHUNK_SIZE or 62,259,200
            11. recursive (optional) - Enable recursive glob (default: False)
            12. debug (optional) - default DEBUG or False

        query:
            1. command - 'query'
            2. tenant_id
            3. client_id
            4. credential
            5. uri - Absolute Graph URL, or a path like '/auditLogs/directoryAudits'
            6. output_file - JSON file receiving the collected items
            7. graph_endpoint (optional)
            8. login_endpoint (optional)
            9. debug (optional)
        """
        argv = sys.argv if argv is None else argv

        self.command = _arg(argv, 1, '')
        self.tenant_id = _arg(argv, 2, '')
        self.client_id = _arg(argv, 3, '')
        self.credential = _arg(argv, 4, '')

        self.client_secret = None
        self.cert_thumbprint = None
        self.cert_key_path = None
        if self.credential.startswith('cert:'):
            parts = self.credential.split(':', 2)
            if len(parts) == 3:
                self.cert_thumbprint, self.cert_key_path = parts[1], parts[2]
        else:
            self.client_secret = self.credential

        # Upload-only values
        self.site_id = ''
        self.folder = ''
        self.file_path = ''
        self.recursive = False
        self.chunk_size = DEFAULT_CHUNK_SIZE

        # Query-only values
        self.uri = ''
        self.output_file = ''

        if self.command == 'upload':
            self.site_id = _arg(argv, 5, '')
            self.folder = _arg(argv, 6, '')
            self.file_path = _arg(argv, 7, '')
            graph_endpoint = _arg(argv, 8)
            login_endpoint = _arg(argv, 9)
            self.chunk_size = int(_arg(argv, 10, os.environ.get('UPLOAD_CHUNK_SIZE', DEFAULT_CHUNK_SIZE)))
            self.recursive = _flag(_arg(argv, 11, 'false'))
            debug = _arg(argv, 12)
        else:
            self.uri = _arg(argv, 5, '')
            self.output_file = _arg(argv, 6, '')
            graph_endpoint = _arg(argv, 7)
            login_endpoint = _arg(argv, 8)
            debug = _arg(argv, 9)

        self.graph_endpoint = graph_endpoint or os.environ.get('GRAPH_ENDPOINT', 'graph.microsoft.com')
        self.login_endpoint = login_endpoint or os.environ.get('LOGIN_ENDPOINT', 'login.microsoftonline.com')
        self.debug = _flag(debug if debug is not None else os.environ.get('DEBUG', 'false'))

        # No timeout when REQUEST_TIMEOUT=0
        timeout = float(os.environ.get('REQUEST_TIMEOUT', '300'))
        self.request_timeout = timeout if timeout > 0 else None

        # Derived values
        self.graph_base_url = f'https://{self.graph_endpoint}/v1.0'
        self.site_endpoint = f'{self.graph_base_url}/sites/{self.site_id}'
        if self.uri.startswith('/'):
            self.query_url = f'{self.graph_base_url}{self.uri}'
        else:
            self.query_url = self.uri

    def validate(self):
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.command not in COMMANDS:
            raise ValueError(f"command must be one of {', '.join(COMMANDS)}, got '{self.command}'")
        if not self.tenant_id:
            raise ValueError("tenant_id cannot be empty")
        if not self.client_id:
            raise ValueError("client_id cannot be empty")
        if not self.client_secret and not (self.cert_thumbprint and self.cert_key_path):
            raise ValueError("credential must be a client secret or 'cert:<thumbprint>:<key_path>'")

        if self.command == 'upload':
            if not self.site_id:
                raise ValueError("site_id cannot be empty")
            if not self.file_path:
                raise ValueError("file_path cannot be empty")
            if self.chunk_size <= 0 or self.chunk_size % CHUNK_ALIGNMENT != 0:
                raise ValueError(f"chunk_size must be a positive multiple of {CHUNK_ALIGNMENT}")
        else:
            if not self.uri:
                raise ValueError("uri cannot be empty")
            if not self.output_file:
                raise ValueError("output_file cannot be empty")


def parse_config(argv=None):
    """
    Parse configuration from command-line arguments and the environment.

    Returns:
        Config: Configured Config object

    Raises:
        ValueError: If configuration is invalid
    """
    load_dotenv()
    config = Config(argv)
    config.validate()
    return config
