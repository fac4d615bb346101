#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Microsoft Graph Administration Script
=====================================

PURPOSE:
    Runs one administrative task against a Microsoft 365 tenant through the
    Graph API: uploading report files to a SharePoint document library, or
    collecting every page of a Graph query (audit logs, directory roles,
    room calendars) into a JSON file.

SYNOPSIS:
    python main.py upload <tenant_id> <client_id> <credential> <site_id>
                          <folder> <file_path> [graph_endpoint]
                          [login_endpoint] [chunk_size] [recursive] [debug]

    python main.py query  <tenant_id> <client_id> <credential> <uri>
                          <output_file> [graph_endpoint] [login_endpoint]
                          [debug]

PARAMETERS:
    <credential>
        Client secret value, or 'cert:<thumbprint>:<private_key_path>' for
        certificate authentication.
        `WARNING: Keep secrets out of version control. Use a .env file or
        environment variables.

    <site_id>
        SharePoint site ID, e.g. 'contoso.sharepoint.com,<site-guid>,<web-guid>'.

    <folder>
        Destination folder under the site's default document library.
        `Example`: 'Reports/2024'

    <file_path>
        Local file or glob pattern. Use recursive=true for '**' patterns.

    [chunk_size]
        Fragment size for files of 249 MB and more. Must be a multiple of
        327,680 bytes. Default: 62,259,200.

    <uri>
        Absolute Graph URL or a path relative to /v1.0, e.g.
        '/auditLogs/directoryAudits?$filter=activityDisplayName eq \'Add member to role\''

ENVIRONMENT:
    GRAPH_ENDPOINT, LOGIN_ENDPOINT, UPLOAD_CHUNK_SIZE, REQUEST_TIMEOUT, DEBUG
    (read from .env when present)

EXIT CODES:
    0 - every upload succeeded / the query completed (or was skipped)
    1 - configuration or authentication error, a failed upload, or a partial query
"""

import json
import os
import sys
import time

from graph_admin.auth import AuthError, TokenProvider
from graph_admin.config import parse_config
from graph_admin.file_handler import discover_files
from graph_admin.monitoring import RateLimitMonitor, RunStatistics
from graph_admin.pager import ResilientPager
from graph_admin.uploader import ChunkedUploader
from graph_admin.utils import is_debug_enabled


def build_token_provider(config):
    return TokenProvider(
        config.tenant_id, config.client_id, config.client_secret,
        config.login_endpoint, config.graph_endpoint,
        cert_thumbprint=config.cert_thumbprint,
        cert_key_path=config.cert_key_path
    )


def run_upload(config, tokens, stats, monitor):
    """
    Upload every file matching config.file_path.

    A failed file is recorded and the loop moves on to the next one.

    Returns:
        int: Number of files processed
    """
    print("\n" + "="*60)
    print("[1/2] FILE DISCOVERY")
    print("="*60)
    print(f"[*] Working directory: {os.getcwd()}")
    print(f"[*] Pattern: {config.file_path} {'(recursive)' if config.recursive else ''}")

    local_files = discover_files(config.file_path, config.recursive)
    if not local_files:
        print(f"[Error] No files matched pattern: {config.file_path}")
        return 0
    print(f"[✓] Found {len(local_files)} files to upload")

    print("\n" + "="*60)
    print("[2/2] FILE UPLOAD")
    print("="*60)

    uploader = ChunkedUploader(
        chunk_size=config.chunk_size,
        timeout=config.request_timeout,
        monitor=monitor
    )

    for local_path in local_files:
        # Refreshes the token if the previous upload outlived it
        token = tokens.get_token()
        start = time.time()
        result = uploader.upload_path(local_path, config.site_endpoint, config.folder, token)
        stats.record_upload(result)
        if result.success:
            print(f"File Processed: {result.target.display_path} ({result.method}, {time.time() - start:.1f}s)")
            if is_debug_enabled() and result.item:
                print(f"  → Uploaded to: {result.item.get('webUrl')}")
        else:
            print(f"[!] File Failed: {result.target.display_path} - {result.error_kind}")

    return len(local_files)


def write_query_output(output_file, result):
    """Write the collected items (complete or partial) as JSON."""
    with open(output_file, 'w', encoding='utf-8') as f:
        json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)


def run_query(config, tokens, stats, monitor):
    """
    Collect every page of config.query_url into config.output_file.

    Returns:
        PageResult
    """
    print("\n" + "="*60)
    print("[1/1] GRAPH QUERY")
    print("="*60)
    print(f"[*] Query: {config.query_url}")

    pager = ResilientPager(tokens, monitor=monitor, timeout=config.request_timeout)
    try:
        result = pager.fetch_all(config.query_url)
    except AuthError as auth_error:
        if auth_error.partial is not None:
            stats.record_query(auth_error.partial)
            write_query_output(config.output_file, auth_error.partial)
            print(f"[!] PARTIAL RESULT: {len(auth_error.partial.items)} item(s) written to "
                  f"{config.output_file} before authentication failed")
        raise
    stats.record_query(result)

    write_query_output(config.output_file, result)

    if result.skipped:
        print(f"[!] Resource skipped: {result.message}")
    elif result.complete:
        print(f"[✓] Collected {len(result.items)} item(s) from {result.pages} page(s)")
    else:
        print(f"[!] PARTIAL RESULT: {len(result.items)} item(s) from {result.pages} page(s) "
              f"before {result.error_kind}")
    print(f"[✓] Output written to {config.output_file}")
    return result


def main():
    """
    Main execution function.

    Process:
        1. Parse configuration from command-line arguments and .env
        2. Acquire an access token (abort on failure)
        3. Run the upload or query task
        4. Print summaries
        5. Exit with appropriate code
    """
    try:
        config = parse_config()
    except ValueError as config_error:
        print(f"[Error] Invalid configuration: {config_error}")
        print(__doc__)
        sys.exit(1)

    if config.debug:
        os.environ['DEBUG'] = 'true'

    print("\n" + "="*60)
    print("[✓] CONFIGURATION")
    print("="*60)
    print(f"Task:                      {config.command}")
    print(f"Graph endpoint:            {config.graph_endpoint}")
    print(f"Authentication:            {'certificate' if config.cert_thumbprint else 'client secret'}")
    if config.command == 'upload':
        print(f"Destination folder:        {config.folder or '(drive root)'}")
        print(f"Chunk size:                {config.chunk_size:,} bytes")

    tokens = build_token_provider(config)
    try:
        tokens.get_token()
    except AuthError as auth_error:
        print(f"[Error] {auth_error}")
        sys.exit(1)
    print("[✓] Authenticated")

    stats = RunStatistics()
    monitor = RateLimitMonitor()

    try:
        if config.command == 'upload':
            processed = run_upload(config, tokens, stats, monitor)
            if processed == 0:
                sys.exit(1)
        else:
            run_query(config, tokens, stats, monitor)
    except AuthError as auth_error:
        # Token refresh failed mid-run; report what was done so far
        print(f"[Error] {auth_error}")
        stats.print_summary()
        sys.exit(1)

    print()
    print("="*60)
    print("[✓] RUN COMPLETED")
    print("="*60)
    stats.print_summary()
    monitor.print_summary()

    if stats.failed_count > 0:
        print(f"[!] {stats.failed_count} operation(s) failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
