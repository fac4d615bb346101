# -*- coding: utf-8 -*-
"""
Upload operations for Graph admin tools.

This module delivers a local file to a SharePoint document library drive,
choosing between three wire strategies by file size:

- below SMALL_FILE_LIMIT: one direct PUT to the item's :/content URL
- below SINGLE_SESSION_LIMIT: createUploadSession, then one PUT of the whole body
- otherwise: createUploadSession, then sequential fragment PUTs of chunk_size bytes

Fragments are sent strictly in ascending offset order. No write is retried;
a failed session is cancelled and reported to the caller.
"""

import os

from .file_handler import FileSource, sanitize_folder_path, sanitize_sharepoint_name
from .graph_api import (
    DEFAULT_TIMEOUT,
    build_content_url,
    build_session_url,
    extract_error,
    graph_request,
    response_json
)
from .results import ErrorKind, Fragment, UploadResult, UploadSession, UploadTarget
from .utils import is_debug_enabled, log


SMALL_FILE_LIMIT = 3 * 1024 * 1024
SINGLE_SESSION_LIMIT = 249 * 1024 * 1024

# Intermediate fragments must be multiples of 320 KiB
CHUNK_ALIGNMENT = 327680
DEFAULT_CHUNK_SIZE = 190 * CHUNK_ALIGNMENT  # 62,259,200 bytes

SESSION_EXPIRED_STATUSES = (404, 410)


def plan_fragments(total, chunk_size=DEFAULT_CHUNK_SIZE):
    """
    Yield the fragments a chunked upload of `total` bytes will send.

    Every fragment but the last is exactly chunk_size bytes; the last carries
    the remainder (a full chunk when total divides evenly).

    Args:
        total (int): File size in bytes
        chunk_size (int): Fragment size in bytes

    Yields:
        Fragment: In ascending offset order
    """
    offset = 0
    while offset < total:
        length = min(chunk_size, total - offset)
        yield Fragment(offset, length, total)
        offset += length


def progress_status(offset, file_size):
    """Display upload progress."""
    if is_debug_enabled():
        print(f"Uploaded {offset} bytes from {file_size} bytes ... {offset/file_size*100:.2f}%")


def _is_session_expired(response):
    if response.status_code in SESSION_EXPIRED_STATUSES:
        return True
    code, message = extract_error(response)
    text = f"{code or ''} {message or ''}".lower()
    return 'expired' in text


def _read_failure(target, error, method=None):
    return UploadResult.failed(target, ErrorKind.TRANSFER,
                               f"Cannot read {error.filename or 'local file'}: {error}",
                               method=method)


def _log_failure(result):
    log('warning', f"Upload failed for {result.target.display_path}: "
                   f"{result.error_kind} {result.status_code or ''} {result.message}")


class ChunkedUploader:
    """
    Uploads files to a Graph drive using direct PUT or upload sessions.

    Args:
        chunk_size (int): Fragment size for chunked uploads; positive multiple of CHUNK_ALIGNMENT
        timeout (float): Per-request timeout in seconds
        monitor (RateLimitMonitor): Optional monitor fed with every response
        cancel_on_failure (bool): DELETE the upload session when a session write fails
    """

    def __init__(self, chunk_size=DEFAULT_CHUNK_SIZE, timeout=DEFAULT_TIMEOUT,
                 monitor=None, cancel_on_failure=True):
        if chunk_size <= 0 or chunk_size % CHUNK_ALIGNMENT != 0:
            raise ValueError(
                f"chunk_size must be a positive multiple of {CHUNK_ALIGNMENT} bytes, got {chunk_size}"
            )
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.monitor = monitor
        self.cancel_on_failure = cancel_on_failure

    def upload(self, target, source, token):
        """
        Upload the bytes of `source` to `target`.

        Args:
            target (UploadTarget): Destination and total size
            source (FileSource): Open byte source positioned at offset 0
            token (str): Bearer access token

        Returns:
            UploadResult: Success with the drive item, or the failure kind
        """
        if target.size < SMALL_FILE_LIMIT:
            try:
                result = self._upload_small(target, source, token)
            except OSError as read_error:
                result = _read_failure(target, read_error, 'small')
        else:
            session, result = self.create_session(target, token)
            if session is not None:
                method = 'session' if target.size < SINGLE_SESSION_LIMIT else 'chunked'
                try:
                    if method == 'session':
                        result = self._upload_single(target, source, session)
                    else:
                        result = self._upload_fragments(target, source, session)
                except OSError as read_error:
                    result = _read_failure(target, read_error, method)

                if not result.success and self.cancel_on_failure:
                    self.cancel_session(session)

        if result.success:
            result.content_hash = source.hexdigest()
            log('debug', f"Upload complete: {target.display_path} (xxh64 {result.content_hash})")
        else:
            _log_failure(result)
        return result

    def upload_path(self, local_path, endpoint, folder, token, file_name=None):
        """
        Upload a local file, sizing and naming the target from the filesystem.

        The file is opened immediately before the first read and closed on
        every exit path.

        Args:
            local_path (str): Path of the file to upload
            endpoint (str): Graph site or drive root URL
            folder (str): Destination folder under the drive root
            token (str): Bearer access token
            file_name (str): Destination name (defaults to the local base name)

        Returns:
            UploadResult
        """
        name = sanitize_sharepoint_name(file_name or os.path.basename(local_path))
        folder = sanitize_folder_path(folder)

        try:
            source = FileSource(local_path)
            source.open()
        except OSError as local_error:
            # Size is unknown when the file cannot be stat'ed
            result = _read_failure(UploadTarget(endpoint, folder, name, 0), local_error)
            _log_failure(result)
            return result

        with source:
            target = UploadTarget(endpoint, folder, name, source.size)
            return self.upload(target, source, token)

    def _upload_small(self, target, source, token):
        data = source.read_all()
        url = build_content_url(target.endpoint, target.folder, target.file_name)
        headers = {'Authorization': f"Bearer {token}"}

        log('debug', f"Direct upload: {target.display_path} ({len(data):,} bytes)")
        response, error = graph_request('PUT', url, headers, data=data,
                                        timeout=self.timeout, monitor=self.monitor)
        if response is None:
            return UploadResult.failed(target, ErrorKind.TRANSFER, error, method='small')

        if response.status_code in (200, 201):
            return UploadResult(target, True, method='small', item=response_json(response))

        code, message = extract_error(response)
        return UploadResult.failed(target, ErrorKind.TRANSFER, f"{code or 'error'}: {message}",
                                   method='small', status_code=response.status_code)

    def create_session(self, target, token):
        """
        Create an upload session for a large file.

        Returns:
            tuple: (UploadSession, None) on success, or (None, UploadResult) describing
                   the SessionCreationError
        """
        url = build_session_url(target.endpoint, target.folder, target.file_name)
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'text/plain',
            'Authorization': f"bearer {token}"
        }

        log('debug', f"Creating upload session: {url}")
        response, error = graph_request('POST', url, headers,
                                        timeout=self.timeout, monitor=self.monitor)
        if response is None:
            return None, UploadResult.failed(target, ErrorKind.SESSION_CREATION, error)

        if response.status_code not in (200, 201):
            code, message = extract_error(response)
            return None, UploadResult.failed(target, ErrorKind.SESSION_CREATION,
                                             f"{code or 'error'}: {message}",
                                             status_code=response.status_code)

        session = UploadSession.from_response(response_json(response))
        if session is None:
            return None, UploadResult.failed(target, ErrorKind.SESSION_CREATION,
                                             "Response did not contain an uploadUrl",
                                             status_code=response.status_code)

        log('debug', f"Upload session created: {session.upload_url[:50]}...")
        return session, None

    def _put_session_bytes(self, target, session, data, fragment, method):
        """PUT one byte range to the session URL; returns (response, failure)."""
        # Session URLs are pre-authorized; no Authorization header
        headers = {
            'Content-Length': str(len(data)),
            'Content-Range': fragment.content_range
        }
        log('debug', f"Uploading {fragment.content_range}")
        response, error = graph_request('PUT', session.upload_url, headers, data=data,
                                        timeout=self.timeout, monitor=self.monitor)
        if response is None:
            return None, UploadResult.failed(target, ErrorKind.TRANSFER, error, method=method)

        if response.status_code in (200, 201, 202):
            return response, None

        if _is_session_expired(response):
            message = "upload session expired or invalid"
        else:
            code, detail = extract_error(response)
            message = f"{code or 'error'}: {detail}"
        return None, UploadResult.failed(
            target, ErrorKind.TRANSFER, f"{message} at {fragment.content_range}",
            method=method, status_code=response.status_code
        )

    def _upload_single(self, target, source, session):
        data = source.read_all()
        if len(data) != target.size:
            return UploadResult.failed(
                target, ErrorKind.TRANSFER,
                f"read {len(data)} bytes but expected {target.size}", method='session'
            )

        fragment = Fragment(0, len(data), len(data))
        response, failure = self._put_session_bytes(target, session, data, fragment, 'session')
        if failure is not None:
            return failure

        if response.status_code == 202:
            return UploadResult.failed(target, ErrorKind.TRANSFER,
                                       "server expects more bytes after the full content was sent",
                                       method='session', status_code=202)
        return UploadResult(target, True, method='session', item=response_json(response))

    def _upload_fragments(self, target, source, session):
        log('debug', f"Chunked upload: {target.display_path} ({target.size:,} bytes, "
                     f"chunk size {self.chunk_size:,})")

        offset = 0
        response = None
        while True:
            data = source.read(self.chunk_size)
            if not data:
                break

            fragment = Fragment(offset, len(data), target.size)
            response, failure = self._put_session_bytes(target, session, data, fragment, 'chunked')
            if failure is not None:
                return failure

            offset += len(data)
            progress_status(offset, target.size)

            if len(data) < self.chunk_size:
                break

        if offset != target.size:
            return UploadResult.failed(target, ErrorKind.TRANSFER,
                                       f"sent {offset} bytes but expected {target.size}",
                                       method='chunked')

        if response is None or response.status_code == 202:
            return UploadResult.failed(target, ErrorKind.TRANSFER,
                                       "server did not confirm the final fragment",
                                       method='chunked', status_code=202)

        return UploadResult(target, True, method='chunked', item=response_json(response))

    def cancel_session(self, session):
        """
        Delete an abandoned upload session so the server discards its fragments.

        Failures are logged and otherwise ignored; the upload has already failed.
        """
        response, error = graph_request('DELETE', session.upload_url,
                                        timeout=self.timeout, monitor=self.monitor)
        if response is None:
            log('warning', f"Could not cancel upload session: {error}")
        elif response.status_code not in (200, 204):
            log('warning', f"Upload session cancel returned {response.status_code}")
        else:
            log('debug', "Upload session cancelled")
