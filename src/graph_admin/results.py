# -*- coding: utf-8 -*-
"""
Value types and result objects for upload and pagination runs.

Operations in this package report failures through these result objects
rather than raising, so a caller looping over many files or resources can
record the failure and move on to the next item. Only authentication
failures are raised (see auth.AuthError).
"""


class ErrorKind:
    """Names of the failure kinds carried by results"""
    AUTH = 'AuthError'
    SESSION_CREATION = 'SessionCreationError'
    TRANSFER = 'TransferError'
    RATE_LIMIT_EXCEEDED = 'RateLimitExceeded'
    SKIPPABLE_RESOURCE = 'SkippableResourceError'
    REQUEST = 'RequestError'


class UploadTarget:
    """
    Destination of one upload.

    Attributes:
        endpoint (str): Graph site or drive root, e.g.
            'https://graph.microsoft.com/v1.0/sites/{site_id}'
        folder (str): Folder path under the drive root ('' for the root itself)
        file_name (str): Name of the file in SharePoint
        size (int): Total byte length, known before the upload starts
    """

    def __init__(self, endpoint, folder, file_name, size):
        if size < 0:
            raise ValueError("size must be non-negative")
        self.endpoint = endpoint.rstrip('/')
        self.folder = folder.strip('/')
        self.file_name = file_name
        self.size = size

    @property
    def display_path(self):
        if self.folder:
            return f"{self.folder}/{self.file_name}"
        return self.file_name

    def __repr__(self):
        return f"UploadTarget({self.display_path!r}, size={self.size})"


class UploadSession:
    """Server-issued upload session (URL is pre-authorized)"""

    def __init__(self, upload_url, expiration=None):
        self.upload_url = upload_url
        self.expiration = expiration

    @classmethod
    def from_response(cls, data):
        """
        Build a session from a createUploadSession response body.

        Returns None when the body is missing or the uploadUrl is empty.
        """
        if not isinstance(data, dict):
            return None
        upload_url = data.get('uploadUrl')
        if not upload_url or not str(upload_url).strip():
            return None
        return cls(str(upload_url).strip(), data.get('expirationDateTime'))


class Fragment:
    """One contiguous byte range sent in a single PUT"""

    def __init__(self, start, length, total):
        self.start = start
        self.length = length
        self.total = total

    @property
    def end(self):
        return self.start + self.length - 1

    @property
    def content_range(self):
        return f"bytes {self.start}-{self.end}/{self.total}"

    def __eq__(self, other):
        if not isinstance(other, Fragment):
            return NotImplemented
        return (self.start, self.length, self.total) == (other.start, other.length, other.total)

    def __repr__(self):
        return f"Fragment({self.content_range})"


class UploadResult:
    """
    Outcome of one file upload.

    Attributes:
        target (UploadTarget): What was uploaded
        success (bool): True when the server confirmed the final write
        method (str): 'small', 'session' or 'chunked'
        item (dict): Drive item metadata returned by the final write
        error_kind (str): ErrorKind value on failure, else None
        status_code (int): HTTP status of the failing request, if any
        message (str): Failure description
        content_hash (str): xxh64 digest of the bytes that were read
    """

    def __init__(self, target, success, method=None, item=None, error_kind=None,
                 status_code=None, message=None, content_hash=None):
        self.target = target
        self.success = success
        self.method = method
        self.item = item
        self.error_kind = error_kind
        self.status_code = status_code
        self.message = message
        self.content_hash = content_hash

    @classmethod
    def failed(cls, target, error_kind, message, method=None, status_code=None):
        return cls(target, False, method=method, error_kind=error_kind,
                   status_code=status_code, message=message)

    def __repr__(self):
        if self.success:
            return f"UploadResult({self.target.display_path!r}, ok, {self.method})"
        return f"UploadResult({self.target.display_path!r}, {self.error_kind}: {self.message})"


class PageResult:
    """
    Outcome of a pagination run.

    `complete` is False whenever the run stopped before the server reported
    the end of the result set; `items` then holds the pages fetched before
    the failure and must be treated as partial.
    """

    def __init__(self, items=None, complete=True, error_kind=None,
                 status_code=None, message=None, pages=0):
        self.items = items if items is not None else []
        self.complete = complete
        self.error_kind = error_kind
        self.status_code = status_code
        self.message = message
        self.pages = pages

    @property
    def skipped(self):
        return self.error_kind == ErrorKind.SKIPPABLE_RESOURCE

    @property
    def partial(self):
        return not self.complete

    def to_dict(self):
        return {
            'complete': self.complete,
            'error': self.error_kind,
            'message': self.message,
            'pages': self.pages,
            'value': self.items,
        }

    def __repr__(self):
        state = 'complete' if self.complete else f"partial ({self.error_kind})"
        return f"PageResult({len(self.items)} items, {self.pages} pages, {state})"
