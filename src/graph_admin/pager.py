# -*- coding: utf-8 -*-
"""
Paginated Graph queries with rate-limit backoff.

ResilientPager follows @odata.nextLink cursors until the server stops
returning one, retrying HTTP 429 responses with a linearly increasing delay.
A run that stops early is reported as partial, never as complete.
"""

import time

from .auth import AuthError
from .graph_api import DEFAULT_TIMEOUT, extract_error, graph_request
from .results import ErrorKind, PageResult
from .utils import is_debug_enabled, log, truncate


MAX_ATTEMPTS = 3
BACKOFF_STEP_SECONDS = 15

NEXT_LINK_FIELDS = ('@odata.nextLink', 'nextLink', '@odata.nextlink')

# Exchange Online answers these for mailboxes still hosted on-premises
NOT_MIGRATED_CODES = (
    'MailboxNotEnabledForRESTAPI',
    'MailboxNotHostedInExchangeOnline',
)
NOT_MIGRATED_PHRASES = (
    'not yet migrated',
    'hosted on-premise',
)


def get_next_link(body):
    """Return the continuation cursor of a page body, or None at the end."""
    for field in NEXT_LINK_FIELDS:
        value = body.get(field)
        if value:
            return value
    return None


def is_not_migrated(response):
    """True when the error response says the mailbox has not been migrated."""
    code, message = extract_error(response)
    if code in NOT_MIGRATED_CODES:
        return True
    message = (message or '').lower()
    return any(phrase in message for phrase in NOT_MIGRATED_PHRASES)


class StaticToken:
    """Token provider for a bearer string whose lifetime the caller manages."""

    def __init__(self, access_token):
        self.access_token = access_token

    def get_token(self):
        return self.access_token


class ResilientPager:
    """
    Retrieves every page of a cursor-paginated Graph query.

    Args:
        token_provider: Object with get_token() returning a current bearer token
            (see auth.TokenProvider); asked before every request
        max_attempts (int): Attempts per page before giving up on 429s
        backoff_step (float): Delay after the n-th 429 is n * backoff_step seconds
        sleep (callable): Blocking sleep function
        monitor (RateLimitMonitor): Optional monitor fed with every response
        timeout (float): Per-request timeout in seconds
    """

    def __init__(self, token_provider, max_attempts=MAX_ATTEMPTS, backoff_step=BACKOFF_STEP_SECONDS,
                 sleep=time.sleep, monitor=None, timeout=DEFAULT_TIMEOUT):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if isinstance(token_provider, str):
            token_provider = StaticToken(token_provider)
        self.token_provider = token_provider
        self.max_attempts = max_attempts
        self.backoff_step = backoff_step
        self.sleep = sleep
        self.monitor = monitor
        self.timeout = timeout

    def backoff_delay(self, attempt):
        """Seconds to wait after the given (1-based) rate-limited attempt."""
        return attempt * self.backoff_step

    def fetch_page(self, url):
        """
        GET one page, retrying on 429.

        Args:
            url (str): Query URI or continuation cursor URL

        Returns:
            tuple: (body, None) on success, or (None, PageResult) describing the failure
        """
        for attempt in range(1, self.max_attempts + 1):
            headers = {'Authorization': f"Bearer {self.token_provider.get_token()}"}
            response, error = graph_request('GET', url, headers,
                                            timeout=self.timeout, monitor=self.monitor)

            if response is None:
                return None, PageResult(complete=False, error_kind=ErrorKind.REQUEST, message=error)

            if response.status_code == 429:
                if attempt < self.max_attempts:
                    delay = self.backoff_delay(attempt)
                    if is_debug_enabled():
                        print(f"[!] Rate limited (429). Waiting {delay} seconds before retry "
                              f"{attempt}/{self.max_attempts - 1}...")
                    self.sleep(delay)
                    continue
                print(f"[!] Rate limiting exhausted all {self.max_attempts} attempts for: {truncate(url, 100)}")
                if is_debug_enabled():
                    print(f"[DEBUG] {truncate(response.text, 500)}")
                return None, PageResult(complete=False, error_kind=ErrorKind.RATE_LIMIT_EXCEEDED,
                                        status_code=429,
                                        message=f"HTTP 429 after {self.max_attempts} attempts")

            if response.status_code == 200:
                try:
                    return response.json(), None
                except ValueError:
                    return None, PageResult(complete=False, error_kind=ErrorKind.REQUEST,
                                            status_code=200, message="Response body is not JSON")

            if is_not_migrated(response):
                code, message = extract_error(response)
                return None, PageResult(complete=True, error_kind=ErrorKind.SKIPPABLE_RESOURCE,
                                        status_code=response.status_code,
                                        message=f"{code or 'error'}: {message}")

            code, message = extract_error(response)
            return None, PageResult(complete=False, error_kind=ErrorKind.REQUEST,
                                    status_code=response.status_code,
                                    message=f"{code or 'error'}: {message}")

    def fetch_all(self, uri):
        """
        Follow continuation cursors from `uri` until the result set is exhausted.

        Args:
            uri (str): Initial query URI

        Returns:
            PageResult: All `value` items in server order. On failure, `complete`
                is False and `items` holds only the pages fetched before it.

        Raises:
            AuthError: When a token refresh fails; `partial` carries the pages fetched so far
        """
        items = []
        pages = 0
        url = uri

        while url:
            try:
                body, failure = self.fetch_page(url)
            except AuthError as auth_error:
                auth_error.partial = PageResult(items, complete=False, error_kind=ErrorKind.AUTH,
                                                message=str(auth_error), pages=pages)
                raise

            if failure is not None:
                failure.items = items
                failure.pages = pages
                if failure.skipped:
                    log('warning', f"Skipping resource: {failure.message}")
                else:
                    log('error', f"Query stopped after {pages} page(s), {len(items)} item(s) kept: "
                                 f"{failure.error_kind} {failure.message}")
                return failure

            value = body.get('value') if isinstance(body, dict) else None
            if not isinstance(value, list):
                log('error', f"Page {pages + 1} has no 'value' array")
                return PageResult(items, complete=False, error_kind=ErrorKind.REQUEST,
                                  status_code=200, message="Response has no 'value' array",
                                  pages=pages)

            items.extend(value)
            pages += 1

            next_url = get_next_link(body)
            if next_url == url:
                return PageResult(items, complete=False, error_kind=ErrorKind.REQUEST,
                                  message="Continuation cursor did not advance", pages=pages)
            url = next_url

            if is_debug_enabled():
                print(f"[DEBUG] Page {pages}: {len(value)} item(s), more: {bool(url)}")

        return PageResult(items, complete=True, pages=pages)
