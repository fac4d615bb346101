# -*- coding: utf-8 -*-
"""
Microsoft Graph API transport for Graph admin tools.

This module provides URL builders for the drive upload endpoints, a
single-shot request helper with transport-error handling, and Graph error
body parsing. Retry policy lives with the callers (see pager.py); uploads
are never retried.
"""

import urllib.parse

import requests

from .utils import is_debug_enabled, log, truncate


# Default per-request timeout in seconds
DEFAULT_TIMEOUT = 300


def _quote_path(path):
    return urllib.parse.quote(path, safe='/')


def build_item_path_url(endpoint, folder, file_name):
    """
    Build the path-addressed drive item URL for a file.

    Args:
        endpoint (str): Graph site or drive root, e.g. 'https://graph.microsoft.com/v1.0/sites/{id}'
        folder (str): Folder path under the drive root
        file_name (str): File name

    Returns:
        str: '{endpoint}/drive/root:/{folder}/{file_name}' with path segments percent-encoded
    """
    folder = folder.strip('/')
    item_path = f"{folder}/{file_name}" if folder else file_name
    return f"{endpoint.rstrip('/')}/drive/root:/{_quote_path(item_path)}"


def build_content_url(endpoint, folder, file_name):
    """Direct content upload URL: '.../root:/{folder}/{file_name}:/content'"""
    return f"{build_item_path_url(endpoint, folder, file_name)}:/content"


def build_session_url(endpoint, folder, file_name):
    """Upload session URL: '.../root:/{folder}/{file_name}:/createUploadSession'"""
    return f"{build_item_path_url(endpoint, folder, file_name)}:/createUploadSession"


def extract_error(response):
    """
    Pull the Graph error code and message out of a response body.

    Graph errors look like {"error": {"code": "...", "message": "..."}}.
    Non-JSON bodies fall back to the raw text.

    Args:
        response: requests.Response object

    Returns:
        tuple: (code, message) - code may be None
    """
    if response is None:
        return None, 'no response'
    try:
        body = response.json()
    except ValueError:
        return None, truncate(response.text)
    if isinstance(body, dict) and isinstance(body.get('error'), dict):
        error = body['error']
        return error.get('code'), error.get('message') or truncate(response.text)
    return None, truncate(response.text)


def response_json(response):
    """Return the decoded JSON body of a response, or None when it has none."""
    try:
        return response.json()
    except ValueError:
        log('debug', f"Response {response.status_code} has no JSON body: {truncate(response.text, 100)}")
        return None


def graph_request(method, url, headers=None, data=None, timeout=DEFAULT_TIMEOUT, monitor=None):
    """
    Issue one HTTP request against Graph, converting transport exceptions to an error message.

    Args:
        method (str): HTTP method ('GET', 'POST', 'PUT', 'DELETE')
        url (str): Absolute request URL
        headers (dict): Request headers
        data (bytes): Request body
        timeout (float): Seconds before the request is abandoned (None = no limit)
        monitor (RateLimitMonitor): Optional monitor fed with every response

    Returns:
        tuple: (response, None) when the server answered (any status), or
               (None, error_message) when no response was received
    """
    method = method.upper()
    if is_debug_enabled():
        print(f"[DEBUG] {method} {truncate(url, 150)}")

    try:
        if method == 'GET':
            response = requests.get(url, headers=headers, timeout=timeout)
        elif method == 'POST':
            response = requests.post(url, headers=headers, data=data, timeout=timeout)
        elif method == 'PUT':
            response = requests.put(url, headers=headers, data=data, timeout=timeout)
        elif method == 'DELETE':
            response = requests.delete(url, headers=headers, timeout=timeout)
        else:
            raise ValueError(f"Unsupported HTTP method: {method}")

    except requests.exceptions.Timeout as e:
        print(f"[!] Request timeout after {timeout}s: {truncate(str(e), 100)}")
        print(f"[!] URL: {truncate(url, 100)}")
        return None, f"Request timed out: {truncate(str(e), 200)}"

    except requests.exceptions.SSLError as e:
        print("[!] ========================================")
        print("[!] SSL/TLS CERTIFICATE ERROR")
        print("[!] ========================================")
        print("[!] Failed to verify SSL certificate for Microsoft Graph API.")
        print("[!] ")
        print("[!] Troubleshooting steps:")
        print("[!]   1. Verify system certificate store is up to date")
        print("[!]   2. Check if corporate proxy is intercepting SSL/TLS connections")
        print("[!]   3. Ensure system clock is accurate (SSL cert validation requires correct time)")
        print("[!] ")
        print(f"[!] Technical details: {truncate(str(e))}")
        print("[!] ========================================")
        return None, f"SSL certificate verification failed: {truncate(str(e), 200)}"

    except requests.exceptions.ProxyError as e:
        print("[!] ========================================")
        print("[!] PROXY CONNECTION ERROR")
        print("[!] ========================================")
        print("[!] Failed to connect through proxy server.")
        print("[!] Verify HTTP_PROXY and HTTPS_PROXY environment variables are set correctly.")
        print(f"[!] Technical details: {truncate(str(e))}")
        print("[!] ========================================")
        return None, f"Proxy connection failed: {truncate(str(e), 200)}"

    except requests.exceptions.TooManyRedirects as e:
        print(f"[!] Too many redirects - verify Graph endpoint: {truncate(url, 100)}")
        return None, f"Too many redirects: {truncate(str(e), 200)}"

    except requests.exceptions.ConnectionError as e:
        print(f"[!] Network connection error: {truncate(str(e), 100)}")
        print("[!] Check DNS resolution and that HTTPS (port 443) to *.microsoft.com is allowed")
        return None, f"Network connection failed: {truncate(str(e), 200)}"

    except requests.exceptions.RequestException as e:
        print(f"[!] HTTP request error: {truncate(str(e), 200)}")
        return None, f"HTTP request error: {truncate(str(e), 200)}"

    if monitor is not None:
        monitor.analyze_response_headers(response, method=method, url=url)

    if is_debug_enabled():
        print(f"[DEBUG] -> {response.status_code}")

    return response, None
