# -*- coding: utf-8 -*-
"""
Microsoft authentication module for Graph admin tools.

This module handles Azure AD authentication using MSAL (Microsoft Authentication Library)
and tracks token expiry so long-running loops can refresh before each request.
"""

from datetime import datetime, timedelta, timezone

import msal

from .utils import is_debug_enabled


class AuthError(Exception):
    """
    Token acquisition failed; no further Graph call can succeed.

    Attributes:
        partial (PageResult): Items collected by a query before the refresh
            failed, attached by the pager (None elsewhere)
    """

    def __init__(self, message, partial=None):
        super().__init__(message)
        self.partial = partial


def load_certificate_credential(cert_thumbprint, cert_key_path):
    """
    Build an MSAL certificate credential from a thumbprint and PEM key file.

    Args:
        cert_thumbprint (str): Certificate thumbprint registered on the app
        cert_key_path (str): Path to the PEM-encoded private key

    Returns:
        dict: Credential accepted by msal.ConfidentialClientApplication

    Raises:
        AuthError: If the key file cannot be read
    """
    try:
        with open(cert_key_path, 'r', encoding='utf-8') as key_file:
            private_key = key_file.read()
    except OSError as e:
        raise AuthError(f"Cannot read certificate private key {cert_key_path}: {e}") from e
    return {
        'thumbprint': cert_thumbprint.replace(':', '').strip(),
        'private_key': private_key,
    }


def _print_auth_failure(error_msg, error_desc, error_codes, login_endpoint, graph_endpoint):
    """Print troubleshooting guidance for a failed token request."""
    print("[!] ========================================")
    print("[!] AUTHENTICATION FAILED")
    print("[!] ========================================")

    if "invalid_client" in error_msg or 7000215 in error_codes:
        print("[!] Error: Invalid client credentials")
        print("[!] ")
        print("[!] Troubleshooting steps:")
        print("[!]   1. Verify your CLIENT_ID is correct (check Azure AD app registration)")
        print("[!]   2. Verify the client secret or certificate thumbprint matches the app registration")
        print("[!]   3. Check if the secret or certificate has expired in Azure AD portal")
        print("[!]   4. Ensure you're using the correct TENANT_ID")
    elif "unauthorized_client" in error_msg or 700016 in error_codes:
        print("[!] Error: Application not authorized")
        print("[!] ")
        print("[!] Troubleshooting steps:")
        print("[!]   1. Go to Azure AD portal → App registrations → Your app")
        print("[!]   2. Navigate to 'API permissions'")
        print("[!]   3. Verify the Microsoft Graph application permissions the task needs:")
        print("[!]      - Sites.ReadWrite.All (uploads)")
        print("[!]      - AuditLog.Read.All, Calendars.Read, Place.Read.All (queries)")
        print("[!]   4. Click 'Grant admin consent' button (requires admin privileges)")
    elif "invalid_scope" in error_msg or "AADSTS70011" in error_desc:
        print("[!] Error: Invalid scope requested")
        print("[!] ")
        print("[!] Troubleshooting steps:")
        print(f"[!]   1. Verify Graph API endpoint is correct: {graph_endpoint}")
        print("[!]   2. For commercial cloud, use: graph.microsoft.com")
        print("[!]   3. For GovCloud, use: graph.microsoft.us")
    elif "invalid_request" in error_msg:
        print("[!] Error: Invalid authentication request")
        print("[!] ")
        print("[!] Troubleshooting steps:")
        print("[!]   1. Verify TENANT_ID format (should be a GUID like: xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx)")
        print(f"[!]   2. Verify login endpoint is correct: {login_endpoint}")
        print("[!]   3. For commercial cloud, use: login.microsoftonline.com")
        print("[!]   4. For GovCloud, use: login.microsoftonline.us")
    else:
        print(f"[!] Error: {error_msg}")
        print("[!] ")
        print("[!] Common issues:")
        print("[!]   - Network connectivity problems")
        print("[!]   - Firewall blocking access to Microsoft identity platform")
        print("[!]   - Incorrect tenant ID or endpoint configuration")
        if error_codes:
            print(f"[!]   Error codes: {error_codes}")

    print("[!] ")
    print(f"[!] Technical details: {error_desc}")
    print("[!] ========================================")


def acquire_token(tenant_id, client_id, client_secret=None,
                  login_endpoint='login.microsoftonline.com', graph_endpoint='graph.microsoft.com',
                  cert_thumbprint=None, cert_key_path=None, now=None):
    """
    Acquire an app-only access token from Azure Active Directory using MSAL.

    Uses the OAuth 2.0 client credentials flow with either a client secret or
    a certificate (thumbprint plus private key).

    Args:
        tenant_id (str): Azure AD tenant ID (GUID format)
        client_id (str): Application (client) ID from Azure AD app registration
        client_secret (str): Client secret value, or None for certificate auth
        login_endpoint (str): Azure AD authentication endpoint
        graph_endpoint (str): Microsoft Graph API endpoint
        cert_thumbprint (str): Certificate thumbprint for certificate auth
        cert_key_path (str): Path to the certificate's PEM private key
        now (datetime): Current UTC time, for computing the expiry instant

    Returns:
        tuple: (access_token, expires_at) where expires_at is a UTC datetime

    Raises:
        AuthError: If no credential was given or authentication fails
    """
    if cert_thumbprint and cert_key_path:
        credential = load_certificate_credential(cert_thumbprint, cert_key_path)
    elif client_secret:
        credential = client_secret
    else:
        raise AuthError("No client secret or certificate configured")

    authority_url = f'https://{login_endpoint}/{tenant_id}'

    try:
        app = msal.ConfidentialClientApplication(
            authority=authority_url,
            client_id=client_id,
            client_credential=credential
        )
        # '/.default' scope means "use all permissions granted to this app"
        token = app.acquire_token_for_client(scopes=[f"https://{graph_endpoint}/.default"])
    except ValueError as e:
        # MSAL raises ValueError for malformed authority or credential
        raise AuthError(f"Authentication failed: {e}") from e

    # MSAL returns errors in the token dict, not as exceptions
    if not token or "access_token" not in token:
        token = token or {}
        error_msg = token.get("error", "unknown_error")
        error_desc = token.get("error_description", "No description provided")
        error_codes = token.get("error_codes", [])
        _print_auth_failure(error_msg, error_desc, error_codes, login_endpoint, graph_endpoint)
        raise AuthError(f"Authentication failed: {error_msg} - {error_desc}")

    now = now or datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=int(token.get("expires_in", 3599)))

    if is_debug_enabled():
        print(f"[DEBUG] Token acquired, expires at {expires_at.isoformat()}")

    return token["access_token"], expires_at


class TokenProvider:
    """
    Holds the current bearer token and refreshes it once its expiry instant has passed.

    Callers ask for the token before every logical request instead of keeping
    the string around, so a long pagination run picks up a fresh token as soon
    as the old one expires.
    """

    def __init__(self, tenant_id, client_id, client_secret=None,
                 login_endpoint='login.microsoftonline.com', graph_endpoint='graph.microsoft.com',
                 cert_thumbprint=None, cert_key_path=None, acquire=None, clock=None):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.login_endpoint = login_endpoint
        self.graph_endpoint = graph_endpoint
        self.cert_thumbprint = cert_thumbprint
        self.cert_key_path = cert_key_path
        self._acquire = acquire or acquire_token
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.access_token = None
        self.expires_at = None
        self.refresh_count = 0

    def is_stale(self):
        """True when no token is held or the tracked expiry instant is past."""
        if self.access_token is None or self.expires_at is None:
            return True
        return self._clock() >= self.expires_at

    def refresh(self):
        self.access_token, self.expires_at = self._acquire(
            self.tenant_id, self.client_id, self.client_secret,
            self.login_endpoint, self.graph_endpoint,
            cert_thumbprint=self.cert_thumbprint,
            cert_key_path=self.cert_key_path,
            now=self._clock()
        )
        self.refresh_count += 1
        return self.access_token

    def get_token(self):
        """
        Return a bearer token that has not yet expired.

        Raises:
            AuthError: If a refresh was needed and failed
        """
        if self.is_stale():
            if self.access_token is not None and is_debug_enabled():
                print("[DEBUG] Access token expired, refreshing")
            return self.refresh()
        return self.access_token
