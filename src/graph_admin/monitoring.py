# -*- coding: utf-8 -*-
"""
Rate limiting monitoring and run statistics for Graph admin tools.

This module provides classes for monitoring Graph API throttling headers and
tracking upload/query statistics. Instances are created per run and passed
to the components that report into them.
"""

from .utils import log


def _header_number(value, convert):
    """Parse a numeric throttle header; malformed values are ignored."""
    if not value:
        return None
    try:
        return convert(value)
    except ValueError:
        log('debug', f"Ignoring malformed rate limit header value: {value!r}")
        return None


class RateLimitMonitor:
    """
    Monitor and track Graph API rate limiting metrics.

    Analyzes response headers to detect and track throttling:
    - x-ms-throttle-limit-percentage: Utilization percentage (0.8-1.8 range)
    - x-ms-resource-unit: Resource units consumed per request
    - x-ms-throttle-scope: Throttling scope details

    Headers only appear when >80% of limit consumed.
    """

    def __init__(self):
        """Initialize rate limit monitoring metrics"""
        self.metrics = {
            'total_requests': 0,
            'throttled_requests': 0,
            'rate_limited_responses': 0,
            'average_throttle_percentage': 0.0,
            'max_throttle_percentage': 0.0,
            'resource_units_consumed': 0,
            'alerts_triggered': 0
        }
        self.throttle_threshold = 0.8  # Alert when >80% of limit

        self.request_types = {
            'GET': 0,
            'POST': 0,
            'PUT': 0,
            'DELETE': 0
        }

        self.operations = {
            'small_upload': 0,      # PUT to :/content
            'session_create': 0,    # POST to :/createUploadSession
            'session_upload': 0,    # PUT to an upload session URL
            'session_cancel': 0,    # DELETE of an abandoned upload session
            'page_fetch': 0,        # GET of a query page
            'other': 0
        }

    def analyze_response_headers(self, response, method=None, url=None):
        """
        Analyze Graph API response headers for rate limiting info.

        Args:
            response: requests.Response object from Graph API call
            method (str): HTTP method (GET, POST, PUT, DELETE)
            url (str): Request URL for operation type detection

        Returns:
            dict: Rate limiting information extracted from headers
        """
        self.metrics['total_requests'] += 1

        if method and method.upper() in self.request_types:
            self.request_types[method.upper()] += 1

        if url and method:
            self._categorize_operation(url, method.upper())

        if response.status_code == 429:
            self.metrics['rate_limited_responses'] += 1

        headers = response.headers or {}
        throttle_percentage = headers.get('x-ms-throttle-limit-percentage')
        resource_unit = headers.get('x-ms-resource-unit')
        throttle_scope = headers.get('x-ms-throttle-scope')

        percentage = _header_number(throttle_percentage, float)
        resource_units = _header_number(resource_unit, int)

        if percentage is not None:
            self.metrics['max_throttle_percentage'] = max(
                self.metrics['max_throttle_percentage'],
                percentage
            )

            # Running average over all requests seen so far
            current_avg = self.metrics['average_throttle_percentage']
            total_requests = self.metrics['total_requests']
            self.metrics['average_throttle_percentage'] = (
                ((current_avg * (total_requests - 1)) + percentage) / total_requests
            )

            if percentage >= 1.0:
                self.metrics['throttled_requests'] += 1
                print(f"[!] THROTTLING DETECTED: {percentage:.1%} of limit used")
                if throttle_scope:
                    print(f"[!] Throttle scope: {throttle_scope}")
            elif percentage >= self.throttle_threshold:
                self.metrics['alerts_triggered'] += 1
                print(f"[ ] Rate limit warning: {percentage:.1%} of limit used")

        if resource_units is not None:
            self.metrics['resource_units_consumed'] += resource_units

        return {
            'throttle_percentage': percentage,
            'resource_unit': resource_units,
            'throttle_scope': throttle_scope,
            'is_throttled': response.status_code == 429
        }

    def _categorize_operation(self, url, method):
        url_lower = url.lower()

        if method == 'PUT' and url_lower.endswith(':/content'):
            self.operations['small_upload'] += 1
        elif method == 'POST' and url_lower.endswith(':/createuploadsession'):
            self.operations['session_create'] += 1
        elif method == 'PUT':
            self.operations['session_upload'] += 1
        elif method == 'DELETE':
            self.operations['session_cancel'] += 1
        elif method == 'GET':
            self.operations['page_fetch'] += 1
        else:
            self.operations['other'] += 1

    def get_metrics_summary(self):
        """
        Get comprehensive rate limiting metrics.

        Returns:
            dict: Summary of all rate limiting metrics
        """
        return {
            'total_requests': self.metrics['total_requests'],
            'throttled_requests': self.metrics['throttled_requests'],
            'rate_limited_responses': self.metrics['rate_limited_responses'],
            'throttle_rate': self.metrics['throttled_requests'] / max(self.metrics['total_requests'], 1),
            'average_throttle_percentage': self.metrics['average_throttle_percentage'],
            'max_throttle_percentage': self.metrics['max_throttle_percentage'],
            'resource_units_consumed': self.metrics['resource_units_consumed'],
            'alerts_triggered': self.metrics['alerts_triggered']
        }

    def print_summary(self):
        """Print rate limiting statistics collected during the run."""
        metrics = self.get_metrics_summary()

        print("\n" + "="*60)
        print("GRAPH API RATE LIMITING SUMMARY")
        print("="*60)
        print(f"[STATS] API Request Statistics:")
        print(f"   - Total API Requests:       {metrics['total_requests']:>6}")
        print(f"   - 429 Responses:            {metrics['rate_limited_responses']:>6}")
        print(f"   - Throttled Requests:       {metrics['throttled_requests']:>6} ({metrics['throttle_rate']:.1%})")
        print(f"   - Average Throttle %:       {metrics['average_throttle_percentage']:>6.1%}")
        print(f"   - Max Throttle %:           {metrics['max_throttle_percentage']:>6.1%}")
        print(f"   - Resource Units Used:      {metrics['resource_units_consumed']:>6}")

        if any(self.request_types.values()):
            print(f"\n[API] Request Methods:")
            for method, count in self.request_types.items():
                if count > 0:
                    print(f"   - {f'{method} requests:':<27} {count:>6}")

        if any(self.operations.values()):
            print(f"\n[OPS] Operation Types:")
            for op_type, count in self.operations.items():
                if count > 0:
                    op_name = op_type.replace('_', ' ').title()
                    print(f"   - {f'{op_name}:':<27} {count:>6}")

        if metrics['max_throttle_percentage'] >= 1.0 or metrics['rate_limited_responses']:
            print(f"\n[!] WARNING: Hit throttling limits during execution")
        elif metrics['max_throttle_percentage'] >= 0.8:
            print(f"\n[ ] CAUTION: Approached throttling limits")
        else:
            print(f"\n[OK] Stayed within throttling limits")
        print("="*60)


class RunStatistics:
    """Track upload and query outcomes for one run"""

    def __init__(self):
        self.stats = {
            'small_uploads': 0,
            'session_uploads': 0,
            'chunked_uploads': 0,
            'failed_uploads': 0,
            'bytes_uploaded': 0,
            'pages_fetched': 0,
            'items_collected': 0,
            'skipped_resources': 0,
            'partial_queries': 0,
        }
        self.failures = {}
        self.failed_targets = []

    def record_upload(self, result):
        """
        Tally one UploadResult.

        Args:
            result (UploadResult): Outcome of the upload
        """
        if result.success:
            self.stats[f'{result.method}_uploads'] += 1
            self.stats['bytes_uploaded'] += result.target.size
        else:
            self.stats['failed_uploads'] += 1
            self.failures[result.error_kind] = self.failures.get(result.error_kind, 0) + 1
            self.failed_targets.append((result.target.display_path, result.error_kind, result.message))

    def record_query(self, result):
        """
        Tally one PageResult.

        Args:
            result (PageResult): Outcome of the pagination run
        """
        self.stats['pages_fetched'] += result.pages
        self.stats['items_collected'] += len(result.items)
        if result.skipped:
            self.stats['skipped_resources'] += 1
        elif result.partial:
            self.stats['partial_queries'] += 1
            self.failures[result.error_kind] = self.failures.get(result.error_kind, 0) + 1

    @property
    def failed_count(self):
        return self.stats['failed_uploads'] + self.stats['partial_queries']

    def print_summary(self):
        uploaded = (self.stats['small_uploads'] + self.stats['session_uploads'] +
                    self.stats['chunked_uploads'])
        print(f"[STATS] Run Statistics:")
        if uploaded or self.stats['failed_uploads']:
            print(f"   - Files uploaded:           {uploaded:>6}")
            print(f"       direct PUT:             {self.stats['small_uploads']:>6}")
            print(f"       single session PUT:     {self.stats['session_uploads']:>6}")
            print(f"       chunked session:        {self.stats['chunked_uploads']:>6}")
            print(f"   - Failed uploads:           {self.stats['failed_uploads']:>6}")
            print(f"   - Data uploaded:   {format_bytes(self.stats['bytes_uploaded'])}")
        if self.stats['pages_fetched'] or self.stats['partial_queries'] or self.stats['skipped_resources']:
            print(f"   - Pages fetched:            {self.stats['pages_fetched']:>6}")
            print(f"   - Items collected:          {self.stats['items_collected']:>6}")
            print(f"   - Skipped resources:        {self.stats['skipped_resources']:>6}")
            print(f"   - Partial queries:          {self.stats['partial_queries']:>6}")

        if self.failures:
            print(f"\n[!] Failures by kind:")
            for kind, count in self.failures.items():
                print(f"   - {f'{kind}:':<27} {count:>6}")
        for path, kind, message in self.failed_targets:
            print(f"   [!] {path}: {kind} - {message}")


def format_bytes(bytes_value):
    """
    Convert bytes to human-readable format.

    Args:
        bytes_value (int): Number of bytes to format

    Returns:
        str: Human-readable string (e.g., "1.5 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB']:
        if bytes_value < 1024.0:
            return f"{bytes_value:.1f} {unit}"
        bytes_value /= 1024.0
    return f"{bytes_value:.1f} TB"
