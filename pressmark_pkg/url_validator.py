"""
URL validation for outbound requests made during a Pressmark build.

External scripts and stylesheets are fetched only to hash them. Before a
request is made the URL is checked so that a page pointing at an internal
address can never turn the build machine into a proxy.
"""

import ipaddress
import logging
import re
import socket
from urllib.parse import urlparse
from typing import List, Optional, Set, Tuple

import requests

from . import __version__


class URLValidator:
    """Reject URLs that resolve to private, loopback or reserved addresses."""

    ALLOWED_SCHEMES: Set[str] = {'http', 'https'}

    BLOCKED_IP_RANGES: List[str] = [
        '0.0.0.0/8',
        '10.0.0.0/8',
        '100.64.0.0/10',      # Carrier-grade NAT
        '127.0.0.0/8',
        '169.254.0.0/16',     # Link-local, cloud metadata
        '172.16.0.0/12',
        '192.0.0.0/24',
        '192.168.0.0/16',
        '198.18.0.0/15',
        '224.0.0.0/4',        # Multicast
        '240.0.0.0/4',
        '255.255.255.255/32',
        '::1/128',
        '::/128',
        '::ffff:0:0/96',
        'fe80::/10',
        'fc00::/7',
        'ff00::/8',
    ]

    BLOCKED_HOSTNAMES: Set[str] = {
        'localhost',
        'localhost.localdomain',
        'ip6-localhost',
        'ip6-loopback',
        'metadata.google.internal',
    }

    SUSPICIOUS_PATTERNS: List[str] = [
        r'%2f%2f',
        r'%5c%5c',
        r'\.\./',
        r'%2e%2e%2f',
        r'javascript:',
    ]

    def __init__(self, allowed_hosts: Optional[Set[str]] = None):
        """
        Args:
            allowed_hosts: Optional allow-list. When given, only these hosts
                (and their subdomains) pass validation.
        """
        self.allowed_hosts = {h.lower() for h in allowed_hosts} if allowed_hosts else None
        self._blocked_networks = [ipaddress.ip_network(cidr) for cidr in self.BLOCKED_IP_RANGES]

    def validate_url(self, url: str) -> Tuple[bool, str]:
        """
        Check a URL before it is requested.

        Returns:
            Tuple of (is_valid, reason)
        """
        try:
            parsed = urlparse(url)
            hostname = (parsed.hostname or '').lower()
        except ValueError:
            return False, "Invalid URL format"

        if not parsed.scheme or not parsed.netloc:
            return False, "Invalid URL format"

        if parsed.scheme.lower() not in self.ALLOWED_SCHEMES:
            return False, f"Unsupported URL scheme: {parsed.scheme}"

        if '@' in parsed.netloc:
            return False, "Credentials in URL are not allowed"

        if not hostname:
            return False, "Invalid hostname in URL"

        if hostname in self.BLOCKED_HOSTNAMES:
            return False, f"Blocked hostname: {hostname}"

        if self.allowed_hosts is not None and not self._is_host_allowed(hostname):
            return False, f"Host not in allowlist: {hostname}"

        url_lower = url.lower()
        for pattern in self.SUSPICIOUS_PATTERNS:
            if re.search(pattern, url_lower):
                return False, "URL contains suspicious patterns"

        try:
            addresses = self._resolve_hostname(hostname)
        except (OSError, UnicodeError):
            return False, f"Cannot resolve hostname: {hostname}"

        for address in addresses:
            if not self._is_ip_allowed(address):
                return False, f"Blocked IP address: {address}"

        return True, "URL is valid"

    def _is_host_allowed(self, hostname: str) -> bool:
        return any(hostname == host or hostname.endswith('.' + host) for host in self.allowed_hosts)

    def _resolve_hostname(self, hostname: str) -> List[str]:
        """Resolve a hostname to its unique IP addresses."""
        addr_info = socket.getaddrinfo(
            hostname, None,
            family=socket.AF_UNSPEC,
            type=socket.SOCK_STREAM,
        )
        return sorted(set(info[4][0] for info in addr_info))

    def _is_ip_allowed(self, ip_str: str) -> bool:
        try:
            ip = ipaddress.ip_address(ip_str)
        except ValueError:
            return False
        return not any(ip in network for network in self._blocked_networks)


class SafeRequestor:
    """
    HTTP GET wrapper that validates URLs before requesting them.
    """

    USER_AGENT = f'Pressmark/{__version__} (Static Site Builder)'

    def __init__(self, validator: URLValidator = None, session: requests.Session = None, timeout: float = 10):
        """
        Args:
            validator: URL validator instance
            session: Requests session to use
            timeout: Default per-request timeout in seconds
        """
        self.validator = validator or URLValidator()
        self.session = session
        self.timeout = timeout
        self.logger = logging.getLogger('Pressmark.SafeRequestor')

    def safe_get(self, url: str, **kwargs) -> Tuple[bool, object]:
        """
        Make a GET request after URL validation.

        Redirects are not followed unless the caller asks for it, and the
        response status is left for the caller to judge.

        Returns:
            Tuple of (success, response_or_error_message)
        """
        is_valid, error_msg = self.validator.validate_url(url)
        if not is_valid:
            self.logger.debug(f"Rejected {url}: {error_msg}")
            return False, f"URL validation failed: {error_msg}"

        kwargs.setdefault('timeout', self.timeout)
        kwargs.setdefault('allow_redirects', False)
        headers = dict(kwargs.pop('headers', None) or {})
        headers.setdefault('User-Agent', self.USER_AGENT)

        try:
            if self.session is not None:
                response = self.session.get(url, headers=headers, **kwargs)
            else:
                response = requests.get(url, headers=headers, **kwargs)
        except (requests.exceptions.RequestException, ValueError) as e:
            return False, f"HTTP request failed: {e}"

        return True, response
