"""Destination validation for SSRF prevention.

Every Daktela base URL, whether it comes from the environment or from
per-request headers, passes through :func:`validate_destination` before any
request is sent to it.

Rules, in order:
- the URL parses to a scheme and a host;
- ``https`` only, with plain ``http`` tolerated for loopback hosts;
- cloud metadata hosts are hard-blocked;
- raw IP literals are rejected (except loopback) so DNS policy applies;
- hostnames are resolved and **all** resulting addresses must be public
  (fail-closed, resolution failure rejects as well).
"""

from __future__ import annotations

import ipaddress
import socket
from urllib.parse import urlparse

LOOPBACK_HOSTS = frozenset({"127.0.0.1", "localhost", "::1"})

BLOCKED_HOSTS = frozenset(
    {
        "metadata.google.internal",
        "metadata.google.com",
        "metadata.azure.com",
        "169.254.169.254",
        "100.100.100.200",
        "fd00:ec2::254",
    }
)

PRIVATE_NETWORKS: tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...] = (
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("::/128"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("fc00::/7"),
)


class InvalidDestination(ValueError):
    """The configured base URL failed destination policy."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url
        self.message = message


def normalize_host(value: str) -> str:
    """Lowercase, strip the trailing dot and IPv6 brackets."""
    raw = value.strip().lower().rstrip(".")
    if raw.startswith("[") and raw.endswith("]"):
        return raw[1:-1]
    return raw


def is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(normalize_host(host))
    except ValueError:
        return False
    return True


def is_private_address(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    """Return True for loopback, link-local and RFC 1918 style addresses."""
    mapped = getattr(ip, "ipv4_mapped", None)
    if mapped is not None:
        ip = mapped
    return any(ip in network for network in PRIVATE_NETWORKS if ip.version == network.version)


def resolved_ips(host: str) -> list[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    """Resolve *host* to every address DNS returns for it."""
    normalized = normalize_host(host)
    try:
        infos = socket.getaddrinfo(normalized, None)
    except OSError as exc:
        raise InvalidDestination(
            host, f"Hostname '{normalized}' could not be resolved: {exc}"
        ) from exc

    ips: list[ipaddress.IPv4Address | ipaddress.IPv6Address] = []
    for info in infos:
        addr = str(info[4][0]).split("%", 1)[0]
        try:
            ip = ipaddress.ip_address(addr)
        except ValueError:
            continue
        if ip not in ips:
            ips.append(ip)

    if not ips:
        raise InvalidDestination(host, f"Hostname '{normalized}' could not be resolved")
    return ips


def validate_destination(url: str) -> None:
    """Raise :class:`InvalidDestination` unless *url* is a safe API base URL."""
    try:
        parsed = urlparse(url.strip())
        host = normalize_host(parsed.hostname or "")
    except ValueError as exc:
        raise InvalidDestination(url, "Invalid URL format.") from exc

    scheme = (parsed.scheme or "").lower()
    if not scheme or not host:
        raise InvalidDestination(url, "Invalid URL format.")

    is_loopback = host in LOOPBACK_HOSTS
    if scheme != "https" and not (scheme == "http" and is_loopback):
        raise InvalidDestination(
            url,
            "Only HTTPS URLs are allowed (HTTP permitted for localhost only).",
        )

    if host in BLOCKED_HOSTS:
        raise InvalidDestination(url, f"Blocked host: {host}")

    if is_loopback:
        return

    if is_ip_literal(host):
        raise InvalidDestination(url, "IP addresses are not allowed. Use a hostname instead.")

    for ip in resolved_ips(host):
        if str(ip) in BLOCKED_HOSTS:
            raise InvalidDestination(
                url, f"Hostname '{host}' resolves to cloud metadata endpoint {ip}."
            )
        if is_private_address(ip):
            raise InvalidDestination(
                url, f"Hostname '{host}' resolves to a private IP address ({ip})."
            )
