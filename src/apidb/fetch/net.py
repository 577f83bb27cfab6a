"""Outbound-network safety checks (SSRF guard).

The hostname of every URL, including every redirect hop, is checked
*before* a connection is made. The URL is rejected if the host is
``localhost``, a literal internal address, or resolves via DNS to *any*
internal address. "Internal" covers private, loopback, link-local,
unique-local, carrier-grade NAT, reserved, multicast and unspecified
ranges, including their IPv4-mapped IPv6 forms.
"""

from __future__ import annotations

import ipaddress
import socket
import urllib.parse

from apidb.errors import FetchError, UnsafeTarget

ALLOWED_SCHEMES = frozenset(["http", "https"])

# 100.64.0.0/10 (RFC 6598) is neither is_private nor is_global in ipaddress.
_CARRIER_GRADE_NAT = ipaddress.ip_network("100.64.0.0/10")

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def is_internal_address(ip: IPAddress) -> bool:
    """True if *ip* must never be reached without --allow-private-net."""
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return is_internal_address(ip.ipv4_mapped)
    if isinstance(ip, ipaddress.IPv4Address) and ip in _CARRIER_GRADE_NAT:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def is_http_url(location: str) -> bool:
    """True if *location* is an absolute http(s) URL with a host."""
    parsed = urllib.parse.urlparse(location)
    return parsed.scheme.lower() in ALLOWED_SCHEMES and bool(parsed.netloc)


def assert_safe_url(url: str, allow_private_net: bool = False) -> None:
    """Raise UnsafeTarget if *url* may not be fetched.

    Raises:
        UnsafeTarget: Non-http(s) scheme, missing host, localhost, or an
            address (literal or resolved) in an internal range.
        FetchError: DNS resolution failed.
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise UnsafeTarget(
            f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
        )
    host = parsed.hostname
    if not host:
        raise UnsafeTarget(f"URL has no hostname: {url}")

    if allow_private_net:
        return

    bare = host.rstrip(".").lower()
    if bare == "localhost" or bare.endswith(".localhost"):
        raise UnsafeTarget(
            f"Refusing to fetch localhost URL: {url} (pass --allow-private-net to permit)"
        )

    try:
        literal = ipaddress.ip_address(bare)
    except ValueError:
        literal = None

    if literal is not None:
        if is_internal_address(literal):
            raise UnsafeTarget(
                f"Refusing to fetch private/loopback IP {literal} "
                "(pass --allow-private-net to permit)"
            )
        return

    for ip in _resolve(bare, parsed.port):
        if is_internal_address(ip):
            raise UnsafeTarget(
                f"Refusing to fetch {url}: host {bare} resolves to private address {ip} "
                "(pass --allow-private-net to permit)"
            )


def _resolve(host: str, port: int | None) -> list[IPAddress]:
    try:
        addrinfos = socket.getaddrinfo(host, port)
    except socket.gaierror as exc:
        raise FetchError(f"DNS resolution failed for '{host}': {exc}") from exc

    addresses: list[IPAddress] = []
    for addrinfo in addrinfos:
        # Strip an IPv6 zone id ("fe80::1%eth0") before parsing.
        addr_str = str(addrinfo[4][0]).split("%", 1)[0]
        try:
            addresses.append(ipaddress.ip_address(addr_str))
        except ValueError:
            # Unparseable answers are treated as unsafe.
            raise UnsafeTarget(
                f"Refusing to fetch host {host}: unrecognised address {addr_str!r}"
            ) from None
    return addresses
