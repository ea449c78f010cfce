"""Address classification and DNS checks used for SSRF protection."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from urllib.parse import urlparse

from flowprobe.errors import SSRFError


def parse_ip(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """Return the address if host is an IP literal (brackets allowed), else None."""
    host = host.strip("[]")
    if "%" in host:
        host = host.split("%", 1)[0]
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return None


def is_private_address(ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    """True for loopback, private, link-local, reserved and other non-public ranges."""
    if isinstance(ip, str):
        addr = parse_ip(ip)
        if addr is None:
            return False
    else:
        addr = ip

    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped

    return (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_reserved
        or addr.is_multicast
        or addr.is_unspecified
    )


async def resolve_hostname(hostname: str) -> list[str]:
    """Resolve a hostname to its IPv4/IPv6 addresses."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


async def ensure_public_hostname(hostname: str, cache: dict[str, str | None] | None = None):
    """Raise SSRFError unless hostname (and everything it resolves to) is public.

    `cache` maps hostname -> error message (or None when safe) so a batch of
    links on the same host only resolves it once.
    """
    hostname = hostname.lower()
    if cache is not None and hostname in cache:
        if cache[hostname]:
            raise SSRFError(cache[hostname])
        return

    error: str | None = None
    literal = parse_ip(hostname)
    if literal is not None:
        if is_private_address(literal):
            error = f"SSRF protection: {hostname} is a private or reserved address"
    elif hostname == "localhost" or hostname.endswith(".localhost"):
        error = f"SSRF protection: {hostname} points at the local machine"
    else:
        try:
            addresses = await resolve_hostname(hostname)
        except (OSError, UnicodeError) as e:
            error = f"SSRF protection: DNS resolution failed for {hostname}: {str(e)[:200]}"
        else:
            if not addresses:
                error = f"SSRF protection: DNS resolution returned no addresses for {hostname}"
            for addr in addresses:
                if is_private_address(addr):
                    error = f"SSRF protection: {hostname} resolves to private address {addr}"
                    break

    if cache is not None:
        cache[hostname] = error
    if error:
        raise SSRFError(error)


async def ensure_public_url(url: str, cache: dict[str, str | None] | None = None):
    hostname = urlparse(url).hostname or ""
    if not hostname:
        raise SSRFError(f"SSRF protection: URL has no hostname: {url[:200]}")
    await ensure_public_hostname(hostname, cache)
