"""Best-guess originating address of a submission.

Proxy headers come first, then the transport peer. The result is only
used for enrichment and display, never for admission.
"""

from typing import Mapping, Optional

from starlette.datastructures import Address


def split_host_port(address: str) -> Optional[str]:
    """Return the host part of ``host:port`` or ``[v6]:port``.

    Returns None when ``address`` is not in one of those shapes.
    """
    if address.startswith("["):
        end = address.find("]")
        if end == -1 or address[end + 1:end + 2] != ":":
            return None
        return address[1:end]

    host, sep, _ = address.rpartition(":")
    if not sep or ":" in host:
        return None
    return host


def format_peer(client: Optional[Address]) -> str:
    """Render a transport peer as ``host:port`` (IPv6 hosts bracketed)."""
    if client is None or not client.host:
        return ""
    host = client.host
    if not client.port:
        return host
    if ":" in host:
        host = f"[{host}]"
    return f"{host}:{client.port}"


def resolve_origin(headers: Mapping[str, str], peer: str) -> str:
    """Resolve the originating address of a request.

    Precedence, first match wins:
    1. first non-empty entry of ``X-Forwarded-For``
    2. ``X-Real-IP``
    3. host part of the transport peer address
    4. the peer address verbatim

    An empty result means the origin is unknown.
    """
    forwarded = headers.get("x-forwarded-for", "")
    for part in forwarded.split(","):
        ip = part.strip()
        if ip:
            return ip

    real_ip = headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    host = split_host_port(peer)
    if host is not None:
        return host
    return peer.strip()
