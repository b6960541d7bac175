from __future__ import annotations
import platform
import time
from typing import Optional, Tuple

# ========================================
#           ENDPOINT HELPERS
# ========================================

DEFAULT_PORT = 64738


def parse_endpoint(s: str, default_port: Optional[int] = None) -> Tuple[str, int]:
    """
    Split 'host:port' into its parts.

    Accepts 'hostname:port', 'A.B.C.D:port' or '[v6addr]:port', e.g.
    "localhost:64738", "192.168.1.5:64738", "[::1]:64738".

    A bare host is accepted when ``default_port`` is given. IPv6 literals
    must be bracketed when a port follows them.
    """
    if s.startswith('['):
        host, sep, rest = s[1:].partition(']')
        if not sep:
            raise ValueError(f"Unterminated IPv6 literal in {s!r}")
        port_s = rest[1:] if rest.startswith(':') else None
        if rest and port_s is None:
            raise ValueError(f"Invalid endpoint {s!r}")
    elif s.count(':') == 1:
        host, port_s = s.split(':', 1)
    else:
        host, port_s = s, None

    if not host:
        raise ValueError(f"Empty host in {s!r}")
    if port_s is None:
        if default_port is None:
            raise ValueError(f"Missing port in {s!r}")
        return host, default_port
    if not port_s.isdigit():
        raise ValueError(f"Invalid port in {s!r}")
    port = int(port_s)
    if not 0 < port <= 65535:
        raise ValueError(f"Port out of range in {s!r}")
    return host, port


# ========================================
#           PROTOCOL HELPERS
# ========================================

def encode_version(major: int, minor: int, patch: int) -> int:
    """Version 1.2.5 is 1 << 16 | 2 << 8 | 5 = 66053"""
    return (major << 16) | (minor << 8) | patch


def decode_version(version: int) -> Tuple[int, int, int]:
    return (version >> 16) & 0xFFFF, (version >> 8) & 0xFF, version & 0xFF


def host_os_descriptors() -> Tuple[Optional[str], Optional[str]]:
    """
    Best-effort (os, os_version) of this host. Unknown parts are None so
    they can simply be left out of the Version message.
    """
    return platform.system() or None, platform.release() or None


def now_ms() -> int:
    return int(time.time() * 1000)
