"""Minimal SGD getvar exchange used for identity, readiness and value queries."""

from __future__ import annotations

from printlink.core.errors import InvalidArgumentError, TransportTimeoutError
from printlink.transports.base import Transport

IDENTITY_KEY = "device.languages"
READINESS_KEY = "device.friendly_name"
_MAX_READS = 16


def getvar_command(key: str) -> bytes:
    key = key.strip() if key else ""
    if not key or any(ch in key for ch in '"\r\n'):
        raise InvalidArgumentError(f"Invalid setting name {key!r}")
    return f'! U1 getvar "{key}"\r\n'.encode("ascii")


def parse_response(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace").strip()
    if text.startswith('"'):
        end = text.find('"', 1)
        return text[1:end] if end != -1 else text[1:]
    return text


def get(transport: Transport, key: str) -> str:
    """Request ``key`` and return the unquoted value reported by the device."""
    transport.write(getvar_command(key))
    buffer = b""
    for _ in range(_MAX_READS):
        chunk = transport.read(1024)
        if not chunk:
            break
        buffer += chunk
        if buffer.count(b'"') >= 2:
            break
    if not buffer:
        raise TransportTimeoutError(f"No response to getvar '{key}'")
    return parse_response(buffer)


def control_language(transport: Transport) -> str:
    return get(transport, IDENTITY_KEY)


def friendly_name(transport: Transport) -> str:
    return get(transport, READINESS_KEY)
