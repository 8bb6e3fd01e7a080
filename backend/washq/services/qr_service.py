"""
QR codes: extracting a machine id from a scanned payload and building the
payload printed on each machine.

Accepted payload shapes, first match wins:

    https://host/machine/<id>
    https://host/anything?id=<id>
    https://host/anything?machineId=<id>
    <id>
"""

import re
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote, unquote

from washq.core.exceptions import ValidationError

MACHINE_ID_PATTERNS = (
    re.compile(r"/machine/([^/?#]+)"),
    re.compile(r"[?&]id=([^&#]+)"),
    re.compile(r"[?&]machineId=([^&#]+)"),
    re.compile(r"^([A-Za-z0-9_-]+)$"),
)


def extract_machine_id(payload: str) -> str:
    payload = (payload or "").strip()
    if not payload:
        raise ValidationError("Empty QR code")
    for pattern in MACHINE_ID_PATTERNS:
        match = pattern.search(payload)
        if match:
            return unquote(match.group(1))
    raise ValidationError("Invalid QR code format. Expected machine ID.")


def machine_qr_url(origin: str, machine_id: str) -> str:
    return f"{origin.rstrip('/')}/machine/{quote(machine_id, safe='')}"


class QRDecoder(ABC):
    """Turns a camera frame into the text encoded in a QR code."""

    @abstractmethod
    def decode(self, frame: bytes) -> Optional[str]:
        ...


class NullDecoder(QRDecoder):
    """Server default: frames are decoded on the device, never here."""

    def decode(self, frame: bytes) -> Optional[str]:
        return None


async def resolve_scan(registry, payload: str):
    return await registry.fetch_machine_details(extract_machine_id(payload))


async def resolve_frame(registry, decoder: QRDecoder, frame: bytes):
    payload = decoder.decode(frame)
    if payload is None:
        raise ValidationError("No QR code found in the image")
    return await resolve_scan(registry, payload)
