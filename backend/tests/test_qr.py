"""
Tests for QR payload parsing.
"""

import pytest

from washq.core.exceptions import ValidationError
from washq.services.qr_service import NullDecoder, extract_machine_id, machine_qr_url


@pytest.mark.parametrize("payload, expected", [
    ("https://washq.app/machine/abc123", "abc123"),
    ("https://washq.app/machine/abc123?ref=door", "abc123"),
    ("https://washq.app/scan?id=abc123", "abc123"),
    ("https://washq.app/scan?machineId=abc123", "abc123"),
    ("https://washq.app/scan?x=1&id=abc123", "abc123"),
    ("abc-123_x", "abc-123_x"),
    ("  abc123  ", "abc123"),
])
def test_extract_machine_id(payload, expected):
    assert extract_machine_id(payload) == expected


@pytest.mark.parametrize("payload", ["", "   ", "hello world", "https://washq.app/about"])
def test_extract_rejects_unrecognised(payload):
    with pytest.raises(ValidationError):
        extract_machine_id(payload)


def test_qr_url_round_trips():
    url = machine_qr_url("https://washq.app/", "abc123")
    assert url == "https://washq.app/machine/abc123"
    assert extract_machine_id(url) == "abc123"


def test_null_decoder():
    assert NullDecoder().decode(b"frame") is None
