"""
ID generation and stream naming

Record ids are UUIDv7-shaped: the first 48 bits hold the Unix time in
milliseconds, so ids sort in creation order and the event log reads in the
order the office worked.

Fun fact: A memo number in a panchayat office is only unique within a year;
our ids are unique forever, which is why the human-readable NIT reference is
kept as a separate field.
"""

import secrets
import time
import uuid


def generate_id() -> str:
    """
    Generate a time-ordered UUID (version 7 layout)

    Returns:
        UUID string, e.g. "01908e9a-3b87-7a3c-8f00-123456789abc"
    """
    timestamp_ms = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    value = (timestamp_ms << 80) | secrets.randbits(80)
    # version nibble (7) and RFC 4122 variant bits
    value = (value & ~(0xF << 76)) | (0x7 << 76)
    value = (value & ~(0x3 << 62)) | (0x2 << 62)
    return str(uuid.UUID(int=value))


def nit_stream(nit_id: str) -> str:
    return f"nit-{nit_id}"


def work_stream(work_id: str) -> str:
    return f"work-{work_id}"


def ledger_stream(work_id: str) -> str:
    """Payment ledger of a work; one ledger per work"""
    return f"ledger-{work_id}"


def memo_register_stream(year: int) -> str:
    """Register of NIT memo numbers claimed in one calendar year"""
    return f"memo-{year}"
