"""
Diagnostic probes for packet payloads whose layout is not yet known.

Each function reads a payload under one hypothesis (ASCII text, a run of
32-bit integers, a known byte signature) and returns what it sees. None of
them raise on odd-sized or empty input; they are for schema discovery and
never feed back into decoding.
"""

import struct
from typing import Any, Dict, Iterable, List, Tuple


def as_ascii_approx(payload: bytes) -> str:
    """Printable ASCII kept as-is, everything else shown as '.'."""
    return ''.join(chr(b) if 0x20 <= b <= 0x7E else '.' for b in payload)


def as_int32_le_run(payload: bytes) -> List[int]:
    """Signed little-endian int32 for every complete 4-byte group."""
    count = len(payload) // 4
    return list(struct.unpack_from(f'<{count}i', payload)) if count else []


def as_uint32_le_run(payload: bytes) -> List[int]:
    count = len(payload) // 4
    return list(struct.unpack_from(f'<{count}I', payload)) if count else []


def contains_signature(payload: bytes, pattern: bytes) -> List[int]:
    """All offsets where `pattern` occurs, overlapping matches included."""
    if not pattern:
        return []
    payload = bytes(payload)
    offsets = []
    pos = payload.find(pattern)
    while pos != -1:
        offsets.append(pos)
        pos = payload.find(pattern, pos + 1)
    return offsets


def hex_rows(payload: bytes, width: int = 16) -> List[Tuple[int, str, str]]:
    """Split a payload into (offset, 'aa bb ..', ascii) rows for dumps."""
    if width <= 0:
        return []
    rows = []
    for i in range(0, len(payload), width):
        chunk = payload[i:i + width]
        rows.append((i, chunk.hex(' '), as_ascii_approx(chunk)))
    return rows


def probe_payload(payload: bytes, signatures: Iterable[bytes] = ()) -> Dict[str, Any]:
    """Every hypothesis at once, JSON-friendly."""
    payload = bytes(payload)
    return {
        'length': len(payload),
        'hex': payload.hex(),
        'ascii': as_ascii_approx(payload),
        'int32_le': as_int32_le_run(payload),
        'uint32_le': as_uint32_le_run(payload),
        'signatures': {sig.hex(): contains_signature(payload, sig) for sig in signatures},
    }
