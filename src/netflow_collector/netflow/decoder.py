# decoder.py -- Template-driven NetFlow v9 data record decoder
# Every wire read goes through a bounds-checked big-endian helper; nothing is
# ever reinterpreted in place. Only IPv4-shaped fields are mapped.

from __future__ import annotations

import logging
import socket
from collections.abc import Iterator, Sequence

from netflow.v9 import V9_FIELD_TYPES

from ..models import FieldSpec, FlowRecord

log = logging.getLogger(__name__)

# NetFlow v9 field type codes (RFC 3954)
IN_BYTES = 1
IN_PKTS = 2
PROTOCOL = 4
L4_SRC_PORT = 7
IPV4_SRC_ADDR = 8
L4_DST_PORT = 11
IPV4_DST_ADDR = 12
LAST_SWITCHED = 21
FIRST_SWITCHED = 22

_INT_ATTRS = {
    IN_BYTES: "bytes",
    IN_PKTS: "packets",
    PROTOCOL: "protocol",
    L4_SRC_PORT: "src_port",
    L4_DST_PORT: "dst_port",
}
_IPV4_ATTRS = {IPV4_SRC_ADDR: "src_ip", IPV4_DST_ADDR: "dst_ip"}


class TruncatedFieldError(ValueError):
    """A read would run past the end of the buffer."""


def field_name(field_type: int) -> str:
    return V9_FIELD_TYPES.get(field_type, f"FIELD_{field_type}")


def read_uint(data: bytes, offset: int, size: int) -> int:
    """Read an unsigned big-endian integer of `size` bytes at `offset`."""
    if size <= 0 or offset < 0 or offset + size > len(data):
        raise TruncatedFieldError(
            f"read of {size} bytes at offset {offset} exceeds buffer of {len(data)}"
        )
    return int.from_bytes(data[offset : offset + size], "big")


def read_u8(data: bytes, offset: int) -> int:
    return read_uint(data, offset, 1)


def read_u16(data: bytes, offset: int) -> int:
    return read_uint(data, offset, 2)


def read_u32(data: bytes, offset: int) -> int:
    return read_uint(data, offset, 4)


def read_ipv4(data: bytes, offset: int) -> str:
    if offset < 0 or offset + 4 > len(data):
        raise TruncatedFieldError(f"IPv4 address at offset {offset} exceeds buffer of {len(data)}")
    return socket.inet_ntoa(data[offset : offset + 4])


def record_length(fields: Sequence[FieldSpec]) -> int:
    return sum(f.length for f in fields)


def decode_record(data: bytes, offset: int, fields: Sequence[FieldSpec], probe: str = "") -> FlowRecord:
    """Decode one record starting at `offset`. The caller guarantees a full record remains."""
    rec = FlowRecord(probe=probe)
    pos = offset
    for f in fields:
        if f.type in _INT_ATTRS and f.length > 0:
            setattr(rec, _INT_ATTRS[f.type], read_uint(data, pos, f.length))
        elif f.type in _IPV4_ATTRS:
            if f.length == 4:
                setattr(rec, _IPV4_ATTRS[f.type], read_ipv4(data, pos))
            else:
                log.debug("Skipping %s with unexpected length %d", field_name(f.type), f.length)
        # FIRST_SWITCHED / LAST_SWITCHED and every other type: bytes skipped, offset still advances
        pos += f.length
    return rec


def decode_records(
    body: bytes, fields: Sequence[FieldSpec], probe: str = ""
) -> Iterator[FlowRecord]:
    """Yield every complete record in a data FlowSet body.

    Trailing bytes shorter than one record (padding or a cut-off record) are
    discarded.
    """
    rec_len = record_length(fields)
    if rec_len <= 0:
        log.warning("Probe %s: template with zero record length, FlowSet skipped", probe)
        return

    offset = 0
    while offset + rec_len <= len(body):
        yield decode_record(body, offset, fields, probe)
        offset += rec_len

    leftover = len(body) - offset
    if leftover:
        log.debug("Probe %s: discarded %d trailing bytes in data FlowSet", probe, leftover)
