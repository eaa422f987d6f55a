# parser.py -- NetFlow v9 packet header and FlowSet walker
# Each FlowSet is handled independently: an unknown template skips just that
# FlowSet, while a length that overruns the packet aborts the rest of it.
# IPFIX (v10) is recognized but not decoded yet.

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from netflow.ipfix import IPFIXHeader

from ..models import FieldSpec, FlowRecord
from .decoder import TruncatedFieldError, decode_records, read_u16, read_u32
from .templates import TemplateStore

log = logging.getLogger(__name__)

NETFLOW_V9 = 9
IPFIX = 10

V9_HEADER_SIZE = 20
FLOWSET_HEADER_SIZE = 4
TEMPLATE_FLOWSET_ID = 0
MIN_DATA_FLOWSET_ID = 256

RecordSink = Callable[[FlowRecord], None]


class MalformedPacketError(ValueError):
    """Packet too short or structurally inconsistent."""


@dataclass(frozen=True)
class V9Header:
    version: int
    count: int
    sys_uptime: int
    unix_secs: int
    sequence: int
    source_id: int


@dataclass
class WalkResult:
    flowsets: int = 0
    templates: int = 0
    records: int = 0
    unknown_templates: int = 0
    aborted: bool = False


def parse_header(data: bytes) -> V9Header:
    if len(data) < V9_HEADER_SIZE:
        raise MalformedPacketError(
            f"NetFlow v9 header needs {V9_HEADER_SIZE} bytes, got {len(data)}"
        )
    return V9Header(
        version=read_u16(data, 0),
        count=read_u16(data, 2),
        sys_uptime=read_u32(data, 4),
        unix_secs=read_u32(data, 8),
        sequence=read_u32(data, 12),
        source_id=read_u32(data, 16),
    )


def parse_template_flowset(body: bytes, store: TemplateStore) -> int:
    """Upsert every template record in a template FlowSet body. Returns the count stored."""
    stored = 0
    offset = 0
    while offset + 4 <= len(body):
        template_id = read_u16(body, offset)
        field_count = read_u16(body, offset + 2)
        offset += 4

        end = offset + field_count * 4
        if end > len(body):
            log.warning(
                "Probe %s: template %d declares %d fields but only %d bytes remain",
                store.probe,
                template_id,
                field_count,
                len(body) - offset,
            )
            break

        fields = [
            FieldSpec(type=read_u16(body, pos), length=read_u16(body, pos + 2))
            for pos in range(offset, end, 4)
        ]
        offset = end
        store.upsert(template_id, fields)
        stored += 1
    # Anything left over is padding to a 4-byte boundary
    return stored


def walk_flowsets(
    payload: bytes, store: TemplateStore, emit: RecordSink, probe: str = ""
) -> WalkResult:
    """Walk the FlowSets following the packet header.

    Template FlowSets update `store`; data FlowSets are decoded against it and
    every record is passed to `emit`.
    """
    result = WalkResult()
    offset = 0
    remaining = len(payload)

    while remaining > 0:
        if remaining < FLOWSET_HEADER_SIZE:
            log.warning("Probe %s: incomplete FlowSet header (%d bytes left)", probe, remaining)
            result.aborted = True
            break

        flowset_id = read_u16(payload, offset)
        length = read_u16(payload, offset + 2)
        if length < FLOWSET_HEADER_SIZE:
            log.warning("Probe %s: FlowSet %d has invalid length %d", probe, flowset_id, length)
            result.aborted = True
            break
        if length > remaining:
            log.warning(
                "Probe %s: FlowSet %d length %d exceeds remaining packet length %d",
                probe,
                flowset_id,
                length,
                remaining,
            )
            result.aborted = True
            break

        body = payload[offset + FLOWSET_HEADER_SIZE : offset + length]
        result.flowsets += 1

        if flowset_id == TEMPLATE_FLOWSET_ID:
            result.templates += parse_template_flowset(body, store)
        elif flowset_id >= MIN_DATA_FLOWSET_ID:
            fields = store.lookup(flowset_id)
            if fields is None:
                log.warning("Probe %s: unknown template ID %d, FlowSet skipped", probe, flowset_id)
                result.unknown_templates += 1
            else:
                for record in decode_records(body, fields, probe):
                    emit(record)
                    result.records += 1
        else:
            log.debug("Probe %s: ignoring FlowSet ID %d", probe, flowset_id)

        offset += length
        remaining -= length

    return result


def _process_v9(data: bytes, store: TemplateStore, emit: RecordSink, probe: str) -> WalkResult:
    header = parse_header(data)
    log.debug(
        "Probe %s: v9 packet seq=%d source_id=%d count=%d",
        probe,
        header.sequence,
        header.source_id,
        header.count,
    )
    return walk_flowsets(data[V9_HEADER_SIZE:], store, emit, probe)


def _process_ipfix(data: bytes, probe: str) -> WalkResult:
    # Placeholder: the header is inspected for logging, sets are not decoded
    if len(data) >= IPFIXHeader.size:
        header = IPFIXHeader(data[: IPFIXHeader.size])
        log.debug("Probe %s: IPFIX packet (%d bytes declared) not decoded", probe, header.length)
    return WalkResult()


def process_packet(
    data: bytes, store: TemplateStore, emit: RecordSink, probe: str = ""
) -> WalkResult:
    """Dispatch a raw export packet by protocol version.

    Raises MalformedPacketError for packets too short to carry a header.
    """
    if len(data) < 2:
        raise MalformedPacketError(f"packet of {len(data)} bytes has no version field")

    version = read_u16(data, 0)
    if version == NETFLOW_V9:
        try:
            return _process_v9(data, store, emit, probe)
        except TruncatedFieldError as e:
            raise MalformedPacketError(str(e)) from e
    if version == IPFIX:
        return _process_ipfix(data, probe)

    log.warning("Probe %s: unknown NetFlow version %d, packet dropped", probe, version)
    return WalkResult()
