# conftest.py -- Shared fixtures and NetFlow v9 packet builders

from __future__ import annotations

import socket
import struct
from pathlib import Path

import pytest

from netflow_collector.config import ProbeConfig
from netflow_collector.models import FieldSpec, FlowRecord
from netflow_collector.sinks import CSVSink, SQLiteSink

# src ip, src port, dst ip, dst port, protocol, packets, bytes -> 21 bytes per record
STANDARD_TEMPLATE = [(8, 4), (7, 2), (12, 4), (11, 2), (4, 1), (2, 4), (1, 4)]


def ip_bytes(ip: str) -> bytes:
    return socket.inet_aton(ip)


def v9_header(count: int = 1, seq: int = 1, source_id: int = 0, uptime: int = 1000) -> bytes:
    return struct.pack("!HHIIII", 9, count, uptime, 1_700_000_000, seq, source_id)


def template_record(template_id: int, fields: list[tuple[int, int]]) -> bytes:
    rec = struct.pack("!HH", template_id, len(fields))
    for ftype, flen in fields:
        rec += struct.pack("!HH", ftype, flen)
    return rec


def flowset(flowset_id: int, body: bytes, pad: bool = False) -> bytes:
    if pad:
        body += b"\x00" * ((-len(body)) % 4)
    return struct.pack("!HH", flowset_id, 4 + len(body)) + body


def template_flowset(*templates: tuple[int, list[tuple[int, int]]]) -> bytes:
    return flowset(0, b"".join(template_record(tid, fields) for tid, fields in templates), pad=True)


def standard_record(
    src: str = "192.168.1.10",
    src_port: int = 54321,
    dst: str = "8.8.8.8",
    dst_port: int = 443,
    protocol: int = 6,
    packets: int = 10,
    byte_count: int = 1500,
) -> bytes:
    return (
        ip_bytes(src)
        + struct.pack("!H", src_port)
        + ip_bytes(dst)
        + struct.pack("!HBII", dst_port, protocol, packets, byte_count)
    )


def v9_packet(*flowsets: bytes) -> bytes:
    return v9_header(count=len(flowsets)) + b"".join(flowsets)


@pytest.fixture
def standard_fields() -> list[FieldSpec]:
    return [FieldSpec(t, n) for t, n in STANDARD_TEMPLATE]


@pytest.fixture
def sample_record() -> FlowRecord:
    return FlowRecord(
        src_ip="10.1.2.3",
        dst_ip="172.16.0.9",
        src_port=40000,
        dst_port=53,
        protocol=17,
        packets=3,
        bytes=210,
        probe="edge-1",
    )


@pytest.fixture
def probe() -> ProbeConfig:
    return ProbeConfig(name="edge-1", port=0)


@pytest.fixture
def sqlite_sink(tmp_path: Path) -> SQLiteSink:
    sink = SQLiteSink(tmp_path / "flows.db")
    assert sink.connect()
    yield sink
    sink.close()


@pytest.fixture
def csv_sink(tmp_path: Path) -> CSVSink:
    sink = CSVSink(tmp_path / "flows.csv")
    assert sink.connect()
    return sink


class MemorySink:
    """In-memory FlowSink for listener tests."""

    def __init__(self, fail: bool = False, connect_ok: bool = True) -> None:
        self.records: list[FlowRecord] = []
        self.fail = fail
        self.connect_ok = connect_ok
        self.connected = False
        self.closed = False

    def connect(self) -> bool:
        self.connected = self.connect_ok
        return self.connect_ok

    def initialize_schema(self) -> bool:
        return True

    def insert_flow(self, record: FlowRecord) -> bool:
        if self.fail:
            return False
        self.records.append(record)
        return True

    def check_reachability(self) -> bool:
        return True

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def memory_sink() -> MemorySink:
    return MemorySink()
