# base.py -- Storage sink contract
# Backends are independent classes; the collector holds one sink per probe,
# chosen at startup by create_sink().

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..models import FlowRecord

TABLE_NAME = "NetFlowData"

# Column order shared by every backend
COLUMNS = (
    "SourceIP",
    "DestinationIP",
    "SourcePort",
    "DestinationPort",
    "Protocol",
    "PacketCount",
    "ByteCount",
    "FlowStart",
    "FlowEnd",
    "SourceSond",
)


def record_to_row(record: FlowRecord) -> tuple:
    return (
        record.src_ip,
        record.dst_ip,
        record.src_port,
        record.dst_port,
        record.protocol,
        record.packets,
        record.bytes,
        record.flow_start,
        record.flow_end,
        record.probe,
    )


def row_to_record(row: dict) -> FlowRecord:
    return FlowRecord(
        src_ip=row["SourceIP"],
        dst_ip=row["DestinationIP"],
        src_port=int(row["SourcePort"]),
        dst_port=int(row["DestinationPort"]),
        protocol=int(row["Protocol"]),
        packets=int(row["PacketCount"]),
        bytes=int(row["ByteCount"]),
        flow_start=row["FlowStart"] or "",
        flow_end=row["FlowEnd"] or "",
        probe=row["SourceSond"],
    )


@runtime_checkable
class FlowSink(Protocol):
    """Capabilities every storage backend provides.

    connect
      Open the backend and call initialize_schema() so a fresh target
      provisions itself. Safe to call more than once.

    insert_flow
      Persist one record. Storage errors are logged and reported as False,
      never raised: one failed write must not stop ingestion.

    check_reachability
      Verify the configured target can be opened, without provisioning it.
    """

    def connect(self) -> bool: ...

    def initialize_schema(self) -> bool: ...

    def insert_flow(self, record: FlowRecord) -> bool: ...

    def check_reachability(self) -> bool: ...

    def close(self) -> None: ...
