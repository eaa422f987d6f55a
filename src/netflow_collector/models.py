# models.py -- Value types shared by the decoder, listeners and sinks
# FlowRecord is transient: built per decoded record, handed to a sink, dropped.

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class FieldSpec:
    """One (type, length) pair of a NetFlow v9 template."""

    type: int
    length: int


@dataclass
class FlowRecord:
    src_ip: str = ""
    dst_ip: str = ""
    src_port: int = 0
    dst_port: int = 0
    protocol: int = 0
    packets: int = 0
    bytes: int = 0
    # SysUpTime fields (21/22) are recognized but never converted
    flow_start: str = ""
    flow_end: str = ""
    probe: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProbeStats:
    """Counters for one probe. Written only by the probe's own worker thread."""

    name: str
    port: int
    filter_address: str | None = None
    packets_received: int = 0
    packets_accepted: int = 0
    packets_rejected: int = 0
    malformed_packets: int = 0
    unknown_template_flowsets: int = 0
    flows_decoded: int = 0
    flows_stored: int = 0
    insert_failures: int = 0
    template_ids: list[int] = field(default_factory=list)
    last_packet_ts: float | None = None
    started_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)
