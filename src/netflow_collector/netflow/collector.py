# collector.py -- Per-probe UDP listeners
# One thread per probe; each owns its socket, template store, sink and stats.
# The diagnostic hex-dump file is the only resource shared between threads.

from __future__ import annotations

import logging
import socket
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from ..config import CollectorConfig, ProbeConfig
from ..models import FlowRecord, ProbeStats
from ..sinks import FlowSink, create_sink
from .parser import MalformedPacketError, process_packet
from .templates import TemplateStore

log = logging.getLogger(__name__)

RECV_BUFFER_SIZE = 65536
RECV_POLL_INTERVAL = 0.5  # seconds between shutdown checks while idle


class CollectorError(Exception):
    """Startup failure that prevents the collector from running."""


class ProbeBindError(CollectorError):
    """UDP socket for a probe could not be bound."""


class SinkConnectError(CollectorError):
    """Storage backend for a probe could not be opened."""


class DiagnosticFileError(CollectorError):
    """Requested diagnostic file cannot be opened for append."""


class DiagnosticLog:
    """Append-only hex dump of every received packet, shared by all probes.

    Each entry is written open-append-close under one lock, so dumps from
    different probe threads never interleave.
    """

    def __init__(self, path: str | Path, lock: threading.Lock | None = None) -> None:
        self.path = Path(path)
        self._lock = lock or threading.Lock()

    def open_check(self) -> None:
        try:
            with self.path.open("a", encoding="ascii"):
                pass
        except OSError as e:
            raise DiagnosticFileError(f"Cannot open diagnostic file {self.path}: {e}") from e
        log.info("Diagnostic logging enabled, writing to %s", self.path)

    @staticmethod
    def format_entry(probe_name: str, data: bytes) -> str:
        hex_bytes = "".join(f"{b:02x} " for b in data)
        return f"Probe: {probe_name}\nData: {hex_bytes}\n\n"

    def write(self, probe_name: str, data: bytes) -> bool:
        entry = self.format_entry(probe_name, data)
        with self._lock:
            try:
                with self.path.open("a", encoding="ascii") as f:
                    f.write(entry)
            except OSError as e:
                log.error("Cannot open diagnostic file %s: %s", self.path, e)
                return False
        return True


class ProbeListener(threading.Thread):
    """Receive loop for one probe.

    idle -> bound -> receiving -> stopped. Packets are filtered by source
    address, optionally dumped to the diagnostic log, then decoded and stored.
    """

    def __init__(
        self,
        probe: ProbeConfig,
        sink: FlowSink,
        diagnostics: DiagnosticLog | None = None,
        display: bool = False,
        host: str = "0.0.0.0",
        poll_interval: float = RECV_POLL_INTERVAL,
    ) -> None:
        super().__init__(name=f"probe-{probe.name}", daemon=True)
        self.probe = probe
        self.sink = sink
        self.diagnostics = diagnostics
        self.display = display
        self.host = host
        self.poll_interval = poll_interval
        self.templates = TemplateStore(probe.name)
        self.stats = ProbeStats(name=probe.name, port=probe.port, filter_address=probe.filter_address)
        self.state = "idle"
        self._sock: socket.socket | None = None
        self._stop_requested = threading.Event()

    @property
    def address(self) -> tuple[str, int] | None:
        return self._sock.getsockname() if self._sock else None

    def bind(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((self.host, self.probe.port))
        except OSError as e:
            sock.close()
            self.state = "stopped"
            raise ProbeBindError(
                f"Cannot bind socket for probe {self.probe.name} on port {self.probe.port}: {e}"
            ) from e
        sock.settimeout(self.poll_interval)
        self._sock = sock
        self.state = "bound"
        log.info("Probe %s listening on %s:%d", self.probe.name, *sock.getsockname())

    def accepts(self, source_ip: str) -> bool:
        return not self.probe.filter_address or self.probe.filter_address == source_ip

    def handle_packet(self, data: bytes, addr: tuple) -> bool:
        """Filter, capture and dispatch one datagram. Returns True if it was accepted."""
        source_ip = addr[0]
        self.stats.packets_received += 1
        self.stats.last_packet_ts = time.time()

        accepted = self.accepts(source_ip)
        if self.display:
            if accepted:
                log.info(
                    "Received packet from %s on port %d [ACCEPTED]", source_ip, self.probe.port
                )
            else:
                log.info(
                    "Received packet from %s on port %d [REJECTED] (Expected source IP: %s)",
                    source_ip,
                    self.probe.port,
                    self.probe.filter_address,
                )

        if self.diagnostics is not None:
            self.diagnostics.write(self.probe.name, data)

        if not accepted:
            self.stats.packets_rejected += 1
            return False

        self.stats.packets_accepted += 1
        try:
            result = process_packet(data, self.templates, self._store_record, self.probe.name)
        except MalformedPacketError as e:
            self.stats.malformed_packets += 1
            log.warning("Probe %s: malformed packet from %s: %s", self.probe.name, source_ip, e)
            return True

        if result.aborted:
            self.stats.malformed_packets += 1
        self.stats.unknown_template_flowsets += result.unknown_templates
        if result.templates:
            self.stats.template_ids = self.templates.ids()
        return True

    def _store_record(self, record: FlowRecord) -> None:
        self.stats.flows_decoded += 1
        if self.sink.insert_flow(record):
            self.stats.flows_stored += 1
        else:
            self.stats.insert_failures += 1
            log.error("Probe %s: failed to insert flow data, record dropped", self.probe.name)

    def run(self) -> None:
        if self._sock is None:
            log.error("Probe %s started without a bound socket", self.probe.name)
            self.state = "stopped"
            return

        self.state = "receiving"
        try:
            while not self._stop_requested.is_set():
                try:
                    data, addr = self._sock.recvfrom(RECV_BUFFER_SIZE)
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._stop_requested.is_set():
                        break
                    log.error("Probe %s: error receiving data: %s", self.probe.name, e)
                    continue
                try:
                    self.handle_packet(data, addr)
                except Exception:
                    log.exception("Probe %s: unexpected error processing packet", self.probe.name)
        finally:
            self.close()

    def stop(self) -> None:
        self._stop_requested.set()

    def close(self) -> None:
        """Release the socket and the sink. Called by the worker on exit."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self.sink.close()
        self.state = "stopped"


class Collector:
    """Runtime context: one listener and one sink per configured probe."""

    def __init__(
        self,
        probes: Iterable[ProbeConfig],
        sink_factory: Callable[[], FlowSink],
        diagnostics: DiagnosticLog | None = None,
        display: bool = False,
        host: str = "0.0.0.0",
    ) -> None:
        self.probes = list(probes)
        self.sink_factory = sink_factory
        self.diagnostics = diagnostics
        self.display = display
        self.host = host
        self.listeners: list[ProbeListener] = []
        self._stopped = threading.Event()

    @classmethod
    def from_config(
        cls, config: CollectorConfig, diagnostics: DiagnosticLog | None = None, display: bool = False
    ) -> Collector:
        return cls(
            config.probes,
            lambda: create_sink(config.database),
            diagnostics=diagnostics,
            display=display,
            host=config.listen_host,
        )

    def start(self) -> None:
        """Connect every sink and bind every socket, then start the workers.

        Any failure closes what was already opened and raises CollectorError.
        """
        try:
            for probe in self.probes:
                sink = self.sink_factory()
                listener = ProbeListener(
                    probe, sink, diagnostics=self.diagnostics, display=self.display, host=self.host
                )
                self.listeners.append(listener)
                if not sink.connect():
                    raise SinkConnectError(f"Cannot connect to database for probe {probe.name}")
                listener.bind()
        except CollectorError:
            for listener in self.listeners:
                listener.close()
            self.listeners.clear()
            raise

        self._stopped.clear()
        for listener in self.listeners:
            listener.start()
        log.info("Collector started with %d probe(s)", len(self.listeners))

    def stop(self, timeout: float = 5.0) -> None:
        for listener in self.listeners:
            listener.stop()
        for listener in self.listeners:
            if listener.is_alive():
                listener.join(timeout)
                if listener.is_alive():
                    log.warning("Probe %s did not stop within %.1fs", listener.probe.name, timeout)
        self._stopped.set()
        log.info("Collector stopped")

    def wait(self, timeout: float | None = None) -> bool:
        return self._stopped.wait(timeout)

    def stats(self) -> list[dict]:
        return [listener.stats.to_dict() | {"state": listener.state} for listener in self.listeners]

    def probe_stats(self, name: str) -> dict | None:
        for listener in self.listeners:
            if listener.probe.name == name:
                return listener.stats.to_dict() | {"state": listener.state}
        return None
