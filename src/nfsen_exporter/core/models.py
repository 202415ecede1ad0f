from __future__ import annotations
from dataclasses import dataclass, field
from typing import Tuple

PROTOCOLS: Tuple[str, ...] = ("tcp", "udp", "icmp", "other")
COUNTER_KINDS: Tuple[str, ...] = ("flows", "packets", "bytes")

U64_MAX = 2**64 - 1


@dataclass(frozen=True)
class ProtocolCounters:
    """
    One counter kind broken out by protocol class.
    """

    tcp: int = 0
    udp: int = 0
    icmp: int = 0
    other: int = 0

    def get(self, proto: str) -> int:
        if proto not in PROTOCOLS:
            raise KeyError(f"unknown protocol class {proto}")
        return getattr(self, proto)


@dataclass(frozen=True)
class MetricRecord:
    """
    Latest cumulative counters reported by one collector for one exporter.

    Records are immutable. The store replaces a whole record on every report,
    so a reader holding a record always sees the 12 counters and the uptime
    of a single report.

    Fields:
      ident
        Collector profile name. Many exporters may report under one ident.

      exporter_id
        Upstream traffic source within the ident.

      uptime
        Seconds since the reporting collector started.

      flows, packets, bytes
        Cumulative counters per protocol class since collector start.

      timestamp
        Collector side report time in unix seconds, 0 if unknown.
    """

    ident: str
    exporter_id: int
    uptime: int = 0
    flows: ProtocolCounters = field(default_factory=ProtocolCounters)
    packets: ProtocolCounters = field(default_factory=ProtocolCounters)
    bytes: ProtocolCounters = field(default_factory=ProtocolCounters)
    timestamp: int = 0

    def key(self) -> Tuple[str, int]:
        return (self.ident, self.exporter_id)

    def counters(self, kind: str) -> ProtocolCounters:
        if kind not in COUNTER_KINDS:
            raise KeyError(f"unknown counter kind {kind}")
        return getattr(self, kind)
