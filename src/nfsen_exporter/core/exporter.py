from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from prometheus_client.metrics_core import CounterMetricFamily, GaugeMetricFamily, Metric

from nfsen_exporter.utils.logging import get_logger
from .errors import RenderError
from .models import COUNTER_KINDS, PROTOCOLS, U64_MAX, MetricRecord
from .store import MetricStore

logger = get_logger(__name__)

NAMESPACE = "nfsen"
SUBSYSTEM = "collector"

COUNTER_LABELS = ("ident", "exporter", "proto")
UPTIME_LABELS = ("ident",)

_DOCS = {
    "uptime": "nfsen collector uptime in seconds (per ident).",
    "flows": "How many flows have been received (per ident, exporter and protocol).",
    "packets": "How many packets have been received (per ident, exporter and protocol).",
    "bytes": "How many bytes have been received (per ident, exporter and protocol).",
}


def metric_name(kind: str) -> str:
    return f"{NAMESPACE}_{SUBSYSTEM}_{kind}"


@dataclass(frozen=True)
class Sample:
    """
    One rendered value. kind is "uptime" or one of COUNTER_KINDS.
    """

    kind: str
    labels: Tuple[str, ...]
    value: int


def render_samples(snapshot: Mapping[str, Sequence[MetricRecord]]) -> List[Sample]:
    """
    Map a store snapshot to samples.

    Each record yields 12 counter samples. Each ident yields one uptime
    sample, the largest uptime among its exporters, so label sets stay
    unique. Invalid samples are skipped and logged.
    """
    samples: List[Sample] = []

    for ident, records in snapshot.items():
        if not records:
            continue

        for record in records:
            exporter = str(record.exporter_id)
            for kind in COUNTER_KINDS:
                counters = record.counters(kind)
                for proto in PROTOCOLS:
                    _append(samples, kind, (ident, exporter, proto), counters.get(proto))

        _append(samples, "uptime", (ident,), max(r.uptime for r in records))

    return samples


def _append(samples: List[Sample], kind: str, labels: Tuple[str, ...], value: int) -> None:
    try:
        samples.append(_build_sample(kind, labels, value))
    except RenderError as e:
        logger.warning("sample skipped", metric=metric_name(kind), labels=labels, error=str(e))


def _build_sample(kind: str, labels: Tuple[str, ...], value: int) -> Sample:
    for label in labels:
        if not isinstance(label, str) or not label:
            raise RenderError(f"invalid label value {label!r}")
    if not isinstance(value, int) or not 0 <= value <= U64_MAX:
        raise RenderError(f"value {value!r} outside unsigned 64 bit range")
    return Sample(kind=kind, labels=labels, value=value)


class SnapshotExporter:
    """
    prometheus_client collector over a MetricStore.

    Register on a CollectorRegistry. Every scrape calls collect, which
    takes exactly one snapshot, so a response never mixes two store states.
    """

    def __init__(self, store: MetricStore):
        self.store = store

    def describe(self) -> List[Metric]:
        """
        Static schema: family definitions without samples.
        """
        return list(self._families().values())

    def collect(self) -> List[Metric]:
        families = self._families()
        for sample in render_samples(self.store.snapshot()):
            families[sample.kind].add_metric(list(sample.labels), float(sample.value))
        return list(families.values())

    @staticmethod
    def _families() -> Dict[str, Metric]:
        families: Dict[str, Metric] = {
            "uptime": GaugeMetricFamily(
                metric_name("uptime"), _DOCS["uptime"], labels=list(UPTIME_LABELS)
            ),
        }
        for kind in COUNTER_KINDS:
            families[kind] = CounterMetricFamily(
                metric_name(kind), _DOCS[kind], labels=list(COUNTER_LABELS)
            )
        return families
