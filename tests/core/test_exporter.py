from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.parser import text_string_to_metric_families

from nfsen_exporter.core.exporter import SnapshotExporter, render_samples


def _registry(store):
    reg = CollectorRegistry()
    reg.register(SnapshotExporter(store))
    return reg


def _sample_lines(text):
    return [line for line in text.splitlines() if line and not line.startswith("#")]


def _parse_samples(text):
    return {
        (s.name, frozenset(s.labels.items())): s.value
        for family in text_string_to_metric_families(text)
        for s in family.samples
    }


def test_describe_is_static_schema(store, make_record):
    exporter = SnapshotExporter(store)
    first = exporter.describe()
    store.upsert(make_record())
    second = exporter.describe()

    names = sorted(m.name for m in first)
    assert names == sorted(m.name for m in second)
    assert names == [
        "nfsen_collector_bytes",
        "nfsen_collector_flows",
        "nfsen_collector_packets",
        "nfsen_collector_uptime",
    ]
    assert all(not m.samples for m in first + second)


def test_collect_on_empty_store_emits_schema_only(store):
    text = generate_latest(_registry(store)).decode()

    assert "# TYPE nfsen_collector_flows" in text
    assert "# TYPE nfsen_collector_uptime gauge" in text
    assert _sample_lines(text) == []


def test_collect_emits_twelve_counters_and_uptime(store, make_record):
    store.upsert(
        make_record(
            flows=(1, 2, 3, 4),
            packets=(10, 20, 30, 40),
            bytes_=(100, 200, 300, 400),
        )
    )

    families = {m.name: m for m in SnapshotExporter(store).collect()}
    for kind in ("flows", "packets", "bytes"):
        assert len(families[f"nfsen_collector_{kind}"].samples) == 4
    assert len(families["nfsen_collector_uptime"].samples) == 1

    by_proto = {
        s.labels["proto"]: s.value for s in families["nfsen_collector_bytes"].samples
    }
    assert by_proto == {"tcp": 100.0, "udp": 200.0, "icmp": 300.0, "other": 400.0}

    sample = families["nfsen_collector_flows"].samples[0]
    assert sample.labels == {"ident": "live", "exporter": "7", "proto": "tcp"}


def test_collect_renders_text_format(store, make_record):
    store.upsert(make_record(flows=(150, 0, 0, 0), bytes_=(5000, 0, 0, 0)))
    text = generate_latest(_registry(store)).decode()

    samples = _parse_samples(text)
    tcp = frozenset({"ident": "live", "exporter": "7", "proto": "tcp"}.items())
    assert samples[("nfsen_collector_flows_total", tcp)] == 150.0
    assert samples[("nfsen_collector_bytes_total", tcp)] == 5000.0
    assert samples[("nfsen_collector_uptime", frozenset({"ident": "live"}.items()))] == 60.0
    assert len(samples) == 13
    assert len(_sample_lines(text)) == 13


def test_uptime_is_one_sample_per_ident(store, make_record):
    store.upsert(make_record(exporter_id=1, uptime=10))
    store.upsert(make_record(exporter_id=2, uptime=60))
    store.upsert(make_record(ident="core", exporter_id=1, uptime=5))

    uptimes = {
        s.labels[0]: s.value for s in render_samples(store.snapshot()) if s.kind == "uptime"
    }
    assert uptimes == {"live": 60, "core": 5}


def test_render_skips_invalid_samples(make_record):
    bad = make_record(flows=(-1, 2, 3, 4))
    samples = render_samples({"live": [bad]})

    assert len(samples) == 12
    flows = [s for s in samples if s.kind == "flows"]
    assert [s.labels[2] for s in flows] == ["udp", "icmp", "other"]


def test_render_skips_empty_ident(make_record):
    samples = render_samples({"": [make_record(ident="")], "live": [make_record()]})
    assert {s.labels[0] for s in samples} == {"live"}
    assert len(samples) == 13


def test_collect_uses_a_single_snapshot(store, make_record):
    store.upsert(make_record())
    calls = []
    original = store.snapshot

    def counting_snapshot():
        calls.append(1)
        return original()

    store.snapshot = counting_snapshot
    SnapshotExporter(store).collect()
    assert len(calls) == 1
