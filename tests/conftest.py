import os
import shutil
import tempfile
import pytest

from nfsen_exporter.core.models import MetricRecord, ProtocolCounters
from nfsen_exporter.core.store import MetricStore

@pytest.fixture
def store():
    return MetricStore()

@pytest.fixture
def socket_path():
    # AF_UNIX paths are capped near 100 bytes, pytest's tmp_path can be longer
    d = tempfile.mkdtemp(prefix="nfx")
    yield os.path.join(d, "nfsen.sock")
    shutil.rmtree(d, ignore_errors=True)

@pytest.fixture
def make_record():
    def make(
        ident="live",
        exporter_id=7,
        uptime=60,
        flows=(0, 0, 0, 0),
        packets=(0, 0, 0, 0),
        bytes_=(0, 0, 0, 0),
    ):
        return MetricRecord(
            ident=ident,
            exporter_id=exporter_id,
            uptime=uptime,
            flows=ProtocolCounters(*flows),
            packets=ProtocolCounters(*packets),
            bytes=ProtocolCounters(*bytes_),
        )
    return make
