from __future__ import annotations

import struct
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

from nfsen_exporter.core.errors import DecodeError, FrameSizeError
from nfsen_exporter.core.models import MetricRecord, ProtocolCounters

# nfcapd metric frames, written in host byte order on the local socket.
#
# Header, 24 bytes:
#   prefix(1) '@', version(1), size(2) total frame length,
#   num_metrics(2), align(2), timestamp(8), uptime(8)
#
# Record, 232 bytes:
#   ident(128) NUL padded, exporter_id(8),
#   flows tcp/udp/icmp/other(4 x 8),
#   bytes tcp/udp/icmp/other(4 x 8),
#   packets tcp/udp/icmp/other(4 x 8)

PREFIX = 0x40
VERSION = 1
FRAME_MAGIC = bytes((PREFIX, VERSION))
IDENT_LEN = 128

_HEADER = struct.Struct("<BBHHHQQ")
_RECORD = struct.Struct(f"<{IDENT_LEN}sQ12Q")

HEADER_SIZE = _HEADER.size
RECORD_SIZE = _RECORD.size
MAX_FRAME_SIZE = 0xFFFF
MAX_METRICS = (MAX_FRAME_SIZE - HEADER_SIZE) // RECORD_SIZE


@dataclass(frozen=True)
class FrameHeader:
    prefix: int
    version: int
    size: int
    num_metrics: int
    timestamp: int
    uptime: int

    @property
    def body_size(self) -> int:
        return self.size - HEADER_SIZE


def decode_header(data: bytes) -> FrameHeader:
    """
    Decode the fixed frame header.

    Only the size field is checked here, because the reader needs it to
    find the next frame. Everything else is validated by decode_body so a
    bad frame can be skipped as a whole.
    """
    if len(data) != HEADER_SIZE:
        raise FrameSizeError(f"header must be {HEADER_SIZE} bytes, got {len(data)}")

    prefix, version, size, num_metrics, _align, timestamp, uptime = _HEADER.unpack(data)
    if size < HEADER_SIZE:
        raise FrameSizeError(f"frame size {size} smaller than header")

    return FrameHeader(
        prefix=prefix,
        version=version,
        size=size,
        num_metrics=num_metrics,
        timestamp=timestamp,
        uptime=uptime,
    )


def decode_body(header: FrameHeader, body: bytes) -> List[MetricRecord]:
    """
    Decode the records following a header.

    A frame is applied entirely or not at all, so any bad record rejects
    the whole frame.
    """
    if header.prefix != PREFIX:
        raise DecodeError(f"bad frame prefix 0x{header.prefix:02x}")
    if header.version != VERSION:
        raise DecodeError(f"unsupported frame version {header.version}")
    if len(body) != header.body_size:
        raise DecodeError(f"short body, expected {header.body_size} bytes, got {len(body)}")

    expected = header.num_metrics * RECORD_SIZE
    if len(body) != expected:
        raise DecodeError(
            f"{header.num_metrics} metrics need {expected} bytes, frame carries {len(body)}"
        )

    records: List[MetricRecord] = []
    for off in range(0, len(body), RECORD_SIZE):
        raw_ident, exporter_id, *counters = _RECORD.unpack_from(body, off)
        records.append(
            MetricRecord(
                ident=_decode_ident(raw_ident),
                exporter_id=exporter_id,
                uptime=header.uptime,
                flows=ProtocolCounters(*counters[0:4]),
                bytes=ProtocolCounters(*counters[4:8]),
                packets=ProtocolCounters(*counters[8:12]),
                timestamp=header.timestamp,
            )
        )

    return records


def decode_frame(data: bytes) -> List[MetricRecord]:
    """
    Decode one complete frame held in memory.
    """
    header = decode_header(data[:HEADER_SIZE])
    return decode_body(header, data[HEADER_SIZE:])


def encode_frame(
    records: Iterable[MetricRecord],
    uptime: int = 0,
    timestamp: Optional[int] = None,
) -> bytes:
    """
    Build a frame the way nfcapd writes it. Used by the sample sender.
    """
    records = list(records)
    if len(records) > MAX_METRICS:
        raise ValueError(f"at most {MAX_METRICS} metrics fit into one frame")

    ts = int(time.time()) if timestamp is None else int(timestamp)
    size = HEADER_SIZE + len(records) * RECORD_SIZE

    parts = [_HEADER.pack(PREFIX, VERSION, size, len(records), 0, ts, int(uptime))]
    for r in records:
        ident = r.ident.encode("utf-8")
        if len(ident) >= IDENT_LEN:
            raise ValueError(f"ident longer than {IDENT_LEN - 1} bytes")
        parts.append(
            _RECORD.pack(
                ident,
                r.exporter_id,
                r.flows.tcp, r.flows.udp, r.flows.icmp, r.flows.other,
                r.bytes.tcp, r.bytes.udp, r.bytes.icmp, r.bytes.other,
                r.packets.tcp, r.packets.udp, r.packets.icmp, r.packets.other,
            )
        )
    return b"".join(parts)


def _decode_ident(raw: bytes) -> str:
    raw = raw.split(b"\x00", 1)[0]
    if not raw:
        raise DecodeError("empty ident")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"ident is not valid utf-8: {e}") from e
