import random
import socket
import sys
import time

from nfsen_exporter.core.models import MetricRecord, ProtocolCounters
from nfsen_exporter.protocol.nfcapd import encode_frame


def main():
    path = sys.argv[1] if len(sys.argv) > 1 else "/tmp/nfsen.sock"
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.connect(path)

    start = time.time()
    flows = {1: 0, 2: 0}
    for _ in range(200):
        records = []
        for exporter_id in flows:
            flows[exporter_id] += random.choice([5, 10, 50, 100])
            n = flows[exporter_id]
            records.append(
                MetricRecord(
                    ident="live",
                    exporter_id=exporter_id,
                    flows=ProtocolCounters(tcp=n, udp=n // 2, icmp=n // 10, other=1),
                    packets=ProtocolCounters(tcp=n * 10, udp=n * 5, icmp=n, other=1),
                    bytes=ProtocolCounters(tcp=n * 1200, udp=n * 400, icmp=n * 64, other=60),
                )
            )
        sock.sendall(encode_frame(records, uptime=int(time.time() - start)))
        time.sleep(0.5)

    sock.close()


if __name__ == "__main__":
    main()
