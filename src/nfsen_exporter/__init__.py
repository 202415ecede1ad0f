"""
nfsen_exporter

Bridge between nfcapd collectors and a Prometheus scraper.

Core ideas
1. Collectors push cumulative counters as binary frames over a Unix socket
2. The listener decodes frames and keeps the latest report per ident and exporter
3. Each scrape renders one snapshot of the store in the Prometheus text format
"""

__version__ = "0.1.0"

__all__ = ["core", "protocol", "config", "utils", "cli"]
