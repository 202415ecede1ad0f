"""
Wire formats spoken by collectors on the ingestion socket.
"""

__all__ = ["nfcapd"]
