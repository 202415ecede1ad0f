"""
Utility modules for nfsen_exporter
"""

from .logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
