"""
Configuration for nfsen_exporter
"""

from .settings import ExporterSettings, LogLevel, parse_listen

__all__ = ["ExporterSettings", "LogLevel", "parse_listen"]
