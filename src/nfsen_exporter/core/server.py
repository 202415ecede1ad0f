from __future__ import annotations
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import uvicorn
from mcp.server.fastmcp import FastMCP
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response

from nfsen_exporter.config.settings import ExporterSettings
from nfsen_exporter.utils.logging import get_logger
from .exporter import SnapshotExporter
from .listener import IngestionListener
from .store import MetricStore

logger = get_logger(__name__)

_INDEX_HTML = """<html>
<head><title>NfSen Metric Exporter</title></head>
<body>
<h1>NfSen Metric Exporter</h1>
<p><a href='{path}'>Metrics</a></p>
</body>
</html>
"""


class ExporterServer:
    """
    Wires the store, the ingestion listener and the HTTP side together.

    Responsibilities:
      Own the single MetricStore shared by listener and exporter
      Serve the Prometheus text format on the metrics path
      Serve a small index page on /
      Expose read only MCP tools over the same store
    """

    def __init__(self, settings: ExporterSettings):
        self.settings = settings
        self.store = MetricStore(stale_after=settings.stale_after)
        self.listener = IngestionListener(
            settings.socket_path, self.store, shutdown_grace=settings.shutdown_grace
        )

        self.registry = CollectorRegistry()
        self.exporter = SnapshotExporter(self.store)
        self.registry.register(self.exporter)

        self.host, self.port = settings.http_address()
        self.mcp = FastMCP(
            "nfsen_exporter",
            host=self.host,
            port=self.port,
            log_level=settings.log_level.value,
        )

        self._http: Optional[uvicorn.Server] = None
        self._stopping = False

        self._register_routes()
        self._register_core_tools()

    def render_metrics(self) -> bytes:
        return generate_latest(self.registry)

    def index_page(self) -> str:
        return _INDEX_HTML.format(path=self.settings.metrics_path)

    def http_app(self) -> Any:
        return self.mcp.streamable_http_app()

    def _register_routes(self) -> None:
        @self.mcp.custom_route(self.settings.metrics_path, methods=["GET"])
        async def metrics(request: Request) -> Response:
            return Response(self.render_metrics(), media_type=CONTENT_TYPE_LATEST)

        @self.mcp.custom_route("/", methods=["GET"])
        async def index(request: Request) -> Response:
            return HTMLResponse(self.index_page())

    def _register_core_tools(self) -> None:
        @self.mcp.tool()
        def list_idents() -> List[str]:
            return self.store.idents()

        @self.mcp.tool()
        def collector_metrics(ident: str) -> List[Dict[str, Any]]:
            records = self.store.snapshot().get(ident, [])
            return [asdict(r) for r in records]

        @self.mcp.tool()
        def listener_status() -> Dict[str, Any]:
            status = self.listener.status()
            status["records_stored"] = len(self.store)
            return status

    def request_shutdown(self) -> None:
        """
        Signal handler entry point. Safe to call before serve starts.
        """
        logger.info("shutdown requested")
        self._stopping = True
        if self._http is not None:
            self._http.should_exit = True

    async def serve(self) -> None:
        """
        Bind the ingestion socket, then serve HTTP until shutdown.

        BindError from the listener propagates before HTTP starts.
        """
        await self.listener.open()
        self.listener.run()

        config = uvicorn.Config(
            self.http_app(),
            host=self.host,
            port=self.port,
            log_level=self.settings.log_level.value.lower(),
        )
        self._http = uvicorn.Server(config)

        try:
            if not self._stopping:
                logger.info(
                    "serving metrics",
                    address=f"{self.host}:{self.port}",
                    path=self.settings.metrics_path,
                )
                await self._http.serve()
        finally:
            await self.listener.close()
