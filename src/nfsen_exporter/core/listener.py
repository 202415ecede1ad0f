from __future__ import annotations
import asyncio
import os
import socket
import stat
from typing import Any, Dict, Optional

from nfsen_exporter.protocol.nfcapd import FRAME_MAGIC, HEADER_SIZE, decode_body, decode_header
from nfsen_exporter.utils.logging import get_logger
from .errors import BindError, CollectorConnectionError, DecodeError, FrameSizeError
from .store import MetricStore

logger = get_logger(__name__)


class IngestionListener:
    """
    Unix socket listener for nfcapd metric frames.

    Lifecycle:
      open
        Bind the socket path, removing a stale socket file left behind by a
        crashed instance. Raises BindError when the path is unusable.

      run
        Start accepting in the background. Every connection gets its own
        handler task which reads frames until the collector disconnects.

      close
        Stop accepting, close every live connection and wait for the
        handlers. Once close returns no handler can touch the store again.

    A bad frame is dropped and the connection keeps reading. When a header
    carries an unusable size, the reader scans forward to the next
    prefix/version pair. A broken connection only ends its own handler.
    """

    BACKLOG = 100

    def __init__(self, path: str, store: MetricStore, shutdown_grace: float = 5.0):
        self.path = path
        self.store = store
        self.shutdown_grace = float(shutdown_grace)

        self._server: Optional[asyncio.AbstractServer] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._handlers: Dict[asyncio.Task, asyncio.StreamWriter] = {}
        self._close_task: Optional[asyncio.Task] = None
        self._closing = False
        self._closed = False

        self._connections = 0
        self._ingested = 0
        self._dropped = 0
        self._applied = 0

    async def open(self) -> None:
        if self._server is not None:
            raise BindError(f"listener already bound to {self.path}")
        if self._closed:
            raise BindError("listener was closed")

        await self._remove_stale_socket()

        # The socket listens from here on. Collectors connecting before run
        # wait in the kernel backlog and a second instance sees a live path.
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(self.path)
        except OSError as e:
            sock.close()
            raise BindError(f"cannot bind {self.path}: {e}") from e

        try:
            sock.listen(self.BACKLOG)
            sock.setblocking(False)
            self._server = await asyncio.start_unix_server(
                self._handle_connection, sock=sock, backlog=self.BACKLOG, start_serving=False
            )
        except OSError as e:
            sock.close()
            self._unlink_socket()
            raise BindError(f"cannot listen on {self.path}: {e}") from e

        logger.info("ingestion socket bound", path=self.path)

    def run(self) -> None:
        if self._server is None or self._closing:
            raise RuntimeError("listener is not open")
        if self._serve_task is not None:
            return

        self._serve_task = asyncio.create_task(self._server.serve_forever())
        logger.info("accepting collector connections", path=self.path)

    async def close(self) -> None:
        """
        Every caller returns only after shutdown has completed.
        """
        if self._close_task is None:
            self._close_task = asyncio.create_task(self._close())
        await asyncio.shield(self._close_task)

    async def _close(self) -> None:
        self._closing = True

        if self._server is not None:
            self._server.close()

        handlers = list(self._handlers.items())
        for _task, writer in handlers:
            writer.close()

        if handlers:
            tasks = [task for task, _ in handlers]
            _done, pending = await asyncio.wait(tasks, timeout=self.shutdown_grace)
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if pending:
                logger.warning("cancelled collector handlers on shutdown", count=len(pending))

        if self._serve_task is not None:
            self._serve_task.cancel()
            try:
                await self._serve_task
            except asyncio.CancelledError:
                pass

        if self._server is not None:
            await self._server.wait_closed()
            self._unlink_socket()

        self._closed = True
        logger.info("ingestion socket closed", path=self.path)

    def status(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "running": self._serve_task is not None and not self._closed,
            "connections": len(self._handlers),
            "connections_total": self._connections,
            "frames_ingested": self._ingested,
            "frames_dropped": self._dropped,
            "records_applied": self._applied,
        }

    async def _remove_stale_socket(self) -> None:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise BindError(f"cannot stat {self.path}: {e}") from e

        if not stat.S_ISSOCK(st.st_mode):
            raise BindError(f"{self.path} exists and is not a socket")

        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_unix_connection(self.path), timeout=1.0
            )
        except (ConnectionRefusedError, FileNotFoundError):
            # Nobody is listening, a previous instance died without cleanup.
            logger.info("removing stale ingestion socket", path=self.path)
            try:
                self._unlink_socket()
            except OSError as e:
                raise BindError(f"cannot remove stale socket {self.path}: {e}") from e
            return
        except (OSError, asyncio.TimeoutError) as e:
            raise BindError(f"cannot probe {self.path}: {e}") from e

        writer.close()
        raise BindError(f"{self.path} is in use by a live listener")

    def _unlink_socket(self) -> None:
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        if self._closing:
            writer.close()
            return

        task = asyncio.current_task()
        self._handlers[task] = writer
        self._connections += 1
        log = logger.bind(conn=self._connections)
        log.info("collector connected")

        try:
            await self._read_frames(reader, log)
        except CollectorConnectionError as e:
            log.warning("collector connection dropped", error=str(e))
        finally:
            self._handlers.pop(task, None)
            writer.close()
            log.info("collector disconnected")

    async def _read_frames(self, reader: asyncio.StreamReader, log: Any) -> None:
        while not self._closing:
            raw_header = await self._read_exactly(reader, HEADER_SIZE, allow_eof=True)
            header = None
            while raw_header is not None:
                try:
                    header = decode_header(raw_header)
                    break
                except FrameSizeError as e:
                    self._dropped += 1
                    log.warning("unusable frame header, resynchronizing", error=str(e))
                    raw_header = await self._resync(reader, raw_header)
            if header is None:
                return

            body = await self._read_exactly(reader, header.body_size)

            try:
                records = decode_body(header, body)
            except DecodeError as e:
                self._dropped += 1
                log.warning("frame discarded", error=str(e), size=header.size)
                continue

            for record in records:
                self.store.upsert(record)
            self.store.prune()

            self._ingested += 1
            self._applied += len(records)
            log.debug("frame applied", metrics=len(records), uptime=header.uptime)

    async def _resync(self, reader: asyncio.StreamReader, consumed: bytes) -> Optional[bytes]:
        """
        Find the next header after a bad one. Returns None on a clean EOF.

        Bytes are read one at a time so nothing past the new header is
        consumed.
        """
        idx = consumed.find(FRAME_MAGIC, 1)
        if idx >= 0:
            start = consumed[idx:]
            return start + await self._read_exactly(reader, HEADER_SIZE - len(start))

        last = consumed[-1:]
        while not self._closing:
            byte = await self._read_exactly(reader, 1, allow_eof=True)
            if byte is None:
                return None
            if last + byte == FRAME_MAGIC:
                return FRAME_MAGIC + await self._read_exactly(reader, HEADER_SIZE - 2)
            last = byte
        return None

    @staticmethod
    async def _read_exactly(
        reader: asyncio.StreamReader, n: int, allow_eof: bool = False
    ) -> Optional[bytes]:
        try:
            return await reader.readexactly(n)
        except asyncio.IncompleteReadError as e:
            if allow_eof and not e.partial:
                return None
            raise CollectorConnectionError(
                f"connection closed mid frame after {len(e.partial)} of {n} bytes"
            ) from e
        except OSError as e:
            raise CollectorConnectionError(f"read failed: {e}") from e
