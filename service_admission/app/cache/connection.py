"""
RESP connection and connection pool for the cache backend.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from shared.errors import CacheConnectionError, IncompleteReplyError, ProtocolError, ReplyError
from shared.logging import get_logger
from .protocol import RespValue, decode_reply, encode_command

READ_CHUNK_SIZE = 4096
MAX_READ_ATTEMPTS = 10


class RespConnection:
    """
    A single TCP connection speaking RESP.

    The connection is opened lazily by ``execute`` and torn down on any
    transport or framing error; the next ``execute`` reconnects and
    re-authenticates. A connection must only be used by one caller at a time.
    """

    def __init__(self, host: str, port: int, password: Optional[str] = None, timeout: float = 1.0):
        self.host = host
        self.port = port
        self.password = password or None
        self.timeout = timeout
        self.logger = get_logger("admission.cache.connection")
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @property
    def is_connected(self) -> bool:
        # A peer close only half-closes the stream; the reader sees EOF first.
        return (
            self._writer is not None
            and not self._writer.is_closing()
            and not self._reader.at_eof()
        )

    async def connect(self) -> None:
        """Open the TCP connection and authenticate if a password is configured."""
        if self.is_connected:
            return
        # Drop a stream the server has already closed.
        await self.close()

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            self.logger.warning(
                "Cache connection failed",
                host=self.host,
                port=self.port,
                error=str(e) or type(e).__name__
            )
            await self.close()
            raise CacheConnectionError(
                f"Connection to {self.host}:{self.port} failed",
                details={"error": str(e) or type(e).__name__}
            )

        if self.password:
            await self.authenticate(self.password)

    async def authenticate(self, password: str) -> None:
        """Send AUTH; anything but OK closes the connection."""
        try:
            reply = await self._roundtrip(("AUTH", password))
        except ReplyError as e:
            self.logger.error("Cache authentication failed", error=e.message)
            await self.close()
            raise CacheConnectionError("Authentication failed", details={"error": e.message})

        if reply != "OK":
            self.logger.error("Cache authentication failed", reply=reply)
            await self.close()
            raise CacheConnectionError("Authentication failed", details={"reply": reply})

    async def execute(self, *args: object) -> RespValue:
        """Send one command and return its decoded reply."""
        if not args:
            raise ValueError("execute() needs a command name")
        if not self.is_connected:
            await self.connect()
        return await self._roundtrip(args)

    async def _roundtrip(self, args) -> RespValue:
        command = str(args[0])
        try:
            self._writer.write(encode_command(*args))
            await asyncio.wait_for(self._writer.drain(), timeout=self.timeout)
            return await self._read_reply()
        except ProtocolError as e:
            self.logger.warning("Malformed cache reply", command=command, error=e.message)
            await self.close()
            raise
        except (OSError, asyncio.TimeoutError) as e:
            self.logger.warning(
                "Cache command failed",
                command=command,
                error=str(e) or type(e).__name__
            )
            await self.close()
            raise CacheConnectionError(
                "Cache command failed",
                details={"command": command, "error": str(e) or type(e).__name__}
            )
        except asyncio.CancelledError:
            # A half-read reply leaves the stream unusable.
            self._abort()
            raise

    async def _read_reply(self) -> RespValue:
        buffer = b""
        for _ in range(MAX_READ_ATTEMPTS):
            chunk = await asyncio.wait_for(self._reader.read(READ_CHUNK_SIZE), timeout=self.timeout)
            if not chunk:
                raise ConnectionResetError("Connection closed by cache server")
            buffer += chunk
            try:
                value, consumed = decode_reply(buffer)
            except IncompleteReplyError:
                continue
            except ReplyError:
                if buffer.find(b"\r\n") + 2 != len(buffer):
                    await self.close()
                raise
            if consumed != len(buffer) or (buffer[:1] == b"*" and value):
                # Trailing bytes (or unread array elements) would corrupt the
                # next reply on this stream.
                await self.close()
            return value
        raise ProtocolError("Reply exceeded the read limit", details={"bytes": len(buffer)})

    def _abort(self) -> None:
        writer, self._reader, self._writer = self._writer, None, None
        if writer is not None:
            writer.close()

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        writer, self._reader, self._writer = self._writer, None, None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except (OSError, asyncio.TimeoutError):
            pass


class ConnectionPool:
    """
    Hands out RESP connections with exclusive ownership.

    ``acquire`` reuses an idle connection when one is available and creates a
    new, lazily-connecting one otherwise. On release, connections that are
    still open go back to the idle list (up to ``max_idle``); broken ones are
    discarded.
    """

    def __init__(self, host: str, port: int, password: Optional[str] = None,
                 timeout: float = 1.0, max_idle: int = 8):
        self.host = host
        self.port = port
        self.password = password or None
        self.timeout = timeout
        self.max_idle = max_idle
        self.logger = get_logger("admission.cache.pool")
        self._idle: List[RespConnection] = []
        self._closed = False

    def _new_connection(self) -> RespConnection:
        return RespConnection(self.host, self.port, password=self.password, timeout=self.timeout)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[RespConnection]:
        """Borrow a connection for the duration of the ``async with`` block."""
        conn = await self._take_idle() or self._new_connection()
        try:
            yield conn
        finally:
            await self._release(conn)

    async def _take_idle(self) -> Optional[RespConnection]:
        """Pop the newest live idle connection, closing any the server dropped."""
        while self._idle:
            conn = self._idle.pop()
            if conn.is_connected:
                return conn
            self.logger.debug("Discarding idle cache connection closed by server")
            await conn.close()
        return None

    async def _release(self, conn: RespConnection) -> None:
        if not self._closed and conn.is_connected and len(self._idle) < self.max_idle:
            self._idle.append(conn)
        else:
            await conn.close()

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    async def close(self) -> None:
        """Close every idle connection; borrowed ones are closed on release."""
        self._closed = True
        idle, self._idle = self._idle, []
        for conn in idle:
            await conn.close()
        self.logger.info("Cache connection pool closed", closed=len(idle))
