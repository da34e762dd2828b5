"""
Minimal RESP codec for the cache backend.

Requests are always arrays of bulk strings. Replies are decoded one frame at a
time; array replies yield only their element count because no command issued
by the admission service returns an array.
"""

from typing import Any, Tuple, Union

from shared.errors import IncompleteReplyError, ProtocolError, ReplyError

CRLF = b"\r\n"

RespValue = Union[str, int, None]


def encode_command(*args: Any) -> bytes:
    """Encode a command as an array-of-bulk-strings request frame."""
    if not args:
        raise ValueError("Cannot encode an empty command")

    parts = [b"*%d\r\n" % len(args)]
    for arg in args:
        data = arg if isinstance(arg, bytes) else str(arg).encode("utf-8")
        parts.append(b"$%d\r\n" % len(data))
        parts.append(data)
        parts.append(CRLF)
    return b"".join(parts)


def _read_line(data: bytes) -> Tuple[bytes, int]:
    """Return the header line (without the type byte) and the offset after it."""
    end = data.find(CRLF)
    if end == -1:
        raise IncompleteReplyError()
    return data[1:end], end + 2


def _parse_int(raw: bytes, what: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ProtocolError(f"Invalid {what}: {raw!r}")


def decode_reply(data: bytes) -> Tuple[RespValue, int]:
    """
    Decode the first reply frame in ``data``.

    Returns the decoded value and the number of bytes consumed. Raises
    ``IncompleteReplyError`` when the frame is truncated, ``ProtocolError``
    when it is malformed and ``ReplyError`` for a server error reply.
    """
    if not data:
        raise IncompleteReplyError("Empty reply")

    kind = data[:1]

    if kind == b"+":
        line, consumed = _read_line(data)
        return line.decode("utf-8", errors="replace"), consumed

    if kind == b"-":
        line, _ = _read_line(data)
        raise ReplyError(line.decode("utf-8", errors="replace"))

    if kind == b":":
        line, consumed = _read_line(data)
        return _parse_int(line, "integer"), consumed

    if kind == b"$":
        line, header_end = _read_line(data)
        length = _parse_int(line, "bulk length")
        if length == -1:
            return None, header_end
        if length < -1:
            raise ProtocolError(f"Invalid bulk length: {length}")

        payload_end = header_end + length
        if len(data) < payload_end + 2:
            raise IncompleteReplyError()
        if data[payload_end:payload_end + 2] != CRLF:
            raise ProtocolError("Bulk string is not terminated by CRLF")
        return data[header_end:payload_end].decode("utf-8", errors="replace"), payload_end + 2

    if kind == b"*":
        line, consumed = _read_line(data)
        count = _parse_int(line, "array length")
        if count == -1:
            return None, consumed
        if count < -1:
            raise ProtocolError(f"Invalid array length: {count}")
        return count, consumed

    raise ProtocolError(f"Unknown reply type: {kind!r}")


def parse_reply(data: bytes) -> RespValue:
    """Decode a single reply frame, ignoring anything after it."""
    value, _ = decode_reply(data)
    return value
