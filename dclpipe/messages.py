"""Text command messages and per-connection line buffering."""

from __future__ import annotations

import enum
import logging
import socket
from dataclasses import dataclass

MAX_MSG_LEN = 512
BUFFER_SIZE = MAX_MSG_LEN + 1

log = logging.getLogger(__name__)


class MessageType(enum.IntEnum):
    """Whether a message is a request, a reply or not yet known."""

    UNKNOWN = -1
    REQUEST = 0
    REPLY = 1


class Command(enum.IntEnum):
    """Commands understood in message text."""

    QUIT = 0
    STATUS = 1
    SET = 2
    GET = 3
    START = 4
    STOP = 5
    CONFIG = 6
    CONNECT = 7


# Checked in this order; a later match overrides an earlier one.
_KEYWORDS = (
    (Command.CONNECT, "CONNECT"),
    (Command.START, "START"),
    (Command.STOP, "STOP"),
    (Command.STATUS, "STATUS"),
    (Command.SET, "SET"),
    (Command.GET, "GET"),
    (Command.CONFIG, "CONFIG"),
)


@dataclass
class Message:
    """A single line of command text with what was recognised in it."""

    text: str
    type: MessageType = MessageType.UNKNOWN
    cmd: Command | None = None
    cmd_len: int = 0
    src_id: int = -1
    dst_id: int = -1

    @property
    def msg_len(self) -> int:
        return len(self.text)


def parse_api_request(text: str) -> Message:
    """Recognise the message type and command named anywhere in ``text``, ignoring case."""
    message = Message(text=text)
    if not text:
        log.debug("no message data")
        return message
    upper = text.upper()
    message.type = MessageType.REQUEST
    if "RE" in upper or "ER" in upper:
        log.debug("reply message received")
        message.type = MessageType.REPLY
        message.cmd_len = 2
    for command, keyword in _KEYWORDS:
        if keyword in upper:
            log.debug("%s message received", keyword.lower())
            message.cmd = command
            message.cmd_len = len(keyword)
    if "QUIT" in upper or upper in ("Q", "Q\n"):
        log.debug("quit message received")
        message.cmd = Command.QUIT
        message.cmd_len = len("QUIT")
    return message


def connect_information(message: Message) -> tuple[str, str]:
    """Return (host, port) from text of the form ``<command> <host> <port>``."""
    rest = message.text[message.cmd_len + 1:]
    if rest.endswith("\n"):
        rest = rest[:-1]
    host, sep, port = rest.rpartition(" ")
    if not sep:
        raise ValueError("not enough data for connect")
    log.debug("connect to '%s:%s'", host, port)
    return host, port


class Connection:
    """A socket together with a bounded buffer of received bytes."""

    def __init__(self, sock: socket.socket | None, host: str = "", service: str = "") -> None:
        self.sock = sock
        self.host = host
        self.service = service
        self.broken = False
        self._buffer = bytearray()

    @property
    def offset(self) -> int:
        """Number of bytes currently buffered."""
        return len(self._buffer)

    @property
    def remaining(self) -> int:
        """Free space left in the buffer."""
        return BUFFER_SIZE - len(self._buffer)

    def feed(self, data: bytes) -> int:
        """Buffer as much of ``data`` as fits and return how many bytes were taken.

        Raises BufferError when the buffer is already full.
        """
        space = self.remaining
        if space <= 0:
            raise BufferError("connection buffer is full")
        taken = bytes(data[:space])
        self._buffer.extend(taken)
        return len(taken)

    def extract_message(self) -> Message | None:
        """Remove the first complete line from the buffer and parse it, or return None."""
        end = self._buffer.find(b"\n")
        if end < 0:
            return None
        line = bytes(self._buffer[:end])
        del self._buffer[: end + 1]
        text = line.split(b"\0", 1)[0].decode("utf-8", errors="replace")
        log.debug("{connection %s:%s} %s", self.host, self.service, text)
        return parse_api_request(text)

    def close(self) -> None:
        """Close the socket; calling it again does nothing."""
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Connection(host={self.host!r}, service={self.service!r}, buffered={self.offset})"