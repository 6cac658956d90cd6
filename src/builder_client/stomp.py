"""
STOMP 1.2 frame codec.

The world server speaks STOMP over a websocket: one frame per websocket
message, ``COMMAND\\n`` + ``header:value`` lines + blank line + body + NUL.
A message holding only end-of-line characters is a heart-beat.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from .errors import ProtocolError

NULL = "\x00"
SUBPROTOCOL = "v12.stomp"

CLIENT_COMMANDS = frozenset(
    {"CONNECT", "STOMP", "SEND", "SUBSCRIBE", "UNSUBSCRIBE", "ACK", "NACK", "BEGIN", "COMMIT", "ABORT", "DISCONNECT"}
)
SERVER_COMMANDS = frozenset({"CONNECTED", "MESSAGE", "RECEIPT", "ERROR"})

# CONNECT/CONNECTED headers are never escaped
_UNESCAPED_COMMANDS = frozenset({"CONNECT", "CONNECTED"})

_ESCAPES = {"\\": "\\\\", "\r": "\\r", "\n": "\\n", ":": "\\c"}
_UNESCAPES = {"\\": "\\", "r": "\r", "n": "\n", "c": ":"}


@dataclass
class Frame:
    command: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)


def escape_header(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def unescape_header(value: str) -> str:
    out = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\":
            if i + 1 >= len(value) or value[i + 1] not in _UNESCAPES:
                raise ProtocolError(f"Invalid header escape in {value!r}")
            out.append(_UNESCAPES[value[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def encode_frame(frame: Frame) -> str:
    """Serialize a frame, adding content-length for non-empty bodies."""
    escape = frame.command not in _UNESCAPED_COMMANDS
    lines = [frame.command]
    headers = dict(frame.headers)
    if frame.body and "content-length" not in headers:
        headers["content-length"] = str(len(frame.body.encode("utf-8")))
    for name, value in headers.items():
        if escape:
            name, value = escape_header(name), escape_header(str(value))
        lines.append(f"{name}:{value}")
    return "\n".join(lines) + "\n\n" + frame.body + NULL


def is_heartbeat(data: Union[str, bytes]) -> bool:
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    return data.strip("\r\n") == ""


def decode_frame(data: Union[str, bytes]) -> Optional[Frame]:
    """Parse one websocket message into a frame.

    Returns:
        The frame, or None for a heart-beat

    Raises:
        ProtocolError: If the message is not a valid STOMP frame
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Frame is not UTF-8: {e}") from e

    if is_heartbeat(data):
        return None

    # Leading EOLs are heart-beats sent ahead of the frame
    data = data.lstrip("\r\n")

    head, sep, rest = data.partition("\n\n")
    if not sep:
        head, sep, rest = data.partition("\r\n\r\n")
    if not sep:
        raise ProtocolError("Frame has no header terminator")

    head_lines = head.replace("\r\n", "\n").split("\n")
    command = head_lines[0].strip()
    if command not in SERVER_COMMANDS and command not in CLIENT_COMMANDS:
        raise ProtocolError(f"Unknown STOMP command: {command!r}")

    escaped = command not in _UNESCAPED_COMMANDS
    headers: Dict[str, str] = {}
    for line in head_lines[1:]:
        if not line:
            continue
        name, colon, value = line.partition(":")
        if not colon:
            raise ProtocolError(f"Malformed header line: {line!r}")
        if escaped:
            name, value = unescape_header(name), unescape_header(value)
        # Repeated headers: the first one wins
        headers.setdefault(name, value)

    length = headers.get("content-length")
    if length is not None:
        try:
            size = int(length)
        except ValueError as e:
            raise ProtocolError(f"Bad content-length: {length!r}") from e
        raw = rest.encode("utf-8")
        if len(raw) < size + 1 or raw[size : size + 1] != b"\x00":
            raise ProtocolError("Frame body shorter than content-length or not NUL terminated")
        body = raw[:size].decode("utf-8")
    else:
        body, nul, _ = rest.partition(NULL)
        if not nul:
            raise ProtocolError("Frame is not NUL terminated")

    return Frame(command, headers, body)


# Frame builders


def connect_frame(host: str, heartbeat_ms: int = 0) -> Frame:
    return Frame(
        "CONNECT",
        {"accept-version": "1.2", "host": host, "heart-beat": f"{heartbeat_ms},{heartbeat_ms}"},
    )


def subscribe_frame(destination: str, subscription_id: str) -> Frame:
    return Frame("SUBSCRIBE", {"id": subscription_id, "destination": destination, "ack": "auto"})


def send_frame(destination: str, body: str) -> Frame:
    return Frame("SEND", {"destination": destination, "content-type": "text/plain;charset=UTF-8"}, body)


def disconnect_frame(receipt: str) -> Frame:
    return Frame("DISCONNECT", {"receipt": receipt})
