"""Incremental decoder for server-pushed event streams.

A frame is one or more `field: value` lines terminated by a blank line;
lines may end in LF, CRLF or a bare CR.
Bytes arrive in arbitrary network reads; the decoder buffers until a full
frame is present and never emits a partial one. Only `event`, `data` and
`id` are recognized; comment lines (leading `:`) and unknown fields are
ignored.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_EVENT = "message"


@dataclass(frozen=True)
class Frame:
    event: str = DEFAULT_EVENT
    data: str = ""
    id: str | None = None


def parse_frame(block: str) -> Frame | None:
    """Parse one blank-line-delimited block; None when it carries no data."""

    event = DEFAULT_EVENT
    frame_id: str | None = None
    data_lines: list[str] = []

    for line in block.split("\n"):
        line = line.rstrip("\r")
        if not line or line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value.strip() or DEFAULT_EVENT
        elif name == "data":
            data_lines.append(value)
        elif name == "id":
            frame_id = value
        else:
            logger.debug("Ignoring unknown stream field %r", name)

    if not data_lines:
        return None
    return Frame(event=event, data="\n".join(data_lines), id=frame_id)


class FrameDecoder:
    """Buffer + scan-for-delimiter state machine.

    Feed it whatever the transport hands over (bytes or text); it returns the
    frames completed by that chunk, in order.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._skip_lf = False

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[Frame]:
        text = self._utf8.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else chunk
        # A CR ending the previous read may be the first half of a CRLF.
        if self._skip_lf and text.startswith("\n"):
            text = text[1:]
            self._skip_lf = False
        if not text:
            return []
        self._skip_lf = text.endswith("\r")
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")

        frames: list[Frame] = []
        while True:
            boundary = self._buffer.find("\n\n")
            if boundary == -1:
                break
            block = self._buffer[:boundary]
            self._buffer = self._buffer[boundary + 2 :]
            frame = parse_frame(block)
            if frame is not None:
                frames.append(frame)
        return frames

    def reset(self) -> None:
        self._buffer = ""
        self._utf8.reset()
        self._skip_lf = False
