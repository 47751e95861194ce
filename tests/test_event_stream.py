"""
Unit tests for the incremental event-stream frame decoder.

Run with: pytest tests/test_event_stream.py -v
"""

from adapters.event_stream import Frame, FrameDecoder, parse_frame

PROGRESS = b'event: progress\ndata: {"processed": 1, "total": 3}\n\n'


class TestFrameDecoder:
    """Frames are only emitted once fully buffered."""

    def test_single_frame(self):
        """One complete frame in one read."""
        frames = FrameDecoder().feed(PROGRESS)

        assert frames == [Frame(event="progress", data='{"processed": 1, "total": 3}')]

    def test_split_mid_frame_yields_exactly_one(self):
        """A frame split across two reads is decoded once, after the second."""
        decoder = FrameDecoder()

        first = decoder.feed(PROGRESS[:20])
        second = decoder.feed(PROGRESS[20:])

        assert first == []
        assert len(second) == 1
        assert second[0].event == "progress"

    def test_byte_by_byte(self):
        """Worst-case fragmentation still yields one frame."""
        decoder = FrameDecoder()
        frames = []
        for i in range(len(PROGRESS)):
            frames.extend(decoder.feed(PROGRESS[i : i + 1]))

        assert len(frames) == 1
        assert decoder.pending == ""

    def test_split_on_delimiter(self):
        """The blank line itself may be split."""
        decoder = FrameDecoder()

        assert decoder.feed(PROGRESS[:-1]) == []
        assert len(decoder.feed(b"\n")) == 1

    def test_several_frames_in_one_read(self):
        """Frames come out in send order."""
        chunk = PROGRESS + b'event: complete\ndata: {"successCount": 3}\n\n'

        frames = FrameDecoder().feed(chunk)

        assert [f.event for f in frames] == ["progress", "complete"]

    def test_crlf_line_endings(self):
        """CRLF is accepted, even when split between reads."""
        decoder = FrameDecoder()

        assert decoder.feed(b"event: complete\r\ndata: {}\r") == []
        frames = decoder.feed(b"\n\r\n")

        assert frames == [Frame(event="complete", data="{}")]

    def test_bare_cr_line_endings(self):
        """Lines ended by a lone CR still delimit frames."""
        frames = FrameDecoder().feed(b"event: progress\rdata: {}\r\r")

        assert frames == [Frame(event="progress", data="{}")]

    def test_cr_at_end_of_read_then_lf(self):
        """A CR closing one read and an LF opening the next are one line break."""
        decoder = FrameDecoder()

        assert decoder.feed(b"event: progress\r") == []
        assert decoder.feed(b"\ndata: {}\r") == []
        assert decoder.feed(b"\n") == []
        frames = decoder.feed(b"\r\n")

        assert frames == [Frame(event="progress", data="{}")]
        assert decoder.pending == ""

    def test_only_one_lf_is_folded_into_a_split_crlf(self):
        """The LF after a split CRLF is dropped once; the next LF is a blank line."""
        decoder = FrameDecoder()

        assert decoder.feed(b"data: {}\r") == []
        assert decoder.feed(b"\n") == []

        assert decoder.feed(b"\n") == [Frame(event="message", data="{}")]

    def test_multibyte_character_split(self):
        """UTF-8 sequences split across reads are reassembled."""
        payload = 'data: {"message": "café"}\n\n'.encode("utf-8")
        cut = payload.index(b"\xc3") + 1
        decoder = FrameDecoder()

        frames = decoder.feed(payload[:cut]) + decoder.feed(payload[cut:])

        assert frames[0].data == '{"message": "café"}'

    def test_text_chunks(self):
        """Already-decoded text is accepted too."""
        assert len(FrameDecoder().feed(PROGRESS.decode())) == 1

    def test_incomplete_tail_is_kept(self):
        """Unterminated data stays buffered."""
        decoder = FrameDecoder()
        decoder.feed(b"data: {}\n")

        assert decoder.pending == "data: {}\n"
        decoder.reset()
        assert decoder.pending == ""


class TestParseFrame:
    """Field parsing inside one block."""

    def test_default_event_is_message(self):
        """Data-only frames are `message` events."""
        assert parse_frame('data: {"sent": 1}') == Frame(event="message", data='{"sent": 1}')

    def test_multiline_data_is_joined(self):
        """Repeated data lines join with newlines."""
        assert parse_frame("data: a\ndata: b").data == "a\nb"

    def test_comments_and_unknown_fields_are_ignored(self):
        """Keep-alives and unknown fields do not break parsing."""
        frame = parse_frame(": keep-alive\nretry: 1000\nid: 7\nevent: progress\ndata:{}")

        assert frame == Frame(event="progress", data="{}", id="7")

    def test_frames_without_data_are_dropped(self):
        """A comment-only block is not an event."""
        assert parse_frame(": ping") is None
        assert FrameDecoder().feed(b": ping\n\n") == []
