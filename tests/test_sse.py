"""Tests for SSE decoding and encoding helpers."""

from o2cproxy.core.sse import SSELineDecoder, describe_stream_error, format_sse_event


class TestSSELineDecoder:
    """Tests for splitting the upstream byte stream into payloads."""

    def test_complete_lines(self):
        decoder = SSELineDecoder()

        payloads = decoder.feed(b'data: {"a":1}\n\ndata: [DONE]\n\n')

        assert payloads == ['{"a":1}', "[DONE]"]

    def test_partial_line_buffered(self):
        decoder = SSELineDecoder()

        assert decoder.feed(b'data: {"a"') == []
        assert decoder.feed(b":1}\n") == ['{"a":1}']

    def test_non_data_lines_ignored(self):
        decoder = SSELineDecoder()

        payloads = decoder.feed(b": keepalive\nevent: response.created\nid: 4\ndata: x\n")

        assert payloads == ["x"]

    def test_crlf_lines(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: x\r\n\r\n") == ["x"]

    def test_data_without_space(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data:x\n") == ["x"]

    def test_flush_trailing_line(self):
        decoder = SSELineDecoder()
        decoder.feed(b"data: tail")

        assert decoder.flush() == ["tail"]
        assert decoder.flush() == []

    def test_split_multibyte_character(self):
        decoder = SSELineDecoder()
        raw = "data: ü\n".encode("utf-8")

        assert decoder.feed(raw[:7]) == []
        assert decoder.feed(raw[7:]) == ["ü"]


def test_format_sse_event():
    assert format_sse_event("message_stop", {"type": "message_stop"}) == (
        b'event: message_stop\ndata: {"type": "message_stop"}\n\n'
    )


def test_format_sse_event_keeps_unicode():
    assert "é".encode("utf-8") in format_sse_event("x", {"text": "é"})


class TestDescribeStreamError:
    """Tests for upstream error frame detection."""

    def test_error_event(self):
        message = describe_stream_error({"type": "error", "error": {"message": "bad", "type": "server_error"}})
        assert message == "SSE stream error: bad (type=server_error)"

    def test_error_event_with_message(self):
        assert describe_stream_error({"type": "error", "message": "oops"}) == "SSE stream error: oops"

    def test_response_failed(self):
        frame = {"type": "response.failed", "response": {"error": {"message": "quota", "code": "rate_limit"}}}
        assert describe_stream_error(frame) == "SSE stream error: quota (type=rate_limit)"

    def test_normal_frame(self):
        assert describe_stream_error({"type": "response.output_text.delta", "delta": "x"}) is None
