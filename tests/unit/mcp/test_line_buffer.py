from __future__ import annotations

from appdna_mcp.stdio.buffer import LineBuffer


def test_many_messages_in_one_chunk() -> None:
    buffer = LineBuffer()
    assert buffer.feed(b'{"a":1}\n{"b":2}\n{"c":3}\n') == [b'{"a":1}', b'{"b":2}', b'{"c":3}']
    assert buffer.pending == 0


def test_one_message_across_many_chunks() -> None:
    buffer = LineBuffer()
    message = b'{"jsonrpc":"2.0","id":1,"method":"ping"}'
    collected: list[bytes] = []
    for index in range(len(message)):
        collected.extend(buffer.feed(message[index : index + 1]))
    assert collected == []
    assert buffer.pending == len(message)
    assert buffer.feed(b"\n") == [message]


def test_crlf_and_blank_lines() -> None:
    buffer = LineBuffer()
    assert buffer.feed(b'{"a":1}\r\n\r\n   \n{"b":2}\n') == [b'{"a":1}', b'{"b":2}']


def test_multibyte_character_split_between_reads() -> None:
    encoded = '{"text":"☃"}\n'.encode("utf-8")
    split_at = encoded.index(b"\xe2") + 1
    buffer = LineBuffer()
    assert buffer.feed(encoded[:split_at]) == []
    (line,) = buffer.feed(encoded[split_at:])
    assert line.decode("utf-8") == '{"text":"☃"}'


def test_flush_returns_unterminated_tail() -> None:
    buffer = LineBuffer()
    assert buffer.feed(b'{"a":1}\n{"b"') == [b'{"a":1}']
    assert buffer.flush() == b'{"b"'
    assert buffer.flush() is None
    assert buffer.pending == 0


def test_empty_chunk_is_a_no_op() -> None:
    buffer = LineBuffer()
    assert buffer.feed(b"") == []
    assert buffer.flush() is None
