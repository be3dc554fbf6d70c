import socket

import pytest

from dclpipe.messages import (
    BUFFER_SIZE,
    MAX_MSG_LEN,
    Command,
    Connection,
    Message,
    MessageType,
    connect_information,
    parse_api_request,
)


def test_parsed_values_follow_header():
    assert parse_api_request("").type == -1
    assert parse_api_request("quit").type == 0
    assert parse_api_request("quit").cmd == 0
    assert parse_api_request("RE{ok}").type == 1
    assert parse_api_request("CONNECT h p").cmd == 7
    assert Connection(None).remaining == MAX_MSG_LEN + 1


@pytest.mark.parametrize(
    "text, command",
    [
        ("CONNECT localhost 5000\n", Command.CONNECT),
        ("start localhost 5000", Command.START),
        ("Stop host 1", Command.STOP),
        ("STATUS", Command.STATUS),
        ("set a b", Command.SET),
        ("get a b", Command.GET),
        ("CONFIG", Command.CONFIG),
        ("quit", Command.QUIT),
        ("q", Command.QUIT),
        ("Q\n", Command.QUIT),
    ],
)
def test_parse_recognises_commands(text, command):
    message = parse_api_request(text)
    assert message.cmd == command
    assert message.text == text
    assert message.msg_len == len(text)


def test_parse_command_length_matches_keyword():
    assert parse_api_request("CONNECT h p").cmd_len == len("CONNECT")
    assert parse_api_request("quit").cmd_len == len("QUIT")
    assert parse_api_request("q").cmd_len == len("QUIT")


def test_parse_plain_request():
    message = parse_api_request("start h p")
    assert message.type == MessageType.REQUEST


def test_parse_reply_detection():
    message = parse_api_request("RE{ok}")
    assert message.type == MessageType.REPLY
    assert message.cmd is None
    assert message.cmd_len == 2


def test_parse_later_keyword_wins():
    # "RESET" holds both "RE" and "SET": a reply carrying the SET command
    message = parse_api_request("RESET")
    assert message.type == MessageType.REPLY
    assert message.cmd == Command.SET
    assert message.cmd_len == len("SET")


def test_parse_empty_text():
    message = parse_api_request("")
    assert message.type == MessageType.UNKNOWN
    assert message.cmd is None


def test_parse_unknown_text_has_no_command():
    message = parse_api_request("hello")
    assert message.cmd is None
    assert message.type == MessageType.REQUEST


def test_connect_information_with_newline():
    message = parse_api_request("CONNECT localhost 5000\n")
    assert connect_information(message) == ("localhost", "5000")


def test_connect_information_without_newline():
    message = parse_api_request("start example.com 80")
    assert connect_information(message) == ("example.com", "80")


def test_connect_information_missing_port():
    message = parse_api_request("CONNECT localhost")
    with pytest.raises(ValueError):
        connect_information(message)


def test_connect_information_uses_last_space():
    message = Message(text="GET a b 7", cmd=Command.GET, cmd_len=3)
    assert connect_information(message) == ("a b", "7")


def test_extract_message_needs_newline():
    conn = Connection(None, "h", "1")
    conn.feed(b"STATUS")
    assert conn.extract_message() is None
    assert conn.offset == len(b"STATUS")


def test_extract_message_consumes_lines_in_order():
    conn = Connection(None)
    conn.feed(b"start h 1\nstop h 1\npartial")
    first = conn.extract_message()
    second = conn.extract_message()
    assert first.text == "start h 1"
    assert first.cmd == Command.START
    assert second.text == "stop h 1"
    assert second.cmd == Command.STOP
    assert conn.extract_message() is None
    assert conn.offset == len(b"partial")


def test_extracted_message_ids_undefined():
    conn = Connection(None)
    conn.feed(b"quit\n")
    message = conn.extract_message()
    assert (message.src_id, message.dst_id) == (-1, -1)
    assert message.cmd == Command.QUIT


def test_feed_limits_to_buffer_size():
    conn = Connection(None)
    data = b"x" * (BUFFER_SIZE + 10)
    taken = conn.feed(data)
    assert taken == BUFFER_SIZE
    assert conn.remaining == 0
    with pytest.raises(BufferError):
        conn.feed(b"y")


def test_feed_after_extract_frees_space():
    conn = Connection(None)
    conn.feed(b"a" * (BUFFER_SIZE - 1) + b"\n")
    assert conn.remaining == 0
    message = conn.extract_message()
    assert message.msg_len == BUFFER_SIZE - 1
    assert conn.remaining == BUFFER_SIZE


def test_close_closes_socket_and_is_idempotent():
    left, right = socket.socketpair()
    try:
        conn = Connection(left, "localhost", "5000")
        conn.close()
        assert left.fileno() == -1
        assert conn.sock is None
        conn.close()
        assert conn.sock is None
    finally:
        right.close()


def test_context_manager_closes():
    left, right = socket.socketpair()
    try:
        with Connection(left) as conn:
            right.sendall(b"get h 2\n")
            conn.feed(left.recv(64))
            message = conn.extract_message()
        assert message.cmd == Command.GET
        assert left.fileno() == -1
    finally:
        right.close()