from stdin_broadcast.common import FRAME_SIZE, frame_line, unframe


def test_short_line_is_zero_padded():
    frame = frame_line(b"hello\n")
    assert len(frame) == FRAME_SIZE == 100
    assert frame == b"hello\n" + b"\x00" * 94


def test_long_line_is_truncated():
    line = b"x" * 150 + b"\n"
    assert frame_line(line) == b"x" * 100


def test_exact_size_line_is_unchanged():
    line = b"y" * 99 + b"\n"
    assert frame_line(line) == line


def test_text_lines_are_utf8_encoded():
    assert frame_line("héllo\n")[:7] == "héllo\n".encode("utf-8")


def test_empty_line_is_all_zeros():
    assert frame_line(b"") == b"\x00" * 100


def test_unframe_strips_padding():
    assert unframe(frame_line(b"hello\n")) == b"hello\n"
