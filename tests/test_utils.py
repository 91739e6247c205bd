import re

from rxapplog import AppLogException, __version__
from rxapplog.console import ConsoleMirror, format_console_line
from rxapplog.entry import LogEntry
from rxapplog.utils import (
    default_user_agent,
    generate_session_id,
    get_full_error_info,
    get_short_error_info,
    process_session_id,
)


def test_session_id_format():
    assert re.fullmatch(r"\d{13}-[0-9a-z]{7}", generate_session_id())


def test_session_ids_differ():
    assert len({generate_session_id() for _ in range(50)}) == 50


def test_process_session_id_is_stable():
    assert process_session_id() == process_session_id()


def test_error_info():
    try:
        raise ValueError("bad")
    except ValueError as e:
        assert get_short_error_info(e) == "ValueError: bad"
        full = get_full_error_info(e)
    assert full.startswith("Traceback")
    assert "test_error_info" in full


def test_default_user_agent():
    assert default_user_agent().startswith(f"rxapplog/{__version__} ")


def test_app_log_exception():
    inner = ValueError("inner error")
    exc = AppLogException(inner, source="collector", note="bind")
    assert exc.exception is inner
    assert str(exc) == "<collector> bind: inner error"
    assert AppLogException(inner).source == "Unknown"
    assert exc.__cause__ is inner
    assert exc.error_name == "ValueError"
    assert str(AppLogException(inner)) == "<Unknown>: inner error"


def test_console_line():
    assert format_console_line(LogEntry.create("error", "Boom")) == "[ERROR] Boom\n"
    line = format_console_line(LogEntry.create("info", "Opened", {"id": "d-1"}))
    assert line == '[INFO] Opened {"id": "d-1"}\n'


def test_console_mirror_ignores_broken_stream():
    class Broken:
        def write(self, _):
            raise OSError("closed")

        def flush(self):
            pass

    ConsoleMirror(Broken()).write(LogEntry.create("info", "x"))  # type: ignore[arg-type]
