"""Tests for input adapters."""

import io
import threading
from unittest.mock import MagicMock, patch

import psutil
import pytest

from loopwatch.config import IngestionConfig
from loopwatch.core.sources import (
    ChildProcess,
    LineBuffer,
    _SizeMonitor,
    follow_file,
    read_file_lines,
    read_stream,
)


class TestLineBuffer:
    def test_complete_lines(self):
        buf = LineBuffer()
        assert buf.feed("a\nb\n") == ["a", "b"]

    def test_partial_line_held(self):
        buf = LineBuffer()
        assert buf.feed('{"type": "as') == []
        assert buf.feed('sistant"}\nnext') == ['{"type": "assistant"}']
        assert buf.flush() == ["next"]
        assert buf.flush() == []

    def test_crlf(self):
        buf = LineBuffer()
        assert buf.feed("a\r\nb\r\n") == ["a", "b"]

    def test_bytes_split_multibyte(self):
        buf = LineBuffer()
        data = "héllo\n".encode("utf-8")
        assert buf.feed(data[:2]) == []
        assert buf.feed(data[2:]) == ["héllo"]

    def test_empty_lines_kept(self):
        buf = LineBuffer()
        assert buf.feed("\n\n") == ["", ""]


class TestReadStream:
    def test_lines(self):
        stream = io.StringIO("one\ntwo\r\nthree")
        assert list(read_stream(stream)) == ["one", "two", "three"]

    def test_stop_event(self):
        stop = threading.Event()
        stop.set()
        assert list(read_stream(io.StringIO("a\nb\n"), stop)) == []

    def test_closed_stream(self):
        stream = io.StringIO("a\n")
        stream.close()
        assert list(read_stream(stream)) == []


class TestReadFileLines:
    def test_basic(self, tmp_path):
        log = tmp_path / "out.log"
        log.write_text("a\nb\n")
        assert read_file_lines(log, 100) == ["a", "b"]

    def test_clips_long_lines(self, tmp_path):
        log = tmp_path / "out.log"
        log.write_text("x" * 50 + "\n")
        assert read_file_lines(log, 10) == ["x" * 10]

    def test_missing(self, tmp_path):
        assert read_file_lines(tmp_path / "nope.log", 100) == []


class TestSizeMonitor:
    def test_warns_once_per_step(self, caplog):
        mon = _SizeMonitor(IngestionConfig(warn_file_size_mb=1, max_file_size_mb=1000))
        mb = 1024 * 1024
        with caplog.at_level("WARNING", logger="loopwatch.sources"):
            mon.check("f", 12 * mb)
            mon.check("f", 13 * mb)
            mon.check("f", 25 * mb)
        warnings = [r for r in caplog.records if "consider rotating" in r.message]
        assert len(warnings) == 2

    def test_over_limit_logged_once(self, caplog):
        mon = _SizeMonitor(IngestionConfig(warn_file_size_mb=1000, max_file_size_mb=1))
        with caplog.at_level("ERROR", logger="loopwatch.sources"):
            mon.check("f", 2 * 1024 * 1024)
            mon.check("f", 3 * 1024 * 1024)
        errors = [r for r in caplog.records if "exceeds" in r.message]
        assert len(errors) == 1


class TestFollowFile:
    @patch("watchfiles.watch")
    def test_existing_then_appended(self, mock_watch, tmp_path):
        log = tmp_path / "ralph.log"
        log.write_text("first\nsecond\n")

        def fake_watch(*args, **kwargs):
            with open(log, "a") as f:
                f.write("third\npart")
            yield {(2, str(log.resolve()))}
            yield {(2, str(tmp_path / "other.log"))}
            with open(log, "a") as f:
                f.write("ial\n")
            yield {(2, str(log.resolve()))}

        mock_watch.side_effect = fake_watch
        lines = list(follow_file(log))
        assert lines == ["first", "second", "third", "partial"]

    @patch("watchfiles.watch")
    def test_truncation_rereads(self, mock_watch, tmp_path):
        log = tmp_path / "ralph.log"
        log.write_text("old line\n")

        def fake_watch(*args, **kwargs):
            log.write_text("new\n")
            yield {(2, str(log.resolve()))}

        mock_watch.side_effect = fake_watch
        assert list(follow_file(log)) == ["old line", "new"]

    @patch("watchfiles.watch")
    def test_passes_stop_event(self, mock_watch, tmp_path):
        log = tmp_path / "ralph.log"
        log.write_text("")
        stop = threading.Event()
        mock_watch.return_value = iter(())
        assert list(follow_file(log, stop_event=stop)) == []
        assert mock_watch.call_args.kwargs["stop_event"] is stop


class TestChildProcess:
    def test_command(self):
        child = ChildProcess("./ralph.sh", ["plan", "5"])
        assert child.command == "./ralph.sh plan 5"
        assert child.pid is None

    def test_command_quotes_arguments(self):
        child = ChildProcess("./ralph.sh", ["a b", "$(x)"])
        assert child.argv == ["./ralph.sh", "a b", "$(x)"]
        assert child.command == "./ralph.sh 'a b' '$(x)'"

    def test_arguments_not_shell_interpreted(self):
        child = ChildProcess("printf", ["%s|", "a b", "$(echo hi)"])
        child.start()
        assert list(child.stream("stdout")) == ["a b|$(echo hi)|"]
        assert child.wait() == 0

    def test_missing_script(self, tmp_path):
        with pytest.raises(OSError):
            ChildProcess(str(tmp_path / "nope.sh")).start()

    def test_stream_before_start(self):
        with pytest.raises(RuntimeError):
            next(ChildProcess("true").stream("stdout"))

    def test_runs_and_streams(self):
        child = ChildProcess("sh", ["-c", "echo hello; echo oops 1>&2"])
        child.start()
        assert list(child.stream("stdout")) == ["hello"]
        assert list(child.stream("stderr")) == ["oops"]
        assert child.wait() == 0

    def test_terminate_not_started(self):
        ChildProcess("true").terminate()

    @patch("loopwatch.core.sources.psutil.wait_procs")
    @patch("loopwatch.core.sources.psutil.Process")
    def test_terminate_tree(self, mock_proc_cls, mock_wait):
        child_proc = MagicMock()
        parent = MagicMock()
        parent.children.return_value = [child_proc]
        mock_proc_cls.return_value = parent
        stubborn = MagicMock()
        mock_wait.return_value = ([], [stubborn])

        child = ChildProcess("sleep 10")
        child._proc = MagicMock(pid=123)
        child._proc.poll.return_value = None
        child.terminate(timeout=0.1)

        child_proc.terminate.assert_called_once()
        parent.terminate.assert_called_once()
        stubborn.kill.assert_called_once()

    @patch("loopwatch.core.sources.psutil.Process")
    def test_terminate_vanished(self, mock_proc_cls):
        mock_proc_cls.side_effect = psutil.NoSuchProcess(123)
        child = ChildProcess("sleep 10")
        child._proc = MagicMock(pid=123)
        child._proc.poll.return_value = None
        child.terminate()
