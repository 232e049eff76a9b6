import asyncio
from pathlib import Path

import pytest

from hunt_tracker.runtime import FileWatcher, LineTailer, drain_nowait


def test_first_poll_only_records_baseline(tmp_path: Path):
    f = tmp_path / "chat.log"
    f.write_text("old 1\nold 2\nold 3\n", encoding="utf-8")
    tail = LineTailer(str(f))
    assert tail.poll() == []
    assert tail.initialized
    assert tail.line_count == 3

    with f.open("a", encoding="utf-8") as h:
        h.write("new 1\n")
    assert tail.poll() == ["new 1"]
    assert tail.poll() == []


def test_appended_lines_come_back_in_order(tmp_path: Path):
    f = tmp_path / "chat.log"
    f.write_text("", encoding="utf-8")
    tail = LineTailer(str(f))
    tail.poll()
    with f.open("a", encoding="utf-8") as h:
        h.write("first\r\nsecond\n")
    with f.open("a", encoding="utf-8") as h:
        h.write("third\n")
    assert tail.poll() == ["first", "second", "third"]
    assert tail.line_count == 3


def test_truncated_file_resets_baseline(tmp_path: Path):
    f = tmp_path / "chat.log"
    f.write_text("a\nb\nc\nd\ne\n", encoding="utf-8")
    tail = LineTailer(str(f))
    tail.poll()
    f.write_text("x\ny\n", encoding="utf-8")
    assert tail.poll() == []
    assert tail.line_count == 2
    with f.open("a", encoding="utf-8") as h:
        h.write("after\n")
    assert tail.poll() == ["after"]


def test_unreadable_file_keeps_cursor(tmp_path: Path):
    f = tmp_path / "chat.log"
    f.write_text("a\nb\n", encoding="utf-8")
    tail = LineTailer(str(f))
    tail.poll()
    f.unlink()
    with pytest.raises(OSError):
        tail.poll()
    assert tail.line_count == 2
    f.write_text("a\nb\nc\n", encoding="utf-8")
    assert tail.poll() == ["c"]


def test_missing_file_on_first_poll(tmp_path: Path):
    tail = LineTailer(str(tmp_path / "nope.log"))
    with pytest.raises(FileNotFoundError):
        tail.poll()
    assert not tail.initialized


def test_invalid_utf8_is_skipped(tmp_path: Path):
    f = tmp_path / "chat.log"
    f.write_bytes(b"")
    tail = LineTailer(str(f))
    tail.poll()
    f.write_bytes(b"You missed\xff\n")
    assert tail.poll() == ["You missed"]


def test_file_watcher_reports_growth(tmp_path: Path):
    async def run_case():
        kinds = []
        f = tmp_path / "chat.log"
        f.write_text("", encoding="utf-8")
        watcher = FileWatcher(str(f), poll_interval=0.05)

        async def collect():
            async for ev in watcher.run():
                kinds.append(ev.kind)
                if "deleted" in kinds:
                    watcher.stop()
                    break

        task = asyncio.create_task(collect())
        await asyncio.sleep(0.1)
        with f.open("a", encoding="utf-8") as h:
            h.write("You missed\n")
        await asyncio.sleep(0.2)
        f.unlink()
        await asyncio.wait_for(task, timeout=2.0)
        return kinds

    kinds = asyncio.run(run_case())
    assert kinds[0] == "modified"
    assert kinds[-1] == "deleted"


def test_drain_nowait_empties_queue():
    async def run_case():
        q: asyncio.Queue = asyncio.Queue()
        for i in range(5):
            q.put_nowait(i)
        return drain_nowait(q), q.empty(), drain_nowait(q)

    assert asyncio.run(run_case()) == (5, True, 0)
