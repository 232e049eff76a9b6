import asyncio
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .classifier import EventClassifier
from .config import TrackerConfig
from .loadout import Markup
from .patterns import PatternRegistry
from .store import StateStore, StoreError
from .tracker import Tracker


logger = logging.getLogger("hunt_tracker.runtime")


@dataclass
class FileEvent:
    kind: str  # "created" | "modified" | "deleted"
    path: str
    ts: float


class FileWatcher:
    """Polls a single file's mtime and size and yields an event on any change.

    Only the "file may have grown" signal matters to the tracker; the lines
    themselves are read by ``LineTailer``.
    """

    def __init__(self, path: str, poll_interval: float = 0.25):
        self.path = Path(path)
        self.poll = poll_interval
        self._running = False
        self._snapshot = self._stat()

    def _stat(self) -> Optional[Tuple[int, int]]:
        try:
            st = self.path.stat()
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size)

    async def run(self):
        self._running = True
        while self._running:
            await asyncio.sleep(self.poll)
            current = self._stat()
            if current == self._snapshot:
                continue
            if self._snapshot is None:
                kind = "created"
            elif current is None:
                kind = "deleted"
            else:
                kind = "modified"
            self._snapshot = current
            yield FileEvent(kind, str(self.path), time.time())

    def stop(self):
        self._running = False


class LineTailer:
    """Returns the lines appended to a file since the previous poll.

    The first poll only records a baseline, so whatever the file held before
    the tailer started is never replayed.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.line_count = 0
        self.initialized = False

    def _read_lines(self) -> List[str]:
        with self.path.open("rb") as f:
            data = f.read()
        return data.decode("utf-8", errors="ignore").splitlines()

    def poll(self) -> List[str]:
        # OSError propagates with the cursor untouched; the caller retries later
        lines = self._read_lines()
        count = len(lines)
        if not self.initialized:
            self.line_count = count
            self.initialized = True
            return []
        if count == self.line_count:
            return []
        if count < self.line_count:
            logger.debug(f"{self.path.name} shrank from {self.line_count} to {count} lines; resuming from the new end")
            self.line_count = count
            return []
        new_lines = lines[self.line_count:]
        self.line_count = count
        return new_lines


def drain_nowait(queue: asyncio.Queue) -> int:
    drained = 0
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return drained
        drained += 1


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    return obj


class TrackerState:
    def __init__(self, config: TrackerConfig, registry: PatternRegistry, store: StateStore):
        self.config = config
        self.store = store
        self.classifier = EventClassifier(registry)
        self.tailer = LineTailer(config.log_path)
        session = store.latest_session() or store.new_session()
        store.refresh_loadout(session)
        self.tracker = Tracker(config.player, session, markups=store.load_markups())
        self.line_count = 0
        self.event_count = 0
        self.notification_count = 0
        self.dirty = False
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def session(self):
        return self.tracker.session

    def poll_log(self) -> int:
        try:
            lines = self.tailer.poll()
        except OSError as e:
            logger.warning(f"Cannot read {self.tailer.path}: {e}; retrying on next change")
            return 0
        self.process_lines(lines)
        return len(lines)

    def process_lines(self, lines: List[str]) -> None:
        for line in lines:
            self.line_count += 1
            ev = self.classifier.classify(line)
            if ev is None:
                continue
            self.event_count += 1
            if self.tracker.track(ev):
                self.dirty = True
                print(f"[track] {ev.kind.value}: {line}")

    def _session_msg(self, message: str) -> None:
        self.tracker.note(message)
        self.dirty = True
        print(f"[session] {message}")

    def resume(self) -> bool:
        if not self.session.start():
            return False
        self._session_msg(f"Starting session {self.session.name}")
        return True

    def pause(self) -> bool:
        if not self.session.pause():
            return False
        self._session_msg(f"Stopping session {self.session.name}")
        return True

    def reset(self) -> None:
        self.session.reset()
        self._session_msg(f"Reset timer of session {self.session.name}")

    def new_session(self, name: Optional[str] = None) -> str:
        session = self.store.new_session(name, loadout=self.session.loadout)
        self._session_msg(f"Creating new session {session.name}")
        return session.name

    def select_session(self, name: str) -> bool:
        if name == self.session.name:
            self.tracker.note("Session already selected")
            return False
        session = self.store.load_session(name)
        if session is None:
            return False
        self.store.refresh_loadout(session)
        previous = self.tracker.switch_session(session)
        self.store.save_session(previous)
        self._session_msg(f"Selecting session {session.name}")
        return True

    def select_loadout(self, name: str) -> bool:
        if name == self.session.loadout.name:
            self.tracker.note("Loadout already selected")
            return False
        loadout = self.store.load_loadout(name)
        if loadout is None:
            return False
        self.session.loadout = loadout
        self._session_msg(f"Selecting loadout {loadout.name}")
        return True

    def set_markup(self, name: str, percent: Decimal) -> Markup:
        value = percent / 100
        markup = self.tracker.markups.get(name)
        if markup is None:
            markup = self.tracker.markups[name] = Markup(name=name, value=value)
        else:
            markup.value = value
        self.dirty = True
        return markup

    def status(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "log": str(self.tailer.path),
            "player": self.tracker.player,
            "session": self.session.name,
            "loadout": self.session.loadout.name,
            "active": self.session.is_active,
            "elapsed": self.session.pretty_elapsed(),
            "lines": self.line_count,
            "events": self.event_count,
            "notifications": self.notification_count,
        }

    def summary(self) -> Dict[str, Any]:
        return {"ok": True, **_jsonable(self.tracker.summary())}

    def save(self) -> bool:
        try:
            self.store.save_session(self.session)
            self.store.save_markups(self.tracker.markups)
        except OSError as e:
            logger.error(f"Autosave failed: {e}", exc_info=True)
            return False
        self.dirty = False
        return True

    async def stop(self):
        self._running = False


def _name_arg(cmd: dict) -> Tuple[str, Optional[dict]]:
    name = cmd.get("name")
    if name is None or name == "":
        return "", {"ok": False, "error": "missing name"}
    if not isinstance(name, str):
        return "", {"ok": False, "error": "invalid name"}
    return name, None


class ControlServer:
    def __init__(self, host: str, port: int, state: TrackerState):
        self.host = host
        self.port = port
        self.state = state
        self.server = None

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        data = await reader.readline()
        try:
            cmd = json.loads(data.decode()) if data else {}
        except (UnicodeDecodeError, json.JSONDecodeError):
            cmd = {}
        resp = await self.dispatch(cmd if isinstance(cmd, dict) else {})
        writer.write((json.dumps(resp) + "\n").encode())
        await writer.drain()
        writer.close()
        await writer.wait_closed()

    async def dispatch(self, cmd: dict) -> dict:
        typ = cmd.get("cmd")
        state = self.state
        if typ == "status":
            return state.status()
        if typ == "summary":
            return state.summary()
        if typ == "pause":
            return {"ok": True, "changed": state.pause(), "active": state.session.is_active}
        if typ == "resume":
            return {"ok": True, "changed": state.resume(), "active": state.session.is_active}
        if typ == "reset":
            state.reset()
            return {"ok": True, "elapsed": state.session.pretty_elapsed()}
        if typ == "activity":
            try:
                limit = int(cmd.get("limit", 20))
            except (TypeError, ValueError):
                return {"ok": False, "error": "invalid limit"}
            return {"ok": True, "activity": list(state.tracker.activity)[:limit]}
        if typ == "new_session":
            name = cmd.get("name")
            if name is not None and not isinstance(name, str):
                return {"ok": False, "error": "invalid name"}
            return {"ok": True, "created": state.new_session(name or None)}
        if typ == "select_session":
            name, error = _name_arg(cmd)
            if error:
                return error
            try:
                ok = state.select_session(name)
            except StoreError as e:
                return {"ok": False, "error": str(e)}
            return {"ok": ok, "session": state.session.name}
        if typ == "select_loadout":
            name, error = _name_arg(cmd)
            if error:
                return error
            try:
                ok = state.select_loadout(name)
            except StoreError as e:
                return {"ok": False, "error": str(e)}
            return {"ok": ok, "loadout": state.session.loadout.name}
        if typ == "set_markup":
            name, error = _name_arg(cmd)
            if error:
                return error
            try:
                percent = Decimal(str(cmd.get("percent")))
            except InvalidOperation:
                return {"ok": False, "error": "invalid percent"}
            if not percent.is_finite():
                return {"ok": False, "error": "invalid percent"}
            markup = state.set_markup(name, percent)
            return {"ok": True, "name": markup.name, "value": str(markup.value)}
        if typ == "stop":
            await state.stop()
            return {"ok": True, "stopping": True}
        return {"ok": False, "error": "unknown cmd"}

    async def start(self):
        self.server = await asyncio.start_server(self.handle, self.host, self.port)

    async def close(self):
        if self.server:
            self.server.close()
            await self.server.wait_closed()


async def run_tracker(state: TrackerState, start_session: bool = False, control: bool = True):
    """Tail the chat log until a stop command, Ctrl-C or cancellation.

    The watcher only queues change notifications; every tick the loop drains
    all of them without blocking and tails the log once if there were any.
    """
    config = state.config
    queue: asyncio.Queue = asyncio.Queue()
    watcher = FileWatcher(config.log_path, poll_interval=config.watch_interval)

    async def _watch():
        async for ev in watcher.run():
            queue.put_nowait(ev)

    ctrl = None
    if control:
        ctrl = ControlServer(config.host, config.port, state)
        await ctrl.start()
    watch_task = asyncio.create_task(_watch())

    # first poll only records the baseline
    state.poll_log()
    if start_session:
        state.resume()

    msg = f"Tracking {config.log_path} for '{config.player}', session {state.session.name}."
    if ctrl:
        msg += f" Control server on {config.host}:{config.port}."
    msg += " Press Ctrl-C to stop."
    print(msg)
    try:
        while state.running:
            await asyncio.sleep(config.tick_interval)
            pending = drain_nowait(queue)
            if pending:
                state.notification_count += pending
                state.poll_log()
            if config.autosave and state.dirty:
                state.save()
    except (asyncio.CancelledError, KeyboardInterrupt):
        await state.stop()
    finally:
        watcher.stop()
        watch_task.cancel()
        if ctrl:
            await ctrl.close()
        if config.autosave:
            state.save()
        print("Tracker stopped.")
