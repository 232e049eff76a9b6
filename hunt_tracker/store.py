from __future__ import annotations

import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from .loadout import Loadout, Markup
from .session import Clock, Session, Stopwatch
from .util import timestamp_slug


logger = logging.getLogger("hunt_tracker.store")

SESSION_SUFFIX = "_session"
LOADOUT_SUFFIX = "_loadout"
MARKUPS_FILE = "markups.json"


class StoreError(Exception):
    pass


class StateStore:
    """JSON files under the state directory, one per session and loadout.

    Naming follows ``<timestamp>_session.json``, ``<slug>_loadout.json`` and a
    single ``markups.json``.
    """

    def __init__(self, root: Path, clock: Optional[Clock] = None):
        self.root = Path(root)
        self.clock = clock

    def _read(self, path: Path) -> Dict[str, Any]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StoreError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"{path} does not hold a JSON object")
        return data

    def _write(self, path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)

    # sessions

    def session_path(self, name: str) -> Path:
        return self.root / f"{name}.json"

    def load_session(self, name: str) -> Optional[Session]:
        path = self.session_path(name)
        if not path.exists():
            return None
        data = self._read(path)
        try:
            return Session.from_dict(data, clock=self.clock)
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise StoreError(f"{path} is not a valid session: {e}") from e

    def save_session(self, session: Session) -> Path:
        path = self.session_path(session.name)
        self._write(path, session.to_dict())
        return path

    def new_session(self, name: Optional[str] = None, loadout: Optional[Loadout] = None) -> Session:
        name = name or f"{timestamp_slug()}{SESSION_SUFFIX}"
        if not name.endswith(SESSION_SUFFIX):
            name += SESSION_SUFFIX
        session = Session(name=name, loadout=loadout or Loadout("default"), stopwatch=Stopwatch(clock=self.clock))
        self.save_session(session)
        logger.info(f"Created session {name}")
        return session

    def fetch_sessions(self) -> List[Session]:
        """All readable sessions, newest first."""
        out: List[Session] = []
        for path in self.root.glob(f"*{SESSION_SUFFIX}.json"):
            try:
                session = self.load_session(path.stem)
            except StoreError as e:
                logger.warning(f"Skipping session file: {e}")
                continue
            if session is not None:
                out.append(session)
        out.sort(key=lambda s: s.created_at, reverse=True)
        return out

    def latest_session(self) -> Optional[Session]:
        sessions = self.fetch_sessions()
        return sessions[0] if sessions else None

    # loadouts

    def loadout_path(self, name: str) -> Path:
        return self.root / f"{Loadout(name).slug}{LOADOUT_SUFFIX}.json"

    def load_loadout(self, name: str) -> Optional[Loadout]:
        path = self.loadout_path(name)
        if not path.exists():
            return None
        try:
            return Loadout.from_dict(self._read(path))
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise StoreError(f"{path} is not a valid loadout: {e}") from e

    def save_loadout(self, loadout: Loadout) -> Path:
        path = self.loadout_path(loadout.name)
        self._write(path, loadout.to_dict())
        return path

    def new_loadout(self, name: str, decay: Decimal = Decimal("0"), burn: int = 0, **parts: Optional[str]) -> Loadout:
        loadout = Loadout(name=name, decay=Decimal(decay), burn=int(burn), **parts)
        self.save_loadout(loadout)
        logger.info(f"Created loadout {name}")
        return loadout

    def fetch_loadouts(self) -> List[Loadout]:
        out: List[Loadout] = []
        for path in self.root.glob(f"*{LOADOUT_SUFFIX}.json"):
            try:
                out.append(Loadout.from_dict(self._read(path)))
            except (StoreError, KeyError, TypeError, ValueError, ArithmeticError) as e:
                logger.warning(f"Skipping loadout file {path}: {e}")
        out.sort(key=lambda l: l.created_at, reverse=True)
        return out

    def refresh_loadout(self, session: Session) -> None:
        """Replace the session's embedded loadout copy with the stored one, if any."""
        stored = self.load_loadout(session.loadout.name)
        if stored is not None:
            session.loadout = stored

    # markups

    @property
    def markups_path(self) -> Path:
        return self.root / MARKUPS_FILE

    def load_markups(self) -> Dict[str, Markup]:
        path = self.markups_path
        if not path.exists():
            return {}
        data = self._read(path)
        try:
            return {name: Markup.from_dict(m) for name, m in data.items()}
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise StoreError(f"{path} is not a valid markup table: {e}") from e

    def save_markups(self, markups: Dict[str, Markup]) -> Path:
        path = self.markups_path
        self._write(path, {name: m.to_dict() for name, m in sorted(markups.items())})
        return path
