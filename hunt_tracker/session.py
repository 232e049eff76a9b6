from __future__ import annotations

import time
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from .loadout import Loadout


Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Stopwatch:
    """Accumulating stopwatch: Stopped (no origin) or Running (origin set).

    ``start`` while running and ``pause`` while stopped are no-ops and return
    False, so callers can toggle without checking state first.
    """

    def __init__(self, accumulated: Optional[timedelta] = None, clock: Optional[Clock] = None):
        self.accumulated = accumulated or timedelta(0)
        self.running_since: Optional[datetime] = None
        self._clock = clock or _utcnow

    @property
    def running(self) -> bool:
        return self.running_since is not None

    def start(self) -> bool:
        if self.running_since is not None:
            return False
        self.running_since = self._clock()
        return True

    def pause(self) -> bool:
        if self.running_since is None:
            return False
        self.accumulated += self._since(self.running_since)
        self.running_since = None
        return True

    def reset(self) -> None:
        self.accumulated = timedelta(0)
        self.running_since = None

    def elapsed(self) -> timedelta:
        if self.running_since is None:
            return self.accumulated
        return self.accumulated + self._since(self.running_since)

    def pretty_elapsed(self) -> str:
        total_ms = self.elapsed() // timedelta(milliseconds=1)
        secs, millis = divmod(total_ms, 1000)
        hours, rem = divmod(secs, 3600)
        minutes, seconds = divmod(rem, 60)
        return f"{hours:02}h {minutes:02}m {seconds:02}s {millis:03}ms"

    def _since(self, origin: datetime) -> timedelta:
        delta = self._clock() - origin
        # wall clock stepped backwards
        return delta if delta > timedelta(0) else timedelta(0)


@dataclass
class SessionStats:
    tt_profit: Decimal = field(default_factory=Decimal)
    total_cost: Decimal = field(default_factory=Decimal)
    global_count: int = 0
    total_global_gain: Decimal = field(default_factory=Decimal)
    hof_count: int = 0
    total_hof_gain: Decimal = field(default_factory=Decimal)

    self_total_exp_gain: Decimal = field(default_factory=Decimal)

    self_total_crit_damage: Decimal = field(default_factory=Decimal)
    self_total_damage: Decimal = field(default_factory=Decimal)
    self_total_heal: Decimal = field(default_factory=Decimal)
    self_attack_miss_count: int = 0
    self_attack_count: int = 0
    self_crit_count: int = 0
    self_evade_count: int = 0
    self_deflect_count: int = 0
    self_death_count: int = 0

    target_total_damage: Decimal = field(default_factory=Decimal)
    target_attack_count: int = 0
    target_dodge_count: int = 0
    target_evade_count: int = 0
    target_jam_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            v = getattr(self, f.name)
            out[f.name] = str(v) if isinstance(v, Decimal) else v
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionStats":
        stats = cls()
        for f in fields(cls):
            if f.name not in data:
                continue
            if isinstance(getattr(stats, f.name), Decimal):
                setattr(stats, f.name, Decimal(str(data[f.name])))
            else:
                setattr(stats, f.name, int(data[f.name]))
        return stats


@dataclass
class LootEntry:
    name: str
    tt_value: Decimal = field(default_factory=Decimal)
    count: int = 0


@dataclass
class SkillEntry:
    name: str
    exp_gain: Decimal = field(default_factory=Decimal)


@dataclass
class Session:
    name: str
    loadout: Loadout = field(default_factory=lambda: Loadout("default"))
    stats: SessionStats = field(default_factory=SessionStats)
    loot: Dict[str, LootEntry] = field(default_factory=dict)
    skills: Dict[str, SkillEntry] = field(default_factory=dict)
    stopwatch: Stopwatch = field(default_factory=Stopwatch)
    created_at: float = field(default_factory=time.time)

    @property
    def is_active(self) -> bool:
        return self.stopwatch.running

    def start(self) -> bool:
        return self.stopwatch.start()

    def pause(self) -> bool:
        return self.stopwatch.pause()

    def reset(self) -> None:
        self.stopwatch.reset()

    def elapsed(self) -> timedelta:
        return self.stopwatch.elapsed()

    def pretty_elapsed(self) -> str:
        return self.stopwatch.pretty_elapsed()

    def add_loot(self, item: str, value: Decimal, count: int) -> LootEntry:
        entry = self.loot.get(item)
        if entry is None:
            entry = self.loot[item] = LootEntry(name=item)
        entry.tt_value += value
        entry.count += count
        return entry

    def add_skill(self, skill: str, exp_gain: Decimal) -> SkillEntry:
        entry = self.skills.get(skill)
        if entry is None:
            entry = self.skills[skill] = SkillEntry(name=skill)
        entry.exp_gain += exp_gain
        return entry

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "elapsed_seconds": str(Decimal(self.elapsed() // timedelta(milliseconds=1)) / 1000),
            "loadout": self.loadout.to_dict(),
            "stats": self.stats.to_dict(),
            "loot": {k: {"name": v.name, "tt_value": str(v.tt_value), "count": v.count} for k, v in self.loot.items()},
            "skills": {k: {"name": v.name, "exp_gain": str(v.exp_gain)} for k, v in self.skills.items()},
            "created_at": int(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], clock: Optional[Clock] = None) -> "Session":
        # a loaded session always starts out paused
        elapsed = timedelta(seconds=float(data.get("elapsed_seconds", 0)))
        return cls(
            name=data["name"],
            loadout=Loadout.from_dict(data["loadout"]) if data.get("loadout") else Loadout("default"),
            stats=SessionStats.from_dict(data.get("stats") or {}),
            loot={
                k: LootEntry(name=v.get("name", k), tt_value=Decimal(str(v.get("tt_value", "0"))), count=int(v.get("count", 0)))
                for k, v in (data.get("loot") or {}).items()
            },
            skills={
                k: SkillEntry(name=v.get("name", k), exp_gain=Decimal(str(v.get("exp_gain", "0"))))
                for k, v in (data.get("skills") or {}).items()
            },
            stopwatch=Stopwatch(accumulated=elapsed, clock=clock),
            created_at=float(data.get("created_at", time.time())),
        )
