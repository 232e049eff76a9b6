from __future__ import annotations

import logging
from collections import deque
from decimal import Context, Decimal, DivisionByZero, InvalidOperation, Overflow, localcontext
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from .classifier import ClassifiedEvent
from .loadout import Markup
from .patterns import EventKind
from .session import Session
from .util import percentage, truncate


logger = logging.getLogger("hunt_tracker.tracker")

ACTIVITY_LOG_LIMIT = 75
# 28 fractional digits; totals are summed in a context wide enough that no
# addition ever rounds
COST_QUANTUM = Decimal(1).scaleb(-28)
MONEY_CONTEXT = Context(prec=80, traps=[InvalidOperation, DivisionByZero, Overflow])
DEFAULT_MARKUP = Decimal("1.00")


class DataError(ValueError):
    pass


def cost_per_shot(decay: Decimal, burn: int) -> Decimal:
    """burn / (10000 + decay * 0.01), or 0 when the ratio is undefined."""
    with localcontext(MONEY_CONTEXT):
        try:
            denominator = Decimal(10000) + Decimal(decay) * Decimal("0.01")
            if denominator <= 0:
                return Decimal(0)
            return (Decimal(burn) / denominator).quantize(COST_QUANTUM)
        except ArithmeticError:
            return Decimal(0)


def _decimal(fields: Tuple[str, ...], idx: int) -> Decimal:
    raw = fields[idx].strip()
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise DataError(f"field {idx} is not a number: {raw!r}") from None
    if not value.is_finite():
        raise DataError(f"field {idx} is not a finite number: {raw!r}")
    return value


def _count(fields: Tuple[str, ...], idx: int) -> int:
    raw = fields[idx].strip()
    try:
        return int(raw)
    except ValueError:
        raise DataError(f"field {idx} is not a count: {raw!r}") from None


class Tracker:
    """Folds classified chat events into the current session.

    Statistics only move while the session's stopwatch is running. Every
    applied event is pushed to the front of ``activity``; dropped events (a
    paused session, someone else's global, an unparsable number) leave the
    session and the activity log untouched.
    """

    def __init__(self, player: str, session: Session, markups: Optional[Dict[str, Markup]] = None,
                 activity_limit: int = ACTIVITY_LOG_LIMIT):
        self.player = player
        self.session = session
        self.markups: Dict[str, Markup] = markups if markups is not None else {}
        self.activity: Deque[str] = deque(maxlen=activity_limit)
        self._handlers: Dict[EventKind, Callable[[ClassifiedEvent], bool]] = {
            EventKind.SELF_CRIT: self._self_crit,
            EventKind.SELF_HIT: self._self_hit,
            EventKind.SELF_HEAL: self._self_heal,
            EventKind.SELF_DEFLECT: self._self_deflect,
            EventKind.SELF_EVADE: self._self_evade,
            EventKind.SELF_MISS: self._self_miss,
            EventKind.SELF_SKILL_GAIN: self._self_skill_gain,
            EventKind.SELF_LOOT: self._self_loot,
            EventKind.SELF_DEATH: self._self_death,
            EventKind.TARGET_DODGE: self._target_dodge,
            EventKind.TARGET_EVADE: self._target_evade,
            EventKind.TARGET_JAM: self._target_jam,
            EventKind.TARGET_HIT: self._target_hit,
            EventKind.GLOBAL_HUNT_HOF: self._global_hunt_hof,
            EventKind.GLOBAL_HUNT: self._global_hunt,
        }

    def track(self, event: ClassifiedEvent) -> bool:
        if not self.session.is_active:
            return False
        handler = self._handlers[event.kind]
        try:
            with localcontext(MONEY_CONTEXT):
                applied = handler(event)
        except DataError as e:
            logger.warning(f"Dropping {event.kind.value} event: {e} (line: {event.source_line!r})")
            return False
        if applied:
            self.activity.appendleft(event.source_line)
        return applied

    def note(self, message: str) -> None:
        self.activity.appendleft(message)

    def switch_session(self, session: Session) -> Session:
        previous = self.session
        previous.pause()
        self.session = session
        return previous

    def shot_cost(self) -> Decimal:
        loadout = self.session.loadout
        return cost_per_shot(loadout.decay, loadout.burn)

    # -- handlers: parse every field before touching stats --

    def _self_crit(self, ev: ClassifiedEvent) -> bool:
        damage = _decimal(ev.fields, 0)
        stats = self.session.stats
        stats.self_attack_count += 1
        stats.self_crit_count += 1
        stats.self_total_damage += damage
        stats.self_total_crit_damage += damage
        stats.total_cost += self.shot_cost()
        return True

    def _self_hit(self, ev: ClassifiedEvent) -> bool:
        damage = _decimal(ev.fields, 0)
        stats = self.session.stats
        stats.self_attack_count += 1
        stats.self_total_damage += damage
        stats.total_cost += self.shot_cost()
        return True

    def _self_heal(self, ev: ClassifiedEvent) -> bool:
        self.session.stats.self_total_heal += _decimal(ev.fields, 0)
        return True

    def _self_deflect(self, ev: ClassifiedEvent) -> bool:
        self.session.stats.self_deflect_count += 1
        self.session.stats.target_attack_count += 1
        return True

    def _self_evade(self, ev: ClassifiedEvent) -> bool:
        self.session.stats.self_evade_count += 1
        self.session.stats.target_attack_count += 1
        return True

    def _self_miss(self, ev: ClassifiedEvent) -> bool:
        self.session.stats.self_attack_count += 1
        self.session.stats.self_attack_miss_count += 1
        return True

    def _self_skill_gain(self, ev: ClassifiedEvent) -> bool:
        exp_gain = _decimal(ev.fields, 0)
        skill = ev.fields[1]
        self.session.stats.self_total_exp_gain += exp_gain
        self.session.add_skill(skill, exp_gain)
        return True

    def _self_loot(self, ev: ClassifiedEvent) -> bool:
        item = ev.fields[0]
        quantity = _count(ev.fields, 1)
        value = _decimal(ev.fields, 2)
        self.session.stats.tt_profit += value
        if item not in self.markups:
            self.markups[item] = Markup(name=item, value=DEFAULT_MARKUP)
        self.session.add_loot(item, value, quantity)
        return True

    def _self_death(self, ev: ClassifiedEvent) -> bool:
        self.session.stats.self_death_count += 1
        return True

    def _target_missed(self) -> None:
        self.session.stats.self_attack_count += 1
        self.session.stats.self_attack_miss_count += 1

    def _target_dodge(self, ev: ClassifiedEvent) -> bool:
        self.session.stats.target_dodge_count += 1
        self._target_missed()
        return True

    def _target_evade(self, ev: ClassifiedEvent) -> bool:
        self.session.stats.target_evade_count += 1
        self._target_missed()
        return True

    def _target_jam(self, ev: ClassifiedEvent) -> bool:
        self.session.stats.target_jam_count += 1
        self._target_missed()
        return True

    def _target_hit(self, ev: ClassifiedEvent) -> bool:
        damage = _decimal(ev.fields, 0)
        self.session.stats.target_attack_count += 1
        self.session.stats.target_total_damage += damage
        return True

    def _global_hunt_hof(self, ev: ClassifiedEvent) -> bool:
        if ev.fields[0] != self.player:
            return False
        value = _decimal(ev.fields, 2)
        stats = self.session.stats
        stats.global_count += 1
        stats.hof_count += 1
        stats.total_global_gain += value
        stats.total_hof_gain += value
        return True

    def _global_hunt(self, ev: ClassifiedEvent) -> bool:
        if ev.fields[0] != self.player:
            return False
        value = _decimal(ev.fields, 2)
        self.session.stats.global_count += 1
        self.session.stats.total_global_gain += value
        return True

    # -- reporting --

    def markup_for(self, item: str) -> Decimal:
        m = self.markups.get(item)
        return m.value if m is not None else DEFAULT_MARKUP

    def summary(self) -> Dict[str, Any]:
        """Derived figures for display: profit, rates, and combat ratios."""
        with localcontext(MONEY_CONTEXT):
            s = self.session
            stats = s.stats
            cost = stats.total_cost
            mu_value = sum((e.tt_value * self.markup_for(e.name) for e in s.loot.values()), Decimal(0))
            secs = int(s.elapsed().total_seconds())

            def per_hour(value: Decimal) -> Decimal:
                if secs <= 0:
                    return Decimal(0)
                return value / secs * 3600

            loot = sorted(s.loot.values(), key=lambda e: e.tt_value, reverse=True)
            skills = sorted(s.skills.values(), key=lambda e: e.exp_gain, reverse=True)
            return {
                "session": s.name,
                "loadout": s.loadout.name,
                "active": s.is_active,
                "elapsed": s.pretty_elapsed(),
                "total_cost": truncate(cost),
                "mu_value": truncate(mu_value),
                "mu_profit": truncate(mu_value - cost),
                "mu_return_pct": truncate(percentage(mu_value, cost), 2),
                "tt_profit": truncate(stats.tt_profit - cost),
                "tt_return_pct": truncate(percentage(stats.tt_profit, cost), 2),
                "value_per_hour": truncate(per_hour(mu_value)),
                "cost_per_hour": truncate(per_hour(cost)),
                "crit_pct": truncate(percentage(Decimal(stats.self_crit_count), Decimal(stats.self_attack_count)), 2),
                "miss_pct": truncate(percentage(Decimal(stats.self_attack_miss_count), Decimal(stats.self_attack_count)), 2),
                "deflect_pct": truncate(percentage(Decimal(stats.self_deflect_count), Decimal(stats.target_attack_count)), 2),
                "target_miss_pct": truncate(percentage(Decimal(stats.self_evade_count), Decimal(stats.target_attack_count)), 2),
                "stats": stats.to_dict(),
                "loot": [
                    {"name": e.name, "count": e.count, "tt_value": e.tt_value,
                     "mu_value": truncate(e.tt_value * self.markup_for(e.name))}
                    for e in loot
                ],
                "skills": [{"name": e.name, "exp_gain": e.exp_gain} for e in skills],
            }
