from __future__ import annotations

import re
import yaml
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple


class PatternError(Exception):
    pass


class Category(str, Enum):
    COMBAT = "Combat"
    GLOBAL = "Global"
    LOOT = "Loot"
    SKILLS = "Skills"


class EventKind(str, Enum):
    SELF_CRIT = "SelfCrit"
    SELF_HIT = "SelfHit"
    SELF_HEAL = "SelfHeal"
    SELF_DEFLECT = "SelfDeflect"
    SELF_EVADE = "SelfEvade"
    SELF_MISS = "SelfMiss"
    SELF_SKILL_GAIN = "SelfSkillGain"
    SELF_LOOT = "SelfLoot"
    SELF_DEATH = "SelfDeath"
    TARGET_DODGE = "TargetDodge"
    TARGET_EVADE = "TargetEvade"
    TARGET_JAM = "TargetJam"
    TARGET_HIT = "TargetHit"
    GLOBAL_HUNT_HOF = "GlobalHuntHOF"
    GLOBAL_HUNT = "GlobalHunt"


# number of captured fields the tracker reads for each kind
FIELDS_CONSUMED: Dict[EventKind, int] = {
    EventKind.SELF_CRIT: 1,
    EventKind.SELF_HIT: 1,
    EventKind.SELF_HEAL: 1,
    EventKind.SELF_SKILL_GAIN: 2,
    EventKind.SELF_LOOT: 3,
    EventKind.TARGET_HIT: 1,
    EventKind.GLOBAL_HUNT_HOF: 3,
    EventKind.GLOBAL_HUNT: 3,
}


@dataclass(frozen=True)
class EventPattern:
    id: int
    regex: str
    category: Category
    kind: EventKind
    fields: Tuple[str, ...] = field(default_factory=tuple)


DEFAULT_PATTERNS: Tuple[EventPattern, ...] = (
    EventPattern(0, r"Critical hit - Additional damage! You inflicted (.*?) points of damage",
                 Category.COMBAT, EventKind.SELF_CRIT, ("damage",)),
    EventPattern(1, r"You inflicted (.*?) points of damage",
                 Category.COMBAT, EventKind.SELF_HIT, ("damage",)),
    EventPattern(2, r"You healed yourself (.*?) points",
                 Category.COMBAT, EventKind.SELF_HEAL, ("amount",)),
    EventPattern(3, r"Damage deflected!", Category.COMBAT, EventKind.SELF_DEFLECT),
    EventPattern(4, r"You Evaded the attack", Category.COMBAT, EventKind.SELF_EVADE),
    EventPattern(5, r"You missed", Category.COMBAT, EventKind.SELF_MISS),
    EventPattern(6, r"You have gained (.*?) experience in your (.*?) skill",
                 Category.SKILLS, EventKind.SELF_SKILL_GAIN, ("exp", "skill")),
    EventPattern(7, r"You received (.+?) x \((.+?)\) (?:Value: )?(.+?) PED",
                 Category.LOOT, EventKind.SELF_LOOT, ("item", "quantity", "value")),
    EventPattern(8, r"The target Dodged your attack", Category.COMBAT, EventKind.TARGET_DODGE),
    EventPattern(9, r"The target Evaded your attack", Category.COMBAT, EventKind.TARGET_EVADE),
    EventPattern(10, r"The target Jammed your attack", Category.COMBAT, EventKind.TARGET_JAM),
    EventPattern(11, r"You took (.*?) points of damage",
                 Category.COMBAT, EventKind.TARGET_HIT, ("damage",)),
    EventPattern(12, r"\[\] (.*?) killed a creature \((.*?)\) with a value of (.*?) PED! "
                     r"A record has been added to the Hall of Fame!",
                 Category.GLOBAL, EventKind.GLOBAL_HUNT_HOF, ("actor", "creature", "value")),
    EventPattern(13, r"\[\] (.*?) killed a creature \((.*?)\) with a value of (.*?) PED!",
                 Category.GLOBAL, EventKind.GLOBAL_HUNT, ("actor", "creature", "value")),
    # wording depends on the client build; override through a patterns file if it differs
    EventPattern(14, r"You were killed by", Category.COMBAT, EventKind.SELF_DEATH),
)


_GLOBAL_FLAGS = re.compile(r"\(\?[aiLmsux]+\)")


class PatternRegistry:
    """Ordered, immutable catalogue of event patterns.

    Pattern ids double as precedence: when several patterns match one line the
    lowest id wins. ``matches`` runs a single combined expression first so the
    common case of an uninteresting chat line costs one regex search.
    """

    def __init__(self, patterns: Tuple[EventPattern, ...], compiled: Tuple[re.Pattern[str], ...],
                 combined: re.Pattern[str]):
        self._patterns = patterns
        self._compiled = compiled
        self._combined = combined
        self._index = {p.id: i for i, p in enumerate(patterns)}

    @classmethod
    def build(cls, patterns: Sequence[EventPattern] = DEFAULT_PATTERNS) -> "PatternRegistry":
        if not patterns:
            raise PatternError("pattern catalogue is empty")
        compiled: List[re.Pattern[str]] = []
        last_id: Optional[int] = None
        for p in patterns:
            if last_id is not None and p.id <= last_id:
                raise PatternError(f"pattern ids must be strictly increasing: {p.id} follows {last_id}")
            last_id = p.id
            try:
                rx = re.compile(p.regex)
            except re.error as e:
                raise PatternError(f"pattern {p.id} ({p.kind.value}) does not compile: {e}") from e
            if rx.groups != len(p.fields):
                raise PatternError(
                    f"pattern {p.id} ({p.kind.value}) has {rx.groups} capture groups "
                    f"but declares {len(p.fields)} fields"
                )
            needed = FIELDS_CONSUMED.get(p.kind, 0)
            if len(p.fields) < needed:
                raise PatternError(f"pattern {p.id} ({p.kind.value}) needs {needed} fields, has {len(p.fields)}")
            # every regex is spliced into one alternation, so it must not carry
            # names or flags that apply to the whole expression
            if rx.groupindex:
                raise PatternError(
                    f"pattern {p.id} ({p.kind.value}) uses named groups ({', '.join(rx.groupindex)}); "
                    f"use plain groups and list the names under fields"
                )
            if _GLOBAL_FLAGS.match(p.regex):
                raise PatternError(
                    f"pattern {p.id} ({p.kind.value}) starts with global flags; use a scoped group like (?i:...)"
                )
            compiled.append(rx)
        try:
            combined = re.compile("|".join(f"(?:{p.regex})" for p in patterns))
        except re.error as e:
            raise PatternError(f"patterns cannot be combined into one expression: {e}") from e
        return cls(tuple(patterns), tuple(compiled), combined)

    @property
    def patterns(self) -> Tuple[EventPattern, ...]:
        return self._patterns

    def __len__(self) -> int:
        return len(self._patterns)

    def get(self, pattern_id: int) -> EventPattern:
        return self._patterns[self._index[pattern_id]]

    def compiled(self, pattern_id: int) -> re.Pattern[str]:
        return self._compiled[self._index[pattern_id]]

    def matches(self, line: str) -> List[int]:
        if not self._combined.search(line):
            return []
        return [p.id for p, rx in zip(self._patterns, self._compiled) if rx.search(line)]


def load_patterns(path: Path) -> List[EventPattern]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise PatternError(f"{path}: {e}") from e
    if not isinstance(data, dict):
        raise PatternError(f"{path}: expected a mapping with a 'patterns' list")
    patterns = []
    for idx, item in enumerate(data.get("patterns") or []):
        try:
            kind = EventKind(item["kind"])
            category = Category(item["category"])
            regex = str(item["regex"])
        except (KeyError, TypeError, ValueError) as e:
            raise PatternError(f"{path}: entry {idx} is invalid: {e}") from e
        fields = tuple(str(f) for f in (item.get("fields") or []))
        patterns.append(EventPattern(idx, regex, category, kind, fields))
    if not patterns:
        raise PatternError(f"{path}: no patterns defined")
    return patterns


def default_patterns_yaml() -> str:
    entries = [
        {"kind": p.kind.value, "category": p.category.value, "regex": p.regex, "fields": list(p.fields)}
        for p in DEFAULT_PATTERNS
    ]
    return yaml.safe_dump({"patterns": entries}, sort_keys=False, allow_unicode=True)
