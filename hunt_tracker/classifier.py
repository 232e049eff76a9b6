from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .patterns import Category, EventKind, PatternRegistry


class ClassifierError(RuntimeError):
    pass


@dataclass(frozen=True)
class ClassifiedEvent:
    source_line: str
    pattern_id: int
    category: Category
    kind: EventKind
    fields: Tuple[str, ...] = ()


class EventClassifier:
    def __init__(self, registry: PatternRegistry):
        self.registry = registry

    def classify(self, line: str) -> Optional[ClassifiedEvent]:
        """Resolve a chat line to at most one event.

        Overlapping patterns are legal (a critical hit line also contains the
        plain hit text), so the lowest matching id is picked explicitly.
        """
        ids = self.registry.matches(line)
        if not ids:
            return None
        winner = min(ids)
        pattern = self.registry.get(winner)
        m = self.registry.compiled(winner).search(line)
        if m is None:
            raise ClassifierError(f"pattern {winner} ({pattern.kind.value}) matched but captured nothing: {line!r}")
        return ClassifiedEvent(
            source_line=line,
            pattern_id=winner,
            category=pattern.category,
            kind=pattern.kind,
            fields=tuple(g if g is not None else "" for g in m.groups()),
        )
