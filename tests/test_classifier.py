import pytest

from hunt_tracker.classifier import EventClassifier
from hunt_tracker.patterns import Category, EventKind, EventPattern, PatternRegistry


PREFIX = "2026-10-18 20:01:02 [System] [] "


@pytest.fixture
def classifier():
    return EventClassifier(PatternRegistry.build())


@pytest.mark.parametrize("line", [
    "",
    "2026-10-18 20:01:02 [Rookie] [Someone] wtb animal oil",
    PREFIX + "You have claimed a resource!",
    PREFIX + "you inflicted 12 points of damage",
])
def test_unmatched_lines_classify_to_none(classifier, line):
    assert classifier.classify(line) is None


def test_critical_hit_beats_plain_hit(classifier):
    line = PREFIX + "Critical hit - Additional damage! You inflicted 45.2 points of damage"
    first = classifier.classify(line)
    assert first.kind is EventKind.SELF_CRIT
    assert first.pattern_id == 0
    assert first.fields == ("45.2",)
    for _ in range(20):
        assert classifier.classify(line) == first


def test_hall_of_fame_beats_plain_global(classifier):
    line = ("2026-10-18 20:01:02 [Globals] [] Aardvark Nolin killed a creature (Atrox Young) "
            "with a value of 112 PED! A record has been added to the Hall of Fame!")
    ev = classifier.classify(line)
    assert ev.kind is EventKind.GLOBAL_HUNT_HOF
    assert ev.category is Category.GLOBAL
    assert ev.fields == ("Aardvark Nolin", "Atrox Young", "112")


def test_plain_global(classifier):
    line = "2026-10-18 20:01:02 [Globals] [] Someone Else killed a creature (Daikiba Old) with a value of 57 PED!"
    ev = classifier.classify(line)
    assert ev.kind is EventKind.GLOBAL_HUNT
    assert ev.fields == ("Someone Else", "Daikiba Old", "57")


@pytest.mark.parametrize("text, kind, fields", [
    ("You inflicted 12.5 points of damage", EventKind.SELF_HIT, ("12.5",)),
    ("You healed yourself 30.1 points", EventKind.SELF_HEAL, ("30.1",)),
    ("Damage deflected!", EventKind.SELF_DEFLECT, ()),
    ("You Evaded the attack", EventKind.SELF_EVADE, ()),
    ("You missed", EventKind.SELF_MISS, ()),
    ("You have gained 0.4321 experience in your Rifle skill", EventKind.SELF_SKILL_GAIN, ("0.4321", "Rifle")),
    ("You received Animal Hide x (3) Value: 1.5000 PED", EventKind.SELF_LOOT, ("Animal Hide", "3", "1.5000")),
    ("The target Dodged your attack", EventKind.TARGET_DODGE, ()),
    ("The target Evaded your attack", EventKind.TARGET_EVADE, ()),
    ("The target Jammed your attack", EventKind.TARGET_JAM, ()),
    ("You took 8.7 points of damage", EventKind.TARGET_HIT, ("8.7",)),
    ("You were killed by the ferocious Atrox Young", EventKind.SELF_DEATH, ()),
])
def test_each_message_kind(classifier, text, kind, fields):
    ev = classifier.classify(PREFIX + text)
    assert ev.kind is kind
    assert ev.fields == fields
    assert ev.source_line == PREFIX + text


def test_loot_without_value_label(classifier):
    ev = classifier.classify(PREFIX + "You received Shrapnel x (2355) 0.2355 PED")
    assert ev.fields == ("Shrapnel", "2355", "0.2355")


def test_reduced_catalogue_is_injected():
    hit = EventPattern(1, r"You inflicted (.*?) points of damage", Category.COMBAT, EventKind.SELF_HIT, ("damage",))
    classifier = EventClassifier(PatternRegistry.build([hit]))
    ev = classifier.classify("Critical hit - Additional damage! You inflicted 45.2 points of damage")
    assert ev.kind is EventKind.SELF_HIT
    assert ev.pattern_id == 1
    assert ev.fields == ("45.2",)
    assert classifier.classify("You missed") is None


def test_lowest_id_wins_even_for_the_less_specific_pattern():
    hit = EventPattern(0, r"You inflicted (.*?) points of damage", Category.COMBAT, EventKind.SELF_HIT, ("damage",))
    crit = EventPattern(1, r"Critical hit - Additional damage! You inflicted (.*?) points of damage",
                        Category.COMBAT, EventKind.SELF_CRIT, ("damage",))
    classifier = EventClassifier(PatternRegistry.build([hit, crit]))
    ev = classifier.classify("Critical hit - Additional damage! You inflicted 45.2 points of damage")
    assert ev.kind is EventKind.SELF_HIT
