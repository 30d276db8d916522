"""
Metric extraction from free task text ("read 20 pages", "run for 1 hour").

Patterns are tried in table order: domain-specific ones first, the generic
items/tasks/times fallbacks last. Extraction never raises; text with no
match yields an empty metric list and no category.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, NamedTuple


class MetricPattern(NamedTuple):
    regex: re.Pattern
    type: str
    unit: str
    multiplier: int | None = None


def _p(pattern: str, type_: str, unit: str, multiplier: int | None = None) -> MetricPattern:
    return MetricPattern(re.compile(pattern, re.IGNORECASE), type_, unit, multiplier)


METRIC_PATTERNS: tuple[MetricPattern, ...] = (
    # chess
    _p(r"(\d+)\s*(?:chess\s*)?puzzles?", "puzzles", "puzzles"),
    _p(r"(\d+)\s*(?:chess\s*)?games?", "games", "games"),
    _p(r"won\s*(\d+)\s*games?", "games_won", "games"),
    _p(r"lost\s*(\d+)\s*games?", "games_lost", "games"),
    _p(r"(\d+)\s*(?:chess\s*)?matches?", "matches", "matches"),
    # basketball
    _p(r"(\d+)\s*(?:free\s*)?throws?", "free_throws", "shots"),
    _p(r"(\d+)\s*shots?", "shots", "shots"),
    _p(r"(\d+)\s*baskets?", "baskets", "baskets"),
    _p(r"(\d+)\s*points?", "points", "points"),
    _p(r"(\d+)\s*rebounds?", "rebounds", "rebounds"),
    # reading
    _p(r"(\d+)\s*pages?", "pages", "pages"),
    _p(r"(\d+)\s*chapters?", "chapters", "chapters"),
    _p(r"(\d+)\s*books?", "books", "books"),
    _p(r"(\d+)\s*articles?", "articles", "articles"),
    # exercise
    _p(r"(\d+)\s*(?:push\s*)?ups?", "pushups", "reps"),
    _p(r"(\d+)\s*(?:sit\s*)?ups?", "situps", "reps"),
    _p(r"(\d+)\s*reps?", "reps", "reps"),
    _p(r"(\d+)\s*sets?", "sets", "sets"),
    _p(r"(\d+)\s*(?:lbs?|pounds?)", "weight", "lbs"),
    _p(r"(\d+)\s*(?:kg|kilograms?)", "weight", "kg"),
    # time
    _p(r"(\d+)\s*(?:minutes?|mins?)", "minutes", "minutes"),
    _p(r"(\d+)\s*(?:hours?|hrs?)", "hours", "minutes", 60),   # value converted to minutes
    _p(r"(\d+)\s*(?:seconds?|secs?)", "seconds", "seconds"),
    # study
    _p(r"(\d+)\s*(?:practice\s*)?problems?", "problems", "problems"),
    _p(r"(\d+)\s*exercises?", "exercises", "exercises"),
    _p(r"(\d+)\s*lessons?", "lessons", "lessons"),
    _p(r"(\d+)\s*videos?", "videos", "videos"),
    # generic fallbacks, always last
    _p(r"(\d+)\s*items?", "items", "items"),
    _p(r"(\d+)\s*tasks?", "tasks", "tasks"),
    _p(r"(\d+)\s*times?", "times", "times"),
)

DOMAIN_TERMS = ("chess", "puzzle", "basketball", "shot", "page", "chapter")


class ActivityCategory(NamedTuple):
    name: str
    keywords: tuple[str, ...]
    precedence: int      # lower wins when several categories match


ACTIVITY_CATEGORIES: tuple[ActivityCategory, ...] = (
    ActivityCategory("chess", ("chess", "puzzle", "game", "match", "tournament", "rating"), 1),
    ActivityCategory("basketball", ("basketball", "shoot", "throw", "basket", "court", "dribble"), 2),
    ActivityCategory("reading", ("read", "book", "page", "chapter", "article", "novel"), 3),
    ActivityCategory("exercise", ("workout", "exercise", "gym", "fitness", "training", "pushup", "situp"), 4),
    ActivityCategory("study", ("study", "learn", "practice", "homework", "lesson", "course"), 5),
    ActivityCategory("coding", ("code", "program", "debug", "commit", "function", "algorithm"), 6),
    ActivityCategory("music", ("practice", "play", "song", "instrument", "piano", "guitar"), 7),
    ActivityCategory("writing", ("write", "blog", "article", "journal", "essay", "story"), 8),
)

# metric types that point at a category, checked in this order
CATEGORY_METRIC_TYPES = (
    ("chess", {"puzzles", "games", "games_won", "matches"}),
    ("basketball", {"free_throws", "shots", "baskets", "points"}),
    ("reading", {"pages", "chapters", "books", "articles"}),
    ("exercise", {"pushups", "situps", "reps", "sets", "weight"}),
    ("study", {"problems", "exercises", "lessons", "videos"}),
)

DEFAULT_CATEGORY_TYPES = {
    "chess": {"puzzles", "games", "games_won", "games_lost", "matches"},
    "basketball": {"free_throws", "shots", "baskets", "points", "rebounds"},
    "reading": {"pages", "chapters", "books", "articles"},
    "exercise": {"pushups", "situps", "reps", "sets", "weight"},
    "study": {"problems", "exercises", "lessons", "videos"},
}

UNREALISTIC_LIMITS = {
    "minutes": (1440, "{value} minutes seems unrealistic (>24 hours)"),
    "pages": (1000, "{value} pages seems unrealistic"),
    "puzzles": (100, "{value} puzzles seems like a lot for one session"),
}


@dataclass(frozen=True)
class ExtractedMetric:
    type: str
    value: float
    unit: str
    confidence: float
    original_text: str


@dataclass
class ExtractionResult:
    metrics: list[ExtractedMetric] = field(default_factory=list)
    activity_category: str | None = None
    confidence: float = 0.0
    original_text: str = ""


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def match_confidence(match_text: str, full_text: str) -> float:
    confidence = 0.5
    lowered = match_text.lower()
    if any(term in lowered for term in DOMAIN_TERMS):
        confidence += 0.2
    if len(match_text) > 3:
        confidence += 0.1
    elif len(match_text) < 3:
        confidence -= 0.2
    if len(full_text.split()) > 3:
        confidence += 0.1
    return round(_clamp01(confidence), 2)


def overall_confidence(metrics: list[ExtractedMetric]) -> float:
    if not metrics:
        return 0.0
    mean = sum(m.confidence for m in metrics) / len(metrics)
    bonus = min(0.2, (len(metrics) - 1) * 0.1)
    return round(_clamp01(mean + bonus), 2)


def _deduplicate(metrics: list[ExtractedMetric]) -> list[ExtractedMetric]:
    best: dict[tuple[str, str], ExtractedMetric] = {}
    for m in metrics:
        key = (m.type, m.unit)
        if key not in best or m.confidence > best[key].confidence:
            best[key] = m
    return list(best.values())


def detect_activity_category(text: str | None) -> str | None:
    lowered = (text or "").lower()
    for category in sorted(ACTIVITY_CATEGORIES, key=lambda c: c.precedence):
        if any(keyword in lowered for keyword in category.keywords):
            return category.name
    return None


def extract_metrics(text: str | None, custom_patterns: Iterable[MetricPattern] = ()) -> ExtractionResult:
    text = text or ""
    found: list[ExtractedMetric] = []
    for pattern in (*METRIC_PATTERNS, *custom_patterns):
        for match in pattern.regex.finditer(text):
            try:
                value = int(match.group(1))
            except (IndexError, TypeError, ValueError):
                continue
            if value <= 0:
                continue
            if pattern.multiplier:
                value *= pattern.multiplier
            found.append(ExtractedMetric(
                type=pattern.type,
                value=value,
                unit=pattern.unit,
                confidence=match_confidence(match.group(0), text),
                original_text=match.group(0),
            ))

    metrics = _deduplicate(found)
    return ExtractionResult(
        metrics=metrics,
        activity_category=detect_activity_category(text),
        confidence=overall_confidence(metrics),
        original_text=text,
    )


def suggest_category_from_metrics(metrics: Iterable[ExtractedMetric]) -> str | None:
    types = {m.type for m in metrics}
    for category, category_types in CATEGORY_METRIC_TYPES:
        if types & category_types:
            return category
    return None


def format_metrics(metrics: list[ExtractedMetric]) -> str:
    if not metrics:
        return "No metrics detected"
    return ", ".join(f"{m.value} {m.unit}" for m in metrics)


def validate_metrics(metrics: list[ExtractedMetric], category: str | None = None) -> dict:
    warnings = []
    if category:
        suggested = suggest_category_from_metrics(metrics)
        if suggested and suggested != category:
            warnings.append(f'Metrics suggest "{suggested}" category, but "{category}" was specified')
    for m in metrics:
        limit = UNREALISTIC_LIMITS.get(m.type)
        if limit and m.value > limit[0]:
            warnings.append(limit[1].format(value=m.value))
    return {"is_valid": True, "warnings": warnings}


def default_patterns_for_category(category: str) -> list[MetricPattern]:
    types = DEFAULT_CATEGORY_TYPES.get(category, set())
    return [p for p in METRIC_PATTERNS if p.type in types]
