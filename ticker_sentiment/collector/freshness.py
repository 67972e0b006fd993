"""Age-banded re-scrape policy for discovered posts."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple


@dataclass(frozen=True)
class ScrapeRule:
    max_age: timedelta
    interval: timedelta
    description: str = ""


DEFAULT_SCRAPE_RULES: Tuple[ScrapeRule, ...] = (
    ScrapeRule(timedelta(days=1), timedelta(minutes=10), "less than 1 day old"),
    ScrapeRule(timedelta(days=3), timedelta(hours=1), "1-3 days old"),
    ScrapeRule(timedelta(days=7), timedelta(days=1), "3-7 days old"),
)

MAX_POST_AGE = timedelta(days=7)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def rules_from_config(entries: Iterable[Dict[str, Any]]) -> Tuple[ScrapeRule, ...]:
    return tuple(
        ScrapeRule(
            max_age=timedelta(seconds=entry["max_age_seconds"]),
            interval=timedelta(seconds=entry["interval_seconds"]),
            description=entry.get("description", ""),
        )
        for entry in entries
    )


class FreshnessScheduler:
    """
    Decides whether a post is due for another content fetch.

    Rules are matched by the first rule whose ceiling exceeds the post's age,
    so ceilings must be strictly ascending. Posts at or beyond ``max_age`` are
    never scraped, whatever the rules say.
    """

    def __init__(self, rules: Sequence[ScrapeRule] = DEFAULT_SCRAPE_RULES, max_age: timedelta = MAX_POST_AGE):
        rules = tuple(rules)
        for previous, current in zip(rules, rules[1:]):
            if current.max_age <= previous.max_age:
                raise ValueError(
                    f"Scrape rule ceilings must be strictly ascending: {previous.max_age} then {current.max_age}"
                )
        for rule in rules:
            if rule.interval <= timedelta(0):
                raise ValueError(f"Scrape rule interval must be positive: {rule}")
        self.rules = rules
        self.max_age = max_age

    def rule_for(self, post_age: timedelta) -> Optional[ScrapeRule]:
        for rule in self.rules:
            if post_age < rule.max_age:
                return rule
        return None

    def should_scrape(self, post_age: timedelta, since_last_scrape: Optional[timedelta]) -> bool:
        """
        Args:
            post_age: Time since the post was created
            since_last_scrape: Time since the last content fetch, None if never fetched
        """
        if post_age >= self.max_age:
            return False
        if since_last_scrape is None:
            return True
        rule = self.rule_for(post_age)
        if rule is None:
            return False
        return since_last_scrape >= rule.interval

    def is_due(self, post_time: datetime, last_scraped_at: Optional[datetime], now: datetime) -> bool:
        now = as_utc(now)
        since_last = now - as_utc(last_scraped_at) if last_scraped_at is not None else None
        return self.should_scrape(now - as_utc(post_time), since_last)
