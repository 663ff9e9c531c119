"""Deterministic keyword rule engine for transaction categorization.

Rules are an ordered table of ``(category, keywords)`` pairs loaded once per process from
``data/category_rules.json`` (or ``Settings.category_rules_file``). The first rule with a
keyword that passes the trailing word-boundary guard wins. Bank descriptions carry
prefixed codes such as ``ATT*`` or ``SQ *``, so only the character after a keyword is
checked, never the one before it.
"""

import json
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import NamedTuple

from statement_ingest.core.models import CategorySource
from statement_ingest.core.settings import get_settings


class CategoryRule(NamedTuple):
    """One categorization rule: lowercase keyword substrings mapped to a category."""

    category: str
    keywords: tuple[str, ...]


class CategoryMatch(NamedTuple):
    """Result of a successful rule match."""

    category: str
    source: CategorySource = CategorySource.AUTO


def parse_rules(raw: list[dict]) -> tuple[CategoryRule, ...]:
    """Build an immutable rule table from its JSON form, preserving order."""
    rules = []
    for entry in raw:
        keywords = tuple(str(k).lower() for k in entry["keywords"] if k)
        rules.append(CategoryRule(category=str(entry["category"]), keywords=keywords))
    return tuple(rules)


@lru_cache
def load_rules(path: str | None = None) -> tuple[CategoryRule, ...]:
    """Load a rule table from ``path``, or the packaged default table."""
    if path:
        text = Path(path).read_text(encoding="utf-8")
    else:
        text = resources.files("statement_ingest.data").joinpath("category_rules.json").read_text(encoding="utf-8")
    return parse_rules(json.loads(text))


def default_rules() -> tuple[CategoryRule, ...]:
    """Return the rule table configured for this process."""
    return load_rules(get_settings().category_rules_file)


def _keyword_matches(text: str, keyword: str) -> bool:
    idx = text.find(keyword)
    if idx == -1:
        return False
    end = idx + len(keyword)
    # "mobil" must not match inside "mobile"
    return end >= len(text) or not ("a" <= text[end] <= "z")


def categorize(description: str | None, rules: tuple[CategoryRule, ...] | None = None) -> CategoryMatch | None:
    """Assign a category to a transaction description, or ``None`` when no rule matches."""
    if not description:
        return None
    text = description.lower()
    for rule in rules if rules is not None else default_rules():
        for keyword in rule.keywords:
            if _keyword_matches(text, keyword):
                return CategoryMatch(category=rule.category)
    return None
