"""Message-template rendering for personalized welcome scripts.

A creator authors a template such as ``"Hi {name}, welcome to {plan}!"``; each
of the five fixed placeholders is replaced literally (case-sensitive, every
occurrence). Any other text, including unknown ``{tokens}`` and stray braces,
passes through untouched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

PLACEHOLDERS = ("{name}", "{email}", "{username}", "{plan}", "{date}")

_PLACEHOLDER_RE = re.compile("|".join(re.escape(token) for token in PLACEHOLDERS))


@dataclass(frozen=True)
class TemplateAttributes:
    name: str | None = None
    email: str | None = None
    username: str | None = None
    plan_name: str | None = None


def format_date(value: date) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def render(template: str, attrs: TemplateAttributes, *, today: date | None = None) -> str:
    # Single pass so substituted values are never rescanned for placeholders.
    replacements = {
        "{name}": attrs.name or "there",
        "{email}": attrs.email or "",
        "{username}": attrs.username or "",
        "{plan}": attrs.plan_name or "our community",
        "{date}": format_date(today or date.today()),
    }
    return _PLACEHOLDER_RE.sub(lambda match: replacements[match.group(0)], template)
