"""Inline mention markup: ``@[type:name]`` and ``@[type:name|alias]``.

Mentions are rewritten to plain text before embedding so the embedded text
reads naturally: ``"alias name"`` when an alias is given, else ``"name"``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from archivist.db.models import ObjectType

if TYPE_CHECKING:
    from archivist.db.repository import Repository

_TYPES = "|".join(t.value for t in ObjectType)
MENTION_RE: re.Pattern[str] = re.compile(
    rf"@\[({_TYPES}):([^|\]]+)(?:\|([^\]]+))?\]"
)


@dataclass(frozen=True)
class Mention:
    type: ObjectType
    name: str
    alias: str | None
    start: int
    end: int


def parse_mentions(text: str) -> list[Mention]:
    """Return every mention in *text*, in order of appearance."""
    return [
        Mention(
            type=ObjectType(m.group(1)),
            name=m.group(2).strip(),
            alias=m.group(3).strip() if m.group(3) else None,
            start=m.start(),
            end=m.end(),
        )
        for m in MENTION_RE.finditer(text)
    ]


def _replace(match: re.Match[str]) -> str:
    name = match.group(2).strip()
    alias = match.group(3)
    if alias:
        return f"{alias.strip()} {name}"
    return name


def normalize_mentions(text: str) -> str:
    """Rewrite mention markup in *text* into plain text."""
    return MENTION_RE.sub(_replace, text)


def resolve_mentions(repo: Repository, text: str) -> list[str]:
    """Return ids of objects referenced by mentions in *text*.

    A mention matches objects of its type whose name or alias equals the
    mentioned name. Ids are de-duplicated in first-mention order; unknown
    names are ignored.
    """
    ids: list[str] = []
    for mention in parse_mentions(text):
        for obj in repo.find_objects_by_name(mention.name, mention.type):
            if obj.id not in ids:
                ids.append(obj.id)
    return ids
