"""Tests for mention parsing, normalization and resolution."""

from __future__ import annotations

from archivist.db.models import ObjectType
from archivist.ingest.mentions import normalize_mentions, parse_mentions, resolve_mentions


def test_parse_mentions_with_and_without_alias():
    text = "Ask @[person:Ada Lovelace|Ada] about @[document:Notes on the Engine]."
    mentions = parse_mentions(text)

    assert len(mentions) == 2
    first, second = mentions
    assert first.type == ObjectType.PERSON
    assert first.name == "Ada Lovelace"
    assert first.alias == "Ada"
    assert text[first.start : first.end] == "@[person:Ada Lovelace|Ada]"
    assert second.type == ObjectType.DOCUMENT
    assert second.alias is None


def test_unknown_type_is_not_a_mention():
    assert parse_mentions("@[spaceship:Enterprise]") == []
    assert normalize_mentions("@[spaceship:Enterprise]") == "@[spaceship:Enterprise]"


def test_normalize_alias_then_name():
    assert normalize_mentions("Hi @[person:Lovelace|Ada]!") == "Hi Ada Lovelace!"


def test_normalize_name_only():
    assert normalize_mentions("See @[meeting:Board 2024-01]") == "See Board 2024-01"


def test_normalize_leaves_plain_text_unchanged():
    text = "No markup here [just brackets] and @ signs."
    assert normalize_mentions(text) == text


def test_resolve_mentions_by_name_and_alias(repo):
    ada = repo.add_object("person", "Ada Lovelace", aliases=["Countess"])
    notes = repo.add_object("document", "Notes")
    repo.add_object("document", "Ada Lovelace")  # same name, other type

    ids = resolve_mentions(
        repo,
        "@[person:Countess] wrote @[document:Notes]; again @[person:Ada Lovelace] and @[letter:Missing]",
    )
    assert ids == [ada.id, notes.id]
