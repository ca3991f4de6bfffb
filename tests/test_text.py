import pytest

from estimaterecon.text import (
    KEYWORD_SYNONYMS,
    build_synonym_table,
    contains_phrase,
    iter_synonym_pairs,
    jaccard_similarity,
    normalize_text,
    text_similarity,
    word_overlap,
)


def test_normalize_text_strips_punctuation_and_case():
    assert normalize_text("  Tape & Mud,   Drywall! ") == "tape mud drywall"
    assert normalize_text(None) == ""
    assert normalize_text("R&R") == "r r"


def test_text_similarity_tiers():
    assert text_similarity("Paint walls", "paint  WALLS") == 1.0
    assert text_similarity("paint walls", "paint walls two coats") == pytest.approx(0.9)
    assert text_similarity("paint walls", "paint walls two coats", containment_score=0.8) == pytest.approx(0.8)
    assert text_similarity("install drywall", "remove drywall") == pytest.approx(1 / 3)
    assert text_similarity("", "anything") == 0.0


def test_jaccard_ignores_short_words():
    assert jaccard_similarity("a to drywall", "drywall") == 1.0
    assert jaccard_similarity("", "") == 0.0


def test_word_overlap_is_relative_to_longer_text():
    assert word_overlap("install drywall sheet", "install drywall") == pytest.approx(2 / 3)
    assert word_overlap("", "drywall") == 0.0


def test_contains_phrase_respects_word_boundaries():
    assert contains_phrase("Paint wall - bedroom", "wall")
    assert not contains_phrase("Replace drywall in hallway", "wall")
    assert not contains_phrase("Replace drywall", "")


def test_canonicalize_replaces_longest_surface_form_first():
    table = build_synonym_table()

    assert table.canonicalize("Drywall tape and joint compound") == "tape and mud"
    assert table.canonicalize("R&R baseboard") == "remove and replace baseboard"
    assert table.canonicalize("") == ""


def test_first_key_wins_for_shared_surface_forms():
    table = build_synonym_table()

    assert table.canonical("underlayment") == "underlayment"
    assert table.canonical("padding") == "carpet pad"


def test_taught_pairs_are_symmetric_and_do_not_touch_builtins():
    table = build_synonym_table([("demo", "tear out")])

    assert table.matches("tear out drywall", "demo")
    assert table.matches("demo kitchen cabinets", "tear out")
    assert "demo" not in KEYWORD_SYNONYMS
    assert not build_synonym_table().matches("tear out drywall", "demo")


def test_taught_pairs_append_to_existing_entries():
    table = build_synonym_table([{"termA": "tape", "termB": "fiberglass mesh"}])

    assert "fiberglass mesh" in table.get("tape")
    assert "taping" in table.get("tape")


def test_malformed_synonym_records_are_skipped():
    records = [("a",), {"termA": "x"}, ("a", "b"), {"term_a": "c", "term_b": "d"}, 42]

    assert list(iter_synonym_pairs(records)) == [("a", "b"), ("c", "d")]
