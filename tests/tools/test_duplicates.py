"""Tests for pkb.tools.duplicates: pair detection and name similarity."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest

from pkb.tools.contacts import ContactSnapshot, normalize_identifier
from pkb.tools.duplicates import (
    NAME_SIMILARITY_THRESHOLD,
    REASON_SAME_EMAIL,
    REASON_SAME_PHONE,
    REASON_SIMILAR_NAME,
    bounded_edit_distance,
    detect_duplicate_pairs,
    find_duplicates,
    levenshtein_similarity,
    name_block_keys,
    normalize_name,
)

pytestmark = pytest.mark.unit


def _contact(name: str, *, emails=(), phones=()) -> ContactSnapshot:
    return ContactSnapshot(
        id=uuid.uuid4(),
        display_name=name,
        emails=tuple(normalize_identifier("email", e) for e in emails),
        phones=tuple(normalize_identifier("phone", p) for p in phones),
    )


class TestNormalization:
    def test_email(self):
        assert normalize_identifier("email", "  A@X.com ") == "a@x.com"

    def test_phone_keeps_leading_plus(self):
        assert normalize_identifier("phone", "+1 (555) 010-2030") == "+15550102030"
        assert normalize_identifier("phone", "555.010.2030") == "5550102030"
        assert normalize_identifier("phone", "1+555") == "1555"

    def test_name(self):
        assert normalize_name("  Zoë   O'Brien-Smith ") == "zoe o brien smith"
        assert normalize_name("JOSÉ") == "jose"


class TestLevenshteinSimilarity:
    def test_identical(self):
        assert levenshtein_similarity("abc", "abc") == 1.0

    def test_empty(self):
        assert levenshtein_similarity("", "abc") == 0.0

    def test_one_edit(self):
        assert levenshtein_similarity("jon smith", "john smith") == pytest.approx(0.9)

    def test_symmetric(self):
        a, b = "catherine", "katharine"
        assert levenshtein_similarity(a, b) == levenshtein_similarity(b, a)


class TestDetectDuplicatePairs:
    def test_shared_email_reports_one_pair(self):
        a = _contact("Alice", emails=["a@x.com"])
        b = _contact("Bob", emails=["A@X.com "])
        pairs = detect_duplicate_pairs([a, b])
        assert len(pairs) == 1
        pair = pairs[0]
        assert pair.reason == REASON_SAME_EMAIL
        assert pair.confidence == 1.0
        assert {pair.contact_a, pair.contact_b} == {a.id, b.id}

    def test_pair_is_not_reported_twice(self):
        a = _contact("Alice", emails=["a@x.com", "alt@x.com"], phones=["+1 555 0100"])
        b = _contact("Alicia", emails=["a@x.com", "alt@x.com"], phones=["+15550100"])
        pairs = detect_duplicate_pairs([a, b])
        assert len(pairs) == 1
        # Email is the strongest reason.
        assert pairs[0].reason == REASON_SAME_EMAIL

    def test_order_of_input_does_not_change_pair(self):
        a = _contact("Alice", emails=["a@x.com"])
        b = _contact("Bob", emails=["a@x.com"])
        assert detect_duplicate_pairs([a, b]) == detect_duplicate_pairs([b, a])

    def test_same_phone(self):
        a = _contact("Alice", phones=["+1 (555) 010-2030"])
        b = _contact("Bob", phones=["+15550102030"])
        (pair,) = detect_duplicate_pairs([a, b])
        assert pair.reason == REASON_SAME_PHONE
        assert pair.confidence == 1.0

    def test_similar_name(self):
        a = _contact("John Smith")
        b = _contact("Jon Smith")
        (pair,) = detect_duplicate_pairs([a, b])
        assert pair.reason == REASON_SIMILAR_NAME
        assert pair.confidence == pytest.approx(0.9 * 0.9, abs=1e-3)

    def test_case_and_accent_insensitive_name(self):
        (pair,) = detect_duplicate_pairs([_contact("José Álvarez"), _contact("jose alvarez")])
        assert pair.reason == REASON_SIMILAR_NAME
        assert pair.confidence == pytest.approx(0.9)

    def test_dissimilar_names_not_paired(self):
        assert detect_duplicate_pairs([_contact("John Smith"), _contact("Jane Doe")]) == []

    def test_threshold_is_respected(self):
        a, b = _contact("Jon Smith"), _contact("John Smith")
        assert detect_duplicate_pairs([a, b], threshold=0.95) == []
        assert detect_duplicate_pairs([a, b], threshold=NAME_SIMILARITY_THRESHOLD)

    def test_three_way_email_share_yields_three_pairs(self):
        contacts = [_contact(n, emails=["team@x.com"]) for n in ("Ann", "Ben", "Cat")]
        pairs = detect_duplicate_pairs(contacts)
        assert len(pairs) == 3
        assert len({frozenset((p.contact_a, p.contact_b)) for p in pairs}) == 3

    def test_sorted_by_confidence(self):
        email_pair = [_contact("Ann", emails=["a@x.com"]), _contact("Zed", emails=["a@x.com"])]
        name_pair = [_contact("Jon Smith"), _contact("John Smith")]
        pairs = detect_duplicate_pairs(name_pair + email_pair)
        assert [p.reason for p in pairs] == [REASON_SAME_EMAIL, REASON_SIMILAR_NAME]


async def test_find_duplicates_includes_contact_details():
    a = _contact("Alice", emails=["a@x.com"])
    b = _contact("Alice B", emails=["a@x.com"])
    with patch(
        "pkb.tools.duplicates.load_all_contact_snapshots",
        AsyncMock(return_value=[a, b]),
    ):
        results = await find_duplicates(AsyncMock())
    assert len(results) == 1
    result = results[0]
    assert result["reason"] == REASON_SAME_EMAIL
    details = {result["contact_a_detail"]["id"], result["contact_b_detail"]["id"]}
    assert details == {a.id, b.id}


class TestBoundedEditDistance:
    def test_within_bound(self):
        assert bounded_edit_distance("jon smith", "john smith", 1) == 1

    def test_exceeding_bound_gives_up(self):
        assert bounded_edit_distance("john smith", "jane doe", 1) is None

    def test_length_gap_short_circuits(self):
        assert bounded_edit_distance("al", "alexandra", 2) is None

    def test_matches_full_distance(self):
        assert bounded_edit_distance("kitten", "sitting", 10) == 3


class TestNameBlocking:
    def test_keys_cover_both_ends_of_each_token(self):
        assert name_block_keys("ada lovelace") == {"p:ad", "s:da", "p:lo", "s:ce"}

    def test_typo_inside_one_token_still_paired(self):
        a, b = _contact("Jonathan Smith"), _contact("Jonathon Smith")
        (pair,) = detect_duplicate_pairs([a, b])
        assert pair.reason == REASON_SIMILAR_NAME

    def test_only_names_sharing_a_block_are_compared(self):
        letters = "abcdefghiklmnpqrtuvw"
        strangers = [_contact(f"{ch * 2}q{ch * 2}") for ch in letters]
        a, b = _contact("Jonathan Smith"), _contact("Jonathon Smith")
        with patch(
            "pkb.tools.duplicates.bounded_edit_distance", wraps=bounded_edit_distance
        ) as distance:
            pairs = detect_duplicate_pairs([*strangers, a, b])
        assert distance.call_count == 1
        assert {pairs[0].contact_a, pairs[0].contact_b} == {a.id, b.id}


async def test_find_duplicates_runs_detection_off_the_event_loop():
    a, b = _contact("Ann"), _contact("Anne")
    with (
        patch(
            "pkb.tools.duplicates.load_all_contact_snapshots",
            AsyncMock(return_value=[a, b]),
        ),
        patch("pkb.tools.duplicates.asyncio.to_thread", AsyncMock(return_value=[])) as offload,
    ):
        assert await find_duplicates(AsyncMock(), threshold=0.7) == []
    offload.assert_awaited_once_with(detect_duplicate_pairs, [a, b], 0.7)
