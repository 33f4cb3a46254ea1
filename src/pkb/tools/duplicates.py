"""Duplicate detection over contact snapshots.

Three passes run in order of strength:

1. ``same_email``: a shared normalized email (confidence 1.0)
2. ``same_phone``: a shared normalized phone number (confidence 1.0)
3. ``similar_name``: normalized Levenshtein similarity of the display names at
   or above :data:`NAME_SIMILARITY_THRESHOLD`; confidence is
   ``NAME_CONFIDENCE_SCALE * similarity``

Pairs are unordered and reported once, tagged with the strongest reason found.

The name pass only compares names that share a blocking key (the first or last
two characters of any token), and abandons a comparison as soon as the edit
distance exceeds what the threshold allows. Detection is CPU-bound, so
:func:`find_duplicates` runs it in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import re
import unicodedata
import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from itertools import combinations
from typing import Any

import asyncpg

from pkb.tools.contacts import ContactSnapshot, load_all_contact_snapshots

logger = logging.getLogger(__name__)

NAME_SIMILARITY_THRESHOLD = 0.85
NAME_CONFIDENCE_SCALE = 0.9

REASON_SAME_EMAIL = "same_email"
REASON_SAME_PHONE = "same_phone"
REASON_SIMILAR_NAME = "similar_name"

_BLOCK_KEY_SIZE = 2

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class DuplicatePair:
    contact_a: uuid.UUID
    contact_b: uuid.UUID
    reason: str
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "contact_a": self.contact_a,
            "contact_b": self.contact_b,
            "reason": self.reason,
            "confidence": self.confidence,
        }


def normalize_name(name: str) -> str:
    """Case-fold, strip accents and punctuation, and collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _PUNCTUATION.sub(" ", stripped.casefold()).replace("_", " ")
    return _WHITESPACE.sub(" ", cleaned).strip()


def levenshtein_similarity(a: str, b: str) -> float:
    """Levenshtein edit distance normalized to a similarity in [0, 1].

    ``similarity = 1 - distance / max(len(a), len(b))``.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    longest = max(len(a), len(b))
    distance = bounded_edit_distance(a, b, longest)
    return 0.0 if distance is None else 1.0 - distance / longest


def bounded_edit_distance(a: str, b: str, max_distance: int) -> int | None:
    """Levenshtein distance of *a* and *b*, or ``None`` once it exceeds *max_distance*."""
    if abs(len(a) - len(b)) > max_distance:
        return None
    prev_row = list(range(len(b) + 1))
    for i in range(1, len(a) + 1):
        curr_row = [i] + [0] * len(b)
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            curr_row[j] = min(
                prev_row[j] + 1,
                curr_row[j - 1] + 1,
                prev_row[j - 1] + cost,
            )
        # Row minima never decrease, so no later row can come back under the bound.
        if min(curr_row) > max_distance:
            return None
        prev_row = curr_row
    distance = prev_row[-1]
    return distance if distance <= max_distance else None


def name_block_keys(name: str) -> set[str]:
    """Blocking keys for a normalized name: each token's leading and trailing characters."""
    keys: set[str] = set()
    for token in name.split():
        keys.add("p:" + token[:_BLOCK_KEY_SIZE])
        keys.add("s:" + token[-_BLOCK_KEY_SIZE:])
    return keys


def _pair_key(a: uuid.UUID, b: uuid.UUID) -> tuple[uuid.UUID, uuid.UUID]:
    return (a, b) if str(a) <= str(b) else (b, a)


def _shared_value_pairs(
    contacts: Sequence[ContactSnapshot], attr: str
) -> set[tuple[uuid.UUID, uuid.UUID]]:
    owners: dict[str, set[uuid.UUID]] = defaultdict(set)
    for contact in contacts:
        for value in getattr(contact, attr):
            if value:
                owners[value].add(contact.id)
    pairs: set[tuple[uuid.UUID, uuid.UUID]] = set()
    for ids in owners.values():
        if len(ids) < 2:
            continue
        for a, b in combinations(sorted(ids, key=str), 2):
            pairs.add(_pair_key(a, b))
    return pairs


def _similar_name_pairs(
    contacts: Sequence[ContactSnapshot], threshold: float
) -> dict[tuple[uuid.UUID, uuid.UUID], float]:
    names: dict[uuid.UUID, str] = {}
    blocks: dict[str, list[uuid.UUID]] = defaultdict(list)
    for contact in contacts:
        name = normalize_name(contact.display_name)
        if not name or contact.id in names:
            continue
        names[contact.id] = name
        for key in name_block_keys(name):
            blocks[key].append(contact.id)

    compared: set[tuple[uuid.UUID, uuid.UUID]] = set()
    found: dict[tuple[uuid.UUID, uuid.UUID], float] = {}
    for members in blocks.values():
        for id_a, id_b in combinations(members, 2):
            key = _pair_key(id_a, id_b)
            if key in compared:
                continue
            compared.add(key)
            name_a, name_b = names[id_a], names[id_b]
            longest = max(len(name_a), len(name_b))
            max_distance = int((1.0 - threshold) * longest + 1e-9)
            distance = bounded_edit_distance(name_a, name_b, max_distance)
            if distance is None:
                continue
            similarity = 1.0 - distance / longest
            if similarity >= threshold:
                found[key] = similarity
    logger.debug("Name pass: %d blocks, %d comparisons", len(blocks), len(compared))
    return found


def detect_duplicate_pairs(
    contacts: Iterable[ContactSnapshot],
    threshold: float = NAME_SIMILARITY_THRESHOLD,
) -> list[DuplicatePair]:
    """Find likely-duplicate pairs among *contacts*.

    Returns pairs sorted by confidence (descending), then by the pair's ids,
    so the output is deterministic.
    """
    snapshots = list(contacts)
    results: dict[tuple[uuid.UUID, uuid.UUID], DuplicatePair] = {}

    for key in _shared_value_pairs(snapshots, "emails"):
        results[key] = DuplicatePair(key[0], key[1], REASON_SAME_EMAIL, 1.0)

    for key in _shared_value_pairs(snapshots, "phones"):
        if key not in results:
            results[key] = DuplicatePair(key[0], key[1], REASON_SAME_PHONE, 1.0)

    for key, similarity in _similar_name_pairs(snapshots, threshold).items():
        if key not in results:
            confidence = round(NAME_CONFIDENCE_SCALE * similarity, 4)
            results[key] = DuplicatePair(key[0], key[1], REASON_SIMILAR_NAME, confidence)

    return sorted(
        results.values(),
        key=lambda p: (-p.confidence, str(p.contact_a), str(p.contact_b)),
    )


async def find_duplicates(
    pool: asyncpg.Pool,
    *,
    threshold: float = NAME_SIMILARITY_THRESHOLD,
    batch_size: int = 500,
) -> list[dict[str, Any]]:
    """Detect duplicate candidates among all live contacts.

    Each result carries the two contacts' public fields alongside the pair.
    """
    snapshots = await load_all_contact_snapshots(pool, batch_size=batch_size)
    by_id = {s.id: s for s in snapshots}
    pairs = await asyncio.to_thread(detect_duplicate_pairs, snapshots, threshold)
    logger.info("Duplicate scan: %d contacts, %d candidate pairs", len(snapshots), len(pairs))
    return [
        {
            **pair.to_dict(),
            "contact_a_detail": by_id[pair.contact_a].to_dict(),
            "contact_b_detail": by_id[pair.contact_b].to_dict(),
        }
        for pair in pairs
    ]
