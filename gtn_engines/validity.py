"""
gtn_engines.validity -- Resolve the single effective record per entity and date.

Responsibility:
    Index time-bounded records (customer discounts, AIP versions) by entity
    once, then answer "which record is effective for entity X on date D"
    for one entity (``resolve``) or for every entity in one pass
    (``resolve_all``).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Leaf component: depends only on gtn_kernel.
    Consumed by the price list resolver and, through it, the waterfall.

Invariants enforced:
    - Windows are inclusive on both ends; an open ``valid_to`` never ends.
    - At most one record is returned per entity and date.  When windows
      overlap, the record with the latest ``valid_from`` wins, then the
      narrowest window (an open window is the widest); any remaining tie
      raises ``AmbiguousValidityError`` -- never input order.
    - Records are bucketed and sorted once at construction; a lookup
      bisects the entity's bucket instead of scanning the full record set.
    - The index is read-only after construction and safe to share across
      threads.

Failure modes:
    - InvalidValidityWindowError at construction if valid_to < valid_from.
    - AmbiguousValidityError from ``resolve`` on an unresolvable overlap.
      ``resolve_all`` collects these per entity instead of raising.

Usage:
    from gtn_engines.validity import ValidityIndex

    index = ValidityIndex(discounts, key=lambda d: d.customer_id)
    discount = index.resolve("wh-a", date(2025, 3, 1))   # None -> 0%
"""

from __future__ import annotations

import time
from bisect import bisect_right
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Generic, TypeVar

from gtn_kernel.domain.records import TimeBounded
from gtn_kernel.exceptions import AmbiguousValidityError, InvalidValidityWindowError
from gtn_kernel.logging_config import get_logger
from gtn_engines.tracer import traced_engine

logger = get_logger("engines.validity")

R = TypeVar("R", bound=TimeBounded)


@dataclass(frozen=True)
class ValidityResolution(Generic[R]):
    """
    Outcome of resolving every entity on one date.

    Every indexed entity appears in exactly one of ``resolved``, ``missing``
    or ``ambiguous``.
    """

    as_of_date: date
    resolved: Mapping[str, R] = field(default_factory=dict)
    missing: tuple[str, ...] = ()
    ambiguous: Mapping[str, AmbiguousValidityError] = field(default_factory=dict)

    def get(self, entity_id: str) -> R | None:
        """Resolved record for an entity, None when absent.

        Raises:
            AmbiguousValidityError: If the entity's windows were ambiguous.
        """
        if entity_id in self.ambiguous:
            raise self.ambiguous[entity_id]
        return self.resolved.get(entity_id)


@dataclass(frozen=True)
class ValidityOverlap:
    """Two records of the same entity whose windows intersect."""

    entity_id: str
    first_id: str
    second_id: str
    overlap_from: date
    overlap_to: date | None  # None: both windows are open-ended


class ValidityIndex(Generic[R]):
    """
    Read-only interval index over time-bounded records.

    Contract:
        ``resolve`` returns exactly one record or None for any entity/date,
        or raises AmbiguousValidityError.
    Guarantees:
        - Deterministic: identical inputs give identical answers regardless
          of the order records were supplied in.
        - Lookup cost is a bisect plus a scan of the entity's own records
          that start on or before the date.
    Non-goals:
        - Does not repair overlapping data; ``overlaps`` reports it.
    """

    def __init__(
        self,
        records: Iterable[R],
        key: Callable[[R], str],
        name: str = "records",
    ) -> None:
        t0 = time.monotonic()
        self._name = name
        buckets: dict[str, list[R]] = defaultdict(list)
        count = 0
        for record in records:
            if record.valid_to is not None and record.valid_to < record.valid_from:
                logger.error("validity_window_inverted", extra={
                    "index": name,
                    "record_id": record.record_id,
                    "valid_from": str(record.valid_from),
                    "valid_to": str(record.valid_to),
                })
                raise InvalidValidityWindowError(
                    record.record_id, record.valid_from, record.valid_to,
                )
            buckets[key(record)].append(record)
            count += 1

        self._buckets: dict[str, tuple[R, ...]] = {}
        self._starts: dict[str, tuple[date, ...]] = {}
        for entity_id, bucket in buckets.items():
            ordered = tuple(sorted(bucket, key=lambda r: (r.valid_from, r.record_id)))
            self._buckets[entity_id] = ordered
            self._starts[entity_id] = tuple(r.valid_from for r in ordered)

        logger.debug("validity_index_built", extra={
            "index": name,
            "record_count": count,
            "entity_count": len(self._buckets),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })

    @property
    def name(self) -> str:
        return self._name

    @property
    def entity_ids(self) -> tuple[str, ...]:
        """Indexed entity ids in sorted order."""
        return tuple(sorted(self._buckets))

    def records_for(self, entity_id: str) -> tuple[R, ...]:
        """All records of one entity, ordered by valid_from."""
        return self._buckets.get(entity_id, ())

    def __len__(self) -> int:
        return sum(len(b) for b in self._buckets.values())

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._buckets

    @traced_engine("validity", "1.0", fingerprint_fields=("entity_id", "as_of_date"))
    def resolve(self, entity_id: str, as_of_date: date) -> R | None:
        """
        Effective record for one entity on one date.

        Postconditions:
            Returns the single covering record, or None when no window
            covers the date (NotFound is an expected absence).

        Raises:
            AmbiguousValidityError: If overlapping windows survive the
                tie-break.
        """
        return self._select(entity_id, as_of_date, self._candidates(entity_id, as_of_date))

    @traced_engine("validity", "1.0", fingerprint_fields=("as_of_date",))
    def resolve_all(self, as_of_date: date) -> ValidityResolution[R]:
        """
        Resolve every indexed entity on one date in a single pass.

        Ambiguity is a hard failure for the affected entity only: it is
        collected in ``ambiguous`` and the remaining entities still resolve.
        """
        resolved: dict[str, R] = {}
        missing: list[str] = []
        ambiguous: dict[str, AmbiguousValidityError] = {}

        for entity_id in self.entity_ids:
            try:
                record = self._select(
                    entity_id, as_of_date, self._candidates(entity_id, as_of_date),
                )
            except AmbiguousValidityError as exc:
                ambiguous[entity_id] = exc
                continue
            if record is None:
                missing.append(entity_id)
            else:
                resolved[entity_id] = record

        logger.info("validity_resolve_all_completed", extra={
            "index": self._name,
            "as_of_date": str(as_of_date),
            "resolved_count": len(resolved),
            "missing_count": len(missing),
            "ambiguous_count": len(ambiguous),
        })

        return ValidityResolution(
            as_of_date=as_of_date,
            resolved=resolved,
            missing=tuple(missing),
            ambiguous=ambiguous,
        )

    def overlaps(self, entity_id: str | None = None) -> list[ValidityOverlap]:
        """
        List every pair of intersecting windows (data-integrity audit).

        Args:
            entity_id: Restrict the audit to one entity; all when None.
        """
        entity_ids = (entity_id,) if entity_id is not None else self.entity_ids
        found: list[ValidityOverlap] = []
        for eid in entity_ids:
            bucket = self._buckets.get(eid, ())
            for i, first in enumerate(bucket):
                for second in bucket[i + 1:]:
                    # Sorted by start: once a later record starts after
                    # ``first`` ends, no further record can intersect it.
                    if first.valid_to is not None and second.valid_from > first.valid_to:
                        break
                    found.append(ValidityOverlap(
                        entity_id=eid,
                        first_id=first.record_id,
                        second_id=second.record_id,
                        overlap_from=second.valid_from,
                        overlap_to=_earliest_end(first.valid_to, second.valid_to),
                    ))
        if found:
            logger.warning("validity_overlaps_detected", extra={
                "index": self._name,
                "overlap_count": len(found),
                "entities": sorted({o.entity_id for o in found}),
            })
        return found

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _candidates(self, entity_id: str, as_of_date: date) -> list[R]:
        bucket = self._buckets.get(entity_id)
        if not bucket:
            return []
        # Records starting after the date can never cover it.
        upper = bisect_right(self._starts[entity_id], as_of_date)
        return [
            r for r in bucket[:upper]
            if r.valid_to is None or r.valid_to >= as_of_date
        ]

    def _select(self, entity_id: str, as_of_date: date, candidates: list[R]) -> R | None:
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        latest_start = max(r.valid_from for r in candidates)
        tied = [r for r in candidates if r.valid_from == latest_start]

        if len(tied) > 1:
            bounded = [r for r in tied if r.valid_to is not None]
            if bounded:
                narrowest_end = min(r.valid_to for r in bounded)
                tied = [r for r in bounded if r.valid_to == narrowest_end]

        if len(tied) > 1:
            record_ids = sorted(r.record_id for r in tied)
            logger.error("validity_ambiguous", extra={
                "index": self._name,
                "entity_id": entity_id,
                "as_of_date": str(as_of_date),
                "record_ids": record_ids,
            })
            raise AmbiguousValidityError(entity_id, as_of_date, record_ids)

        winner = tied[0]
        logger.warning("validity_overlap_resolved", extra={
            "index": self._name,
            "entity_id": entity_id,
            "as_of_date": str(as_of_date),
            "candidate_ids": sorted(r.record_id for r in candidates),
            "selected_id": winner.record_id,
        })
        return winner


def _earliest_end(a: date | None, b: date | None) -> date | None:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)
