"""Drift resolution: tell real statement changes from formatting noise.

The remote service may hand statements back in a different textual form than
they were submitted, so comparing desired against observed text would report
drift on every pass. Instead, the fingerprint of what was last *submitted* is
kept together with the etag observed right after that write.

A difference is suppressed only when both hold:
1. The desired statements fingerprint equals the stored fingerprint
2. The observed etag equals the etag recorded after the last write

An etag mismatch means someone changed the resource out-of-band, so a
matching fingerprint alone is never enough.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Sequence


class DriftType:
    CONTENT = "content_drift"  # Desired statements differ from last applied
    OUT_OF_BAND = "out_of_band_drift"  # Remote modified since last write
    UNTRACKED = "untracked"  # No write has been recorded yet


def fingerprint(statements: Sequence[str]) -> str:
    """
    Fingerprint an ordered statement list.

    The list is encoded as a canonical JSON array, so element boundaries are
    unambiguous: ["a", "b"] and ["a#b"] never share an encoding.
    """
    encoded = json.dumps(list(statements), ensure_ascii=False, separators=(",", ":"))
    return "sha256:" + hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def legacy_fingerprint(statements: Sequence[str], separator: str = "#") -> str:
    """
    md5 of the statements joined with a separator.

    Collides whenever a statement contains the separator. Only used to
    recognise fingerprints recorded by older tooling; never stored.
    """
    joined = separator.join(statements)
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


def _same(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.casefold() == b.casefold()


@dataclass
class DriftDecision:
    """Outcome of comparing desired statements against the last write."""

    suppress: bool
    new_fingerprint: str
    drift_types: list[str] = field(default_factory=list)
    details: list[str] = field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return not self.suppress

    def summary(self) -> str:
        if self.suppress:
            return "statements: no drift"
        return f"statements: DRIFT [{', '.join(self.drift_types)}]"


class DriftResolver:
    """Decides whether a statement difference must propagate as an update."""

    def __init__(self, *, accept_legacy: bool = False):
        # When set, a stored md5 from the old "#"-joined scheme is honoured.
        self.accept_legacy = accept_legacy

    def _fingerprint_matches(self, stored: str | None, statements: Sequence[str], new: str) -> bool:
        if _same(stored, new):
            return True
        if self.accept_legacy and stored and not stored.startswith("sha256:"):
            return _same(stored, legacy_fingerprint(statements))
        return False

    def resolve(
        self,
        *,
        stored_fingerprint: str | None,
        last_applied_etag: str | None,
        desired_statements: Sequence[str],
        observed_etag: str | None,
    ) -> DriftDecision:
        new = fingerprint(desired_statements)
        decision = DriftDecision(suppress=False, new_fingerprint=new)

        if not stored_fingerprint or not last_applied_etag:
            decision.drift_types.append(DriftType.UNTRACKED)
            decision.details.append("No successful write recorded for these statements.")
            return decision

        fingerprint_ok = self._fingerprint_matches(stored_fingerprint, desired_statements, new)
        etag_ok = _same(observed_etag, last_applied_etag)

        if not fingerprint_ok:
            decision.drift_types.append(DriftType.CONTENT)
            decision.details.append("Desired statements differ from the last applied statements.")
        if not etag_ok:
            decision.drift_types.append(DriftType.OUT_OF_BAND)
            decision.details.append(
                f"Remote etag {observed_etag!r} differs from {last_applied_etag!r} recorded after the last write."
            )

        decision.suppress = fingerprint_ok and etag_ok
        return decision
