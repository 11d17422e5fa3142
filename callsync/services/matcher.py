"""Cross-provider reconciliation of canonical call records.

The same real-world call can show up once in the telephony history and once
in the conversation platform. ``reconcile`` folds such pairs into a single
``MergedCallRecord``:

1. Walk the anchor records in their given order.
2. For each anchor, take the first not-yet-consumed candidate (in the
   candidates' given order) whose start time is strictly less than
   ``window_seconds`` away. This is first-match, not nearest-match: a
   later but closer candidate loses to an earlier one inside the window.
3. Append the candidates nobody consumed, unchanged.
4. Sort everything by timestamp descending; equal timestamps keep their
   input order.
"""
from typing import List, Optional, Sequence, Union

from callsync.schemas import CallSource, CanonicalCallRecord, MergedCallRecord

DEFAULT_WINDOW_SECONDS = 300

UnifiedRecord = Union[CanonicalCallRecord, MergedCallRecord]


def _prefer(match_value, anchor_value):
    if match_value is None or match_value == "":
        return anchor_value
    return match_value


def merge_pair(anchor: CanonicalCallRecord, match: CanonicalCallRecord) -> MergedCallRecord:
    """Identity and billing fields come from the anchor, content from the match."""
    return MergedCallRecord(
        external_id=anchor.external_id,
        source=CallSource.MERGED,
        caller_number=anchor.caller_number,
        duration_seconds=anchor.duration_seconds,
        status=anchor.status,
        cost=anchor.cost,
        timestamp=anchor.timestamp,
        transcription=_prefer(match.transcription, anchor.transcription),
        summary=_prefer(match.summary, anchor.summary),
        sentiment=_prefer(match.sentiment, anchor.sentiment),
        audio_url=_prefer(match.audio_url, anchor.audio_url),
        agent_id=_prefer(match.agent_id, anchor.agent_id),
        primary_external_id=anchor.external_id,
        primary_source=anchor.source,
        secondary_external_id=match.external_id,
        secondary_source=match.source,
    )


def find_first_match(
    anchor: CanonicalCallRecord,
    candidates: Sequence[CanonicalCallRecord],
    consumed: List[bool],
    window_seconds: float,
) -> Optional[int]:
    for index, candidate in enumerate(candidates):
        if consumed[index]:
            continue
        delta = abs((candidate.timestamp - anchor.timestamp).total_seconds())
        if delta < window_seconds:
            return index
    return None


def reconcile(
    anchors: Sequence[CanonicalCallRecord],
    candidates: Sequence[CanonicalCallRecord],
    window_seconds: float = DEFAULT_WINDOW_SECONDS,
) -> List[UnifiedRecord]:
    consumed = [False] * len(candidates)
    combined: List[UnifiedRecord] = []
    for anchor in anchors:
        index = find_first_match(anchor, candidates, consumed, window_seconds)
        if index is None:
            combined.append(anchor)
            continue
        consumed[index] = True
        combined.append(merge_pair(anchor, candidates[index]))
    combined.extend(candidate for index, candidate in enumerate(candidates) if not consumed[index])
    return sorted(combined, key=lambda record: record.timestamp, reverse=True)
