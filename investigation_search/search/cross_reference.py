"""
Cross-Reference Store
Deduplicates fetched records by content, tracks which criteria each record
matched, and ranks records by relevance.
"""

import re
import json
import hashlib
import logging
import threading
from typing import Any, Dict, Iterator, List, Optional, Tuple
from dataclasses import dataclass, field

from rapidfuzz import fuzz

from investigation_search.agents.query_planner import Criterion
from investigation_search.config import Config, CATEGORY_WEIGHTS

logger = logging.getLogger(__name__)

# Field match scores
EXACT_SCORE = 1.0
CONTAINS_SCORE = 0.8
NAME_PART_FACTOR = 0.7
LOCATION_OVERLAP_SCORE = 0.6
NAME_FUZZY_THRESHOLD = 85


def record_key(table: str, record: Dict[str, Any]) -> str:
    """Content key: identical records from the same table share one key"""
    payload = json.dumps(record, sort_keys=True, default=str)
    return f"{table}:{hashlib.sha1(payload.encode('utf-8')).hexdigest()}"


def iter_fields(record: Any, prefix: str = '') -> Iterator[Tuple[str, str]]:
    """Yield (field path, text value) for every scalar in a nested record"""
    if isinstance(record, dict):
        for key, value in record.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            yield from iter_fields(value, path)
    elif isinstance(record, (list, tuple)):
        for index, value in enumerate(record):
            yield from iter_fields(value, f"{prefix}[{index}]")
    elif record is not None and record != '':
        yield prefix, str(record)


def score_field(criterion: Criterion, value: str) -> float:
    """How well one field value matches a criterion, 0 to 1"""
    target = criterion.normalized_value
    text = value.strip().lower()
    if not target or not text:
        return 0.0

    if criterion.category == 'phone':
        digits = re.sub(r'\D', '', text)
        if digits == target or (len(digits) == 12 and digits.endswith(target)):
            return EXACT_SCORE
        return CONTAINS_SCORE if target in digits else 0.0

    if text == target:
        return EXACT_SCORE
    if target in text:
        return CONTAINS_SCORE

    if criterion.category == 'name':
        parts = target.split()
        matched = [p for p in parts if len(p) > 2 and p in text]
        best = 0.0
        if parts and len(matched) / len(parts) > 0.5:
            best = NAME_PART_FACTOR * len(matched) / len(parts)
        ratio = fuzz.token_sort_ratio(target, text)
        if ratio >= NAME_FUZZY_THRESHOLD:
            best = max(best, ratio / 100.0)
        return best

    if criterion.category == 'location':
        if text in target and len(text) > 2:
            return LOCATION_OVERLAP_SCORE

    return 0.0


def evaluate_record(record: Dict[str, Any], criterion: Criterion) -> Tuple[float, Dict[str, str]]:
    """Best field score for a criterion and the fields that matched"""
    best = 0.0
    highlights = {}
    for path, value in iter_fields(record):
        score = score_field(criterion, value)
        if score > 0:
            highlights[path] = value
            best = max(best, score)
    return best, highlights


@dataclass
class StoredRecord:
    """A unique fetched record and the criteria it satisfied"""
    key: str
    table: str
    raw_fields: Dict[str, Any]
    matched_criteria: List[str] = field(default_factory=list)
    relevance_score: float = 0.0
    highlights: Dict[str, str] = field(default_factory=dict)
    secondary_scores: Dict[str, float] = field(default_factory=dict)

    @property
    def match_count(self) -> int:
        return len(self.matched_criteria)

    def to_dict(self) -> Dict:
        return {
            'id': self.key,
            'table': self.table,
            'record': self.raw_fields,
            'matched_criteria': list(self.matched_criteria),
            'match_count': self.match_count,
            'relevance_score': round(self.relevance_score, 3),
            'highlights': dict(self.highlights),
            'secondary_scores': {k: round(v, 3) for k, v in self.secondary_scores.items()},
        }


class CrossReferenceStore:
    """
    Session-owned record store.

    upsert() is safe to call from several fetch threads at once. After the
    search phase, evaluate_criteria() checks every record against the
    criteria it was not fetched for, and partition() ranks the result.
    """

    def __init__(self, criteria: List[Criterion], bonus: Optional[float] = None,
                 min_match_score: Optional[float] = None,
                 category_weights: Optional[Dict[str, float]] = None):
        self.criteria = {c.id: c for c in criteria}
        self.bonus = Config.MULTI_MATCH_BONUS if bonus is None else bonus
        self.min_match_score = Config.MIN_SECONDARY_MATCH if min_match_score is None else min_match_score
        self.category_weights = dict(CATEGORY_WEIGHTS)
        if category_weights:
            self.category_weights.update(category_weights)

        self._records: Dict[str, StoredRecord] = {}
        self._lock = threading.Lock()
        self.stats = {
            'upserts': 0,
            'created': 0,
            'merged': 0,
        }

    def __len__(self):
        return len(self._records)

    @property
    def records(self) -> List[StoredRecord]:
        with self._lock:
            return list(self._records.values())

    def get(self, key: str) -> Optional[StoredRecord]:
        return self._records.get(key)

    def upsert(self, table: str, record: Dict[str, Any], criterion_id: str) -> bool:
        """
        Insert a record or add a criterion to an existing one.

        Returns True when the record was new.
        """
        key = record_key(table, record)
        with self._lock:
            self.stats['upserts'] += 1
            stored = self._records.get(key)
            created = stored is None
            if created:
                stored = StoredRecord(key=key, table=table, raw_fields=record)
                self._records[key] = stored
                self.stats['created'] += 1
            else:
                self.stats['merged'] += 1
            if criterion_id not in stored.matched_criteria:
                stored.matched_criteria.append(criterion_id)
            stored.relevance_score = self.score(stored)
        return created

    def score(self, stored: StoredRecord) -> float:
        """Σ category weight × (1 + bonus × (match count − 1))"""
        if not stored.matched_criteria:
            return 0.0
        total = 0.0
        for criterion_id in stored.matched_criteria:
            criterion = self.criteria.get(criterion_id)
            category = criterion.category if criterion else 'keyword'
            total += self.category_weights.get(category, 0)
        return total * (1 + self.bonus * (stored.match_count - 1))

    def evaluate_criteria(self, criteria: Optional[List[Criterion]] = None) -> int:
        """
        Check every stored record against criteria it has not matched yet.

        Secondary criteria only ever add matches; no record is removed.
        Returns the number of new matches.
        """
        criteria = criteria if criteria is not None else list(self.criteria.values())
        added = 0
        with self._lock:
            for stored in self._records.values():
                for criterion in criteria:
                    if criterion.id in stored.matched_criteria:
                        continue
                    score, highlights = evaluate_record(stored.raw_fields, criterion)
                    if score >= self.min_match_score:
                        stored.matched_criteria.append(criterion.id)
                        stored.secondary_scores[criterion.id] = score
                        stored.highlights.update(highlights)
                        added += 1
                stored.relevance_score = self.score(stored)
        logger.info(f"Cross-referenced {len(self._records)} records against {len(criteria)} criteria: {added} new matches")
        return added

    def ranked(self) -> List[StoredRecord]:
        return sorted(
            self.records,
            key=lambda r: (r.relevance_score, r.match_count, sum(r.secondary_scores.values())),
            reverse=True,
        )

    def partition(self, total_criteria: Optional[int] = None) -> Tuple[List[StoredRecord], List[StoredRecord]]:
        """Split ranked records into exact (matched every criterion) and partial"""
        total = len(self.criteria) if total_criteria is None else total_criteria
        exact, partial = [], []
        for stored in self.ranked():
            if total and stored.match_count >= total:
                exact.append(stored)
            else:
                partial.append(stored)
        return exact, partial
