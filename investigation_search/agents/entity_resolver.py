"""
Entity Resolver
Collapses near-duplicate entity mentions ("Rahul Sharma", "RAHUL SHARMA",
"Rahul Sharmaa") into one canonical entity before graph construction.

Mentions are grouped by blocking keys and only compared within a block;
matches are merged transitively with union-find.
"""

import re
import logging
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple
from dataclasses import dataclass, field

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

from investigation_search.agents.entity_extractor import normalize_phone
from investigation_search.agents.gazetteer import NAME_PREFIXES
from investigation_search.config import Config

logger = logging.getLogger(__name__)

PHONETIC_TYPES = {'person', 'organization'}

# Consonant groups; two-letter clusters are matched before single letters
PHONETIC_DIGRAPHS = {
    'bh': '1', 'ph': '1',
    'ch': '2',
    'dh': '3', 'th': '3',
    'sh': '7',
}
PHONETIC_LETTERS = {
    'b': '1', 'p': '1',
    'c': '2', 'k': '2', 'q': '2',
    'd': '3', 't': '3',
    'l': '4',
    'm': '5', 'n': '5',
    'r': '6',
    's': '7',
    'v': '8', 'w': '8', 'f': '8',
    'j': '9', 'g': '9', 'z': '9',
}

MAX_BLOCK_SIZE = 500


def normalize_name(value: str) -> str:
    """Lowercase, strip punctuation, honorifics and relation markers"""
    text = re.sub(r"[^a-z/\s]", ' ', value.lower())
    tokens = [t for t in text.split() if t not in NAME_PREFIXES]
    return ' '.join(t.replace('/', '') for t in tokens)


def canonicalize(entity_type: str, value: str) -> str:
    """Normalized comparison form of a value for its entity type"""
    value = str(value).strip()
    if entity_type == 'phone':
        return normalize_phone(value) or re.sub(r'\D', '', value)
    if entity_type in ('email', 'url'):
        return value.lower()
    if entity_type in ('pan', 'vehicle', 'ifsc', 'id'):
        return re.sub(r'[\s-]', '', value).upper()
    if entity_type in ('aadhaar', 'account', 'pincode'):
        return re.sub(r'\D', '', value) or value
    if entity_type == 'person':
        return normalize_name(value)
    return re.sub(r'\s+', ' ', value.lower())


def phonetic_code(value: str) -> str:
    """
    Soundex-style code tuned for transliterated Indian names.

    The first letter is kept, remaining consonant groups become digits,
    vowels are dropped and repeated digits collapse:
    "Mohammad", "Mohammed" and "Muhammad" all give "M3".
    """
    codes = []
    for token in re.sub(r'[^a-z\s]', '', value.lower()).split():
        head = 2 if token[:2] in PHONETIC_DIGRAPHS else 1
        digits = []
        last = PHONETIC_DIGRAPHS.get(token[:2]) or PHONETIC_LETTERS.get(token[0], '')
        i = head
        while i < len(token):
            pair = token[i:i + 2]
            if pair in PHONETIC_DIGRAPHS:
                code = PHONETIC_DIGRAPHS[pair]
                i += 2
            else:
                code = PHONETIC_LETTERS.get(token[i], '')
                i += 1
            if code and code != last:
                digits.append(code)
            if code:
                last = code
        codes.append(token[0].upper() + ''.join(digits))
    return ' '.join(codes)


@dataclass
class EntityMention:
    """One occurrence of an entity value in a record"""
    id: str
    entity_type: str
    value: str
    normalized_value: str = ''
    aliases: List[str] = field(default_factory=list)
    context: str = ''
    source: str = ''

    def __post_init__(self):
        if not self.normalized_value:
            self.normalized_value = canonicalize(self.entity_type, self.value)


@dataclass
class ResolvedEntity:
    """A cluster of mentions judged to be the same real entity"""
    id: str
    entity_type: str
    canonical_value: str
    normalized_value: str
    aliases: List[str]
    member_ids: List[str]
    sources: List[str]

    @property
    def occurrence_count(self) -> int:
        return len(self.member_ids)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'type': self.entity_type,
            'canonical_value': self.canonical_value,
            'aliases': self.aliases,
            'occurrence_count': self.occurrence_count,
            'sources': self.sources,
        }


class UnionFind:
    """Disjoint sets with path compression"""

    def __init__(self, items: Iterable[str]):
        self.parent = {item: item for item in items}
        self.rank = {item: 0 for item in self.parent}

    def find(self, item: str) -> str:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: str, b: str):
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        if self.rank[root_a] < self.rank[root_b]:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        if self.rank[root_a] == self.rank[root_b]:
            self.rank[root_a] += 1

    def groups(self) -> Dict[str, List[str]]:
        result = defaultdict(list)
        for item in self.parent:
            result[self.find(item)].append(item)
        return result


@dataclass
class _Candidate:
    """All mentions sharing one (type, normalized value)"""
    key: str
    entity_type: str
    normalized_value: str
    mentions: List[EntityMention]

    @property
    def aliases(self) -> Set[str]:
        names = set()
        for mention in self.mentions:
            names.add(mention.value.lower())
            names.update(a.lower() for a in mention.aliases)
        return names

    @property
    def context(self) -> str:
        return ' '.join(sorted({m.context for m in self.mentions if m.context}))


class EntityResolver:
    """Blocking plus similarity-based deduplication of entity mentions"""

    def __init__(self, threshold: Optional[float] = None):
        self.threshold = Config.RESOLUTION_THRESHOLD if threshold is None else threshold
        self.stats = {
            'mentions': 0,
            'candidates': 0,
            'comparisons': 0,
            'merges': 0,
            'skipped_blocks': 0,
        }

    @staticmethod
    def blocking_keys(entity_type: str, normalized_value: str) -> List[str]:
        compact = normalized_value.replace(' ', '')
        keys = [
            f"type:{entity_type}",
            f"prefix:{entity_type}:{compact[:2]}",
            f"length:{entity_type}:{len(compact) // 5}",
        ]
        if entity_type in PHONETIC_TYPES:
            keys.append(f"phonetic:{entity_type}:{phonetic_code(normalized_value)}")
        return keys

    def similarity(self, a: _Candidate, b: _Candidate) -> float:
        if a.entity_type != b.entity_type:
            return 0.0
        if a.normalized_value == b.normalized_value:
            return 1.0

        score = Levenshtein.normalized_similarity(a.normalized_value, b.normalized_value) * 0.6

        if a.entity_type in PHONETIC_TYPES and phonetic_code(a.normalized_value) == phonetic_code(b.normalized_value):
            score += 0.3

        if any(x in y or y in x for x in a.aliases for y in b.aliases if x and y):
            score += 0.2

        if a.context and b.context and fuzz.token_set_ratio(a.context, b.context) / 100.0 > 0.5:
            score += 0.1

        return min(score, 1.0)

    def _candidate_pairs(self, candidates: List[_Candidate]) -> Set[Tuple[int, int]]:
        blocks: Dict[str, List[int]] = defaultdict(list)
        for index, candidate in enumerate(candidates):
            for key in self.blocking_keys(candidate.entity_type, candidate.normalized_value):
                blocks[key].append(index)

        pairs = set()
        for key, members in blocks.items():
            if len(members) < 2:
                continue
            if len(members) > MAX_BLOCK_SIZE:
                self.stats['skipped_blocks'] += 1
                logger.debug(f"Skipping oversized block {key} ({len(members)} members)")
                continue
            for i in range(len(members)):
                for j in range(i + 1, len(members)):
                    pairs.add((members[i], members[j]))
        return pairs

    @staticmethod
    def _canonical_value(mentions: List[EntityMention]) -> str:
        """Most frequent written form, then the longest, then alphabetical"""
        counts = Counter(m.value.strip() for m in mentions)
        return sorted(counts.items(), key=lambda kv: (-kv[1], -len(kv[0]), kv[0]))[0][0]

    def resolve(self, mentions: List[EntityMention]) -> Tuple[List[ResolvedEntity], Dict[str, str]]:
        """
        Cluster mentions into resolved entities.

        Returns the resolved entities and a map of mention id -> resolved id.
        Every mention id belongs to exactly one resolved entity.
        """
        grouped: Dict[str, List[EntityMention]] = defaultdict(list)
        for mention in mentions:
            if not mention.normalized_value:
                continue
            grouped[f"{mention.entity_type}:{mention.normalized_value}"].append(mention)

        candidates = [
            _Candidate(key=key, entity_type=ms[0].entity_type, normalized_value=ms[0].normalized_value, mentions=ms)
            for key, ms in sorted(grouped.items())
        ]
        self.stats['mentions'] += len(mentions)
        self.stats['candidates'] += len(candidates)

        union_find = UnionFind(c.key for c in candidates)
        for i, j in sorted(self._candidate_pairs(candidates)):
            self.stats['comparisons'] += 1
            if self.similarity(candidates[i], candidates[j]) >= self.threshold:
                if union_find.find(candidates[i].key) != union_find.find(candidates[j].key):
                    self.stats['merges'] += 1
                union_find.union(candidates[i].key, candidates[j].key)

        by_key = {c.key: c for c in candidates}
        resolved: List[ResolvedEntity] = []
        mention_map: Dict[str, str] = {}

        for member_keys in union_find.groups().values():
            members = [by_key[k] for k in member_keys]
            all_mentions = [m for c in members for m in c.mentions]
            canonical = self._canonical_value(all_mentions)
            entity_type = members[0].entity_type
            normalized = canonicalize(entity_type, canonical)
            entity_id = f"{entity_type}:{normalized}"
            aliases = sorted({m.value.strip() for m in all_mentions} - {canonical})
            resolved.append(ResolvedEntity(
                id=entity_id,
                entity_type=entity_type,
                canonical_value=canonical,
                normalized_value=normalized,
                aliases=aliases,
                member_ids=sorted(m.id for m in all_mentions),
                sources=sorted({m.source for m in all_mentions if m.source}),
            ))
            for mention in all_mentions:
                mention_map[mention.id] = entity_id

        resolved.sort(key=lambda r: r.id)
        logger.info(
            f"Resolved {len(mentions)} mentions into {len(resolved)} entities "
            f"({self.stats['comparisons']} comparisons)"
        )
        return resolved, mention_map
