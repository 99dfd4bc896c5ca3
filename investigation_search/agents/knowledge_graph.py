"""
Knowledge Graph Builder
Graph-based view of every entity found in the fetched records and the
relationships between them: explicit (record fields, relational phrases in
free text) and implicit (co-occurrence, shared identifiers).
"""

import re
import logging
from collections import Counter, defaultdict, deque
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from dataclasses import dataclass, field

from investigation_search.agents.entity_extractor import (
    EntityExtractor,
    EntityType,
    RegexStrategy,
    normalize_date,
)
from investigation_search.agents.entity_resolver import (
    EntityMention,
    EntityResolver,
    ResolvedEntity,
    canonicalize,
)
from investigation_search.search.cross_reference import StoredRecord, record_key

logger = logging.getLogger(__name__)

# ============================================================================
# Field Mapping
# ============================================================================

FIELD_TYPES = {
    # Persons
    'name': 'person', 'full_name': 'person', 'person_name': 'person', 'customer_name': 'person',
    'suspect_name': 'person', 'accused_name': 'person', 'victim_name': 'person',
    'account_holder': 'person', 'holder_name': 'person', 'caller_name': 'person',
    'father_name': 'person', 'mother_name': 'person', 'spouse_name': 'person', 'guardian_name': 'person',
    # Phones
    'phone': 'phone', 'mobile': 'phone', 'phone_number': 'phone', 'mobile_number': 'phone',
    'contact': 'phone', 'contact_number': 'phone', 'msisdn': 'phone', 'alternate_phone': 'phone',
    'caller_number': 'phone', 'receiver_number': 'phone', 'from_number': 'phone', 'to_number': 'phone',
    'a_party': 'phone', 'b_party': 'phone',
    # Emails
    'email': 'email', 'email_id': 'email', 'email_address': 'email', 'mail': 'email',
    # Accounts
    'account': 'account', 'account_number': 'account', 'account_no': 'account', 'acc_no': 'account',
    'bank_account': 'account', 'from_account': 'account', 'to_account': 'account',
    'sender_account': 'account', 'receiver_account': 'account', 'beneficiary_account': 'account',
    'payer_account': 'account', 'payee_account': 'account', 'source_account': 'account',
    # Organizations
    'company': 'organization', 'company_name': 'organization', 'firm_name': 'organization',
    'organization': 'organization', 'employer': 'organization', 'bank_name': 'organization',
    # Places
    'city': 'location', 'state': 'location', 'district': 'location', 'location': 'location',
    'place': 'location', 'village': 'location', 'town': 'location',
    'address': 'address', 'permanent_address': 'address', 'present_address': 'address',
    'residence': 'address',
    # Identity documents and technical identifiers
    'pan': 'pan', 'pan_number': 'pan', 'aadhaar': 'aadhaar', 'aadhaar_number': 'aadhaar',
    'aadhar': 'aadhaar', 'vehicle': 'vehicle', 'vehicle_number': 'vehicle',
    'registration_number': 'vehicle', 'reg_no': 'vehicle', 'ip': 'ip', 'ip_address': 'ip',
    'ifsc': 'ifsc', 'ifsc_code': 'ifsc', 'upi': 'upi', 'upi_id': 'upi', 'vpa': 'upi',
    'url': 'url', 'website': 'url', 'wallet': 'crypto', 'wallet_address': 'crypto',
    'crypto_address': 'crypto', 'pincode': 'pincode', 'pin_code': 'pincode', 'zip': 'pincode',
    'amount': 'amount', 'transaction_amount': 'amount',
}

# Person fields that name a relative of the record's main person
FAMILY_FIELDS = {'father_name', 'mother_name', 'spouse_name', 'guardian_name'}

# (source field, target field, relationship type)
PAIRED_FIELDS = [
    ('from_account', 'to_account', 'financial'),
    ('sender_account', 'receiver_account', 'financial'),
    ('payer_account', 'payee_account', 'financial'),
    ('source_account', 'beneficiary_account', 'financial'),
    ('caller_number', 'receiver_number', 'communication'),
    ('from_number', 'to_number', 'communication'),
    ('a_party', 'b_party', 'communication'),
]

TEXT_FIELDS = {'description', 'remarks', 'notes', 'narrative', 'brief_facts', 'details', 'comments', 'summary'}

DATE_FIELDS = ('date', 'timestamp', 'transaction_date', 'event_date', 'call_date', 'fir_date',
               'created_at', 'updated_at')

# Extracted text entity -> graph node type
TEXT_ENTITY_TYPES = {
    EntityType.NAME: 'person',
    EntityType.PHONE: 'phone',
    EntityType.EMAIL: 'email',
    EntityType.ACCOUNT_NUMBER: 'account',
    EntityType.COMPANY: 'organization',
    EntityType.LOCATION: 'location',
    EntityType.ADDRESS: 'address',
    EntityType.PAN_NUMBER: 'pan',
    EntityType.AADHAAR_NUMBER: 'aadhaar',
    EntityType.VEHICLE_NUMBER: 'vehicle',
    EntityType.IP_ADDRESS: 'ip',
    EntityType.IFSC_CODE: 'ifsc',
    EntityType.URL: 'url',
    EntityType.AMOUNT: 'amount',
    EntityType.PINCODE: 'pincode',
}

# Record-level links from the record's person to its other entities
PERSON_LINKS = {
    'phone': 'has_phone',
    'email': 'has_email',
    'account': 'owns_account',
    'location': 'located_in',
    'address': 'located_in',
    'vehicle': 'ownership',
    'organization': 'employment',
}

SHARED_IDENTIFIER_TYPES = {'phone': 'shares_phone', 'email': 'shares_email', 'account': 'shares_account'}

SYMMETRIC_TYPES = {'co_occurs', 'shares_phone', 'shares_email', 'shares_account', 'family', 'communication'}

FINANCIAL_TYPES = {'financial', 'owns_account', 'shares_account'}

# Relational phrases in free text
TEXT_RELATIONSHIP_PATTERNS = {
    'family': [
        re.compile(r"(\w+)\s+(?:is\s+)?(?:the\s+)?(?:son|daughter|father|mother|brother|sister|husband|wife|cousin|uncle|aunt)\s+(?:of|to)\s+(\w+)", re.IGNORECASE),
        re.compile(r"(\w+)\s+(?:s/o|d/o|w/o)\s+(\w+)", re.IGNORECASE),
    ],
    'financial': [
        re.compile(r"(\w+)\s+(?:transferred|sent|paid|deposited)\s+(?:Rs\.?|INR|₹)?\s*[\d,]+(?:\s*(?:lakh|crore)s?)?\s+(?:to|for|into)\s+(\w+)", re.IGNORECASE),
        re.compile(r"(\w+)\s+(?:received|got)\s+(?:Rs\.?|INR|₹)?\s*[\d,]+(?:\s*(?:lakh|crore)s?)?\s+(?:from|by)\s+(\w+)", re.IGNORECASE),
        re.compile(r"transaction\s+(?:from|by)\s+(\w+)\s+to\s+(\w+)", re.IGNORECASE),
    ],
    'communication': [
        re.compile(r"(\w+)\s+(?:called|phoned|contacted|emailed|messaged)\s+(\w+)", re.IGNORECASE),
        re.compile(r"call\s+(?:between|from)\s+(\w+)\s+(?:and|to)\s+(\w+)", re.IGNORECASE),
    ],
    'location': [
        re.compile(r"(\w+)\s+(?:lives|resides|stays|located|lived|stayed)\s+(?:in|at)\s+(\w+)", re.IGNORECASE),
    ],
    'employment': [
        re.compile(r"(\w+)\s+(?:works|worked|employed|working)\s+(?:at|for|in)\s+(\w+)", re.IGNORECASE),
    ],
    'ownership': [
        re.compile(r"(\w+)\s+(?:owns|owned|possesses)\s+(?:a\s+|the\s+)?(\w+)", re.IGNORECASE),
    ],
}

# "received from" reverses the direction of money flow
REVERSED_FINANCIAL = re.compile(r"\b(?:received|got)\b", re.IGNORECASE)

# Per-type risk weight used for cluster risk
TYPE_RISK_WEIGHTS = {
    'phone': 0.1, 'email': 0.1, 'pan': 0.15, 'aadhaar': 0.15, 'account': 0.2,
    'amount': 0.15, 'crypto': 0.3, 'vehicle': 0.1, 'ip': 0.1, 'person': 0.05,
    'organization': 0.05, 'location': 0.03, 'address': 0.05, 'date': 0.02,
    'upi': 0.15, 'url': 0.05, 'ifsc': 0.1, 'pincode': 0.02, 'id': 0.1,
}

MIN_CLUSTER_SIZE = 3
MODERATE_THRESHOLD = 5
STRONG_THRESHOLD = 10


def edge_strength(occurrences: int) -> str:
    if occurrences >= STRONG_THRESHOLD:
        return 'strong'
    if occurrences >= MODERATE_THRESHOLD:
        return 'moderate'
    return 'weak'


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        pass
    iso = normalize_date(text)
    try:
        return datetime.strptime(iso, '%Y-%m-%d')
    except ValueError:
        return None


# ============================================================================
# Graph Data Classes
# ============================================================================

@dataclass
class GraphNode:
    """An entity in the knowledge graph, identified by (type, canonical value)"""
    id: str
    type: str
    label: str
    value: str
    aliases: List[str] = field(default_factory=list)
    occurrence_count: int = 0
    source_tables: List[str] = field(default_factory=list)
    risk_score: float = 0.0
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self, connections: Optional[List[str]] = None) -> Dict:
        return {
            'id': self.id,
            'type': self.type,
            'label': self.label,
            'value': self.value,
            'aliases': list(self.aliases),
            'occurrence_count': self.occurrence_count,
            'source_tables': list(self.source_tables),
            'connections': connections or [],
            'risk_score': round(self.risk_score, 3),
            'first_seen': self.first_seen.isoformat() if self.first_seen else None,
            'last_seen': self.last_seen.isoformat() if self.last_seen else None,
            'properties': dict(self.properties),
        }


@dataclass
class GraphEdge:
    """A typed relationship; re-observing it raises weight instead of duplicating"""
    id: str
    source: str
    target: str
    relationship_type: str
    weight: int = 1
    confidence: float = 0.5
    evidence: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    @property
    def strength(self) -> str:
        return edge_strength(self.weight)

    @property
    def is_financial(self) -> bool:
        return self.relationship_type in FINANCIAL_TYPES

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'source': self.source,
            'target': self.target,
            'relationship_type': self.relationship_type,
            'weight': self.weight,
            'confidence': round(self.confidence, 3),
            'strength': self.strength,
            'evidence': list(self.evidence),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'last_seen': self.last_seen.isoformat() if self.last_seen else None,
        }


@dataclass
class GraphCluster:
    """A connected component of at least MIN_CLUSTER_SIZE nodes"""
    id: str
    node_ids: List[str]
    risk_score: float
    dominant_types: List[str]

    @property
    def size(self) -> int:
        return len(self.node_ids)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'node_ids': list(self.node_ids),
            'size': self.size,
            'risk_score': round(self.risk_score, 3),
            'dominant_types': list(self.dominant_types),
        }


# ============================================================================
# Knowledge Graph
# ============================================================================

class KnowledgeGraph:
    """Typed node/edge store with canonical identities"""

    def __init__(self):
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: Dict[str, GraphEdge] = {}
        self.clusters: List[GraphCluster] = []
        self._adjacency: Dict[str, Set[str]] = defaultdict(set)
        self._outgoing: Dict[str, Set[str]] = defaultdict(set)
        self._incoming: Dict[str, Set[str]] = defaultdict(set)

    def __len__(self):
        return len(self.nodes)

    @staticmethod
    def node_id(entity_type: str, normalized_value: str) -> str:
        return f"{entity_type}:{normalized_value}"

    @staticmethod
    def edge_id(source: str, target: str, relationship_type: str) -> str:
        return f"{source}|{target}|{relationship_type}"

    def add_node(self, entity_type: str, value: str, normalized_value: Optional[str] = None,
                 aliases: Iterable[str] = (), source_table: Optional[str] = None,
                 seen_at: Optional[datetime] = None, **properties) -> GraphNode:
        """Create a node, or fold a new mention into the existing one"""
        normalized = normalized_value or canonicalize(entity_type, value)
        node_id = self.node_id(entity_type, normalized)
        node = self.nodes.get(node_id)
        if node is None:
            node = GraphNode(id=node_id, type=entity_type, label=value, value=normalized)
            self.nodes[node_id] = node

        node.occurrence_count += 1
        for alias in aliases:
            if alias and alias != node.label and alias not in node.aliases:
                node.aliases.append(alias)
        if source_table and source_table not in node.source_tables:
            node.source_tables.append(source_table)
        if seen_at:
            node.first_seen = min(node.first_seen, seen_at) if node.first_seen else seen_at
            node.last_seen = max(node.last_seen, seen_at) if node.last_seen else seen_at
        node.properties.update(properties)
        return node

    def add_edge(self, source: str, target: str, relationship_type: str, evidence: Optional[str] = None,
                 confidence: float = 0.5, seen_at: Optional[datetime] = None) -> Optional[GraphEdge]:
        """Create an edge, or count another observation of an existing one"""
        if source == target or source not in self.nodes or target not in self.nodes:
            return None
        if relationship_type in SYMMETRIC_TYPES and target < source:
            source, target = target, source

        edge_id = self.edge_id(source, target, relationship_type)
        edge = self.edges.get(edge_id)
        if edge is None:
            edge = GraphEdge(
                id=edge_id,
                source=source,
                target=target,
                relationship_type=relationship_type,
                confidence=confidence,
            )
            self.edges[edge_id] = edge
            self._adjacency[source].add(target)
            self._adjacency[target].add(source)
            self._outgoing[source].add(edge_id)
            self._incoming[target].add(edge_id)
        else:
            edge.weight += 1
            edge.confidence = min(1.0, edge.confidence + 0.05)

        if evidence and evidence not in edge.evidence:
            edge.evidence.append(evidence)
        if seen_at:
            edge.created_at = min(edge.created_at, seen_at) if edge.created_at else seen_at
            edge.last_seen = max(edge.last_seen, seen_at) if edge.last_seen else seen_at
        return edge

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def neighbors(self, node_id: str) -> Set[str]:
        return self._adjacency.get(node_id, set())

    def degree(self, node_id: str) -> int:
        return len(self._adjacency.get(node_id, ()))

    def out_edges(self, node_id: str) -> List[GraphEdge]:
        return [self.edges[e] for e in sorted(self._outgoing.get(node_id, ()))]

    def in_edges(self, node_id: str) -> List[GraphEdge]:
        return [self.edges[e] for e in sorted(self._incoming.get(node_id, ()))]

    def edges_of(self, node_id: str) -> List[GraphEdge]:
        return self.out_edges(node_id) + self.in_edges(node_id)

    def get_neighbors(self, node_id: str, depth: int = 1) -> List[str]:
        """Node ids reachable within depth hops, nearest first"""
        if node_id not in self.nodes:
            return []
        seen = {node_id}
        frontier = [node_id]
        result = []
        for _ in range(max(depth, 0)):
            next_frontier = []
            for current in frontier:
                for neighbor in sorted(self.neighbors(current)):
                    if neighbor not in seen:
                        seen.add(neighbor)
                        result.append(neighbor)
                        next_frontier.append(neighbor)
            frontier = next_frontier
        return result

    def shortest_path(self, start_id: str, end_id: str) -> Optional[List[str]]:
        """Breadth-first shortest path ignoring edge direction"""
        if start_id not in self.nodes or end_id not in self.nodes:
            return None
        if start_id == end_id:
            return [start_id]
        previous = {start_id: None}
        queue = deque([start_id])
        while queue:
            current = queue.popleft()
            for neighbor in sorted(self.neighbors(current)):
                if neighbor in previous:
                    continue
                previous[neighbor] = current
                if neighbor == end_id:
                    path = [end_id]
                    while previous[path[-1]] is not None:
                        path.append(previous[path[-1]])
                    return list(reversed(path))
                queue.append(neighbor)
        return None

    def connected_components(self) -> List[List[str]]:
        """Breadth-first components, each sorted, largest first"""
        visited = set()
        components = []
        for start in sorted(self.nodes):
            if start in visited:
                continue
            component = []
            queue = deque([start])
            visited.add(start)
            while queue:
                current = queue.popleft()
                component.append(current)
                for neighbor in self.neighbors(current):
                    if neighbor not in visited:
                        visited.add(neighbor)
                        queue.append(neighbor)
            components.append(sorted(component))
        components.sort(key=lambda c: (-len(c), c[0]))
        return components

    def detect_clusters(self, min_size: int = MIN_CLUSTER_SIZE) -> List[GraphCluster]:
        clusters = []
        for component in self.connected_components():
            if len(component) < min_size:
                continue
            types = Counter(self.nodes[n].type for n in component)
            weight_sum = sum(TYPE_RISK_WEIGHTS.get(self.nodes[n].type, 0.05) for n in component)
            clusters.append(GraphCluster(
                id=f"cluster_{len(clusters) + 1}",
                node_ids=component,
                risk_score=min(weight_sum / len(component) * 5, 1.0),
                dominant_types=[t for t, _ in sorted(types.items(), key=lambda kv: (-kv[1], kv[0]))[:3]],
            ))
        self.clusters = clusters
        return clusters

    def to_adjacency_list(self) -> Dict[str, List[str]]:
        return {node_id: sorted(self.neighbors(node_id)) for node_id in sorted(self.nodes)}

    def stats(self) -> Dict:
        node_count = len(self.nodes)
        edge_count = len(self.edges)
        possible = node_count * (node_count - 1) / 2
        return {
            'node_count': node_count,
            'edge_count': edge_count,
            'cluster_count': len(self.clusters),
            'density': round(edge_count / possible, 4) if possible else 0.0,
            'node_types': dict(Counter(n.type for n in self.nodes.values())),
            'edge_types': dict(Counter(e.relationship_type for e in self.edges.values())),
        }

    def to_dict(self) -> Dict:
        return {
            'nodes': [self.nodes[n].to_dict(sorted(self.neighbors(n))) for n in sorted(self.nodes)],
            'edges': [self.edges[e].to_dict() for e in sorted(self.edges)],
            'clusters': [c.to_dict() for c in self.clusters],
            'stats': self.stats(),
        }


# ============================================================================
# Record Entity Extraction
# ============================================================================

@dataclass
class RecordEntities:
    """Mentions found in one record, plus what is needed to link them"""
    record_id: str
    table: str
    timestamp: Optional[datetime]
    mentions: List[EntityMention] = field(default_factory=list)
    field_mentions: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))
    texts: List[Tuple[str, List[str]]] = field(default_factory=list)


class RecordEntityExtractor:
    """Extracts entity mentions from a single fetched record"""

    def __init__(self):
        self.text_extractor = EntityExtractor(strategy=RegexStrategy(), infer_relationships=False)

    @staticmethod
    def _field_name(key: str) -> str:
        return re.sub(r'[\s-]+', '_', str(key).strip().lower())

    def _flatten(self, record: Dict[str, Any]) -> List[Tuple[str, Any]]:
        """(field name, scalar) pairs; nested dicts and lists are walked"""
        pairs = []
        stack = [record]
        while stack:
            current = stack.pop()
            if isinstance(current, dict):
                for key, value in current.items():
                    if isinstance(value, (dict, list, tuple)):
                        stack.append(value)
                    elif value is not None and value != '':
                        pairs.append((self._field_name(key), value))
            elif isinstance(current, (list, tuple)):
                stack.extend(v for v in current if isinstance(v, (dict, list, tuple)))
        pairs.sort(key=lambda kv: (kv[0], str(kv[1])))
        return pairs

    def extract(self, record: Dict[str, Any], record_id: str, table: str) -> RecordEntities:
        result = RecordEntities(record_id=record_id, table=table, timestamp=None)
        pairs = self._flatten(record)

        for field_name, value in pairs:
            if field_name in DATE_FIELDS and result.timestamp is None:
                result.timestamp = parse_timestamp(value)

        for field_name, value in pairs:
            entity_type = FIELD_TYPES.get(field_name)
            if entity_type:
                self._add_mention(result, entity_type, str(value), field_name)
            elif field_name in TEXT_FIELDS and isinstance(value, str):
                mention_ids = []
                for entity in self.text_extractor.extract(value).entities:
                    node_type = TEXT_ENTITY_TYPES.get(entity.entity_type)
                    if node_type:
                        mention = self._add_mention(result, node_type, entity.value, field_name)
                        if mention:
                            mention_ids.append(mention.id)
                result.texts.append((value, mention_ids))

        return result

    def _add_mention(self, result: RecordEntities, entity_type: str, value: str,
                     field_name: str) -> Optional[EntityMention]:
        value = value.strip()
        if not value:
            return None
        normalized = canonicalize(entity_type, value)
        # Too short to identify anything
        if len(normalized.replace(' ', '')) < 2:
            return None
        mention = EntityMention(
            id=f"{result.record_id}#{len(result.mentions)}",
            entity_type=entity_type,
            value=value,
            normalized_value=normalized,
            context=result.table,
            source=result.table,
        )
        result.mentions.append(mention)
        result.field_mentions[field_name].append(mention.id)
        return mention


# ============================================================================
# Builder
# ============================================================================

class KnowledgeGraphBuilder:
    """
    Builds a knowledge graph from the final record set of a search session.

    Records are processed in key order and entity ids are canonical, so the
    same records in any order give the same node and edge ids and counts.
    """

    def __init__(self, resolver: Optional[EntityResolver] = None):
        self.resolver = resolver or EntityResolver()
        self.record_extractor = RecordEntityExtractor()
        self.resolved: List[ResolvedEntity] = []

    @staticmethod
    def _normalize_records(records: Iterable[Any]) -> List[Tuple[str, str, Dict[str, Any]]]:
        normalized = []
        for item in records:
            if isinstance(item, StoredRecord):
                normalized.append((item.key, item.table, item.raw_fields))
            else:
                table, record = item
                normalized.append((record_key(table, record), table, record))
        normalized.sort(key=lambda r: r[0])
        return normalized

    def build(self, records: Iterable[Any], built_at: Optional[datetime] = None) -> KnowledgeGraph:
        """
        Args:
            records: StoredRecord objects or (table, record) pairs
            built_at: timestamp for records that carry no date of their own
        """
        built_at = built_at or datetime.now()
        graph = KnowledgeGraph()

        # STEP 1: mentions per record
        extracted = [
            self.record_extractor.extract(record, key, table)
            for key, table, record in self._normalize_records(records)
        ]
        all_mentions = [m for r in extracted for m in r.mentions]

        # STEP 2: resolve near-duplicates
        self.resolved, mention_map = self.resolver.resolve(all_mentions)
        resolved_by_id = {r.id: r for r in self.resolved}

        # STEP 3: nodes
        for record in extracted:
            seen_at = record.timestamp or built_at
            for mention in record.mentions:
                resolved = resolved_by_id[mention_map[mention.id]]
                graph.add_node(
                    resolved.entity_type,
                    resolved.canonical_value,
                    normalized_value=resolved.normalized_value,
                    aliases=[mention.value],
                    source_table=record.table,
                    seen_at=seen_at,
                )

        # STEP 4: edges
        co_occurrence: Dict[Tuple[str, str], List[Tuple[str, datetime]]] = defaultdict(list)
        identifier_links: Dict[str, Dict[str, Set[str]]] = defaultdict(lambda: defaultdict(set))

        for record in extracted:
            seen_at = record.timestamp or built_at
            node_of = {m.id: mention_map[m.id] for m in record.mentions}
            node_ids = sorted(set(node_of.values()))

            self._link_record_fields(graph, record, node_of, seen_at, identifier_links)
            self._link_text(graph, record, node_of, seen_at)

            for i, a in enumerate(node_ids):
                for b in node_ids[i + 1:]:
                    if graph.nodes[a].type != graph.nodes[b].type:
                        co_occurrence[(a, b)].append((record.record_id, seen_at))

        for (a, b), occurrences in sorted(co_occurrence.items()):
            edge = None
            for record_id, seen_at in occurrences:
                edge = graph.add_edge(a, b, 'co_occurs', evidence=record_id, seen_at=seen_at)
            if edge:
                edge.confidence = min(0.5 + 0.1 * edge.weight, 0.95)

        self._link_shared_identifiers(graph, identifier_links, built_at)

        # STEP 5: clusters
        graph.detect_clusters()
        logger.info(
            f"Knowledge graph built: {len(graph.nodes)} nodes, {len(graph.edges)} edges, "
            f"{len(graph.clusters)} clusters"
        )
        return graph

    def _link_record_fields(self, graph: KnowledgeGraph, record: RecordEntities, node_of: Dict[str, str],
                            seen_at: datetime, identifier_links: Dict[str, Dict[str, Set[str]]]):
        """Explicit relations implied by the record's own fields"""
        main_people = []
        relatives = []
        for field_name in sorted(record.field_mentions):
            ids = [node_of[m] for m in record.field_mentions[field_name]]
            if FIELD_TYPES.get(field_name) != 'person':
                continue
            (relatives if field_name in FAMILY_FIELDS else main_people).extend(ids)
        main_people = sorted(set(main_people))

        for person in main_people:
            for relative in sorted(set(relatives)):
                graph.add_edge(person, relative, 'family', evidence=record.record_id,
                               confidence=0.8, seen_at=seen_at)
            for node_id in sorted(set(node_of.values())):
                node_type = graph.nodes[node_id].type
                relationship_type = PERSON_LINKS.get(node_type)
                if relationship_type:
                    graph.add_edge(person, node_id, relationship_type, evidence=record.record_id,
                                   confidence=0.7, seen_at=seen_at)
                if node_type in SHARED_IDENTIFIER_TYPES:
                    identifier_links[node_id][person].add(record.record_id)

        for source_field, target_field, relationship_type in PAIRED_FIELDS:
            for source_mention in record.field_mentions.get(source_field, []):
                for target_mention in record.field_mentions.get(target_field, []):
                    graph.add_edge(node_of[source_mention], node_of[target_mention], relationship_type,
                                   evidence=record.record_id, confidence=0.9, seen_at=seen_at)

    @staticmethod
    def _match_fragment(fragment: str, candidates: List[str], graph: KnowledgeGraph) -> Optional[str]:
        """Node among candidates best matching a word captured from text"""
        word = fragment.lower()
        digits = re.sub(r'\D', '', word)
        exact, partial = [], []
        for node_id in candidates:
            value = graph.nodes[node_id].value.lower()
            if value == word or (digits and len(digits) >= 8 and digits in value):
                exact.append(node_id)
            elif len(word) > 2 and word in value.split():
                partial.append(node_id)
        matches = exact or partial
        return sorted(matches)[0] if matches else None

    def _link_text(self, graph: KnowledgeGraph, record: RecordEntities, node_of: Dict[str, str],
                   seen_at: datetime):
        """Relations stated by phrases like "X transferred Rs 5000 to Y" """
        candidates = sorted(set(node_of.values()))
        for text, _ in record.texts:
            for sentence in re.split(r'(?<=[.!?;])\s+', text):
                for relationship_type, patterns in TEXT_RELATIONSHIP_PATTERNS.items():
                    for pattern in patterns:
                        for match in pattern.finditer(sentence):
                            source = self._match_fragment(match.group(1), candidates, graph)
                            target = self._match_fragment(match.group(2), candidates, graph)
                            if not source or not target or source == target:
                                continue
                            if relationship_type == 'financial' and REVERSED_FINANCIAL.search(match.group(0)):
                                source, target = target, source
                            graph.add_edge(source, target, relationship_type,
                                           evidence=f"{record.record_id}: {match.group(0)}",
                                           confidence=0.8, seen_at=seen_at)

    @staticmethod
    def _link_shared_identifiers(graph: KnowledgeGraph, identifier_links: Dict[str, Dict[str, Set[str]]],
                                 built_at: datetime):
        """
        Link people who share a phone, email or account.

        Each pair's edge is observed once per supporting record beyond the
        first, so two records give weight 1 and a third gives weight 2.
        """
        for identifier in sorted(identifier_links):
            people = identifier_links[identifier]
            relationship_type = SHARED_IDENTIFIER_TYPES[graph.nodes[identifier].type]
            person_ids = sorted(people)
            for i, a in enumerate(person_ids):
                for b in person_ids[i + 1:]:
                    supporting = sorted(people[a] | people[b])
                    for record_id in supporting[1:]:
                        graph.add_edge(a, b, relationship_type, evidence=record_id, confidence=0.75,
                                       seen_at=graph.nodes[identifier].last_seen or built_at)
