"""
Correlation Engine
Pattern detection, anomaly detection, risk scoring, insight generation and
timeline reconstruction over a knowledge graph.

Every detector only reads the graph; the one mutation is the per-node
risk_score written by the risk scorer.
"""

import math
import time
import logging
import statistics
from collections import Counter, defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple
from dataclasses import dataclass, field

from investigation_search.agents.knowledge_graph import (
    GraphEdge,
    GraphNode,
    KnowledgeGraph,
    SYMMETRIC_TYPES,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Result Types
# ============================================================================

@dataclass(frozen=True)
class DetectedPattern:
    id: str
    type: str
    description: str
    entities: Tuple[str, ...]
    frequency: int
    significance: float
    evidence: Tuple[str, ...] = ()
    first_occurrence: Optional[datetime] = None
    last_occurrence: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'type': self.type,
            'description': self.description,
            'entities': list(self.entities),
            'frequency': self.frequency,
            'significance': round(self.significance, 3),
            'evidence': list(self.evidence),
            'first_occurrence': self.first_occurrence.isoformat() if self.first_occurrence else None,
            'last_occurrence': self.last_occurrence.isoformat() if self.last_occurrence else None,
        }


@dataclass(frozen=True)
class Anomaly:
    id: str
    type: str
    description: str
    entities: Tuple[str, ...]
    score: float
    threshold: float
    context: str = ''

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'type': self.type,
            'description': self.description,
            'entities': list(self.entities),
            'score': round(self.score, 3),
            'threshold': self.threshold,
            'context': self.context,
        }


@dataclass(frozen=True)
class RiskIndicator:
    id: str
    type: str
    severity: str
    description: str
    entities: Tuple[str, ...]
    score: float
    factors: Tuple[Tuple[str, float], ...] = ()

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'type': self.type,
            'severity': self.severity,
            'description': self.description,
            'entities': list(self.entities),
            'score': round(self.score, 3),
            'factors': {name: round(score, 3) for name, score in self.factors},
        }


@dataclass(frozen=True)
class Insight:
    id: str
    category: str
    title: str
    description: str
    entities: Tuple[str, ...]
    confidence: float
    actionable: bool
    suggested_actions: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'category': self.category,
            'title': self.title,
            'description': self.description,
            'entities': list(self.entities),
            'confidence': round(self.confidence, 3),
            'actionable': self.actionable,
            'suggested_actions': list(self.suggested_actions),
        }


@dataclass(frozen=True)
class TimelineEvent:
    id: str
    timestamp: datetime
    type: str
    description: str
    entities: Tuple[str, ...]
    source: str
    significance: float

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat(),
            'type': self.type,
            'description': self.description,
            'entities': list(self.entities),
            'source': self.source,
            'significance': round(self.significance, 3),
        }


@dataclass
class CorrelationResult:
    patterns: List[DetectedPattern] = field(default_factory=list)
    anomalies: List[Anomaly] = field(default_factory=list)
    risk_indicators: List[RiskIndicator] = field(default_factory=list)
    insights: List[Insight] = field(default_factory=list)
    timeline: List[TimelineEvent] = field(default_factory=list)
    stats: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'patterns': [p.to_dict() for p in self.patterns],
            'anomalies': [a.to_dict() for a in self.anomalies],
            'risk_indicators': [r.to_dict() for r in self.risk_indicators],
            'insights': [i.to_dict() for i in self.insights],
            'timeline': [t.to_dict() for t in self.timeline],
            'stats': dict(self.stats),
        }


# ============================================================================
# Graph helpers
# ============================================================================

def connection_count(graph: KnowledgeGraph, node_id: str) -> int:
    """Number of edges touching a node"""
    return len(graph.edges_of(node_id))


def directed_counts(graph: KnowledgeGraph, node_id: str) -> Tuple[int, int]:
    """(incoming, outgoing) counts over directed relationship types"""
    incoming = sum(1 for e in graph.in_edges(node_id) if e.relationship_type not in SYMMETRIC_TYPES)
    outgoing = sum(1 for e in graph.out_edges(node_id) if e.relationship_type not in SYMMETRIC_TYPES)
    return incoming, outgoing


def financial_adjacency(graph: KnowledgeGraph) -> Dict[str, List[str]]:
    adjacency: Dict[str, Set[str]] = defaultdict(set)
    for edge in graph.edges.values():
        if edge.relationship_type == 'financial':
            adjacency[edge.source].add(edge.target)
    return {node: sorted(targets) for node, targets in adjacency.items()}


def find_cycles(adjacency: Dict[str, List[str]], max_hops: int = 3) -> List[List[str]]:
    """
    Simple directed cycles of 2..max_hops nodes.

    Depth-first search with an explicit stack. Each cycle is reported once,
    starting from its smallest node id.
    """
    cycles = []
    for start in sorted(adjacency):
        # (current node, path so far, index of next neighbour to try)
        stack = [(start, [start], 0)]
        while stack:
            current, path, index = stack.pop()
            neighbors = adjacency.get(current, [])
            if index >= len(neighbors):
                continue
            stack.append((current, path, index + 1))
            neighbor = neighbors[index]

            if neighbor == start:
                if len(path) >= 2:
                    cycles.append(list(path))
                continue
            # Only nodes greater than start, so each cycle is found from its minimum
            if neighbor < start or neighbor in path or len(path) >= max_hops:
                continue
            stack.append((neighbor, path + [neighbor], 0))
    return cycles


def find_paths(graph: KnowledgeGraph, start_id: str, end_id: str, max_hops: int = 3) -> List[List[str]]:
    """All simple paths of at most max_hops edges, ignoring direction"""
    if start_id not in graph.nodes or end_id not in graph.nodes:
        return []
    paths = []
    stack = [(start_id, [start_id])]
    while stack:
        current, path = stack.pop()
        if current == end_id and len(path) > 1:
            paths.append(path)
            continue
        if len(path) > max_hops:
            continue
        for neighbor in sorted(graph.neighbors(current), reverse=True):
            if neighbor not in path:
                stack.append((neighbor, path + [neighbor]))
    paths.sort(key=lambda p: (len(p), p))
    return paths


# ============================================================================
# Pattern Detection
# ============================================================================

@dataclass
class PatternDefinition:
    type: str
    name: str
    min_occurrences: int
    min_significance: float
    detect: Callable[[KnowledgeGraph], List[DetectedPattern]]


def detect_frequency_patterns(graph: KnowledgeGraph) -> List[DetectedPattern]:
    patterns = []
    for node_id in sorted(graph.nodes):
        node = graph.nodes[node_id]
        count = connection_count(graph, node_id)
        if count > 10:
            patterns.append(DetectedPattern(
                id=f"frequency_{node_id}",
                type='frequency_pattern',
                description=f"{node.label} has {count} connections, indicating high activity",
                entities=(node_id,),
                frequency=count,
                significance=min(count / 50, 1.0),
                evidence=('High connectivity node in knowledge graph',),
                first_occurrence=node.first_seen,
                last_occurrence=node.last_seen,
            ))
    return patterns


def detect_financial_cycles(graph: KnowledgeGraph) -> List[DetectedPattern]:
    patterns = []
    for cycle in find_cycles(financial_adjacency(graph), max_hops=3):
        hops = len(cycle)
        cycle_edges = [
            graph.edges[graph.edge_id(a, b, 'financial')]
            for a, b in zip(cycle, cycle[1:] + cycle[:1])
        ]
        labels = ' → '.join(graph.nodes[n].label for n in cycle)
        created = [e.created_at for e in cycle_edges if e.created_at]
        patterns.append(DetectedPattern(
            id=f"financial_{'_'.join(cycle)}",
            type='financial_pattern',
            description=(
                f"Circular transaction detected: {labels} → back" if hops == 2
                else f"{hops}-party circular transaction detected: {labels} → back"
            ),
            entities=tuple(cycle),
            frequency=min(e.weight for e in cycle_edges),
            significance=0.9 if hops == 2 else 0.95,
            evidence=(
                'Circular money flow pattern detected' if hops == 2
                else f'{hops}-hop circular money flow detected - potential layering',
            ),
            first_occurrence=min(created) if created else None,
            last_occurrence=max(created) if created else None,
        ))
    return patterns


def detect_temporal_patterns(graph: KnowledgeGraph) -> List[DetectedPattern]:
    by_day: Dict[str, List[GraphEdge]] = defaultdict(list)
    for edge_id in sorted(graph.edges):
        edge = graph.edges[edge_id]
        if edge.created_at:
            by_day[edge.created_at.date().isoformat()].append(edge)
    if not by_day:
        return []

    mean = sum(len(edges) for edges in by_day.values()) / len(by_day)
    patterns = []
    for day in sorted(by_day):
        day_edges = by_day[day]
        if len(day_edges) > mean * 2:
            entities = sorted({n for e in day_edges for n in (e.source, e.target)})
            moment = datetime.fromisoformat(day)
            patterns.append(DetectedPattern(
                id=f"temporal_{day}",
                type='temporal_pattern',
                description=f"Unusual activity spike on {day}: {len(day_edges)} events",
                entities=tuple(entities),
                frequency=len(day_edges),
                significance=min(len(day_edges) / (mean * 3), 1.0),
                evidence=(f"Activity on {day} is {round(len(day_edges) / mean)}x above average",),
                first_occurrence=moment,
                last_occurrence=moment,
            ))
    return patterns


def detect_spatial_patterns(graph: KnowledgeGraph) -> List[DetectedPattern]:
    patterns = []
    for node_id in sorted(graph.nodes):
        node = graph.nodes[node_id]
        if node.type != 'location':
            continue
        connected = sorted(n for n in graph.neighbors(node_id) if graph.nodes[n].type != 'location')
        if len(connected) >= 3:
            patterns.append(DetectedPattern(
                id=f"spatial_{node_id}",
                type='spatial_pattern',
                description=f"{len(connected)} entities connected to location: {node.label}",
                entities=(node_id, *connected),
                frequency=len(connected),
                significance=min(len(connected) / 10, 1.0),
                evidence=(f"Multiple entities share same location: {node.label}",),
                first_occurrence=node.first_seen,
                last_occurrence=node.last_seen,
            ))
    return patterns


PATTERN_DEFINITIONS = [
    PatternDefinition('frequency_pattern', 'High Frequency Contact', 5, 0.7, detect_frequency_patterns),
    PatternDefinition('financial_pattern', 'Circular Transaction Pattern', 1, 0.8, detect_financial_cycles),
    PatternDefinition('temporal_pattern', 'Time-based Clustering', 3, 0.6, detect_temporal_patterns),
    PatternDefinition('spatial_pattern', 'Location Clustering', 3, 0.3, detect_spatial_patterns),
]


# ============================================================================
# Anomaly Detection
# ============================================================================

# Entity type -> types it is normally linked to
EXPECTED_CONNECTIONS = {
    'person': {'phone', 'email', 'address', 'account', 'organization', 'location', 'vehicle'},
    'phone': {'person', 'account', 'location'},
    'email': {'person', 'account', 'organization'},
    'account': {'person', 'organization', 'amount', 'account'},
    'organization': {'person', 'address', 'account', 'phone'},
}

STATISTICAL_THRESHOLD = 2.5
BEHAVIORAL_THRESHOLD = 0.8
BEHAVIORAL_SCORE = 0.85
HUB_THRESHOLD = 0.7
HUB_MIN_NEIGHBORS = 5
HUB_MIN_TYPES = 3


def detect_statistical_anomalies(graph: KnowledgeGraph) -> List[Anomaly]:
    node_ids = sorted(graph.nodes)
    if len(node_ids) < 2:
        return []
    counts = [connection_count(graph, n) for n in node_ids]
    mean = statistics.fmean(counts)
    std = statistics.pstdev(counts)
    if std == 0:
        return []

    anomalies = []
    for node_id, count in zip(node_ids, counts):
        z_score = (count - mean) / std
        if abs(z_score) > STATISTICAL_THRESHOLD:
            anomalies.append(Anomaly(
                id=f"statistical_{node_id}",
                type='statistical',
                description=f"{graph.nodes[node_id].label} has {count} connections (z-score: {z_score:.2f})",
                entities=(node_id,),
                score=abs(z_score),
                threshold=STATISTICAL_THRESHOLD,
                context='Statistical outlier in network connectivity',
            ))
    return anomalies


def is_expected_connection(source_type: str, target_type: str) -> bool:
    return (target_type in EXPECTED_CONNECTIONS.get(source_type, ())
            or source_type in EXPECTED_CONNECTIONS.get(target_type, ()))


def detect_behavioral_anomalies(graph: KnowledgeGraph) -> List[Anomaly]:
    anomalies = []
    for edge_id in sorted(graph.edges):
        edge = graph.edges[edge_id]
        # Co-occurrence only says two values appeared together
        if edge.relationship_type == 'co_occurs':
            continue
        source, target = graph.nodes[edge.source], graph.nodes[edge.target]
        if not is_expected_connection(source.type, target.type):
            anomalies.append(Anomaly(
                id=f"behavioral_{edge_id}",
                type='behavioral',
                description=f"Unusual connection: {source.type} → {target.type} ({edge.relationship_type})",
                entities=(edge.source, edge.target),
                score=BEHAVIORAL_SCORE,
                threshold=BEHAVIORAL_THRESHOLD,
                context=f"Edge ID: {edge_id}",
            ))
    return anomalies


def detect_hidden_hubs(graph: KnowledgeGraph) -> List[Anomaly]:
    anomalies = []
    for node_id in sorted(graph.nodes):
        neighbors = graph.neighbors(node_id)
        if len(neighbors) <= HUB_MIN_NEIGHBORS:
            continue
        neighbor_types = {graph.nodes[n].type for n in neighbors}
        if len(neighbor_types) >= HUB_MIN_TYPES:
            anomalies.append(Anomaly(
                id=f"relational_{node_id}",
                type='relational',
                description=f"Potential hub node: {graph.nodes[node_id].label} connects {len(neighbor_types)} entity types",
                entities=(node_id,),
                score=len(neighbor_types) / 5,
                threshold=HUB_THRESHOLD,
                context='Bridges multiple entity type clusters',
            ))
    return anomalies


ANOMALY_DETECTORS = [
    detect_statistical_anomalies,
    detect_behavioral_anomalies,
    detect_hidden_hubs,
]


# ============================================================================
# Risk Scoring
# ============================================================================

@dataclass
class RiskFactor:
    id: str
    weight: float
    evaluate: Callable[[KnowledgeGraph, GraphNode], float]


def _high_value_transactions(graph: KnowledgeGraph, node: GraphNode) -> float:
    financial = [e for e in graph.edges_of(node.id) if e.is_financial]
    return min(len(financial) / 10, 1.0)


def _frequent_transfers(graph: KnowledgeGraph, node: GraphNode) -> float:
    return min(connection_count(graph, node.id) / 50, 1.0)


def _cross_border(graph: KnowledgeGraph, node: GraphNode) -> float:
    locations = {graph.nodes[n].value for n in graph.neighbors(node.id) if graph.nodes[n].type == 'location'}
    return min(len(locations) / 5, 1.0) if len(locations) > 1 else 0.0


def _multiple_accounts(graph: KnowledgeGraph, node: GraphNode) -> float:
    accounts = [n for n in graph.neighbors(node.id) if graph.nodes[n].type == 'account']
    return min(len(accounts) / 5, 1.0) if len(accounts) > 2 else 0.0


def _unusual_pattern(graph: KnowledgeGraph, node: GraphNode) -> float:
    incoming, outgoing = directed_counts(graph, node.id)
    # Too few directed edges to call anything unbalanced
    if incoming + outgoing < 5:
        return 0.0
    ratio = (incoming + 1) / (outgoing + 1)
    if ratio > 5 or ratio < 0.2:
        return min(abs(math.log10(ratio)) / 2, 1.0)
    return 0.0


RISK_FACTORS = [
    RiskFactor('high_value_transactions', 0.3, _high_value_transactions),
    RiskFactor('frequent_transfers', 0.2, _frequent_transfers),
    RiskFactor('cross_border', 0.25, _cross_border),
    RiskFactor('multiple_accounts', 0.15, _multiple_accounts),
    RiskFactor('unusual_pattern', 0.1, _unusual_pattern),
]

RISK_FACTOR_THRESHOLD = 0.5


def severity_for(score: float) -> Optional[str]:
    if score >= 0.8:
        return 'critical'
    if score >= 0.6:
        return 'high'
    if score >= 0.4:
        return 'medium'
    return None


# ============================================================================
# Insights
# ============================================================================

SUGGESTED_ACTIONS = {
    'frequency_pattern': ['Monitor activity', 'Set up alerts', 'Compare with baseline'],
    'temporal_pattern': ['Investigate timing', 'Check for events', 'Analyze triggers'],
    'spatial_pattern': ['Physical surveillance', 'Location history', 'Verify addresses'],
    'financial_pattern': ['Trace funds', 'Check source of funds', 'Identify beneficiaries'],
    'communication_pattern': ['Analyze content', 'Map communication network', 'Identify patterns'],
}
ANOMALY_ACTIONS = ['Review anomaly details', 'Verify data accuracy', 'Investigate related entities']
RISK_ACTIONS = ['Prioritize investigation', 'Gather additional evidence', 'Consider surveillance']
CONNECTION_ACTIONS = ['Analyze network position', 'Identify cluster membership', 'Map influence patterns']

TOP_N = 5
HIGHLY_CONNECTED = 15


# ============================================================================
# Engine
# ============================================================================

class CorrelationEngine:
    """Runs every detector over one graph and assembles the findings"""

    def __init__(self, pattern_definitions: Optional[List[PatternDefinition]] = None,
                 anomaly_detectors: Optional[List[Callable]] = None,
                 risk_factors: Optional[List[RiskFactor]] = None):
        self.pattern_definitions = pattern_definitions or PATTERN_DEFINITIONS
        self.anomaly_detectors = anomaly_detectors or ANOMALY_DETECTORS
        self.risk_factors = risk_factors or RISK_FACTORS

    def analyze(self, graph: KnowledgeGraph) -> CorrelationResult:
        start_time = time.time()

        patterns = self.detect_patterns(graph)
        anomalies = self.detect_anomalies(graph)
        risk_indicators = self.calculate_risk(graph)
        insights = self.generate_insights(graph, patterns, anomalies, risk_indicators)
        timeline = self.build_timeline(graph)

        elapsed_ms = int((time.time() - start_time) * 1000)
        stats = {
            'pattern_count': len(patterns),
            'anomaly_count': len(anomalies),
            'risk_indicator_count': len(risk_indicators),
            'insight_count': len(insights),
            'timeline_events': len(timeline),
            'pattern_types': dict(Counter(p.type for p in patterns)),
            'analysis_time_ms': elapsed_ms,
        }
        logger.info(
            f"Correlation analysis completed in {elapsed_ms}ms: {len(patterns)} patterns, "
            f"{len(anomalies)} anomalies, {len(risk_indicators)} risk indicators"
        )
        return CorrelationResult(
            patterns=patterns,
            anomalies=anomalies,
            risk_indicators=risk_indicators,
            insights=insights,
            timeline=timeline,
            stats=stats,
        )

    def detect_patterns(self, graph: KnowledgeGraph) -> List[DetectedPattern]:
        patterns = []
        for definition in self.pattern_definitions:
            found = definition.detect(graph)
            valid = [
                p for p in found
                if p.frequency >= definition.min_occurrences and p.significance >= definition.min_significance
            ]
            logger.debug(f"{definition.name}: {len(valid)}/{len(found)} patterns above thresholds")
            patterns.extend(valid)
        return sorted(patterns, key=lambda p: (-p.significance, p.id))

    def detect_anomalies(self, graph: KnowledgeGraph) -> List[Anomaly]:
        anomalies = []
        for detector in self.anomaly_detectors:
            anomalies.extend(detector(graph))
        return sorted(anomalies, key=lambda a: (-a.score, a.id))

    def calculate_risk(self, graph: KnowledgeGraph) -> List[RiskIndicator]:
        """Score every node; only factors above 0.5 contribute to the weighted average"""
        indicators = []
        for node_id in sorted(graph.nodes):
            node = graph.nodes[node_id]
            contributing = []
            for factor in self.risk_factors:
                score = factor.evaluate(graph, node)
                if score > RISK_FACTOR_THRESHOLD:
                    contributing.append((factor, score))
            if not contributing:
                continue

            total_weight = sum(f.weight for f, _ in contributing)
            weighted = sum(f.weight * s for f, s in contributing) / total_weight
            node.risk_score = weighted

            severity = severity_for(weighted)
            if severity is None:
                continue
            indicators.append(RiskIndicator(
                id=f"risk_{node_id}",
                type=contributing[0][0].id,
                severity=severity,
                description=f"Risk indicators for {node.label}: {', '.join(f.id for f, _ in contributing)}",
                entities=(node_id,),
                score=weighted,
                factors=tuple((f.id, s) for f, s in contributing),
            ))
        return sorted(indicators, key=lambda r: (-r.score, r.id))

    def generate_insights(self, graph: KnowledgeGraph, patterns: List[DetectedPattern],
                          anomalies: List[Anomaly], risk_indicators: List[RiskIndicator]) -> List[Insight]:
        insights = []

        for pattern in patterns[:TOP_N]:
            insights.append(Insight(
                id=f"insight_{pattern.id}",
                category='pattern',
                title=f"{pattern.type.replace('_', ' ')} detected",
                description=pattern.description,
                entities=pattern.entities,
                confidence=pattern.significance,
                actionable=pattern.significance > 0.7,
                suggested_actions=tuple(SUGGESTED_ACTIONS.get(pattern.type, ['Investigate further'])),
            ))

        for anomaly in anomalies[:TOP_N]:
            insights.append(Insight(
                id=f"insight_{anomaly.id}",
                category='risk',
                title=f"{anomaly.type} anomaly detected",
                description=anomaly.description,
                entities=anomaly.entities,
                confidence=min(anomaly.score / anomaly.threshold, 1.0),
                actionable=anomaly.score > anomaly.threshold,
                suggested_actions=tuple(ANOMALY_ACTIONS),
            ))

        high_risk = [r for r in risk_indicators if r.severity in ('high', 'critical')]
        if high_risk:
            insights.append(Insight(
                id='insight_high_risk',
                category='risk',
                title=f"{len(high_risk)} high-risk entities identified",
                description='Multiple entities have elevated risk scores requiring attention',
                entities=tuple(e for r in high_risk for e in r.entities),
                confidence=0.85,
                actionable=True,
                suggested_actions=tuple(RISK_ACTIONS),
            ))

        highly_connected = [n for n in sorted(graph.nodes) if connection_count(graph, n) > HIGHLY_CONNECTED]
        if highly_connected:
            insights.append(Insight(
                id='insight_highly_connected',
                category='connection',
                title=f"{len(highly_connected)} highly connected entities found",
                description='These entities may be key nodes in the network',
                entities=tuple(highly_connected),
                confidence=0.75,
                actionable=True,
                suggested_actions=tuple(CONNECTION_ACTIONS),
            ))

        return insights

    def build_timeline(self, graph: KnowledgeGraph) -> List[TimelineEvent]:
        events = []
        for node_id in sorted(graph.nodes):
            node = graph.nodes[node_id]
            if not node.first_seen:
                continue
            events.append(TimelineEvent(
                id=f"event_{node_id}",
                timestamp=node.first_seen,
                type='entity_discovered',
                description=f"Entity discovered: {node.label} ({node.type})",
                entities=(node_id,),
                source=node.source_tables[0] if node.source_tables else 'unknown',
                significance=0.8 if connection_count(graph, node_id) > 5 else 0.5,
            ))

        for edge_id in sorted(graph.edges):
            edge = graph.edges[edge_id]
            if not edge.created_at:
                continue
            events.append(TimelineEvent(
                id=f"event_{edge_id}",
                timestamp=edge.created_at,
                type='relationship_established',
                description=f"Relationship: {edge.relationship_type} ({edge.strength})",
                entities=(edge.source, edge.target),
                source=edge.evidence[0] if edge.evidence else 'unknown',
                significance=edge.confidence,
            ))

        return sorted(events, key=lambda e: (e.timestamp, e.id))
