import unittest
from datetime import datetime

from investigation_search.agents.knowledge_graph import (
    KnowledgeGraph,
    KnowledgeGraphBuilder,
    RecordEntityExtractor,
    edge_strength,
    parse_timestamp,
)

BUILT_AT = datetime(2024, 6, 1, 12, 0, 0)


class TestKnowledgeGraph(unittest.TestCase):

    def setUp(self):
        self.graph = KnowledgeGraph()
        self.rahul = self.graph.add_node('person', 'Rahul Sharma').id
        self.amit = self.graph.add_node('person', 'Amit Verma').id
        self.phone = self.graph.add_node('phone', '+91 98765 43210').id

    def test_node_identity_is_canonical(self):
        again = self.graph.add_node('phone', '9876543210', source_table='cdr')
        self.assertEqual(again.id, 'phone:9876543210')
        self.assertEqual(again.id, self.phone)
        self.assertEqual(again.occurrence_count, 2)
        self.assertEqual(again.source_tables, ['cdr'])
        self.assertEqual(len(self.graph), 3)

    def test_repeat_edge_raises_weight(self):
        first = self.graph.add_edge(self.rahul, self.phone, 'has_phone', evidence='r1')
        second = self.graph.add_edge(self.rahul, self.phone, 'has_phone', evidence='r2')
        self.assertIs(first, second)
        self.assertEqual(second.weight, 2)
        self.assertAlmostEqual(second.confidence, 0.55)
        self.assertEqual(second.evidence, ['r1', 'r2'])
        self.assertEqual(len(self.graph.edges), 1)

    def test_symmetric_edges_are_ordered(self):
        one = self.graph.add_edge(self.rahul, self.amit, 'family')
        two = self.graph.add_edge(self.amit, self.rahul, 'family')
        self.assertIs(one, two)
        self.assertEqual(one.id, 'person:amit verma|person:rahul sharma|family')

    def test_directed_edges_keep_direction(self):
        forward = self.graph.add_edge(self.rahul, self.amit, 'financial')
        backward = self.graph.add_edge(self.amit, self.rahul, 'financial')
        self.assertIsNot(forward, backward)
        self.assertEqual(forward.source, self.rahul)

    def test_invalid_edges_rejected(self):
        self.assertIsNone(self.graph.add_edge(self.rahul, self.rahul, 'family'))
        self.assertIsNone(self.graph.add_edge(self.rahul, 'person:nobody', 'family'))
        self.assertEqual(self.graph.edges, {})

    def test_neighbors_and_paths(self):
        self.graph.add_edge(self.rahul, self.phone, 'has_phone')
        self.graph.add_edge(self.amit, self.phone, 'has_phone')

        self.assertEqual(self.graph.get_neighbors(self.rahul), [self.phone])
        self.assertEqual(self.graph.get_neighbors(self.rahul, depth=2), [self.phone, self.amit])
        self.assertEqual(self.graph.shortest_path(self.rahul, self.amit), [self.rahul, self.phone, self.amit])
        self.assertEqual(self.graph.shortest_path(self.rahul, self.rahul), [self.rahul])

        loner = self.graph.add_node('email', 'x@y.com').id
        self.assertIsNone(self.graph.shortest_path(self.rahul, loner))
        self.assertEqual(self.graph.get_neighbors('person:missing'), [])

    def test_clusters(self):
        self.graph.add_edge(self.rahul, self.phone, 'has_phone')
        self.graph.add_edge(self.amit, self.phone, 'has_phone')
        self.graph.add_node('email', 'x@y.com')

        clusters = self.graph.detect_clusters()
        self.assertEqual(len(clusters), 1)
        self.assertEqual(clusters[0].node_ids, sorted([self.rahul, self.amit, self.phone]))
        self.assertEqual(clusters[0].dominant_types, ['person', 'phone'])
        # (0.05 + 0.05 + 0.1) / 3 * 5
        self.assertAlmostEqual(clusters[0].risk_score, 1 / 3)
        self.assertEqual(self.graph.stats()['cluster_count'], 1)

    def test_edge_strength(self):
        self.assertEqual(edge_strength(1), 'weak')
        self.assertEqual(edge_strength(5), 'moderate')
        self.assertEqual(edge_strength(10), 'strong')


class TestRecordEntityExtractor(unittest.TestCase):

    def test_fields_and_nesting(self):
        extractor = RecordEntityExtractor()
        result = extractor.extract(
            {'Full Name': 'Rahul Sharma', 'contact': {'mobile': '+91 98765 43210'}, 'date': '2024-01-15'},
            'rec1', 'persons',
        )
        by_type = {m.entity_type: m.normalized_value for m in result.mentions}
        self.assertEqual(by_type, {'person': 'rahul sharma', 'phone': '9876543210'})
        self.assertEqual(result.timestamp, datetime(2024, 1, 15))
        self.assertTrue(all(m.id.startswith('rec1#') for m in result.mentions))

    def test_parse_timestamp(self):
        self.assertEqual(parse_timestamp('2024-01-15T10:30:00Z'), datetime(2024, 1, 15, 10, 30))
        self.assertEqual(parse_timestamp('15/01/2024'), datetime(2024, 1, 15))
        self.assertIsNone(parse_timestamp('not a date'))
        self.assertIsNone(parse_timestamp(None))


class TestKnowledgeGraphBuilder(unittest.TestCase):

    SHARED_EMAIL = [
        ('persons', {'name': 'Rahul Sharma', 'email': 'rs@mail.com'}),
        ('persons', {'name': 'Amit Verma', 'email': 'rs@mail.com'}),
    ]

    def test_shared_identifier_weight_grows_with_records(self):
        graph = KnowledgeGraphBuilder().build(self.SHARED_EMAIL, built_at=BUILT_AT)
        edge_id = 'person:amit verma|person:rahul sharma|shares_email'
        self.assertIn(edge_id, graph.edges)
        self.assertEqual(graph.edges[edge_id].weight, 1)

        more = self.SHARED_EMAIL + [('persons', {'name': 'Rahul Sharma', 'email': 'RS@mail.com', 'city': 'Delhi'})]
        graph = KnowledgeGraphBuilder().build(more, built_at=BUILT_AT)
        self.assertEqual(graph.edges[edge_id].weight, 2)
        self.assertEqual(graph.nodes['email:rs@mail.com'].occurrence_count, 3)

    def test_record_order_does_not_matter(self):
        records = self.SHARED_EMAIL + [
            ('transactions', {'from_account': '100200300', 'to_account': '400500600', 'amount': 5000}),
            ('persons', {'name': 'Rahul Sharma', 'account_number': '100200300', 'city': 'Delhi'}),
        ]
        forward = KnowledgeGraphBuilder().build(records, built_at=BUILT_AT)
        backward = KnowledgeGraphBuilder().build(list(reversed(records)), built_at=BUILT_AT)
        self.assertEqual(forward.to_dict(), backward.to_dict())

    def test_text_relationships(self):
        records = [('cases', {
            'accused_name': 'Rahul',
            'victim_name': 'Amit',
            'remarks': 'Rahul transferred Rs 50,000 to Amit',
        })]
        graph = KnowledgeGraphBuilder().build(records, built_at=BUILT_AT)

        edge = graph.edges.get('person:rahul|person:amit|financial')
        self.assertIsNotNone(edge)
        self.assertEqual(edge.confidence, 0.8)
        self.assertIn('transferred', edge.evidence[0])
        self.assertNotIn('person:amit|person:rahul|financial', graph.edges)

    def test_received_reverses_direction(self):
        records = [('cases', {
            'accused_name': 'Rahul',
            'victim_name': 'Amit',
            'remarks': 'Amit received Rs 20,000 from Rahul',
        })]
        graph = KnowledgeGraphBuilder().build(records, built_at=BUILT_AT)
        self.assertIn('person:rahul|person:amit|financial', graph.edges)

    def test_transaction_records(self):
        records = [
            ('transactions', {'from_account': '100200300', 'to_account': '400500600', 'date': '2024-01-01'}),
            ('transactions', {'from_account': '400500600', 'to_account': '700800900', 'date': '2024-01-02'}),
            ('transactions', {'from_account': '700800900', 'to_account': '100200300', 'date': '2024-01-03'}),
        ]
        graph = KnowledgeGraphBuilder().build(records, built_at=BUILT_AT)

        financial = sorted(e.id for e in graph.edges.values() if e.relationship_type == 'financial')
        self.assertEqual(financial, [
            'account:100200300|account:400500600|financial',
            'account:400500600|account:700800900|financial',
            'account:700800900|account:100200300|financial',
        ])
        first = graph.nodes['account:100200300']
        self.assertEqual(first.first_seen, datetime(2024, 1, 1))
        self.assertEqual(first.last_seen, datetime(2024, 1, 3))
        self.assertEqual(len(graph.clusters), 1)
        self.assertEqual(graph.clusters[0].dominant_types, ['account'])

    def test_co_occurrence(self):
        records = [
            ('cdr', {'caller_name': 'Rahul Sharma', 'city': 'Delhi'}),
            ('cdr', {'caller_name': 'Rahul Sharma', 'city': 'Delhi', 'duration': 30}),
        ]
        graph = KnowledgeGraphBuilder().build(records, built_at=BUILT_AT)
        edge = graph.edges['location:delhi|person:rahul sharma|co_occurs']
        self.assertEqual(edge.weight, 2)
        self.assertAlmostEqual(edge.confidence, 0.7)

    def test_empty(self):
        graph = KnowledgeGraphBuilder().build([], built_at=BUILT_AT)
        self.assertEqual(graph.stats()['node_count'], 0)
        self.assertEqual(graph.clusters, [])


if __name__ == '__main__':
    unittest.main()
