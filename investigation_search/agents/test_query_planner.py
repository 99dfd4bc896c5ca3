import unittest
from dataclasses import FrozenInstanceError

from investigation_search.agents.entity_extractor import EntityExtractor, RegexStrategy
from investigation_search.agents.query_planner import (
    CriterionRole,
    QueryPlanner,
    SearchStrategy,
)


class TestQueryPlanner(unittest.TestCase):

    def setUp(self):
        self.extractor = EntityExtractor(strategy=RegexStrategy())
        self.planner = QueryPlanner()

    def plan(self, query):
        return self.planner.plan(query, self.extractor.extract(query))

    def test_phone_is_primary_name_and_place_secondary(self):
        plan = self.plan("rahul sharma from delhi with phone 9876543210")

        self.assertEqual(len(plan.primary), 1)
        self.assertEqual(plan.primary[0].category, 'phone')
        self.assertEqual(plan.primary[0].normalized_value, '9876543210')
        self.assertEqual(plan.primary[0].role, CriterionRole.PRIMARY)

        secondary = {c.category: c.value for c in plan.secondary}
        self.assertEqual(secondary, {'name': 'Rahul Sharma', 'location': 'Delhi'})
        self.assertTrue(all(c.role == CriterionRole.SECONDARY for c in plan.secondary))

        self.assertEqual(plan.total_criteria, 3)
        self.assertEqual(plan.search_strategy, SearchStrategy.INTERSECTION)
        self.assertEqual(plan.intent, 'Find person by phone number in Delhi')
        self.assertIsNone(plan.promoted_criterion)

    def test_identifier_categories(self):
        plan = self.plan("PAN ABCPE1234F account: 123456789012 mail x@y.com")
        self.assertEqual(sorted(c.category for c in plan.primary), ['account', 'email', 'id'])
        pan = [c for c in plan.primary if c.category == 'id'][0]
        self.assertEqual(pan.source_type, 'pan_number')
        self.assertEqual(pan.description, 'PAN: ABCPE1234F')

    def test_longest_secondary_promoted_without_identifier(self):
        plan = self.plan("rahul sharma from delhi")
        self.assertEqual(len(plan.primary), 1)
        self.assertEqual(plan.primary[0].category, 'name')
        self.assertTrue(plan.primary[0].is_primary)
        self.assertEqual(plan.promoted_criterion, plan.primary[0].id)
        self.assertEqual([c.category for c in plan.secondary], ['location'])

    def test_empty_query(self):
        plan = self.plan("")
        self.assertEqual(plan.primary, [])
        self.assertEqual(plan.secondary, [])
        self.assertEqual(plan.search_strategy, SearchStrategy.UNION)
        self.assertEqual(plan.intent, 'Search records')

    def test_criteria_are_immutable(self):
        plan = self.plan("phone 9876543210")
        with self.assertRaises(FrozenInstanceError):
            plan.primary[0].value = '0000000000'

    def test_weights_follow_category(self):
        planner = QueryPlanner(category_weights={'phone': 42})
        plan = planner.plan("9876543210", self.extractor.extract("9876543210"))
        self.assertEqual(plan.primary[0].weight, 42)

    def test_ids_are_unique(self):
        plan = self.plan("9876543210 and 9123456789 for rahul sharma")
        ids = [c.id for c in plan.criteria]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertIsNotNone(plan.get(ids[0]))
        self.assertIsNone(plan.get('missing'))


if __name__ == '__main__':
    unittest.main()
