import time
import unittest
from unittest.mock import Mock

import requests

from investigation_search.agents.entity_extractor import EntityExtractor, RegexStrategy
from investigation_search.agents.investigation_agent import (
    InvestigationSearch,
    ProgressTracker,
    SearchStage,
)
from investigation_search.search.search_client import PaginatedSearchClient
from investigation_search.search.test_search_client import error_response, page_response

QUERY = "rahul sharma from delhi with phone 9876543210"

PAGES = {
    None: page_response(
        {'persons': [{'name': 'Rahul Sharma', 'city': 'New Delhi', 'phone': '9876543210'}]},
        has_more=True, next_cursor='c1',
    ),
    'c1': page_response({'persons': [
        {'name': 'RAHUL SHARMA', 'city': 'Delhi', 'mobile': '+91 98765 43210'},
        {'name': 'Suresh Kumar', 'city': 'Mumbai', 'phone': '9876543210'},
    ]}),
}


def paged_get(url, params=None, timeout=None):
    return PAGES[params.get('cursor')]


def make_search(get, session_timeout=5, callback=None):
    session = requests.Session()
    session.get = Mock(side_effect=get)
    client = PaginatedSearchClient(
        api_config={'base_url': 'http://search.local', 'retry_delay': 0, 'retry_attempts': 2},
        session=session,
    )
    return InvestigationSearch(
        config={'concurrency': 2, 'session_timeout': session_timeout},
        client=client,
        progress_callback=callback,
        extractor=EntityExtractor(strategy=RegexStrategy()),
    )


class TestProgressTracker(unittest.TestCase):

    def test_never_goes_backwards(self):
        seen = []
        tracker = ProgressTracker(seen.append)
        tracker.emit(SearchStage.PARSING, 40, 'a')
        tracker.emit(SearchStage.PAGINATING, 20, 'b')
        tracker.emit(SearchStage.COMPLETE, 150, 'c')
        self.assertEqual([u.progress for u in seen], [40, 40, 100])
        self.assertEqual(tracker.progress, 100)


class TestInvestigationSearch(unittest.TestCase):

    def test_end_to_end(self):
        updates = []
        search = make_search(paged_get, callback=updates.append)
        response = search.search(QUERY)

        self.assertTrue(response.success)
        self.assertEqual(len(response.raw_records), 3)
        self.assertEqual(len(response.exact_matches), 2)
        self.assertEqual(len(response.partial_matches), 1)
        self.assertEqual(response.partial_matches[0].raw_fields['name'], 'Suresh Kumar')

        metadata = response.metadata
        self.assertEqual(metadata['pages_fetched'], 2)
        self.assertEqual(metadata['total_api_calls'], 2)
        self.assertEqual(metadata['cursors_used'], 1)
        self.assertEqual(metadata['total_records'], 3)
        self.assertEqual(metadata['api_errors'], [])
        self.assertFalse(metadata['early_stopped'])
        self.assertEqual(metadata['search_strategy'], 'intersection')

        # Only the phone is sent to the API
        sent = [c.kwargs['params']['q'] for c in search.client.session.get.call_args_list]
        self.assertEqual(sent, ['9876543210', '9876543210'])

        self.assertIn('phone:9876543210', response.graph.nodes)
        self.assertIsNotNone(response.insights)

        progress = [u.progress for u in updates]
        self.assertEqual(progress, sorted(progress))
        self.assertEqual(updates[-1].stage, SearchStage.COMPLETE)
        self.assertEqual(updates[-1].progress, 100)

        payload = response.to_dict()
        self.assertEqual(
            set(payload),
            {'success', 'query', 'criteria', 'raw_records', 'ranked_results', 'graph', 'insights', 'metadata', 'error'},
        )
        self.assertEqual(len(payload['ranked_results']['exact']), 2)

    def test_same_query_same_graph(self):
        first = make_search(paged_get).search(QUERY)
        second = make_search(paged_get).search(QUERY)
        self.assertEqual(sorted(first.graph.nodes), sorted(second.graph.nodes))
        self.assertEqual(sorted(first.graph.edges), sorted(second.graph.edges))

    def test_nothing_to_search(self):
        search = make_search(paged_get)
        response = search.search("???")

        self.assertTrue(response.success)
        self.assertEqual(response.raw_records, [])
        self.assertEqual(response.metadata['total_api_calls'], 0)
        search.client.session.get.assert_not_called()

    def test_invalid_query(self):
        updates = []
        response = make_search(paged_get, callback=updates.append).search(None)
        self.assertFalse(response.success)
        self.assertIsNotNone(response.error)
        self.assertEqual(updates[-1].progress, 100)

    def test_api_failure_is_reported(self):
        search = make_search(lambda *args, **kwargs: error_response(500))
        response = search.search(QUERY)

        self.assertTrue(response.success)
        self.assertEqual(response.raw_records, [])
        self.assertEqual(len(response.metadata['api_errors']), 1)
        self.assertTrue(response.metadata['api_errors'][0].startswith('phone_'))
        # Both attempts of the retried page reach the API
        self.assertEqual(response.metadata['total_api_calls'], 2)

    def test_session_timeout_keeps_partial_results(self):
        def slow_get(url, params=None, timeout=None):
            time.sleep(0.3)
            return page_response({'persons': [{'name': 'Rahul Sharma', 'phone': '9876543210'}]},
                                 has_more=True, next_cursor='again')

        search = make_search(slow_get, session_timeout=0.1)
        response = search.search(QUERY)

        self.assertTrue(response.success)
        self.assertTrue(response.metadata['early_stopped'])
        # The deadline cancels this session only; the shared client is untouched
        self.assertFalse(search.client.cancel_event.is_set())
        self.assertEqual(len(response.raw_records), 1)

    def test_progress_ordered_across_workers(self):
        def get(url, params=None, timeout=None):
            if params['q'] == '9876543210':
                time.sleep(0.1)
            return page_response({'persons': [{'q': params['q']}]})

        seen = []

        def slow_callback(update):
            # Slow consumer on the email worker's page update
            if update.message.startswith('Fetched page') and update.details['criterion_id'].startswith('email'):
                time.sleep(0.4)
            seen.append(update.progress)

        search = make_search(get, callback=slow_callback)
        response = search.search("phone 9876543210 mail x@y.com")

        self.assertTrue(response.success)
        self.assertEqual(len(response.plan.primary), 2)
        self.assertEqual(seen, sorted(seen))
        self.assertEqual(seen[-1], 100)


if __name__ == '__main__':
    unittest.main()
