import unittest
from unittest.mock import Mock, patch

from investigation_search.agents.entity_extractor import EntityExtractor, RegexStrategy
from investigation_search.agents.investigation_agent import SearchResponse
from investigation_search.app import create_app
from investigation_search.config import Config


class TestRoutes(unittest.TestCase):

    def setUp(self):
        self.search = Mock()
        self.search.search.return_value = SearchResponse(
            success=True, query='phone 9876543210', metadata={'total_records': 0},
        )
        self.factory = Mock(return_value=self.search)
        self.app = create_app(search_factory=self.factory, extractor=EntityExtractor(strategy=RegexStrategy()))
        self.client = self.app.test_client()

    def test_health(self):
        response = self.client.get('/api/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['status'], 'healthy')

    def test_investigate(self):
        response = self.client.post('/api/investigate', json={'query': '  phone   9876543210 '})
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body['success'])
        self.assertEqual(body['metadata'], {'total_records': 0})
        self.search.search.assert_called_once_with('phone 9876543210')

    def test_fresh_session_per_request(self):
        self.client.post('/api/investigate', json={'query': 'phone 9876543210'})
        self.client.post('/api/investigate', json={'query': 'phone 9123456789'})
        self.assertEqual(self.factory.call_count, 2)

    def test_bad_requests(self):
        self.assertEqual(self.client.post('/api/investigate', json={'query': '   '}).status_code, 400)
        self.assertEqual(self.client.post('/api/investigate', data='not json').status_code, 400)
        too_long = 'x' * (Config.MAX_INPUT_LENGTH + 1)
        self.assertEqual(self.client.post('/api/investigate', json={'query': too_long}).status_code, 400)
        self.factory.assert_not_called()

    def test_failed_search(self):
        self.search.search.return_value = SearchResponse(success=False, query='x', error='bad query')
        response = self.client.post('/api/investigate', json={'query': 'x'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error'], 'bad query')

    def test_internal_error(self):
        self.search.search.side_effect = RuntimeError('boom')
        response = self.client.post('/api/investigate', json={'query': 'phone 9876543210'})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json()['error'], 'Internal server error')

    def test_extract(self):
        response = self.client.post('/api/extract', json={'text': 'call +91 98765-43210'})
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body['success'])
        phones = [e for e in body['entities'] if e['normalized_value'] == '9876543210']
        self.assertEqual(len(phones), 1)


class TestRateLimit(unittest.TestCase):

    def test_limit_per_minute(self):
        search = Mock()
        search.search.return_value = SearchResponse(success=True, query='x')
        with patch.object(Config, 'RATE_LIMIT', 2):
            app = create_app(search_factory=Mock(return_value=search),
                             extractor=EntityExtractor(strategy=RegexStrategy()))
        client = app.test_client()

        codes = [client.post('/api/investigate', json={'query': 'x'}).status_code for _ in range(3)]
        self.assertEqual(codes, [200, 200, 429])


if __name__ == '__main__':
    unittest.main()
