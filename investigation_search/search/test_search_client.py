import threading
import unittest
from unittest.mock import Mock

import requests

from investigation_search.search.search_client import (
    PaginatedSearchClient,
    SearchAPIError,
    SearchPage,
)


def page_response(results, has_more=False, next_cursor=None):
    response = Mock()
    response.status_code = 200
    response.raise_for_status.return_value = None
    response.json.return_value = {
        'results': results,
        'has_more': has_more,
        'next_cursor': next_cursor,
    }
    return response


def error_response(status):
    response = Mock()
    response.status_code = status
    response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error", response=response)
    return response


def make_client(responses=None, side_effect=None, **config):
    session = requests.Session()
    session.get = Mock(side_effect=side_effect or responses)
    api_config = {
        'base_url': 'http://search.local/',
        'token': 'secret',
        'retry_delay': 0,
        'retry_attempts': 3,
    }
    api_config.update(config)
    return PaginatedSearchClient(api_config=api_config, session=session)


class TestFetchPage(unittest.TestCase):

    def test_request_shape(self):
        client = make_client([page_response({'persons': [{'name': 'A'}]})], page_size=25)
        page = client.fetch_page('9876543210', cursor='abc')

        self.assertIsInstance(page, SearchPage)
        self.assertEqual(page.results['persons'], [{'name': 'A'}])
        args, kwargs = client.session.get.call_args
        self.assertEqual(args[0], 'http://search.local/search')
        self.assertEqual(kwargs['params'], {'q': '9876543210', 'limit': 25, 'cursor': 'abc'})
        self.assertEqual(client.session.headers['Authorization'], 'Bearer secret')

    def test_retries_transient_errors(self):
        client = make_client([
            requests.exceptions.ConnectionError("reset"),
            error_response(503),
            page_response({'persons': []}),
        ])
        page = client.fetch_page('x')
        self.assertFalse(page.has_more)
        self.assertEqual(client.session.get.call_count, 3)

    def test_client_error_not_retried(self):
        client = make_client([error_response(404)])
        with self.assertRaises(SearchAPIError) as ctx:
            client.fetch_page('x')
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(client.session.get.call_count, 1)

    def test_rate_limit_is_retried(self):
        client = make_client([error_response(429), page_response({})])
        client.fetch_page('x')
        self.assertEqual(client.session.get.call_count, 2)

    def test_malformed_body(self):
        bad = Mock()
        bad.raise_for_status.return_value = None
        bad.json.return_value = {'results': 'not-a-dict'}
        client = make_client([bad], retry_attempts=1)
        with self.assertRaises(SearchAPIError):
            client.fetch_page('x')

    def test_gives_up_after_attempts(self):
        client = make_client(side_effect=requests.exceptions.Timeout("slow"), retry_attempts=2)
        with self.assertRaises(SearchAPIError):
            client.fetch_page('x')
        self.assertEqual(client.session.get.call_count, 2)


class TestFetchAll(unittest.TestCase):

    def test_follows_cursors_until_done(self):
        client = make_client([
            page_response({'persons': [{'id': 1}, {'id': 2}]}, has_more=True, next_cursor='c1'),
            page_response({'persons': [{'id': 3}], 'cases': [{'id': 9}]}, has_more=True, next_cursor='c2'),
            page_response({'persons': [{'id': 4}]}),
        ])
        seen = []
        result = client.fetch_all('q', 'phone_1', on_record=lambda table, record: seen.append((table, record['id'])))

        self.assertEqual(result.pages_fetched, 3)
        self.assertEqual(result.api_calls, 3)
        self.assertEqual(result.cursors, ['c1', 'c2'])
        self.assertEqual(result.total_records, 5)
        self.assertEqual(result.stop_reason, 'complete')
        self.assertFalse(result.early_stopped)
        self.assertIsNone(result.error)
        self.assertEqual(len(seen), 5)
        cursors_sent = [c.kwargs['params'].get('cursor') for c in client.session.get.call_args_list]
        self.assertEqual(cursors_sent, [None, 'c1', 'c2'])

    def test_page_cap_terminates_endless_server(self):
        endless = lambda *args, **kwargs: page_response({'persons': [{'n': 1}]}, has_more=True, next_cursor='again')
        client = make_client(side_effect=endless, max_pages=4)
        result = client.fetch_all('q', 'phone_1')

        self.assertEqual(result.pages_fetched, 4)
        self.assertTrue(result.early_stopped)
        self.assertEqual(result.stop_reason, 'max_pages')

    def test_result_cap(self):
        many = lambda *args, **kwargs: page_response({'persons': [{'n': i} for i in range(10)]}, has_more=True, next_cursor='c')
        client = make_client(side_effect=many, max_results=25)
        result = client.fetch_all('q', 'phone_1')

        self.assertEqual(result.pages_fetched, 3)
        self.assertTrue(result.early_stopped)
        self.assertEqual(result.stop_reason, 'max_results')

    def test_missing_cursor_ends_stream(self):
        client = make_client([page_response({'persons': [{'id': 1}]}, has_more=True, next_cursor=None)])
        result = client.fetch_all('q', 'phone_1')

        self.assertEqual(result.pages_fetched, 1)
        self.assertEqual(result.total_records, 1)
        self.assertEqual(result.stop_reason, 'missing_cursor')
        self.assertIsNone(result.error)

    def test_failure_keeps_earlier_pages(self):
        client = make_client(
            [page_response({'persons': [{'id': 1}]}, has_more=True, next_cursor='c1')]
            + [error_response(500)] * 3
        )
        result = client.fetch_all('q', 'phone_1')

        self.assertEqual(result.total_records, 1)
        self.assertEqual(result.stop_reason, 'error')
        self.assertTrue(result.error.startswith('phone_1: '))

    def test_cancelled_before_start(self):
        client = make_client([page_response({})])
        client.cancel_event = threading.Event()
        client.cancel_event.set()
        result = client.fetch_all('q', 'phone_1')

        self.assertTrue(result.early_stopped)
        self.assertEqual(result.stop_reason, 'cancelled')
        client.session.get.assert_not_called()

    def test_retried_attempts_are_counted(self):
        client = make_client([
            error_response(503),
            page_response({'persons': [{'id': 1}]}),
        ])
        result = client.fetch_all('q', 'phone_1')

        self.assertEqual(result.pages_fetched, 1)
        self.assertEqual(result.api_calls, 2)

    def test_cancel_event_per_call(self):
        client = make_client([page_response({'persons': [{'id': 1}]})])
        cancelled = threading.Event()
        cancelled.set()
        result = client.fetch_all('q', 'phone_1', cancel_event=cancelled)

        self.assertEqual(result.stop_reason, 'cancelled')
        self.assertFalse(client.cancel_event.is_set())
        client.session.get.assert_not_called()

        # The client's own event is unaffected for the next call
        result = client.fetch_all('q', 'phone_1')
        self.assertEqual(result.stop_reason, 'complete')


if __name__ == '__main__':
    unittest.main()
