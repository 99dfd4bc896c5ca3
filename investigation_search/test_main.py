import json
import os
import tempfile
import unittest
from unittest.mock import patch

from investigation_search.agents.investigation_agent import SearchResponse
from investigation_search.main import build_parser, main


class TestCommandLine(unittest.TestCase):

    def test_parser_defaults(self):
        args = build_parser().parse_args(['phone 9876543210', '--strategy', 'regex'])
        self.assertEqual(args.query, 'phone 9876543210')
        self.assertEqual(args.strategy, 'regex')
        self.assertIsNone(args.output)

    def test_blank_query_rejected(self):
        self.assertEqual(main(['   ']), 2)

    @patch('investigation_search.main.InvestigationSearch')
    def test_writes_json(self, search_class):
        search_class.return_value.search.return_value = SearchResponse(
            success=True, query='phone 9876543210', metadata={'total_records': 0},
        )
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'out.json')
            self.assertEqual(main(['phone 9876543210', '--strategy', 'regex', '--output', path]), 0)
            with open(path, encoding='utf-8') as f:
                saved = json.load(f)

        self.assertTrue(saved['success'])
        self.assertEqual(saved['metadata'], {'total_records': 0})
        search_class.return_value.client.close.assert_called_once()

    @patch('investigation_search.main.InvestigationSearch')
    def test_failed_search_exit_code(self, search_class):
        search_class.return_value.search.return_value = SearchResponse(success=False, query='x', error='bad')
        self.assertEqual(main(['x', '--strategy', 'regex']), 1)


if __name__ == '__main__':
    unittest.main()
