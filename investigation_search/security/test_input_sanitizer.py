import unittest

from investigation_search.config import Config
from investigation_search.security.input_sanitizer import InputSanitizer


class TestInputSanitizer(unittest.TestCase):

    def test_valid_query_is_cleaned(self):
        is_valid, query = InputSanitizer.sanitize_query("  rahul   sharma\n\tdelhi\x07 ")
        self.assertTrue(is_valid)
        self.assertEqual(query, "rahul sharma delhi")

    def test_rejects_empty_and_non_text(self):
        self.assertEqual(InputSanitizer.sanitize_query(None), (False, "Empty query"))
        self.assertEqual(InputSanitizer.sanitize_query("   "), (False, "Empty query"))
        self.assertEqual(InputSanitizer.sanitize_query(9876543210), (False, "Query must be text"))

    def test_rejects_null_bytes(self):
        is_valid, message = InputSanitizer.sanitize_query("rahul\x00sharma")
        self.assertFalse(is_valid)
        self.assertEqual(message, "Invalid characters in query")

    def test_length_limit(self):
        self.assertFalse(InputSanitizer.sanitize_query("x" * 11, max_length=10)[0])
        self.assertTrue(InputSanitizer.sanitize_query("x" * 10, max_length=10)[0])

    def test_text_allows_longer_input(self):
        text = "x" * (Config.MAX_INPUT_LENGTH + 1)
        self.assertFalse(InputSanitizer.sanitize_query(text)[0])
        self.assertTrue(InputSanitizer.sanitize_text(text)[0])


if __name__ == '__main__':
    unittest.main()
