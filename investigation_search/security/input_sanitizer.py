"""
Input Sanitizer
Cleans and validates investigator input
"""
import re
import logging
from typing import Any, Optional

from investigation_search.config import Config

logger = logging.getLogger(__name__)


class InputSanitizer:
    """Sanitize user input before processing"""

    @staticmethod
    def sanitize_query(query: Any, max_length: Optional[int] = None) -> tuple[bool, str]:
        """
        Sanitize a free-text investigator query

        Args:
            query: Raw user input
            max_length: Override for Config.MAX_INPUT_LENGTH

        Returns:
            Tuple of (is_valid: bool, sanitized_query: str or error_message: str)
        """
        if query is None or query == '':
            return False, "Empty query"

        if not isinstance(query, str):
            return False, "Query must be text"

        max_length = max_length or Config.MAX_INPUT_LENGTH

        # Remove leading/trailing whitespace
        query = query.strip()
        if not query:
            return False, "Empty query"

        # Check length
        if len(query) > max_length:
            return False, f"Query too long (max {max_length} characters)"

        # Check for null bytes
        if '\x00' in query:
            logger.warning("Rejected query containing null bytes")
            return False, "Invalid characters in query"

        # Remove control characters, then collapse whitespace
        query = ''.join(char for char in query if char.isprintable() or char in ['\n', '\t'])
        query = re.sub(r'\s+', ' ', query).strip()

        if not query:
            return False, "Empty query"

        return True, query

    @staticmethod
    def sanitize_text(text: Any) -> tuple[bool, str]:
        """Free text for entity extraction; allows ten times the query length"""
        return InputSanitizer.sanitize_query(text, max_length=Config.MAX_INPUT_LENGTH * 10)
