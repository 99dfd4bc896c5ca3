"""
Paginated Search Client
Fetches every page of results for one search term from the external search API
"""

import time
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field

import requests
from pydantic import BaseModel, Field, ValidationError

from investigation_search.config import Config

logger = logging.getLogger(__name__)


class SearchAPIError(Exception):
    """A page could not be fetched after all retries"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SearchPage(BaseModel):
    """One page of the search API response"""
    results: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    has_more: bool = False
    next_cursor: Optional[str] = None


@dataclass
class PaginationResult:
    """Outcome of paging through one search term"""
    criterion_id: str
    query: str
    records: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)
    pages_fetched: int = 0
    api_calls: int = 0
    cursors: List[str] = field(default_factory=list)
    early_stopped: bool = False
    stop_reason: str = ''
    error: Optional[str] = None

    @property
    def total_records(self) -> int:
        return len(self.records)

    def to_dict(self) -> Dict:
        return {
            'criterion_id': self.criterion_id,
            'query': self.query,
            'pages_fetched': self.pages_fetched,
            'total_records': self.total_records,
            'api_calls': self.api_calls,
            'cursors_used': len(self.cursors),
            'early_stopped': self.early_stopped,
            'stop_reason': self.stop_reason,
            'error': self.error,
        }


class PaginatedSearchClient:
    """
    Cursor-paginated client for GET /search?q=&limit=&cursor=

    Pages of one term are fetched strictly in order. Each page has its own
    timeout and bounded linear-backoff retries. Page and result caps guarantee
    termination even if the server never stops reporting has_more.
    """

    def __init__(self, api_config: Optional[Dict] = None, session: Optional[requests.Session] = None,
                 cancel_event: Optional[threading.Event] = None):
        config = dict(Config.SEARCH_API_CONFIG)
        if api_config:
            config.update(api_config)

        self.base_url = config['base_url'].rstrip('/')
        self.page_size = config['page_size']
        self.max_pages = config['max_pages']
        self.max_results = config['max_results']
        self.timeout = config['timeout']
        self.retry_attempts = max(1, config['retry_attempts'])
        self.retry_delay = config['retry_delay']
        self.cancel_event = cancel_event or threading.Event()

        self.session = session or requests.Session()
        self.session.headers.update(self.get_headers(config.get('token')))

    @staticmethod
    def get_headers(token: Optional[str]) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if token:
            headers['Authorization'] = f'Bearer {token}'
        return headers

    def close(self):
        self.session.close()

    # ------------------------------------------------------------------
    # Single page
    # ------------------------------------------------------------------

    def fetch_page(self, query: str, cursor: Optional[str] = None,
                   cancel_event: Optional[threading.Event] = None,
                   result: Optional[PaginationResult] = None) -> SearchPage:
        """
        Fetch one page with retry logic.

        Every HTTP attempt, retries included, is counted in result.api_calls.

        Raises:
            SearchAPIError: client error, or every attempt failed
        """
        params = {'q': query, 'limit': self.page_size}
        if cursor:
            params['cursor'] = cursor
        url = f"{self.base_url}/search"

        cancel_event = cancel_event or self.cancel_event
        last_error = None
        for attempt in range(1, self.retry_attempts + 1):
            if cancel_event.is_set():
                raise SearchAPIError("Search cancelled")
            if result is not None:
                result.api_calls += 1
            try:
                logger.debug(f"Fetching: {url} q={query} cursor={cursor} (attempt {attempt}/{self.retry_attempts})")
                response = self.session.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return SearchPage.model_validate(response.json())

            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                # 4xx other than rate limiting will not succeed on retry
                if status is not None and 400 <= status < 500 and status != 429:
                    logger.debug(f"Client error (HTTP {status}) for q={query} - skipping retry")
                    raise SearchAPIError(f"HTTP {status} for '{query}'", status_code=status) from e
                last_error = SearchAPIError(f"HTTP {status} for '{query}'", status_code=status)

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                last_error = SearchAPIError(f"Network error for '{query}': {e}")

            except (ValueError, ValidationError) as e:
                # Body was not JSON, or not the expected shape
                last_error = SearchAPIError(f"Malformed response for '{query}': {e}")

            except requests.exceptions.RequestException as e:
                last_error = SearchAPIError(f"Request failed for '{query}': {e}")

            if attempt < self.retry_attempts:
                delay = self.retry_delay * attempt
                logger.warning(f"{last_error} (attempt {attempt}/{self.retry_attempts}). Retrying in {delay}s...")
                # Interruptible sleep
                if cancel_event.wait(delay):
                    raise SearchAPIError("Search cancelled")
            else:
                logger.error(f"Failed to fetch page after {self.retry_attempts} attempts: {last_error}")

        raise last_error

    # ------------------------------------------------------------------
    # Full pagination chain
    # ------------------------------------------------------------------

    def fetch_all(self, query: str, criterion_id: str,
                  on_record: Optional[Callable[[str, Dict[str, Any]], None]] = None,
                  on_page: Optional[Callable[[PaginationResult], None]] = None,
                  cancel_event: Optional[threading.Event] = None) -> PaginationResult:
        """
        Page through every result for one search term.

        API failures end this term only; records fetched so far are kept
        and the failure is reported in result.error.
        cancel_event overrides the client's own event for this call only.
        """
        result = PaginationResult(criterion_id=criterion_id, query=query)
        cancel_event = cancel_event or self.cancel_event
        cursor = None
        start_time = time.time()

        while True:
            if cancel_event.is_set():
                result.early_stopped = True
                result.stop_reason = 'cancelled'
                logger.warning(f"Pagination for '{query}' cancelled after {result.pages_fetched} pages")
                break

            if result.pages_fetched >= self.max_pages:
                result.early_stopped = True
                result.stop_reason = 'max_pages'
                logger.warning(f"Reached page cap ({self.max_pages}) for '{query}'")
                break

            try:
                page = self.fetch_page(query, cursor, cancel_event=cancel_event, result=result)
            except SearchAPIError as e:
                if cancel_event.is_set():
                    result.early_stopped = True
                    result.stop_reason = 'cancelled'
                else:
                    result.error = f"{criterion_id}: {e}"
                    result.stop_reason = 'error'
                break

            result.pages_fetched += 1
            for table, records in page.results.items():
                for record in records:
                    result.records.append((table, record))
                    if on_record:
                        on_record(table, record)

            if on_page:
                on_page(result)

            if result.total_records >= self.max_results:
                result.early_stopped = True
                result.stop_reason = 'max_results'
                logger.warning(f"Reached result cap ({self.max_results}) for '{query}'")
                break

            if not page.has_more:
                result.stop_reason = 'complete'
                break

            if not page.next_cursor:
                # Protocol inconsistency: treat as end of stream
                result.stop_reason = 'missing_cursor'
                logger.warning(f"Server reported has_more without a cursor for '{query}'; stopping")
                break

            cursor = page.next_cursor
            result.cursors.append(cursor)

        logger.info(
            f"Fetched {result.total_records} records for '{query}' in {result.pages_fetched} pages "
            f"({time.time() - start_time:.2f}s, stop={result.stop_reason})"
        )
        return result
