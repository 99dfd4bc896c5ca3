"""
Investigation Search
Session orchestrator: query text in, ranked records, knowledge graph and
correlation insights out.

Each call to search() owns its own record store, graph and cancel event;
nothing is shared between sessions.
"""

import time
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from enum import Enum

from investigation_search.agents.correlation_engine import CorrelationEngine, CorrelationResult
from investigation_search.agents.entity_extractor import EntityExtractor, ExtractionResult
from investigation_search.agents.entity_resolver import EntityResolver
from investigation_search.agents.knowledge_graph import KnowledgeGraph, KnowledgeGraphBuilder
from investigation_search.agents.query_planner import Criterion, QueryPlan, QueryPlanner
from investigation_search.config import Config
from investigation_search.search.cross_reference import CrossReferenceStore, StoredRecord
from investigation_search.search.search_client import PaginatedSearchClient, PaginationResult

logger = logging.getLogger(__name__)


class SearchStage(Enum):
    PARSING = "parsing"
    SEARCHING = "searching"
    PAGINATING = "paginating"
    FILTERING = "filtering"
    ANALYZING = "analyzing"
    COMPLETE = "complete"


@dataclass
class ProgressUpdate:
    stage: SearchStage
    progress: int
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'stage': self.stage.value,
            'progress': self.progress,
            'message': self.message,
            'details': dict(self.details),
        }


@dataclass
class SearchResponse:
    """Everything one search session produced"""
    success: bool
    query: str
    plan: Optional[QueryPlan] = None
    raw_records: List[StoredRecord] = field(default_factory=list)
    exact_matches: List[StoredRecord] = field(default_factory=list)
    partial_matches: List[StoredRecord] = field(default_factory=list)
    graph: Optional[KnowledgeGraph] = None
    insights: Optional[CorrelationResult] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'success': self.success,
            'query': self.query,
            'criteria': self.plan.to_dict() if self.plan else None,
            'raw_records': [r.to_dict() for r in self.raw_records],
            'ranked_results': {
                'exact': [r.to_dict() for r in self.exact_matches],
                'partial': [r.to_dict() for r in self.partial_matches],
            },
            'graph': self.graph.to_dict() if self.graph else None,
            'insights': self.insights.to_dict() if self.insights else None,
            'metadata': dict(self.metadata),
            'error': self.error,
        }


class ProgressTracker:
    """Forwards progress to a callback, never letting the value go backwards"""

    def __init__(self, callback: Optional[Callable[[ProgressUpdate], None]] = None):
        self.callback = callback
        self.progress = 0
        self.updates: List[ProgressUpdate] = []
        # Held while the callback runs so updates are delivered in the order computed
        self._lock = threading.RLock()

    def emit(self, stage: SearchStage, progress: float, message: str, **details) -> ProgressUpdate:
        with self._lock:
            self.progress = max(self.progress, min(100, max(0, int(progress))))
            update = ProgressUpdate(stage=stage, progress=self.progress, message=message, details=details)
            self.updates.append(update)
            logger.debug(f"[{stage.value} {update.progress}%] {message}")
            if self.callback:
                self.callback(update)
        return update


def search_term(criterion: Criterion) -> str:
    """Literal term sent to the search API for a primary criterion"""
    if criterion.category in ('phone', 'account'):
        return criterion.normalized_value
    return criterion.value


class InvestigationSearch:
    """
    Runs one investigator query end to end.

    Args:
        config: overrides for concurrency, session_timeout, api (dict merged
                over Config.SEARCH_API_CONFIG), resolution_threshold,
                multi_match_bonus and min_secondary_match
        client: search client to use instead of building one from config
        progress_callback: called with a ProgressUpdate at every stage
        extractor: entity extractor; defaults to Config.EXTRACTION_STRATEGY
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, client: Optional[PaginatedSearchClient] = None,
                 progress_callback: Optional[Callable[[ProgressUpdate], None]] = None,
                 extractor: Optional[EntityExtractor] = None):
        self.config = dict(config or {})
        self.concurrency = max(1, int(self.config.get('concurrency', Config.CONCURRENCY)))
        self.session_timeout = float(self.config.get('session_timeout', Config.SESSION_TIMEOUT))
        self.client = client or PaginatedSearchClient(api_config=self.config.get('api'))
        self.progress_callback = progress_callback
        self.extractor = extractor or EntityExtractor.from_name(
            self.config.get('extraction_strategy', Config.EXTRACTION_STRATEGY)
        )
        self.planner = QueryPlanner()
        self.correlation_engine = CorrelationEngine()

    # ------------------------------------------------------------------
    # Search phase
    # ------------------------------------------------------------------

    def _paginate(self, primary: List[Criterion], store: CrossReferenceStore,
                  tracker: ProgressTracker, cancel_event: threading.Event,
                  deadline: float) -> Dict[str, Any]:
        """Fetch every primary criterion under a bounded pool"""
        results: List[PaginationResult] = []
        errors: List[str] = []
        timed_out = False

        def run(criterion: Criterion) -> PaginationResult:
            return self.client.fetch_all(
                search_term(criterion),
                criterion.id,
                on_record=lambda table, record: store.upsert(table, record, criterion.id),
                on_page=lambda r: tracker.emit(
                    SearchStage.PAGINATING, tracker.progress,
                    f"Fetched page {r.pages_fetched} for {criterion.description}",
                    criterion_id=criterion.id, pages_fetched=r.pages_fetched, records=r.total_records,
                ),
                cancel_event=cancel_event,
            )

        executor = ThreadPoolExecutor(max_workers=min(self.concurrency, len(primary)),
                                      thread_name_prefix='search')
        futures = {executor.submit(run, c): c for c in primary}
        pending = set(futures)
        finished = 0
        try:
            while pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    timed_out = True
                    logger.warning(f"Session timeout after {self.session_timeout}s; cancelling {len(pending)} searches")
                    cancel_event.set()
                    for future in pending:
                        future.cancel()
                    break

                done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
                for future in done:
                    criterion = futures[future]
                    finished += 1
                    try:
                        result = future.result()
                    except Exception as e:
                        logger.error(f"Search for {criterion.description} failed: {e}")
                        errors.append(f"{criterion.id}: {e}")
                        continue
                    results.append(result)
                    if result.error:
                        errors.append(result.error)
                    tracker.emit(
                        SearchStage.PAGINATING, 20 + 50 * finished / len(primary),
                        f"Finished {criterion.description}: {result.total_records} records",
                        criterion_id=criterion.id, pages_fetched=result.pages_fetched,
                    )
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        # Searches still running at the deadline stop at the cancel check and keep what they fetched
        if timed_out:
            for future in pending:
                if future.cancelled() or future.exception() is not None:
                    continue
                result = future.result()
                results.append(result)
                if result.error:
                    errors.append(result.error)

        results.sort(key=lambda r: r.criterion_id)
        return {
            'results': results,
            'errors': errors,
            'timed_out': timed_out,
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def search(self, query: str) -> SearchResponse:
        start_time = time.time()
        tracker = ProgressTracker(self.progress_callback)

        # STEP 1: parse
        tracker.emit(SearchStage.PARSING, 5, 'Parsing query')
        try:
            extraction: ExtractionResult = self.extractor.extract(query)
        except TypeError as e:
            logger.error(f"Invalid query: {e}")
            tracker.emit(SearchStage.COMPLETE, 100, 'Search failed', error=str(e))
            return SearchResponse(success=False, query=str(query), error=str(e),
                                  metadata={'search_time_ms': int((time.time() - start_time) * 1000)})

        plan = self.planner.plan(query, extraction)
        tracker.emit(
            SearchStage.PARSING, 15, f"Found {plan.total_criteria} criteria",
            primary=len(plan.primary), secondary=len(plan.secondary),
        )

        metadata = {
            'total_api_calls': 0,
            'total_records': 0,
            'pages_fetched': 0,
            'cursors_used': 0,
            'api_errors': [],
            'early_stopped': False,
            'search_time_ms': 0,
            'extraction_strategy': extraction.strategy,
            'intent': plan.intent,
            'search_strategy': plan.search_strategy.value,
            'exact_match_count': 0,
            'partial_match_count': 0,
            'resolved_entities': 0,
            'criteria_results': [],
        }

        if not plan.primary:
            logger.info(f"No searchable criteria in query '{query}'")
            metadata['search_time_ms'] = int((time.time() - start_time) * 1000)
            tracker.emit(SearchStage.COMPLETE, 100, 'Nothing to search')
            return SearchResponse(success=True, query=query, plan=plan, metadata=metadata)

        # STEP 2: search every primary criterion
        tracker.emit(
            SearchStage.SEARCHING, 20, f"Searching {len(plan.primary)} primary criteria",
            criteria=[c.description for c in plan.primary],
        )
        store = CrossReferenceStore(
            plan.criteria,
            bonus=self.config.get('multi_match_bonus'),
            min_match_score=self.config.get('min_secondary_match'),
        )
        cancel_event = threading.Event()
        deadline = time.monotonic() + self.session_timeout

        outcome = self._paginate(plan.primary, store, tracker, cancel_event, deadline)
        for result in outcome['results']:
            metadata['total_api_calls'] += result.api_calls
            metadata['pages_fetched'] += result.pages_fetched
            metadata['cursors_used'] += len(result.cursors)
            metadata['early_stopped'] = metadata['early_stopped'] or result.early_stopped
            metadata['criteria_results'].append(result.to_dict())
        metadata['api_errors'] = outcome['errors']
        metadata['early_stopped'] = metadata['early_stopped'] or outcome['timed_out']
        tracker.emit(SearchStage.PAGINATING, 70, f"Fetched {len(store)} unique records")

        # STEP 3: cross-reference every record against every criterion
        tracker.emit(SearchStage.FILTERING, 75, 'Cross-referencing records against all criteria')
        store.evaluate_criteria()
        exact, partial = store.partition(plan.total_criteria)
        metadata['total_records'] = len(store)
        metadata['exact_match_count'] = len(exact)
        metadata['partial_match_count'] = len(partial)

        # STEP 4: graph and correlation
        tracker.emit(SearchStage.ANALYZING, 85, 'Building knowledge graph')
        builder = KnowledgeGraphBuilder(EntityResolver(threshold=self.config.get('resolution_threshold')))
        graph = builder.build(store.records)
        metadata['resolved_entities'] = len(builder.resolved)

        tracker.emit(SearchStage.ANALYZING, 90, 'Correlating entities',
                     nodes=len(graph.nodes), edges=len(graph.edges))
        correlation = self.correlation_engine.analyze(graph)
        tracker.emit(SearchStage.ANALYZING, 95, f"Found {len(correlation.insights)} insights")

        metadata['search_time_ms'] = int((time.time() - start_time) * 1000)
        tracker.emit(
            SearchStage.COMPLETE, 100,
            f"Search complete: {len(exact)} exact, {len(partial)} partial matches",
        )
        logger.info(
            f"Search '{query}' finished in {metadata['search_time_ms']}ms: "
            f"{metadata['total_records']} records, {metadata['total_api_calls']} API calls, "
            f"{len(metadata['api_errors'])} errors"
        )

        return SearchResponse(
            success=True,
            query=query,
            plan=plan,
            raw_records=sorted(store.records, key=lambda r: r.key),
            exact_matches=exact,
            partial_matches=partial,
            graph=graph,
            insights=correlation,
            metadata=metadata,
        )
