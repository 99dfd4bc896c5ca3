"""
Command-line investigation search
Runs one query against the search API and prints or saves the response
"""
import sys
import json
import logging
import argparse

from tqdm import tqdm

from investigation_search.config import Config
from investigation_search.logging_setup import setup_logging
from investigation_search.agents.entity_extractor import EntityExtractor, STRATEGIES
from investigation_search.agents.investigation_agent import InvestigationSearch, ProgressUpdate
from investigation_search.security.input_sanitizer import InputSanitizer

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Search investigation records from a free-text query"
    )
    parser.add_argument(
        "query",
        help='Free-text query, e.g. "rahul sharma from delhi with phone 9876543210"'
    )
    parser.add_argument(
        "--api-url",
        default=Config.SEARCH_API_CONFIG['base_url'],
        help=f"Search API base URL (default: {Config.SEARCH_API_CONFIG['base_url']} from .env)"
    )
    parser.add_argument(
        "--token",
        default=Config.SEARCH_API_CONFIG['token'],
        help="Bearer token for the search API (default: SEARCH_API_TOKEN from .env)"
    )
    parser.add_argument(
        "--strategy",
        choices=sorted(STRATEGIES),
        default=Config.EXTRACTION_STRATEGY,
        help=f"Entity extraction strategy (default: {Config.EXTRACTION_STRATEGY})"
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the full JSON response to this file instead of printing a summary"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Debug logging"
    )
    return parser


def print_summary(result: dict):
    metadata = result['metadata']
    criteria = result['criteria'] or {}
    print(f"\nIntent: {metadata.get('intent')}")
    for criterion in criteria.get('primary', []) + criteria.get('secondary', []):
        print(f"  [{criterion['role']}] {criterion['description']}")

    print(f"\nRecords: {metadata['total_records']} "
          f"({metadata['exact_match_count']} exact, {metadata['partial_match_count']} partial) "
          f"from {metadata['total_api_calls']} API calls in {metadata['search_time_ms']}ms")
    if metadata['early_stopped']:
        print("  Search stopped early; results are partial")
    for error in metadata['api_errors']:
        print(f"  API error: {error}")

    for record in result['ranked_results']['exact'][:10]:
        print(f"  * {record['table']} score={record['relevance_score']} {record['highlights']}")

    insights = (result['insights'] or {}).get('insights', [])
    if insights:
        print("\nInsights:")
        for insight in insights:
            print(f"  - {insight['title']}: {insight['description']}")


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging('DEBUG' if args.verbose else 'WARNING')

    is_valid, query = InputSanitizer.sanitize_query(args.query)
    if not is_valid:
        logger.error(query)
        return 2

    progress_bar = tqdm(total=100, desc="parsing", unit="%")

    def on_progress(update: ProgressUpdate):
        progress_bar.set_description(update.stage.value)
        progress_bar.update(update.progress - progress_bar.n)

    search = InvestigationSearch(
        config={'api': {'base_url': args.api_url, 'token': args.token}},
        progress_callback=on_progress,
        extractor=EntityExtractor.from_name(args.strategy),
    )
    try:
        response = search.search(query)
    finally:
        progress_bar.close()
        search.client.close()

    result = response.to_dict()
    if not response.success:
        logger.error(f"Search failed: {response.error}")
        return 1

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(result, f, indent=2, default=str)
        print(f"Response written to {args.output}")
    else:
        print_summary(result)
    return 0


if __name__ == '__main__':
    sys.exit(main())
