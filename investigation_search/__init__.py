"""
Investigation Search

Free-text investigator queries against a paginated record-search API,
cross-referenced into ranked results, an entity graph and correlation insights.
"""

__version__ = '1.0.0'
