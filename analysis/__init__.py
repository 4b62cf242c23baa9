"""
Analysis module for the Match Preview Bot.

This module contains parsers for the numeric side of a preview:
- Result, goals-market and scoreline probabilities
- Form guide entries
- The linked Data Analysis page
"""

from .match_analysis import (
    MatchStatistics,
    ScoreLine,
    FormResult,
    MatchAnalysis,
    parse_match_statistics,
    parse_form_guide,
    parse_data_analysis,
    scrape_data_analysis,
)

__all__ = [
    'MatchStatistics',
    'ScoreLine',
    'FormResult',
    'MatchAnalysis',
    'parse_match_statistics',
    'parse_form_guide',
    'parse_data_analysis',
    'scrape_data_analysis',
]
