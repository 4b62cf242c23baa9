#!/usr/bin/env python3
"""
Match Analysis Module for the Match Preview Bot.

This module provides functionality to:
- Parse result, goals-market and scoreline probabilities from statistics text
- Parse form guide entries ("2-1 Chelsea (W)") into structured results
- Scrape the Sports Mole "Data Analysis" page linked from a preview

Parsing is lenient: unrecognised input yields empty or zero values.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from scraping.browser import BrowserService
from scraping.preview_scraper import clean_text

logger = logging.getLogger(__name__)

# "74.06% ( 3.5)" style probabilities with a trend in brackets
MAIN_PROBABILITY_PATTERN = re.compile(r"(\d+(?:\.\d+)?)%\s*\(\s*[+-]?\d+(?:\.\d+)?\s*\)")
BTTS_PATTERN = re.compile(r"Both teams to score\D*?(\d+(?:\.\d+)?)%", re.IGNORECASE)
OVER_25_PATTERN = re.compile(r"Over 2\.5\D*?(\d+(?:\.\d+)?)%", re.IGNORECASE)
OVER_35_PATTERN = re.compile(r"Over 3\.5\D*?(\d+(?:\.\d+)?)%", re.IGNORECASE)
SCORELINE_PATTERN = re.compile(r"(\d+-\d+)\s*@\s*(\d+(?:\.\d+)?)%")
FORM_ENTRY_PATTERN = re.compile(r"^(?P<score>\d+-\d+)\s+(?P<opponent>.+?)\s*\((?P<result>[WDL])\)$",
                                re.IGNORECASE)

ANALYSIS_CONTENT_SELECTOR = ".probability"
ANALYSIS_WAIT_TIMEOUT_MS = 15000


@dataclass
class ScoreLine:
    """A predicted scoreline with its probability (percent)."""
    score: str
    probability: float


@dataclass
class MatchStatistics:
    """Probabilities parsed from a preview's statistics block (percent values)."""
    home_win_probability: float = 0.0
    draw_probability: float = 0.0
    away_win_probability: float = 0.0
    btts_probability: float = 0.0
    over_25_probability: float = 0.0
    over_35_probability: float = 0.0
    score_lines: List[ScoreLine] = field(default_factory=list)

    @property
    def has_result_probabilities(self) -> bool:
        return any((self.home_win_probability, self.draw_probability, self.away_win_probability))

    def is_empty(self) -> bool:
        return not (
            self.has_result_probabilities
            or self.btts_probability
            or self.over_25_probability
            or self.over_35_probability
            or self.score_lines
        )


@dataclass
class FormResult:
    """One entry of a team's recent form."""
    score: str
    opponent: str
    result: str


@dataclass
class MatchAnalysis:
    """Content of the Data Analysis page."""
    url: str
    home_win_prob: str = ""
    draw_prob: str = ""
    away_win_prob: str = ""
    btts_prob: str = ""
    over_25_prob: str = ""
    scoreline_predictions: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "home_win_prob": self.home_win_prob,
            "draw_prob": self.draw_prob,
            "away_win_prob": self.away_win_prob,
            "btts_prob": self.btts_prob,
            "over_25_prob": self.over_25_prob,
            "scoreline_predictions": list(self.scoreline_predictions),
        }

    def summary(self) -> str:
        """Plain-text summary suitable for MatchPreview.probabilities."""
        lines = []
        if self.home_win_prob or self.draw_prob or self.away_win_prob:
            lines.append(
                f"Home {self.home_win_prob or '-'} / Draw {self.draw_prob or '-'} / "
                f"Away {self.away_win_prob or '-'}"
            )
        if self.btts_prob:
            lines.append(f"Both teams to score: {self.btts_prob}")
        if self.over_25_prob:
            lines.append(f"Over 2.5 goals: {self.over_25_prob}")
        for line in self.scoreline_predictions[:5]:
            lines.append(f"{line['score']} @ {line['probability']}")
        return "\n".join(lines)


def _first_float(pattern: re.Pattern, text: str) -> float:
    match = pattern.search(text)
    return float(match.group(1)) if match else 0.0


def parse_match_statistics(raw_stats: str) -> MatchStatistics:
    """
    Parse probabilities out of free-form statistics text.

    Args:
        raw_stats: Text such as "74.06% ( 3.5) 15.20% ( -1.2) 10.74% ( -2.3)
                   Both teams to score 48.50% ... 1-0 @ 12.5%"

    Returns:
        MatchStatistics; fields not found stay at zero

    Example:
        >>> parse_match_statistics("2-1 @ 10.5% 1-0 @ 12.0%").score_lines[0].score
        '1-0'
    """
    stats = MatchStatistics()
    if not raw_stats:
        return stats

    try:
        main = [float(m.group(1)) for m in MAIN_PROBABILITY_PATTERN.finditer(raw_stats)]
        if len(main) >= 3:
            stats.home_win_probability, stats.draw_probability, stats.away_win_probability = main[:3]

        stats.btts_probability = _first_float(BTTS_PATTERN, raw_stats)
        stats.over_25_probability = _first_float(OVER_25_PATTERN, raw_stats)
        stats.over_35_probability = _first_float(OVER_35_PATTERN, raw_stats)

        stats.score_lines = sorted(
            (ScoreLine(score=m.group(1), probability=float(m.group(2)))
             for m in SCORELINE_PATTERN.finditer(raw_stats)),
            key=lambda line: line.probability,
            reverse=True,
        )
    except ValueError as e:
        logger.error(f"Error parsing match statistics: {e}")

    return stats


def parse_form_guide(entries: List[str]) -> List[FormResult]:
    """
    Parse form guide entries, skipping any that do not match.

    Example:
        >>> parse_form_guide(["2-1 Chelsea (W)"])[0].result
        'W'
    """
    results = []
    for entry in entries:
        match = FORM_ENTRY_PATTERN.match(clean_text(entry))
        if not match:
            logger.debug(f"Unrecognised form entry: {entry!r}")
            continue
        results.append(FormResult(
            score=match.group("score"),
            opponent=match.group("opponent"),
            result=match.group("result").upper(),
        ))
    return results


def parse_data_analysis(html: str, url: str) -> MatchAnalysis:
    """Read probability and scoreline blocks from Data Analysis page HTML."""
    soup = BeautifulSoup(html or "", 'html.parser')
    probabilities = [clean_text(el.get_text(" ")) for el in soup.select(".probability")]

    scorelines = []
    for block in soup.select(".scoreline"):
        score = block.select_one(".score")
        prob = block.select_one(".prob")
        if score is None or prob is None:
            continue
        entry = {"score": clean_text(score.get_text(" ")), "probability": clean_text(prob.get_text(" "))}
        if entry["score"] and entry["probability"]:
            scorelines.append(entry)

    def pick(index: int) -> str:
        return probabilities[index] if len(probabilities) > index else ""

    return MatchAnalysis(
        url=url,
        home_win_prob=pick(0),
        draw_prob=pick(1),
        away_win_prob=pick(2),
        btts_prob=pick(3),
        over_25_prob=pick(4),
        scoreline_predictions=scorelines,
    )


async def scrape_data_analysis(
    page: Any,
    url: str,
    browser: BrowserService,
    max_retries: int = 3,
) -> Optional[MatchAnalysis]:
    """
    Scrape a Data Analysis page. Any failure yields None.

    Args:
        page: Page owned by the caller
        url: Data Analysis URL (MatchPreview.data_analysis_url)
        browser: Service providing the navigation retry policy
    """
    if not url:
        return None

    try:
        await browser.navigate_with_retry(page, url, max_retries=max_retries)
        await page.wait_for_selector(ANALYSIS_CONTENT_SELECTOR, timeout=ANALYSIS_WAIT_TIMEOUT_MS)
        return parse_data_analysis(await page.content(), url)
    except Exception as e:
        logger.warning(f"Error scraping data analysis {url}: {e}")
        return None
