#!/usr/bin/env python3
"""
Preview Scraper - Extract structured match previews from Sports Mole articles

Turns a loaded preview article into a MatchPreview. The source markup is
third-party and changes without notice, so extraction is best-effort:

- Each field has its own extraction rule (see FIELD_RULES)
- A rule that finds nothing, or fails, leaves the field at its default
- A missing field never aborts extraction of the others

Only two outcomes are not partial data: navigation that fails on every
attempt raises FetchError, and an article body that never appears yields None.

Team news attribution:
    The page title ("Arsenal vs. Chelsea - prediction, team news, lineups")
    gives the home and away names. A paragraph under the team news heading
    belongs to the team whose name it mentions (home checked first);
    paragraphs mentioning neither are dropped.

Usage:
    page = await browser.new_page()
    try:
        preview = await scrape_preview(page, url, browser)
    finally:
        await page.close()
"""

import logging
import re
from typing import Any, Callable, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .browser import DEFAULT_MAX_RETRIES, BrowserService
from .models import MatchPreview, TeamLists

logger = logging.getLogger(__name__)

BASE_URL = "https://www.sportsmole.co.uk"

# Markup anchors
ARTICLE_SELECTOR = ".article_content"
CONTENT_WAIT_TIMEOUT_MS = 15000

TEXT_SELECTORS = {
    "competition": ".competition",
    "venue": ".venue",
    "kickoff": ".kickoff",
    "referee": ".referee",
    "statistics": ".match_stats",
}

FORM_SELECTORS = {
    "home": ".home-team-form .result",
    "away": ".away-team-form .result",
}

HEADING_TAGS = ("h2", "h3", "h4")
BLOCK_TAGS = HEADING_TAGS + ("p",)

PREDICTION_PREFIX = "we say:"
LINEUP_PATTERN = re.compile(r"^(?P<team>.+?)\s+possible starting line-?up\s*:\s*(?P<players>.*)$",
                            re.IGNORECASE | re.DOTALL)
TITLE_TEAMS_PATTERN = re.compile(r"\s+vs?\.?\s+", re.IGNORECASE)


def clean_text(value: Optional[str]) -> str:
    """Collapse whitespace runs into single spaces."""
    if not value:
        return ""
    return " ".join(value.split())


def split_title(title: str) -> Tuple[str, str]:
    """
    Derive (home, away) team names from a preview page title.

    >>> split_title("Arsenal vs. Chelsea - prediction, team news, lineups")
    ('Arsenal', 'Chelsea')
    """
    head = clean_text(title).split(" - ")[0]
    parts = TITLE_TEAMS_PATTERN.split(head, maxsplit=1)
    if len(parts) != 2:
        return "", ""
    home = re.sub(r"^preview:\s*", "", parts[0].strip(), flags=re.IGNORECASE)
    return home, parts[1].strip()


class PreviewDocument:
    """
    Parsed preview article with helpers shared by the field rules.

    The article body is flattened into (heading, element) blocks in document
    order, where heading is the lower-cased text of the closest preceding
    heading ("" before the first one).
    """

    def __init__(self, html: str, title: str, url: str, base_url: str = BASE_URL):
        self.soup = BeautifulSoup(html or "", 'html.parser')
        if not title and self.soup.title:
            title = self.soup.title.get_text()
        self.title = clean_text(title)
        self.url = url
        self.base_url = base_url
        self.article = self.soup.select_one(ARTICLE_SELECTOR)
        self.home_team = ""
        self.away_team = ""
        self._blocks: Optional[List[Tuple[str, Any]]] = None

    def text_of(self, selector: str) -> str:
        elem = self.soup.select_one(selector)
        return clean_text(elem.get_text(" ")) if elem else ""

    def blocks(self) -> List[Tuple[str, Any]]:
        if self._blocks is None:
            self._blocks = []
            heading = ""
            if self.article is not None:
                for elem in self.article.find_all(BLOCK_TAGS):
                    if elem.name in HEADING_TAGS:
                        heading = clean_text(elem.get_text(" ")).lower()
                    self._blocks.append((heading, elem))
        return self._blocks

    def paragraphs(self) -> List[Tuple[str, str]]:
        """(heading, text) for every non-empty paragraph of the article."""
        result = []
        for heading, elem in self.blocks():
            if elem.name != "p":
                continue
            text = clean_text(elem.get_text(" "))
            if text:
                result.append((heading, text))
        return result

    def paragraphs_under(self, keywords: Tuple[str, ...], exclude: Tuple[str, ...] = ()) -> List[str]:
        """Paragraph texts whose heading contains any keyword and no excluded word."""
        return [
            text for heading, text in self.paragraphs()
            if any(k in heading for k in keywords) and not any(x in heading for x in exclude)
        ]

    def absolute_url(self, href: str) -> str:
        return urljoin(self.base_url, href) if href else ""


# =============================================================================
# FIELD RULES
# =============================================================================

def _extract_teams(doc: PreviewDocument) -> Tuple[str, str]:
    return split_title(doc.title)


def _extract_match_summary(doc: PreviewDocument) -> str:
    paragraphs = doc.paragraphs()
    return paragraphs[0][1] if paragraphs else ""


def _extract_overview(doc: PreviewDocument) -> str:
    return "\n\n".join(doc.paragraphs_under(("preview",), exclude=("team news", PREDICTION_PREFIX)))


def _extract_key_absences(doc: PreviewDocument) -> str:
    return "\n\n".join(doc.paragraphs_under(("absence", "injur", "suspen")))


def _extract_tactical_info(doc: PreviewDocument) -> str:
    return "\n\n".join(doc.paragraphs_under(("tactic",)))


def _is_lineup(text: str) -> bool:
    return LINEUP_PATTERN.match(text) is not None


def _attribute(text: str, home: str, away: str) -> Optional[str]:
    lowered = text.lower()
    if home and home.lower() in lowered:
        return "home"
    if away and away.lower() in lowered:
        return "away"
    return None


def _extract_team_news(doc: PreviewDocument) -> TeamLists:
    news = TeamLists()
    for text in doc.paragraphs_under(("team news",)):
        if _is_lineup(text):
            continue
        side = _attribute(text, doc.home_team, doc.away_team)
        if side is not None:
            getattr(news, side).append(text)
    return news


def _extract_lineups(doc: PreviewDocument) -> TeamLists:
    lineups = TeamLists()
    for _, text in doc.paragraphs():
        match = LINEUP_PATTERN.match(text)
        if not match:
            continue
        side = _attribute(match.group("team"), doc.home_team, doc.away_team)
        if side is None:
            continue
        players = [clean_text(p) for p in match.group("players").split(";")]
        getattr(lineups, side).extend(p for p in players if p)
    return lineups


def _extract_prediction(doc: PreviewDocument) -> str:
    blocks = doc.blocks()
    for index, (_, elem) in enumerate(blocks):
        text = clean_text(elem.get_text(" "))
        if not text.lower().startswith(PREDICTION_PREFIX):
            continue
        verdict = text[len(PREDICTION_PREFIX):].strip()
        if elem.name in HEADING_TAGS:
            # "We say:" headings carry the scoreline; the reasoning follows
            for _, following in blocks[index + 1:]:
                if following.name in HEADING_TAGS:
                    break
                reasoning = clean_text(following.get_text(" "))
                if reasoning:
                    return f"{verdict}\n{reasoning}" if verdict else reasoning
        return verdict
    return ""


def _extract_form_guide(doc: PreviewDocument) -> TeamLists:
    form = TeamLists()
    for side, selector in FORM_SELECTORS.items():
        results = [clean_text(el.get_text(" ")) for el in doc.soup.select(selector)]
        setattr(form, side, [r for r in results if r])
    return form


def _extract_data_analysis_url(doc: PreviewDocument) -> str:
    link = doc.soup.select_one('a[title="Data Analysis"]')
    return doc.absolute_url(link.get("href", "")) if link else ""


def _extract_image_url(doc: PreviewDocument) -> str:
    meta = doc.soup.select_one('meta[property="og:image"]')
    return (meta.get("content") or "").strip() if meta else ""


def _extract_full_article(doc: PreviewDocument) -> str:
    return doc.article.decode_contents().strip() if doc.article is not None else ""


def _text_rule(field_name: str) -> Callable[[PreviewDocument], str]:
    selector = TEXT_SELECTORS[field_name]
    return lambda doc: doc.text_of(selector)


FIELD_RULES: List[Tuple[str, Callable[[PreviewDocument], Any]]] = [
    ("competition", _text_rule("competition")),
    ("venue", _text_rule("venue")),
    ("kickoff", _text_rule("kickoff")),
    ("referee", _text_rule("referee")),
    ("statistics", _text_rule("statistics")),
    ("match_summary", _extract_match_summary),
    ("overview", _extract_overview),
    ("key_absences", _extract_key_absences),
    ("tactical_info", _extract_tactical_info),
    ("team_news", _extract_team_news),
    ("lineups", _extract_lineups),
    ("prediction", _extract_prediction),
    ("form_guide", _extract_form_guide),
    ("data_analysis_url", _extract_data_analysis_url),
    ("image_url", _extract_image_url),
    ("full_article", _extract_full_article),
]


# =============================================================================
# EXTRACTION
# =============================================================================

def extract_preview(html: str, title: str, url: str, base_url: str = BASE_URL) -> MatchPreview:
    """
    Build a MatchPreview from article HTML.

    Args:
        html: Full page HTML
        title: Document title (falls back to the <title> element)
        url: Source URL, the identity of the preview

    Returns:
        MatchPreview with every field that could be read
    """
    doc = PreviewDocument(html, title, url, base_url=base_url)
    preview = MatchPreview(url=url)

    try:
        doc.home_team, doc.away_team = _extract_teams(doc)
    except Exception as e:
        logger.debug(f"Could not derive team names from title {doc.title!r}: {e}")
    preview.home_team = doc.home_team
    preview.away_team = doc.away_team

    for field_name, rule in FIELD_RULES:
        try:
            value = rule(doc)
        except Exception as e:
            logger.debug(f"Field {field_name} not extracted from {url}: {e}")
            continue
        if value:
            setattr(preview, field_name, value)

    return preview


async def scrape_preview(
    page: Any,
    url: str,
    browser: BrowserService,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> Optional[MatchPreview]:
    """
    Load a preview article and extract it.

    Args:
        page: Page owned by the caller (not closed here)
        url: Preview article URL
        browser: Service providing the navigation retry policy
        max_retries: Navigation attempts

    Returns:
        MatchPreview, or None if the article body never appeared

    Raises:
        FetchError: If navigation failed on every attempt
    """
    logger.info(f"Scraping preview: {url}")
    await browser.navigate_with_retry(page, url, max_retries=max_retries)

    try:
        await page.wait_for_selector(ARTICLE_SELECTOR, timeout=CONTENT_WAIT_TIMEOUT_MS)
    except Exception as e:
        logger.warning(f"Article content not found on {url}: {e}")
        return None

    html = await page.content()
    title = await page.title()
    preview = extract_preview(html, title, url)
    logger.info(f"Extracted preview: {preview.title}")
    return preview
