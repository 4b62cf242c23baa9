#!/usr/bin/env python3
"""
Link Enumerator - Group upcoming preview links by competition

Reads the Sports Mole previews listing, a table where header rows name a
competition and the rows beneath it (until the next header) are matches:

    <table class="matches">
      <tr class="section"><td>Premier League</td></tr>
      <tr class="date"><td>Saturday, October 24</td></tr>
      <tr><td>15:00</td><td></td><td><a href="/football/...">Arsenal vs Chelsea</a></td></tr>
    </table>

Date divider rows are skipped without ending the current section. A match
row is kept only when it has both a time and a title. Sections that end up
with no matches are not returned.
"""

import logging
from typing import Any, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .models import PreviewMatch, PreviewSection
from .preview_scraper import BASE_URL, clean_text

logger = logging.getLogger(__name__)

PREVIEWS_URL = f"{BASE_URL}/football/preview/"

ROW_SELECTOR = "table.matches tr"
SECTION_CLASS = "section"
DATE_DIVIDER_CLASS = "date"


def _row_classes(row: Any) -> List[str]:
    return row.get("class") or []


def _parse_match_row(row: Any, base_url: str) -> Optional[PreviewMatch]:
    cells = row.find_all("td")
    if not cells:
        return None

    time_text = clean_text(cells[0].get_text(" "))
    link = None
    for cell in cells[1:]:
        link = cell.find("a")
        if link is not None:
            break
    if link is None:
        return None

    title = clean_text(link.get_text(" "))
    href = (link.get("href") or "").strip()
    if not time_text or not title or not href:
        return None

    return PreviewMatch(time=time_text, match=title, url=urljoin(base_url, href))


def parse_preview_links(html: str, base_url: str = BASE_URL) -> List[PreviewSection]:
    """
    Parse the listing HTML into sections of matches.

    Args:
        html: Listing page HTML
        base_url: Origin used to resolve relative links

    Returns:
        Sections in document order, each with at least one match
    """
    soup = BeautifulSoup(html or "", 'html.parser')
    sections: List[PreviewSection] = []
    current: Optional[PreviewSection] = None
    dropped = 0

    for row in soup.select(ROW_SELECTOR):
        classes = _row_classes(row)

        if SECTION_CLASS in classes:
            if current is not None and current.matches:
                sections.append(current)
            current = PreviewSection(section=clean_text(row.get_text(" ")))
            continue

        if DATE_DIVIDER_CLASS in classes or current is None:
            continue

        match = _parse_match_row(row, base_url)
        if match is None:
            dropped += 1
            continue
        current.matches.append(match)

    if current is not None and current.matches:
        sections.append(current)

    if dropped:
        logger.debug(f"Dropped {dropped} incomplete match rows")
    return sections


async def get_preview_links(page: Any, base_url: str = BASE_URL) -> List[PreviewSection]:
    """
    Enumerate preview links on an already navigated listing page.

    Args:
        page: Page showing the previews listing

    Returns:
        Sections in document order
    """
    await page.wait_for_load_state("domcontentloaded")
    sections = parse_preview_links(await page.content(), base_url=base_url)

    for section in sections:
        logger.info(f"Section: {section.section} ({len(section.matches)} matches)")
        for match in section.matches:
            logger.debug(f"  {match.time} - {match.match}")

    return sections


def filter_sections(
    sections: List[PreviewSection],
    team: Optional[str] = None,
    limit: Optional[int] = None,
    league: Optional[str] = None,
) -> List[PreviewSection]:
    """
    Narrow the listing down to what should be scraped.

    Args:
        sections: Sections from parse_preview_links
        team: Keep matches whose title contains this name (case-insensitive)
        limit: Keep at most this many matches overall
        league: Keep sections whose heading contains this name (case-insensitive)

    Returns:
        New sections; sections left without matches are removed
    """
    filtered: List[PreviewSection] = []
    remaining = limit

    for section in sections:
        if league and league.lower() not in section.section.lower():
            continue
        matches = section.matches
        if team:
            matches = [m for m in matches if team.lower() in m.match.lower()]
        if remaining is not None:
            matches = matches[:max(remaining, 0)]
            remaining -= len(matches)
        if matches:
            filtered.append(PreviewSection(section=section.section, matches=list(matches)))

    return filtered
