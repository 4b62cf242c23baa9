#!/usr/bin/env python3
"""
Preview Data Models

Dataclasses shared by the scraper, the cache and the publishers:

- PreviewMatch: one link found on the previews listing page
- PreviewSection: matches grouped under a competition heading
- MatchPreview: the normalized result of scraping one preview article

Every MatchPreview field is best-effort. Missing data is represented by an
empty string or an empty list, never by None, so formatters can rely on the
types without checking.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class PreviewMatch:
    """A single match link from the listing page."""
    time: str
    match: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"time": self.time, "match": self.match, "url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PreviewMatch':
        return cls(
            time=data.get("time", ""),
            match=data.get("match", ""),
            url=data.get("url", ""),
        )


@dataclass
class PreviewSection:
    """Matches listed under one competition heading, in document order."""
    section: str
    matches: List[PreviewMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section": self.section,
            "matches": [m.to_dict() for m in self.matches],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PreviewSection':
        return cls(
            section=data.get("section", ""),
            matches=[PreviewMatch.from_dict(m) for m in data.get("matches", [])],
        )


@dataclass
class TeamLists:
    """Home/away pair of free-text lists (team news, lineups, form)."""
    home: List[str] = field(default_factory=list)
    away: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.home and not self.away

    def to_dict(self) -> Dict[str, List[str]]:
        return {"home": list(self.home), "away": list(self.away)}

    @classmethod
    def from_dict(cls, data: Any) -> 'TeamLists':
        if not isinstance(data, dict):
            return cls()
        return cls(
            home=[str(item) for item in data.get("home") or []],
            away=[str(item) for item in data.get("away") or []],
        )


# Plain string fields of MatchPreview, in output order.
STRING_FIELDS = (
    "url",
    "home_team",
    "away_team",
    "match_summary",
    "full_article",
    "prediction",
    "statistics",
    "probabilities",
    "competition",
    "venue",
    "kickoff",
    "referee",
    "overview",
    "key_absences",
    "data_analysis_url",
    "image_url",
    "tactical_info",
)

LIST_FIELDS = ("team_news", "lineups", "form_guide")


@dataclass
class MatchPreview:
    """
    Normalized match preview scraped from a single article.

    The source ``url`` is the identity of a preview: two scrapes of the same
    unchanged page produce equal objects.
    """
    url: str
    home_team: str = ""
    away_team: str = ""
    match_summary: str = ""
    full_article: str = ""
    prediction: str = ""
    statistics: str = ""
    probabilities: str = ""
    competition: str = ""
    venue: str = ""
    kickoff: str = ""
    referee: str = ""
    overview: str = ""
    key_absences: str = ""
    team_news: TeamLists = field(default_factory=TeamLists)
    lineups: TeamLists = field(default_factory=TeamLists)
    form_guide: TeamLists = field(default_factory=TeamLists)
    data_analysis_url: str = ""
    image_url: str = ""
    tactical_info: str = ""

    @property
    def title(self) -> str:
        """Display title, e.g. 'Arsenal vs Chelsea'."""
        if self.home_team and self.away_team:
            return f"{self.home_team} vs {self.away_team}"
        return self.home_team or self.away_team or self.url

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        data: Dict[str, Any] = {name: getattr(self, name) for name in STRING_FIELDS}
        for name in LIST_FIELDS:
            data[name] = getattr(self, name).to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchPreview':
        """Rebuild a preview from ``to_dict`` output (e.g. a cache entry)."""
        kwargs: Dict[str, Any] = {}
        for name in STRING_FIELDS:
            value = data.get(name)
            kwargs[name] = "" if value is None else str(value)
        for name in LIST_FIELDS:
            kwargs[name] = TeamLists.from_dict(data.get(name))
        return cls(**kwargs)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)
