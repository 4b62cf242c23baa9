#!/usr/bin/env python3
"""
Message Formatter for Match Previews

Turns scraped previews into Discord-ready text and embeds:

- Summary message listing every section and match for the day
- Per-match text messages (context, key information, team news, form guide,
  prediction, statistics)
- A rich embed per match
- A single structured text message per match for webhook delivery

Discord limits:
    Message content: 2000 characters (longer text goes through split_message)
    Embed field value: 1024 characters (values go through truncate)
    Thread name: 100 characters
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz

from analysis.match_analysis import parse_form_guide, parse_match_statistics
from scraping.models import MatchPreview, PreviewMatch, PreviewSection

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
MAX_FIELD_LENGTH = 1024
MAX_EMBED_TITLE_LENGTH = 256
MAX_THREAD_NAME_LENGTH = 100
EMBED_COLOR = 0x3498DB
DEFAULT_TIMEZONE = "Europe/London"

SUMMARY_HEADING = "**Today's Available Match Previews**"
NO_PREVIEW_MESSAGE = "Preview data not available for this match."
NO_TEAM_NEWS = "No team news available"


# =============================================================================
# GENERIC HELPERS
# =============================================================================

def truncate(text: str, max_length: int) -> str:
    """
    Shorten text to max_length, marking the cut with "...".

    Example:
        >>> truncate("abcdefgh", 6)
        'abc...'
    """
    text = text or ""
    if len(text) <= max_length:
        return text
    if max_length <= 3:
        return text[:max_length]
    return text[:max_length - 3] + "..."


def split_message(content: str, max_length: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Split content into ordered chunks of at most max_length characters.

    Chunks break on line boundaries, so ``"\\n".join(chunks) == content``.
    A single line longer than max_length is hard-wrapped across chunks.

    Args:
        content: Message text
        max_length: Per-chunk limit

    Returns:
        ``[content]`` when it already fits, otherwise the chunks
    """
    if len(content) <= max_length:
        return [content]

    chunks: List[str] = []
    current: Optional[str] = None

    for line in content.split("\n"):
        pieces = [line[i:i + max_length] for i in range(0, len(line), max_length)] or [""]
        for piece in pieces:
            if current is None:
                current = piece
            elif len(current) + 1 + len(piece) <= max_length:
                current = f"{current}\n{piece}"
            else:
                chunks.append(current)
                current = piece

    if current is not None:
        chunks.append(current)
    return chunks


def thread_name(name: str) -> str:
    return truncate(name.strip() or "Match Previews", MAX_THREAD_NAME_LENGTH)


def _bullets(items: List[str]) -> str:
    return "\n".join(f"• {item}" for item in items)


# =============================================================================
# SUMMARY
# =============================================================================

def format_summary(
    sections: List[PreviewSection],
    timezone: str = DEFAULT_TIMEZONE,
    now: Optional[datetime] = None,
) -> str:
    """
    Build the day's overview message.

    Args:
        sections: Sections to list, in order
        timezone: pytz zone name used for the date line and time label
        now: Reference time (defaults to the current time)

    Returns:
        Markdown text, possibly longer than one Discord message
    """
    tz = pytz.timezone(timezone)
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is None:
        now = tz.localize(now)
    else:
        now = now.astimezone(tz)

    date_string = now.strftime("%A, %B %d, %Y")
    tz_label = now.tzname() or timezone

    blocks = []
    for section in sections:
        lines = [f"**{section.section}**"]
        lines.extend(f"⚽ {match.time} {tz_label} {match.match}" for match in section.matches)
        blocks.append("\n".join(lines))

    return f"{SUMMARY_HEADING}\n\n{date_string}\n\n" + "\n\n".join(blocks)


# =============================================================================
# PER-MATCH MESSAGES
# =============================================================================

def format_context_message(preview: MatchPreview) -> str:
    lines = ["**📊 Match Context**"]
    for label, value in (
        ("Competition", preview.competition),
        ("Venue", preview.venue),
        ("Kick-off", preview.kickoff),
        ("Referee", preview.referee),
        ("Context", preview.match_summary),
    ):
        if value:
            lines.append(f"• {label}: {truncate(value, MAX_FIELD_LENGTH)}")
    return "\n".join(lines)


def format_key_information(preview: MatchPreview) -> Optional[str]:
    """Absences, overview and tactics; None when the preview has none of them."""
    parts = [p for p in (preview.key_absences, preview.overview, preview.tactical_info) if p]
    if not parts:
        return None
    return "**ℹ️ Key Information**\n" + _bullets([truncate(p, MAX_FIELD_LENGTH) for p in parts])


def _team_block(team: str, items: List[str], fallback: str) -> str:
    body = _bullets([truncate(item, MAX_FIELD_LENGTH) for item in items]) if items else fallback
    return f"**{team or 'Unknown'}:**\n{body}"


def format_team_news(preview: MatchPreview) -> str:
    return "\n".join([
        "**👥 Team News**",
        _team_block(preview.home_team, preview.team_news.home, NO_TEAM_NEWS),
        "",
        _team_block(preview.away_team, preview.team_news.away, NO_TEAM_NEWS),
    ])


def _form_line(team: str, entries: List[str]) -> str:
    if not entries:
        return f"**{team or 'Unknown'}:** No data"
    letters = "".join(result.result for result in parse_form_guide(entries))
    line = f"**{team or 'Unknown'}:** {truncate(', '.join(entries), MAX_FIELD_LENGTH)}"
    return f"{line} ({letters})" if letters else line


def format_form_guide(preview: MatchPreview) -> Optional[str]:
    if preview.form_guide.is_empty():
        return None
    return "\n".join([
        "**📈 Form Guide**",
        _form_line(preview.home_team, preview.form_guide.home),
        _form_line(preview.away_team, preview.form_guide.away),
    ])


def format_prediction(preview: MatchPreview) -> Optional[str]:
    if not preview.prediction:
        return None
    return f"**🎯 Prediction**\n{truncate(preview.prediction, MAX_FIELD_LENGTH)}"


def format_statistics(preview: MatchPreview) -> Optional[str]:
    """Parsed probabilities plus any Data Analysis summary; None when neither exists."""
    stats = parse_match_statistics(preview.statistics)
    lines = []

    if stats.has_result_probabilities:
        lines.append(
            f"• Home win {stats.home_win_probability:.1f}% / Draw {stats.draw_probability:.1f}% / "
            f"Away win {stats.away_win_probability:.1f}%"
        )
    if stats.btts_probability:
        lines.append(f"• Both teams to score: {stats.btts_probability:.1f}%")
    if stats.over_25_probability:
        lines.append(f"• Over 2.5 goals: {stats.over_25_probability:.1f}%")
    if stats.over_35_probability:
        lines.append(f"• Over 3.5 goals: {stats.over_35_probability:.1f}%")
    if stats.score_lines:
        top = ", ".join(f"{line.score} ({line.probability:.1f}%)" for line in stats.score_lines[:3])
        lines.append(f"• Likely scorelines: {top}")
    if preview.probabilities:
        lines.append(truncate(preview.probabilities, MAX_FIELD_LENGTH))

    if not lines:
        return None
    return "**📊 Statistics**\n" + "\n".join(lines)


def format_match_messages(preview: MatchPreview) -> List[str]:
    """All text messages for one match, in sending order."""
    messages = [
        format_context_message(preview),
        format_key_information(preview),
        format_team_news(preview),
        format_form_guide(preview),
        format_prediction(preview),
        format_statistics(preview),
    ]
    return [message for message in messages if message]


# =============================================================================
# EMBEDS / STRUCTURED TEXT
# =============================================================================

def _field(name: str, value: str, fallback: str) -> Dict[str, Any]:
    return {
        "name": truncate(name, MAX_EMBED_TITLE_LENGTH),
        "value": truncate(value, MAX_FIELD_LENGTH) if value else fallback,
        "inline": False,
    }


def create_preview_embed(match: PreviewMatch, preview: MatchPreview) -> Dict[str, Any]:
    """
    Build a Discord embed (API dict form) for one match.

    Every field value is capped at 1024 characters.
    """
    form_value = "\n".join([
        f"{preview.home_team}: {', '.join(preview.form_guide.home) or 'No data'}",
        f"{preview.away_team}: {', '.join(preview.form_guide.away) or 'No data'}",
    ])
    url = match.url or preview.url

    embed: Dict[str, Any] = {
        "title": truncate(f"{match.time} - {match.match}", MAX_EMBED_TITLE_LENGTH),
        "color": EMBED_COLOR,
        "fields": [
            _field("📝 Match Summary", preview.match_summary, "No summary available"),
            _field(f"👥 {preview.home_team} Team News", "\n".join(preview.team_news.home), NO_TEAM_NEWS),
            _field(f"👥 {preview.away_team} Team News", "\n".join(preview.team_news.away), NO_TEAM_NEWS),
            _field("📊 Form Guide", form_value, "No data"),
            _field("🎯 Prediction", preview.prediction, "No prediction available"),
            _field("🔗 Quick Links", f"[View Full Preview on Sports Mole]({url})" if url else "", "No link"),
        ],
        "timestamp": datetime.now(pytz.utc).isoformat(),
    }
    if url:
        embed["url"] = url
    if preview.image_url:
        embed["image"] = {"url": preview.image_url}
    return embed


def create_structured_preview(preview: MatchPreview) -> str:
    """Single plain-text rendering of a preview, used for webhook delivery."""
    parts = [preview.title]
    summary = "\n\n".join(p for p in (preview.match_summary, preview.overview) if p)
    if summary:
        parts.append(summary)
    statistics = format_statistics(preview)
    if statistics:
        parts.append(statistics)
    if preview.prediction:
        parts.append(f"Sports Mole Prediction:\n{preview.prediction}")
    if preview.url:
        parts.append(preview.url)
    return "\n\n".join(parts)
