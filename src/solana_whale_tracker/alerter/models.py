"""Data models for the alerter module."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class FormattedAlert:
    """An alert rendered for delivery.

    Attributes:
        title: Short headline.
        body: Plain multi-line summary.
        telegram_markdown: Telegram MarkdownV2 rendering.
        plain_text: Full plain-text rendering including links.
        links: Named explorer links.
    """

    title: str
    body: str
    telegram_markdown: str
    plain_text: str
    links: dict[str, str] = field(default_factory=dict)


@dataclass
class DispatchStats:
    """Counters for alert dispatch."""

    delivered: int = 0
    skipped_premium: int = 0
    failed: int = 0
    notices_sent: int = 0
