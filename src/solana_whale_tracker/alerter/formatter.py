"""Alert message formatter.

This module turns alert matches into human-readable messages for Telegram
(MarkdownV2) and plain text.
"""

from __future__ import annotations

import re
from decimal import Decimal

from solana_whale_tracker.alerter.models import FormattedAlert
from solana_whale_tracker.detector.models import AlertMatch, AlertType, ClusterResult
from solana_whale_tracker.ingestor.models import NormalizedSwapEvent

SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"
SOLSCAN_ACCOUNT_URL = "https://solscan.io/account/{address}"
DEXSCREENER_TOKEN_URL = "https://dexscreener.com/solana/{mint}"

_MARKDOWN_V2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown(text: str) -> str:
    """Escape Telegram MarkdownV2 special characters."""
    return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", text)


def truncate_address(address: str, chars: int = 4) -> str:
    """Truncate a base58 address to ``AbCd...WxYz`` form."""
    if len(address) <= chars * 2 + 3:
        return address
    return f"{address[:chars]}...{address[-chars:]}"


def format_usd(amount: Decimal) -> str:
    return f"${amount:,.2f}"


def format_token_amount(amount: Decimal) -> str:
    return f"{amount.normalize():,f}"


def format_market_cap(amount: Decimal | None) -> str:
    if amount is None:
        return "n/a"
    if amount >= 1_000_000_000:
        return f"${amount / 1_000_000_000:.2f}B"
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.2f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.1f}K"
    return format_usd(amount)


def _token_label(symbol: str, mint: str) -> str:
    return symbol or truncate_address(mint)


class AlertFormatter:
    """Formats alert matches into delivery-ready messages."""

    def format(self, match: AlertMatch) -> FormattedAlert:
        if isinstance(match.signal, ClusterResult):
            return self._format_cluster(match, match.signal)
        return self._format_swap(match, match.signal)

    def _format_swap(self, match: AlertMatch, event: NormalizedSwapEvent) -> FormattedAlert:
        token = _token_label(event.token_symbol, event.token_mint)
        wallet_short = truncate_address(event.wallet_address)
        action = "bought" if event.is_buy else "sold"

        if match.alert_type in (AlertType.KOL_ACTIVITY, AlertType.KOL_PROFILE) and match.kol:
            actor = f"@{match.kol.username}"
            title = f"KOL {'Buy' if event.is_buy else 'Sell'}: {actor} {action} {token}"
        else:
            actor = wallet_short
            title = f"Whale Buy: {token}"

        links = {
            "transaction": SOLSCAN_TX_URL.format(signature=event.signature),
            "wallet": SOLSCAN_ACCOUNT_URL.format(address=event.wallet_address),
            "token": DEXSCREENER_TOKEN_URL.format(mint=event.token_mint),
        }

        lines = [
            f"Wallet: {actor}",
            f"Action: {action} {event.token_amount:,.4f} {token}",
            f"Value: {format_usd(event.usd_amount)}",
        ]
        if event.market_cap_usd is not None:
            lines.append(f"Market Cap: {format_market_cap(event.market_cap_usd)}")
        if event.hotness_score is not None:
            lines.append(f"Hotness: {event.hotness_score:.1f}/10")
        if event.source_protocol:
            lines.append(f"Via: {event.source_protocol}")
        body = "\n".join(lines)

        md_lines = [f"*{escape_markdown(title)}*", ""]
        md_lines.extend(escape_markdown(line) for line in lines)
        md_lines.append("")
        md_lines.append(
            " \\| ".join(f"[{escape_markdown(name.title())}]({url})" for name, url in links.items())
        )

        return FormattedAlert(
            title=title,
            body=body,
            telegram_markdown="\n".join(md_lines),
            plain_text=self._plain_text(title, body, links),
            links=links,
        )

    def _format_cluster(self, match: AlertMatch, cluster: ClusterResult) -> FormattedAlert:
        token = _token_label(cluster.token_symbol, cluster.token_mint)
        title = f"Whale Cluster: {cluster.count} wallets buying {token}"
        links = {"token": DEXSCREENER_TOKEN_URL.format(mint=cluster.token_mint)}

        lines = [
            f"Token: {token}",
            f"Wallets: {cluster.count}",
            f"Total Inflow: {format_usd(cluster.total_volume_usd)}",
            f"Window: {cluster.time_window_minutes} min",
        ]
        if cluster.wallets:
            shown = ", ".join(truncate_address(w) for w in cluster.wallets[:5])
            extra = len(cluster.wallets) - 5
            lines.append(f"Buyers: {shown}" + (f" (+{extra} more)" if extra > 0 else ""))
        body = "\n".join(lines)

        md_lines = [f"*{escape_markdown(title)}*", ""]
        md_lines.extend(escape_markdown(line) for line in lines)
        md_lines.append("")
        md_lines.append(f"[Chart]({links['token']})")

        return FormattedAlert(
            title=title,
            body=body,
            telegram_markdown="\n".join(md_lines),
            plain_text=self._plain_text(title, body, links),
            links=links,
        )

    def format_balance_notice(self, current: Decimal, required: Decimal) -> FormattedAlert:
        """Notice sent to a user whose alerts are disabled for low balance."""
        title = "Alerts Disconnected: Insufficient Premium Balance"
        lines = [
            f"Your premium token balance has dropped below the required {format_token_amount(required)} tokens.",
            f"Current balance: {format_token_amount(current)}",
            f"Required: {format_token_amount(required)}",
            "Your alerts have been disabled. Re-enable them once your balance is back above the requirement.",
        ]
        body = "\n".join(lines)
        md_lines = [f"*{escape_markdown(title)}*", ""]
        md_lines.extend(escape_markdown(line) for line in lines)
        return FormattedAlert(
            title=title,
            body=body,
            telegram_markdown="\n".join(md_lines),
            plain_text=self._plain_text(title, body, {}),
        )

    @staticmethod
    def _plain_text(title: str, body: str, links: dict[str, str]) -> str:
        parts = [title, "", body]
        if links:
            parts.append("")
            parts.extend(f"{name.title()}: {url}" for name, url in links.items())
        return "\n".join(parts)
