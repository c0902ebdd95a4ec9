"""Shared notification formatting helpers.

Keeping formatting here prevents drift between the notifier and the command
handlers and keeps every bot message in one Telegram HTML dialect.
"""

from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Optional

from core.models import Chain, ScanStats


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.6f}".rstrip("0").rstrip(".")


def format_chain_message(chain: Chain) -> str:
    """Create the HTML announcement for a single new chain."""

    network_type = "🟢 Mainnet" if chain.mainnet else "🟡 Testnet"
    inbound_status = "✅ Yes" if chain.inbound else "❌ No"
    explorer = html.escape(chain.explorer) if chain.explorer else "N/A"
    rpc = html.escape(chain.primary_rpc) if chain.primary_rpc else "N/A"

    parts = [
        f"<b>🔗 {html.escape(chain.name)}</b>",
        network_type,
        "",
        f"<b>Chain ID:</b> <code>{chain.chain_id}</code>",
        f"<b>Symbol:</b> {html.escape(chain.symbol)}",
        f"<b>Price:</b> ${_format_number(chain.price)}",
        "",
        f"<b>Inbound:</b> {inbound_status}",
        f"<b>Max Outbound:</b> {_format_number(chain.max_outbound)}",
        f"<b>Min Outbound:</b> {_format_number(chain.min_outbound)}",
        "",
        f"<b>Gas:</b> {html.escape(chain.gas)}",
        f"<b>Gwei:</b> {html.escape(chain.gwei)}",
        "",
        f"<b>Explorer:</b> {explorer}",
        f"<b>RPC:</b> {rpc}",
    ]
    return "\n".join(parts)


def format_summary_message(count: int) -> str:
    """Header sent before a burst of per-chain messages."""

    return f"<b>🚀 {count} New Chains Detected!</b>\n\nSending details..."


def format_error_message(error: BaseException) -> str:
    """Create the HTML body for a scan failure report."""

    return "\n".join(
        [
            "<b>⚠️ Error Occurred</b>",
            "",
            f"<code>{html.escape(str(error) or type(error).__name__)}</code>",
            "",
            "The bot will continue monitoring...",
        ]
    )


def format_time_ago(moment: datetime, now: Optional[datetime] = None) -> str:
    """Render an elapsed time as a compact "Ns/Nm/Nh/Nd ago" label."""

    now = now or datetime.now(timezone.utc)
    seconds = max(0, int((now - moment).total_seconds()))
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def format_status_message(stats: ScanStats, now: Optional[datetime] = None) -> str:
    """Create the /ping status reply."""

    now = now or datetime.now(timezone.utc)
    uptime = int(stats.uptime_seconds)
    hours, remainder = divmod(uptime, 3600)
    minutes, seconds = divmod(remainder, 60)
    last_scan = format_time_ago(stats.last_scan_time, now) if stats.last_scan_time else "Never"

    parts = [
        "<b>🤖 Bot Status</b>",
        "",
        "<b>Status:</b> ✅ Online",
        f"<b>Uptime:</b> {hours}h {minutes}m {seconds}s",
        "",
        "<b>📊 Monitoring Info</b>",
        f"<b>Scan interval:</b> {_format_number(stats.polling_interval_seconds)}s",
        f"<b>Last scan:</b> {last_scan}",
        f"<b>Next scan in:</b> {int(stats.next_scan_in_seconds)}s",
        "",
        "<b>💾 Database</b>",
        f"<b>Total chains:</b> {stats.total_chains}",
        "",
        f"<b>⏰ Server time:</b> {now.isoformat()}",
    ]
    return "\n".join(parts)


def format_welcome_message(interval_seconds: float) -> str:
    """Create the /start help text."""

    return "\n".join(
        [
            "<b>👋 Welcome to NewChain Detector!</b>",
            "",
            "This bot monitors blockchain chains and notifies you when new chains are detected.",
            "",
            "<b>Available commands:</b>",
            "/ping - Check bot status and statistics",
            "/start - Show this help message",
            "",
            f"The bot scans for new chains every {_format_number(interval_seconds)} seconds "
            "and will automatically notify you when changes are detected.",
        ]
    )


def format_startup_message() -> str:
    return "✅ NewChain Detector Bot is now active and monitoring for new chains!"
