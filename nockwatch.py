#!/usr/bin/env python3
"""
nockwatch - balance change alerts for Nockchain addresses

Polls the NockBlocks JSON-RPC endpoint for a fixed list of addresses every
minute, compares each balance with the last one saved in balances.json, and
posts an alert to Slack and/or Telegram whenever a balance changes or a new
address is seen. Every 6 hours a summary of all known balances is posted.
"""

import asyncio
import json
import logging
import os
import signal
import sys
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, localcontext
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import httpx
from dotenv import load_dotenv
from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.helpers import escape_markdown

# Defaults
DEFAULT_RPC_URL = "https://nockblocks.com/rpc"
DEFAULT_BALANCE_FILE = "balances.json"
DEFAULT_CHECK_INTERVAL_SEC = 60
DEFAULT_SUMMARY_INTERVAL_SEC = 6 * 60 * 60
DEFAULT_RPC_TIMEOUT_SEC = 30.0

SLACK_API_URL = "https://slack.com/api/chat.postMessage"
TELEGRAM_MAX_MESSAGE_LENGTH = 4096
SLACK_MAX_BLOCKS = 50

# 2^16 nick per $NOCK
NICK_PER_NOCK = 65536
INITIAL_BALANCE_LABEL = "Initial balance"

# Logging setup
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger("nockwatch")
logger.setLevel(logging.INFO)

# Mute noisy libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("telegram").setLevel(logging.WARNING)


# ============================================================================
# Errors
# ============================================================================

class NockwatchError(Exception):
    """Base class for all nockwatch errors."""


class ConfigurationError(NockwatchError):
    """Startup configuration is missing or invalid."""


class FetchError(NockwatchError):
    """A balance lookup for a single address failed."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"{address}: {reason}")
        self.address = address
        self.reason = reason


class DeliveryError(NockwatchError):
    """A notification sink failed to deliver an event."""

    def __init__(self, sink: str, reason: str):
        super().__init__(f"{sink}: {reason}")
        self.sink = sink
        self.reason = reason


class PersistenceError(NockwatchError):
    """The state file could not be read or written."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


# ============================================================================
# Models
# ============================================================================

@dataclass(frozen=True)
class BalanceRecord:
    """Last known balance of one address."""
    address: str
    amount: int
    last_updated: int  # unix seconds


@dataclass
class State:
    """All known balances, keyed by address, in first-seen order."""
    records: Dict[str, BalanceRecord] = field(default_factory=dict)

    def get(self, address: str) -> Optional[BalanceRecord]:
        return self.records.get(address)

    def put(self, record: BalanceRecord):
        self.records[record.address] = record

    def snapshot(self) -> List[BalanceRecord]:
        return list(self.records.values())

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class BalanceChange:
    """A balance changed, or an address was seen for the first time (old_amount is None)."""
    address: str
    old_amount: Optional[int]
    new_amount: int
    timestamp: int

    kind = "change"

    @property
    def is_initial(self) -> bool:
        return self.old_amount is None


@dataclass(frozen=True)
class BalanceSummary:
    """Snapshot of every known balance."""
    records: Tuple[BalanceRecord, ...]
    generated_at: int

    kind = "summary"


NotificationEvent = Union[BalanceChange, BalanceSummary]


@dataclass(frozen=True)
class DeliveryResult:
    sink: str
    ok: bool
    error: Optional[str] = None


@dataclass
class CheckReport:
    """Outcome of one check cycle."""
    checked: List[str] = field(default_factory=list)
    changed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    deliveries: List[DeliveryResult] = field(default_factory=list)
    saved: bool = False


# ============================================================================
# Units
# ============================================================================

def to_display(amount: int) -> Decimal:
    """
    Convert nick to $NOCK.

    Args:
        amount: Balance in nick

    Returns:
        Exact balance in $NOCK
    """
    # dividing by 2^16 adds at most 16 fractional digits
    with localcontext() as ctx:
        ctx.prec = len(str(abs(amount))) + 16
        return Decimal(amount) / Decimal(NICK_PER_NOCK)


def format_balance(amount: int) -> str:
    """Format a balance in both nick and $NOCK, e.g. "65536 nick (1.00 $NOCK)"."""
    return f"{amount} nick ({to_display(amount):.2f} $NOCK)"


def format_timestamp(ts: int) -> str:
    """Render unix seconds as RFC3339 in UTC."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


# ============================================================================
# API Client
# ============================================================================

class BalanceClient:
    """Fetches address balances from the NockBlocks JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        timeout: float = DEFAULT_RPC_TIMEOUT_SEC,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.rpc_url = rpc_url
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json"}
        )

    async def fetch(self, address: str) -> int:
        """
        Fetch the current balance of an address.

        Args:
            address: Address to query

        Returns:
            Balance in nick

        Raises:
            FetchError: On network failure, bad status, or a malformed response
        """
        payload = {
            "jsonrpc": "2.0",
            "method": "getTransactionsByAddress",
            "params": [{"address": address, "limit": 20, "offset": 0}],
            "id": str(time.time_ns())
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise FetchError(address, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchError(address, f"request failed: {e!r}") from e
        except ValueError as e:
            raise FetchError(address, "response is not valid JSON") from e

        if not isinstance(data, dict):
            raise FetchError(address, "unexpected response shape")
        if data.get("error"):
            raise FetchError(address, f"RPC error: {data['error']}")

        result = data.get("result")
        if not isinstance(result, dict) or "currentBalance" not in result:
            raise FetchError(address, "missing result.currentBalance")

        balance = result["currentBalance"]
        # bool is an int subclass
        if isinstance(balance, bool) or not isinstance(balance, int):
            raise FetchError(address, f"currentBalance is not an integer: {balance!r}")
        if balance < 0:
            raise FetchError(address, f"negative balance: {balance}")

        logger.debug(f"Fetched balance {balance} for {address}")
        return balance

    async def close(self):
        await self._client.aclose()


# ============================================================================
# Storage - JSON State File
# ============================================================================

class StateStore:
    """Loads and saves State as a JSON document."""

    def __init__(self, path: Union[str, Path] = DEFAULT_BALANCE_FILE):
        self.path = Path(path)

    def load(self) -> State:
        """
        Load state from disk.

        Returns:
            Saved state, or an empty State when no file exists yet

        Raises:
            PersistenceError: If the file is unreadable or malformed
        """
        if not self.path.exists():
            logger.info(f"No state file at {self.path}, starting empty")
            return State()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise PersistenceError(self.path, f"cannot read: {e}") from e
        except ValueError as e:
            raise PersistenceError(self.path, f"invalid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("balances"), list):
            raise PersistenceError(self.path, "expected an object with a 'balances' list")

        state = State()
        for entry in data["balances"]:
            record = self._parse_record(entry)
            if state.get(record.address) is not None:
                raise PersistenceError(self.path, f"duplicate address {record.address}")
            state.put(record)

        logger.info(f"Loaded {len(state)} balances from {self.path}")
        return state

    def _parse_record(self, entry) -> BalanceRecord:
        if not isinstance(entry, dict):
            raise PersistenceError(self.path, f"balance entry is not an object: {entry!r}")
        try:
            address = entry["address"]
            amount = entry["currentBalance"]
            last_updated = entry["lastUpdated"]
        except KeyError as e:
            raise PersistenceError(self.path, f"balance entry missing {e}") from e

        if not isinstance(address, str):
            raise PersistenceError(self.path, f"address is not a string: {address!r}")
        for name, value in (("currentBalance", amount), ("lastUpdated", last_updated)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise PersistenceError(self.path, f"{name} for {address} is not an integer")

        return BalanceRecord(address=address, amount=amount, last_updated=last_updated)

    def save(self, state: State):
        """
        Atomically overwrite the state file.

        Writes to a temp file in the same directory and renames it over the
        target. A crash mid-write leaves the previous file intact.

        Args:
            state: State to persist

        Raises:
            PersistenceError: If the file cannot be written
        """
        data = {
            "balances": [
                {
                    "address": record.address,
                    "currentBalance": record.amount,
                    "lastUpdated": record.last_updated
                }
                for record in state.snapshot()
            ]
        }

        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False
            ) as f:
                tmp_name = f.name
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(self.path, f"cannot write: {e}") from e

        logger.debug(f"Saved {len(state)} balances to {self.path}")


# ============================================================================
# Notifications
# ============================================================================

class Notifier(ABC):
    """A destination for balance alerts and summaries."""

    name = "notifier"

    async def start(self):
        pass

    async def close(self):
        pass

    @abstractmethod
    async def deliver(self, event: NotificationEvent):
        """
        Format and send one event.

        Raises:
            DeliveryError: If the transport rejects or fails the message
        """


def _old_balance_text(event: BalanceChange) -> str:
    if event.is_initial:
        return INITIAL_BALANCE_LABEL
    return format_balance(event.old_amount)


# Slack ----------------------------------------------------------------------

def _slack_escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _slack_header(text: str) -> dict:
    return {"type": "header", "text": {"type": "plain_text", "text": text, "emoji": True}}


def _slack_section(text: str) -> dict:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _slack_context(text: str) -> dict:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def render_slack_change(event: BalanceChange) -> List[dict]:
    """Build Block Kit blocks for a balance change alert."""
    return [
        _slack_header("💸 Balance Change Alert"),
        _slack_section(f"*Address*: `{_slack_escape(event.address)}`"),
        _slack_section(f"*Old Balance*: {_old_balance_text(event)}"),
        _slack_section(f"*New Balance*: {format_balance(event.new_amount)}"),
        {"type": "divider"},
        _slack_context(f"_Updated at {format_timestamp(event.timestamp)}_"),
    ]


def _slack_summary_groups(event: BalanceSummary) -> List[List[dict]]:
    groups = [[_slack_header("📊 Balance Summary")]]

    for i, record in enumerate(event.records, start=1):
        groups.append([
            _slack_section(f"*Address {i}*: `{_slack_escape(record.address)}`"),
            _slack_section(f"*Balance*: {format_balance(record.amount)}"),
            _slack_section(f"*Last Updated*: {format_timestamp(record.last_updated)}"),
            {"type": "divider"},
        ])

    groups.append([_slack_context(f"_Generated at {format_timestamp(event.generated_at)}_")])
    return groups


def render_slack_summary(event: BalanceSummary) -> List[dict]:
    """Build Block Kit blocks for the periodic balance summary."""
    return [block for group in _slack_summary_groups(event) for block in group]


def split_slack_summary(event: BalanceSummary, limit: int = SLACK_MAX_BLOCKS) -> List[List[dict]]:
    """
    Split the summary into messages of at most `limit` blocks.

    Parts break between addresses, never inside one address's blocks.

    Args:
        event: Summary to render
        limit: Maximum blocks per Slack message

    Returns:
        List of block lists, one per message, in order
    """
    messages = []
    current: List[dict] = []

    for group in _slack_summary_groups(event):
        if current and len(current) + len(group) > limit:
            messages.append(current)
            current = []
        current.extend(group)

    if current:
        messages.append(current)
    return messages


class SlackNotifier(Notifier):
    """Posts Block Kit messages through the Slack Web API."""

    name = "slack"

    def __init__(self, bot_token: str, channel: str, client: Optional[httpx.AsyncClient] = None):
        self.bot_token = bot_token
        self.channel = channel
        self._client = client or httpx.AsyncClient(timeout=30.0)

    async def deliver(self, event: NotificationEvent):
        if isinstance(event, BalanceChange):
            await self._post(render_slack_change(event), f"Balance change for {event.address}")
            return

        for blocks in split_slack_summary(event):
            await self._post(blocks, "Balance summary")

    async def _post(self, blocks: List[dict], fallback: str):
        payload = {"channel": self.channel, "blocks": blocks, "text": fallback}
        headers = {"Authorization": f"Bearer {self.bot_token}"}

        try:
            response = await self._client.post(SLACK_API_URL, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise DeliveryError(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise DeliveryError(self.name, f"request failed: {e!r}") from e
        except ValueError as e:
            raise DeliveryError(self.name, "response is not valid JSON") from e

        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error", "unknown") if isinstance(body, dict) else "unknown"
            raise DeliveryError(self.name, f"Slack API error: {error}")

    async def close(self):
        await self._client.aclose()


# Telegram -------------------------------------------------------------------

def _md(text: str) -> str:
    return escape_markdown(text, version=2)


def _md_code(text: str) -> str:
    return escape_markdown(text, version=2, entity_type="code")


def render_telegram_change(event: BalanceChange) -> str:
    """Build a MarkdownV2 message for a balance change alert."""
    return (
        "💸 *Balance Change Alert*\n\n"
        f"*Address*: `{_md_code(event.address)}`\n"
        f"*Old Balance*: {_md(_old_balance_text(event))}\n"
        f"*New Balance*: {_md(format_balance(event.new_amount))}\n"
        "──────────\n"
        f"_Updated at {_md(format_timestamp(event.timestamp))}_"
    )


def render_telegram_summary(event: BalanceSummary) -> str:
    """Build a MarkdownV2 message for the periodic balance summary."""
    lines = ["📊 *Balance Summary*", ""]

    for i, record in enumerate(event.records, start=1):
        lines.append(f"*Address {i}*: `{_md_code(record.address)}`")
        lines.append(f"*Balance*: {_md(format_balance(record.amount))}")
        lines.append(f"*Last Updated*: {_md(format_timestamp(record.last_updated))}")
        lines.append("──────────")

    lines.append(f"_Generated at {_md(format_timestamp(event.generated_at))}_")
    return "\n".join(lines)


def split_message(text: str, limit: int = TELEGRAM_MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Split a message on line boundaries so each part fits in one Telegram message.

    Every formatting entity in our messages opens and closes on the same line,
    so line boundaries are always safe split points. A single line longer
    than the limit is sent as its own part.

    Args:
        text: Full message text
        limit: Maximum length of one part

    Returns:
        List of message parts, in order
    """
    parts = []
    current = ""

    for line in text.split("\n"):
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) <= limit or not current:
            current = candidate
        else:
            parts.append(current)
            current = line

    if current:
        parts.append(current)
    return parts


class TelegramNotifier(Notifier):
    """Sends MarkdownV2 messages to a Telegram chat."""

    name = "telegram"

    def __init__(self, chat_id: str, bot_token: Optional[str] = None, bot: Optional[Bot] = None):
        self.chat_id = chat_id
        self.bot = bot or Bot(token=bot_token)

    async def start(self):
        try:
            await self.bot.initialize()
        except TelegramError as e:
            logger.warning(f"Telegram bot initialization failed: {e}")

    async def close(self):
        await self.bot.shutdown()

    async def deliver(self, event: NotificationEvent):
        if isinstance(event, BalanceChange):
            text = render_telegram_change(event)
        else:
            text = render_telegram_summary(event)

        try:
            for part in split_message(text):
                await self.bot.send_message(
                    chat_id=self.chat_id,
                    text=part,
                    parse_mode=ParseMode.MARKDOWN_V2
                )
        except TelegramError as e:
            raise DeliveryError(self.name, str(e)) from e


async def dispatch(notifiers: Sequence[Notifier], event: NotificationEvent) -> List[DeliveryResult]:
    """
    Deliver an event to every notifier.

    A failing notifier is logged and recorded; the remaining notifiers are
    still attempted.

    Args:
        notifiers: Configured sinks
        event: Change or summary event

    Returns:
        One DeliveryResult per notifier, in order
    """
    results = []

    for notifier in notifiers:
        try:
            await notifier.deliver(event)
        except Exception as e:
            logger.error(f"Failed to deliver {event.kind} via {notifier.name}: {e}")
            results.append(DeliveryResult(sink=notifier.name, ok=False, error=str(e)))
        else:
            results.append(DeliveryResult(sink=notifier.name, ok=True))

    return results


# ============================================================================
# Main Monitoring Loop
# ============================================================================

class BalanceMonitor:
    """
    Runs the check and summary cycles against a shared State.

    All access to the State goes through a single lock: the check cycle holds
    it for its entire fetch/diff/notify/persist sequence and the summary
    cycle holds it while taking a snapshot.
    """

    def __init__(
        self,
        addresses: Sequence[str],
        client: BalanceClient,
        store: StateStore,
        notifiers: Sequence[Notifier],
        state: Optional[State] = None,
        clock: Callable[[], float] = time.time
    ):
        self.addresses = tuple(addresses)
        self.client = client
        self.store = store
        self.notifiers = list(notifiers)
        self.state = state if state is not None else State()
        self.clock = clock
        self._lock = asyncio.Lock()

    def _apply(self, address: str, amount: int) -> Optional[BalanceChange]:
        """Update the record for address and return the change to announce, if any."""
        now = int(self.clock())
        previous = self.state.get(address)

        if previous is None:
            self.state.put(BalanceRecord(address=address, amount=amount, last_updated=now))
            return BalanceChange(address=address, old_amount=None, new_amount=amount, timestamp=now)

        # lastUpdated only moves when the balance does
        if previous.amount == amount:
            return None

        self.state.put(replace(previous, amount=amount, last_updated=now))
        return BalanceChange(address=address, old_amount=previous.amount, new_amount=amount, timestamp=now)

    async def check_once(self) -> CheckReport:
        """
        Execute one check cycle.

        Returns:
            CheckReport describing what was checked, changed and delivered
        """
        report = CheckReport()

        async with self._lock:
            for address in self.addresses:
                try:
                    amount = await self.client.fetch(address)
                except FetchError as e:
                    logger.warning(f"Error checking balance for {address}: {e.reason}")
                    report.failed.append(address)
                    continue
                except Exception as e:
                    logger.error(f"Unexpected error checking {address}: {e}", exc_info=True)
                    report.failed.append(address)
                    continue

                report.checked.append(address)
                event = self._apply(address, amount)
                if event is None:
                    continue

                report.changed.append(address)
                results = await dispatch(self.notifiers, event)
                report.deliveries.extend(results)

                delivered = sum(1 for r in results if r.ok)
                if event.is_initial:
                    logger.info(f"New address {address}: {format_balance(amount)} (delivered {delivered}/{len(results)})")
                else:
                    logger.info(
                        f"Balance changed for {address}: {format_balance(event.old_amount)} → "
                        f"{format_balance(amount)} (delivered {delivered}/{len(results)})"
                    )

            try:
                self.store.save(self.state)
                report.saved = True
            except PersistenceError as e:
                logger.error(f"Error saving state: {e}")

        logger.info(
            f"Check complete: {len(report.checked)} checked, "
            f"{len(report.changed)} changed, {len(report.failed)} failed"
        )
        return report

    async def summarize_once(self) -> List[DeliveryResult]:
        """
        Execute one summary cycle.

        Returns:
            One DeliveryResult per notifier
        """
        async with self._lock:
            records = tuple(self.state.snapshot())

        event = BalanceSummary(records=records, generated_at=int(self.clock()))
        results = await dispatch(self.notifiers, event)

        delivered = sum(1 for r in results if r.ok)
        logger.info(f"Summary of {len(records)} balances delivered to {delivered}/{len(results)} sinks")
        return results

    async def _periodic(
        self,
        name: str,
        interval: float,
        job: Callable[[], Awaitable[object]],
        stop_event: asyncio.Event
    ):
        loop = asyncio.get_running_loop()

        while not stop_event.is_set():
            started = loop.time()
            try:
                await job()
            except Exception as e:
                logger.error(f"Error in {name} cycle: {e}", exc_info=True)

            delay = max(0.0, interval - (loop.time() - started))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info(f"{name.capitalize()} loop stopped")

    async def run(
        self,
        stop_event: asyncio.Event,
        check_interval: float = DEFAULT_CHECK_INTERVAL_SEC,
        summary_interval: float = DEFAULT_SUMMARY_INTERVAL_SEC
    ):
        """
        Run both cycles until stop_event is set.

        Args:
            stop_event: Set by the host to request a graceful shutdown
            check_interval: Seconds between check cycles
            summary_interval: Seconds between summary cycles
        """
        logger.info(
            f"Starting monitoring loop (check every {check_interval:.0f}s, "
            f"summary every {summary_interval:.0f}s)"
        )
        await asyncio.gather(
            self._periodic("check", check_interval, self.check_once, stop_event),
            self._periodic("summary", summary_interval, self.summarize_once, stop_event),
        )


# ============================================================================
# Configuration
# ============================================================================

@dataclass(frozen=True)
class Config:
    addresses: Tuple[str, ...]
    slack_bot_token: Optional[str] = None
    slack_channel: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    rpc_url: str = DEFAULT_RPC_URL
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT_SEC
    balance_file: Path = Path(DEFAULT_BALANCE_FILE)
    check_interval: float = DEFAULT_CHECK_INTERVAL_SEC
    summary_interval: float = DEFAULT_SUMMARY_INTERVAL_SEC
    log_level: str = "INFO"

    @property
    def slack_enabled(self) -> bool:
        return bool(self.slack_bot_token and self.slack_channel)

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


def parse_addresses(raw: str) -> Tuple[str, ...]:
    """Split a comma separated address list, dropping blanks and repeats."""
    addresses = []
    for part in raw.split(","):
        address = part.strip()
        if address and address not in addresses:
            addresses.append(address)
    return tuple(addresses)


def _positive_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return float(default)
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {raw!r}")
    return value


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Load configuration from the environment (and .env, when reading os.environ).

    Args:
        environ: Mapping to read instead of os.environ

    Returns:
        Validated Config

    Raises:
        ConfigurationError: If no address or no notification sink is configured
    """
    if environ is None:
        if not load_dotenv():
            logger.info("No .env file found, using environment variables directly")
        environ = os.environ

    config = Config(
        addresses=parse_addresses(environ.get("ADDRESSES", "")),
        slack_bot_token=environ.get("SLACK_BOT_TOKEN") or None,
        slack_channel=environ.get("SLACK_CHANNEL") or None,
        telegram_bot_token=environ.get("TELEGRAM_BOT_TOKEN") or None,
        telegram_chat_id=environ.get("TELEGRAM_CHAT_ID") or None,
        rpc_url=environ.get("RPC_URL") or DEFAULT_RPC_URL,
        rpc_timeout=_positive_float(environ, "RPC_TIMEOUT_SEC", DEFAULT_RPC_TIMEOUT_SEC),
        balance_file=Path(environ.get("BALANCE_FILE") or DEFAULT_BALANCE_FILE),
        check_interval=_positive_float(environ, "CHECK_INTERVAL_SEC", DEFAULT_CHECK_INTERVAL_SEC),
        summary_interval=_positive_float(environ, "SUMMARY_INTERVAL_SEC", DEFAULT_SUMMARY_INTERVAL_SEC),
        log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
    )

    if not config.addresses:
        raise ConfigurationError("ADDRESSES must list at least one address")
    if not (config.slack_enabled or config.telegram_enabled):
        raise ConfigurationError(
            "either SLACK_BOT_TOKEN and SLACK_CHANNEL or "
            "TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set"
        )
    if not isinstance(logging.getLevelName(config.log_level), int):
        raise ConfigurationError(f"unknown LOG_LEVEL {config.log_level!r}")

    return config


def build_notifiers(config: Config) -> List[Notifier]:
    """Create a notifier for every sink enabled in config."""
    notifiers: List[Notifier] = []
    if config.slack_enabled:
        notifiers.append(SlackNotifier(config.slack_bot_token, config.slack_channel))
    if config.telegram_enabled:
        notifiers.append(TelegramNotifier(config.telegram_chat_id, bot_token=config.telegram_bot_token))
    return notifiers


# ============================================================================
# Main Entry Point
# ============================================================================

async def main() -> int:
    """
    Main entry point.

    Returns:
        Process exit code
    """
    try:
        config = load_config()
    except ConfigurationError as e:
        logger.error(f"Error loading config: {e}")
        return 1

    logger.setLevel(config.log_level)

    store = StateStore(config.balance_file)
    try:
        state = store.load()
    except PersistenceError as e:
        logger.error(f"Error loading state: {e}")
        return 1

    notifiers = build_notifiers(config)

    logger.info("Starting nockwatch")
    logger.info(f"Addresses: {len(config.addresses)}")
    logger.info(f"Sinks: {', '.join(n.name for n in notifiers)}")
    logger.info(f"State file: {config.balance_file}")
    logger.info(f"Check interval: {config.check_interval:.0f}s")
    logger.info(f"Summary interval: {config.summary_interval:.0f}s")

    client = BalanceClient(config.rpc_url, config.rpc_timeout)
    monitor = BalanceMonitor(config.addresses, client, store, notifiers, state=state)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    try:
        for notifier in notifiers:
            await notifier.start()
        await monitor.run(stop_event, config.check_interval, config.summary_interval)
    finally:
        logger.info("Shutting down...")
        for notifier in notifiers:
            await notifier.close()
        await client.close()

    return 0


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
