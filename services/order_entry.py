# services/order_entry.py
from __future__ import annotations
import logging, math, re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from core.schemas import OrderRequest, Side
from services.chart import round2

log = logging.getLogger(__name__)

# empty, or digits with an optional point and at most 2 decimals
AMOUNT_RE = re.compile(r"\d*\.?\d{0,2}", re.ASCII)

# leading number, parseFloat-style ("10.5abc" -> 10.5)
_LEADING_NUM_RE = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

FALLBACK_MESSAGES = {
    Side.BUY: "Failed to buy ticker.",
    Side.SELL: "Failed to sell ticker.",
}

Mutation = Callable[..., Awaitable[object]]
Notifier = Callable[[str], None]


class AmountInput:
    """Text buffer for the order amount. Bad keystrokes are dropped, never reported."""

    def __init__(self, value: str = ""):
        self.value = value

    def edit(self, candidate: str) -> bool:
        if AMOUNT_RE.fullmatch(candidate) is None:
            return False
        self.value = candidate
        return True

    def blur(self) -> str:
        if self.value != "":
            try:
                self.value = f"{float(self.value):.2f}"
            except ValueError:
                pass  # e.g. "." stays as typed
        return self.value


def parse_amount(raw: str) -> float:
    m = _LEADING_NUM_RE.match(raw or "")
    if m is None:
        return math.nan
    return float(m.group(1))


@dataclass(frozen=True)
class MessageError:
    message: str

@dataclass(frozen=True)
class OpaqueError:
    value: object

def classify_failure(error) -> Union[MessageError, OpaqueError]:
    """Anything exposing a string `message` (attribute or mapping key) carries its own text."""
    if isinstance(error, str):
        return OpaqueError(error)
    if isinstance(error, Mapping):
        message = error.get("message")
    else:
        message = getattr(error, "message", None)
    if isinstance(message, str):
        return MessageError(message)
    return OpaqueError(error)

def describe_failure(error, side: Side) -> str:
    reason = classify_failure(error)
    if isinstance(reason, MessageError):
        return reason.message
    return FALLBACK_MESSAGES[Side(side)]


@dataclass(frozen=True)
class Success:
    request: OrderRequest

@dataclass(frozen=True)
class Failure:
    message: str

OrderOutcome = Union[Success, Failure]


class OrderSubmitter:
    """
    Forwards buy/sell requests to the store mutations and reports failures
    through `notify`. Calls are not serialized: a Sell may start while a Buy
    is still pending. The amount buffer is left as-is after submitting.
    """

    def __init__(self, buy: Mutation, sell: Mutation, notify: Notifier):
        self._mutations = {Side.BUY: buy, Side.SELL: sell}
        self._notify = notify
        self.in_flight = 0

    @property
    def state(self) -> str:
        return "submitting" if self.in_flight else "idle"

    async def submit(self, side: Side, ticker: str, raw: str) -> Optional[OrderOutcome]:
        side = Side(side)
        amt = parse_amount(raw)
        if math.isnan(amt) or amt <= 0:
            return None

        req = OrderRequest(ticker=ticker, amount=amt)
        self.in_flight += 1
        try:
            await self._mutations[side](ticker=req.ticker, amount=req.amount)
        except Exception as e:
            log.warning("%s %s x%s failed: %r", side.value, ticker, amt, e)
            message = describe_failure(e, side)
            self._notify(message)
            return Failure(message)
        finally:
            self.in_flight -= 1
        log.info("%s %s x%s accepted", side.value, ticker, amt)
        return Success(req)

    async def buy(self, ticker: str, raw: str) -> Optional[OrderOutcome]:
        return await self.submit(Side.BUY, ticker, raw)

    async def sell(self, ticker: str, raw: str) -> Optional[OrderOutcome]:
        return await self.submit(Side.SELL, ticker, raw)


def holdings_display(value: Optional[float]) -> float:
    """Unknown holdings show as 0; otherwise rounded to cents."""
    if value is None:
        return 0.0
    return round2(value)

def format_holdings(value: Optional[float]) -> str:
    """Holdings badge text: cents, trailing zeros dropped ("3", "3.1", "0.25")."""
    v = holdings_display(value)
    if v == 0:
        return "0"
    return f"{v:.2f}".rstrip("0").rstrip(".")
