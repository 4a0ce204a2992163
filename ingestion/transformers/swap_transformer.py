"""
Transform raw Midgard swap actions into canonical swap records.

One raw action maps to exactly one of:
- a ``CanonicalSwapRecord`` (finalised swap),
- a ``PendingId`` (swap not final yet; retried later by id),
- a ``TransformError`` (malformed action; skipped with a logged reason).
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union
import logging
import re

from pydantic import ValidationError

from core.config import settings
from core.exceptions import (
    InvalidAmount,
    InvalidTimestamp,
    MissingAssetName,
    MissingInCoin,
    MissingInData,
    MissingOutData,
    MissingTxId,
    TransformError,
)
from models.base import DataSource
from schemas.swap import CanonicalSwapRecord, PendingId, RawSwapEvent, TransactionLeg

logger = logging.getLogger(__name__)

NANOS_PER_SECOND = 1_000_000_000

POOL_DELIMITERS = re.compile(r"[./~\-_|:;,+*^$!?]")
TRADE_POOL_DELIMITERS = re.compile(r"[./~]")


# ============================================================================
# Field helpers
# ============================================================================

def asset_name_from_pool(pool_name: str) -> Optional[str]:
    """
    Canonical dotted asset name from pool notation.

    "BTC.BTC" -> "BTC.BTC", "ETH-USDC-0XA0B8" -> "ETH.USDC", "BTC" -> None
    """
    parts = POOL_DELIMITERS.split(pool_name or "")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    return f"{parts[0]}.{parts[1]}"


def asset_name_from_trade_pool(pool_name: str) -> Optional[str]:
    """
    Trade asset name, keeping the delimiter that marks the asset kind.

    "BTC~BTC" -> "BTC~BTC", "ETH~USDC-0XA0B8" -> "ETH~USDC-0XA0B8"
    """
    match = TRADE_POOL_DELIMITERS.search(pool_name or "")
    if match is None:
        return None
    parts = TRADE_POOL_DELIMITERS.split(pool_name)
    if not parts[0] or not parts[1]:
        return None
    return f"{parts[0]}{match.group(0)}{parts[1]}"


def convert_to_standard_unit(raw_amount: Any, decimals: int) -> float:
    """Integer-scaled amount to decimal units, e.g. "100000000" / 10^8 -> 1.0"""
    try:
        value = Decimal(str(raw_amount).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount(context={"amount": raw_amount})
    if not value.is_finite() or value < 0:
        raise InvalidAmount(context={"amount": raw_amount})
    return float(value / (Decimal(10) ** decimals))


def nanos_to_seconds(epoch_nanos: Any) -> int:
    try:
        nanos = int(str(epoch_nanos).strip())
    except (TypeError, ValueError):
        raise InvalidTimestamp(context={"date": epoch_nanos})
    if nanos < 0:
        raise InvalidTimestamp(context={"date": epoch_nanos})
    return nanos // NANOS_PER_SECOND


def format_epoch(seconds: int) -> Tuple[date, str]:
    """UTC display date and 12-hour time ("03:04pm") for an epoch"""
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return moment.date(), moment.strftime("%I:%M%p").lower()


# ============================================================================
# Transformer
# ============================================================================

@dataclass
class ParsedLeg:
    asset: str
    amount: float
    address: str


@dataclass
class TransformResult:
    """Outcome of transforming one page of actions"""
    records: List[CanonicalSwapRecord] = field(default_factory=list)
    pending: List[PendingId] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.errors)

    def extend(self, other: "TransformResult"):
        self.records.extend(other.records)
        self.pending.extend(other.pending)
        self.errors.extend(other.errors)


TransformOutput = Union[CanonicalSwapRecord, PendingId]


def _raw_tx_id(raw: Any) -> Optional[str]:
    """Best-effort tx id of an action that failed to transform, for logs"""
    if isinstance(raw, RawSwapEvent):
        return raw.tx_id
    legs = raw.get("in") if isinstance(raw, dict) else None
    if isinstance(legs, list) and legs and isinstance(legs[0], dict):
        return legs[0].get("txID")
    return None


class SwapTransformer:
    """
    Map Midgard swap actions of one source to canonical records.

    Handles:
    - Finality check (non-final swaps become pending ids)
    - Pool/asset notation decoding
    - Integer-scaled amounts to decimal units
    - Outbound leg ordering with the settlement asset in slot 2
    - Nanosecond epochs to seconds plus a UTC display date/time
    """

    def __init__(
        self,
        source: DataSource = DataSource.MIDGARD_NATIVE,
        settlement_asset: Optional[str] = None,
        decimals: Optional[int] = None,
    ):
        self.source = source
        self.settlement_asset = settlement_asset or settings.NATIVE_SETTLEMENT_ASSET
        self.decimals = decimals if decimals is not None else settings.AMOUNT_DECIMALS
        self.decode_asset: Callable[[str], Optional[str]] = (
            asset_name_from_trade_pool
            if source == DataSource.MIDGARD_TRADE
            else asset_name_from_pool
        )

    def parse_leg(self, leg: TransactionLeg) -> ParsedLeg:
        """First coin of a leg, decoded and scaled"""
        if not leg.coins:
            raise MissingInCoin(context={"address": leg.address})
        coin = leg.coins[0]

        asset = self.decode_asset(coin.asset)
        if asset is None:
            raise MissingAssetName(context={"asset": coin.asset})

        amount = convert_to_standard_unit(coin.amount, self.decimals)
        return ParsedLeg(asset=asset, amount=amount, address=leg.address)

    def order_out_legs(self, out_legs: List[TransactionLeg]) -> Tuple[ParsedLeg, Optional[ParsedLeg]]:
        """
        Pick the primary and optional second outbound leg.

        Upstream lists the settlement leg first, so the list is reversed
        before indexing. With two legs, a settlement-asset leg goes to slot 2
        whatever its position; if neither or both legs are the settlement
        asset, the post-reversal order stands.
        """
        legs = list(reversed(out_legs))
        if not legs:
            raise MissingOutData()

        first = self.parse_leg(legs[0])
        if len(legs) == 1:
            return first, None

        second = self.parse_leg(legs[1])
        first_is_settlement = first.asset == self.settlement_asset
        second_is_settlement = second.asset == self.settlement_asset
        if first_is_settlement and not second_is_settlement:
            return second, first
        return first, second

    def transform(self, raw: Union[Dict[str, Any], RawSwapEvent]) -> TransformOutput:
        """
        Transform one raw action.

        Returns:
            CanonicalSwapRecord for a final swap, PendingId otherwise

        Raises:
            TransformError: The action is malformed; skip it
        """
        try:
            event = raw if isinstance(raw, RawSwapEvent) else RawSwapEvent.model_validate(raw)
        except ValidationError as e:
            raise TransformError("Malformed action payload", original_exception=e)

        if not event.is_final:
            tx_id = event.tx_id
            if tx_id is None:
                raise MissingTxId(context={"status": event.status})
            return PendingId(tx_id=tx_id)

        if not event.in_legs:
            raise MissingInData(context={"date": event.date})

        tx_id = event.tx_id
        if tx_id is None:
            raise MissingTxId(context={"date": event.date})

        timestamp = nanos_to_seconds(event.date)
        swap_date, swap_time = format_epoch(timestamp)

        in_leg = self.parse_leg(event.in_legs[0])

        out_1, out_2 = self.order_out_legs(event.out_legs)

        try:
            return CanonicalSwapRecord(
                timestamp=timestamp,
                date=swap_date,
                time=swap_time,
                tx_id=tx_id,
                in_asset=in_leg.asset,
                in_amount=in_leg.amount,
                in_address=in_leg.address,
                out_asset_1=out_1.asset,
                out_amount_1=out_1.amount,
                out_address_1=out_1.address,
                out_asset_2=out_2.asset if out_2 else None,
                out_amount_2=out_2.amount if out_2 else None,
                out_address_2=out_2.address if out_2 else None,
            )
        except ValidationError as e:
            raise TransformError("Canonical record failed validation", context={"tx_id": tx_id}, original_exception=e)

    def transform_page(self, actions: Iterable[Union[Dict[str, Any], RawSwapEvent]]) -> TransformResult:
        """Transform a page; malformed actions are skipped, never fatal"""
        result = TransformResult()

        for index, raw in enumerate(actions):
            try:
                output = self.transform(raw)
            except TransformError as e:
                tx_id = _raw_tx_id(raw)
                error_detail = {
                    "index": index,
                    "tx_id": tx_id,
                    "error_type": type(e).__name__,
                    "error_message": e.message,
                }
                result.errors.append(error_detail)
                logger.warning(
                    f"[{self.source.value}] Skipping action {index} (tx_id={tx_id}): {e.message}",
                    extra={"error_context": error_detail}
                )
                continue

            if isinstance(output, PendingId):
                result.pending.append(output)
            else:
                result.records.append(output)

        if result.pending:
            logger.info(f"[{self.source.value}] {len(result.pending)} pending transactions on page")

        return result
