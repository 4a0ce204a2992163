"""
Map Chainflip swap request nodes to persisted records
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional
import logging

from pydantic import ValidationError

from core.config import settings
from core.exceptions import InvalidAmount, InvalidTimestamp, MissingAssetName, MissingTxId, TransformError
from ingestion.transformers.swap_transformer import TransformResult
from schemas.chainflip import ChainflipRecord, ChainflipSwapNode

logger = logging.getLogger(__name__)


def _parse_float(value: Any, field_name: str, required: bool = True) -> Optional[float]:
    if value is None or value == "":
        if required:
            raise InvalidAmount(context={"field": field_name})
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidAmount(context={"field": field_name, "value": value})


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        raise InvalidTimestamp(context={"completedBlockTimestamp": value})
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidTimestamp(context={"completedBlockTimestamp": value})
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class ChainflipTransformer:
    """
    Keep completed swaps only and map them to ``ChainflipRecord``.

    Amounts from this feed are already decimal and carry USD values, so no
    scaling or enrichment is applied. The egress amount is preferred over
    the swap output because it is what reached the destination address.
    """

    def __init__(self, success_status: Optional[str] = None):
        self.success_status = success_status or settings.CHAINFLIP_SUCCESS_STATUS

    def is_final(self, node: ChainflipSwapNode) -> bool:
        return (node.status or "").upper() == self.success_status.upper()

    def transform(self, node: ChainflipSwapNode) -> ChainflipRecord:
        if node.swapRequestNativeId in (None, ""):
            raise MissingTxId()
        swap_id = str(node.swapRequestNativeId)

        if not node.sourceAsset or not node.destAsset:
            raise MissingAssetName(context={"swap_id": swap_id})

        completed_at = _parse_timestamp(node.completedBlockTimestamp or node.startedBlockTimestamp)

        out_amount = node.egressAmount if node.egressAmount not in (None, "") else node.outputAmount
        out_value = node.egressValueUsd if node.egressValueUsd not in (None, "") else node.outputValueUsd

        try:
            return ChainflipRecord(
                timestamp=int(completed_at.timestamp()),
                date=completed_at.date(),
                swap_id=swap_id,
                in_asset=node.sourceAsset,
                in_amount=_parse_float(node.inputAmount, "inputAmount"),
                in_amount_usd=_parse_float(node.inputValueUsd, "inputValueUsd", required=False),
                in_address=node.refundAddress,
                out_asset=node.destAsset,
                out_amount=_parse_float(out_amount, "outputAmount"),
                out_amount_usd=_parse_float(out_value, "outputValueUsd", required=False),
                out_address=node.destinationAddress,
            )
        except ValidationError as e:
            raise TransformError("Chainflip record failed validation", context={"swap_id": swap_id}, original_exception=e)

    def transform_page(self, nodes: Iterable[ChainflipSwapNode]) -> TransformResult:
        """Completed swaps become records; in-progress ones are skipped silently"""
        result = TransformResult()
        for index, node in enumerate(nodes):
            if not self.is_final(node):
                continue
            try:
                result.records.append(self.transform(node))
            except TransformError as e:
                error_detail = {
                    "index": index,
                    "swap_id": node.swapRequestNativeId,
                    "error_type": type(e).__name__,
                    "error_message": e.message,
                }
                result.errors.append(error_detail)
                logger.warning(
                    f"[chainflip] Skipping swap {node.swapRequestNativeId}: {e.message}",
                    extra={"error_context": error_detail}
                )
        return result
