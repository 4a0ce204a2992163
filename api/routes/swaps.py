"""
Swap history retrieval with sorting, pagination and filtering
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import time

from api.dependencies import get_db
from ingestion.tables import get_table
from models.base import RecordKind
from schemas.api import ErrorResponse, SwapListResponse, SwapQueryRequest
from schemas.swap import SwapRecordResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Swaps"])

SEARCH_COLUMNS = ["tx_id", "in_address", "out_address_1", "out_address_2"]


def build_query(params: SwapQueryRequest):
    model = get_table(params.source, RecordKind.SWAP).model
    query = select(model)

    if params.search:
        pattern = f"%{params.search}%"
        query = query.where(or_(*(getattr(model, c).like(pattern) for c in SEARCH_COLUMNS)))

    if params.date is not None:
        query = query.where(model.date == params.date)

    sort_column = getattr(model, params.sort_by)
    query = query.order_by(sort_column.asc() if params.order == "ASC" else sort_column.desc())
    return query.offset(params.offset).limit(params.limit)


@router.post(
    "/swaps",
    response_model=SwapListResponse,
    responses={400: {"model": ErrorResponse}},
)
async def list_swaps(request: Request, params: SwapQueryRequest, db: AsyncSession = Depends(get_db)):
    """
    Page through stored swaps of one source.

    Features:
    - Whitelisted sort column, ASC/DESC
    - Substring search over tx id and addresses
    - Exact date filter
    """
    request_id = getattr(request.state, "request_id", "-")
    start_time = time.time()

    try:
        result = await db.execute(build_query(params))
        rows = result.scalars().all()
    except Exception as e:
        logger.error(f"[{request_id}] POST /swaps failed: {str(e)}")
        return JSONResponse(status_code=400, content=ErrorResponse(error="Error Fetching Data").model_dump(mode="json"))

    items = [SwapRecordResponse.model_validate(row) for row in rows]
    logger.info(
        f"[{request_id}] POST /swaps source={params.source.value} page={params.page} "
        f"-> {len(items)} rows ({(time.time() - start_time) * 1000:.2f}ms)"
    )
    return SwapListResponse(items=items, page=params.page, limit=params.limit, count=len(items))
