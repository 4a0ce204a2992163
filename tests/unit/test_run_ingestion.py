import pytest
from unittest.mock import AsyncMock

from models.base import DataSource, Direction, PassType
from scripts.run_ingestion import parse_args, run_pass


def test_parse_args_defaults():
    args = parse_args(["backfill"])

    assert args.pass_type == "backfill"
    assert args.source is None
    assert args.direction == "next"


def test_parse_args_repeatable_source():
    args = parse_args(["live_tail", "--source", "midgard_native", "--source", "midgard_trade"])

    assert args.source == ["midgard_native", "midgard_trade"]


def test_parse_args_rejects_unknown_pass():
    with pytest.raises(SystemExit):
        parse_args(["compact"])


@pytest.mark.asyncio
async def test_backfill_runs_per_source_with_direction():
    runner = AsyncMock()
    runner.backfill.return_value = {"pages": 1}
    sources = [DataSource.MIDGARD_NATIVE, DataSource.MIDGARD_TRADE]

    results = await run_pass(runner, PassType.BACKFILL, sources, Direction.PREV)

    assert results == [{"pages": 1}, {"pages": 1}]
    runner.backfill.assert_any_await(DataSource.MIDGARD_TRADE, Direction.PREV)


@pytest.mark.asyncio
async def test_chainflip_ignores_sources():
    runner = AsyncMock()
    runner.chainflip_incremental.return_value = {"pages": 0}

    results = await run_pass(runner, PassType.CHAINFLIP, [DataSource.MIDGARD_NATIVE], Direction.NEXT)

    assert results == [{"pages": 0}]
    runner.live_tail.assert_not_called()
