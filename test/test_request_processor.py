"""Unit tests for the RequestProcessor class."""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from balance_relayer.errors import BalanceLookupError, ChainWriteError
from balance_relayer.models import WorkItem
from balance_relayer.request_processor import ExhaustionPolicy, RequestProcessor

ITEM = WorkItem(user_address="0xA", amount=Decimal("10"))


@pytest.fixture
def balance_client():
    client = AsyncMock()
    client.fetch_balance = AsyncMock(return_value="1500")
    return client


@pytest.fixture
def chain_writer():
    writer = AsyncMock()
    writer.set_user_balance = AsyncMock(return_value="0xtx")
    return writer


def make_processor(balance_client, chain_writer, **kwargs):
    kwargs.setdefault("retry_backoff", 0)
    return RequestProcessor(balance_client=balance_client, chain_writer=chain_writer, **kwargs)


def http_500():
    return BalanceLookupError("Balance service returned 500 for 0xA", status_code=500)


class TestRequestProcessor:
    """Test suite for RequestProcessor."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self, balance_client, chain_writer):
        processor = make_processor(balance_client, chain_writer)

        result = await processor.process(ITEM)

        assert result.succeeded is True
        assert result.attempts == 1
        assert result.balance == 1500
        assert result.tx_hash == "0xtx"
        balance_client.fetch_balance.assert_awaited_once_with("0xA")
        chain_writer.set_user_balance.assert_awaited_once_with(1500, ITEM)

    @pytest.mark.asyncio
    async def test_success_on_third_attempt(self, balance_client, chain_writer):
        balance_client.fetch_balance.side_effect = [http_500(), http_500(), 777, 888]
        processor = make_processor(balance_client, chain_writer, max_retries=5)

        result = await processor.process(ITEM)

        assert result.succeeded is True
        assert result.attempts == 3
        assert balance_client.fetch_balance.await_count == 3
        chain_writer.set_user_balance.assert_awaited_once_with(777, ITEM)

    @pytest.mark.asyncio
    async def test_drop_policy_writes_nothing(self, balance_client, chain_writer):
        balance_client.fetch_balance.side_effect = http_500()
        processor = make_processor(balance_client, chain_writer, max_retries=5)

        result = await processor.process(ITEM)

        assert result.succeeded is False
        assert result.fallback_written is False
        assert result.attempts == 5
        assert "500" in result.error
        assert balance_client.fetch_balance.await_count == 5
        chain_writer.set_user_balance.assert_not_awaited()
        assert processor.items_dropped == 1

    @pytest.mark.asyncio
    async def test_zero_balance_policy_writes_once(self, balance_client, chain_writer):
        balance_client.fetch_balance.side_effect = http_500()
        processor = make_processor(
            balance_client, chain_writer,
            max_retries=5, exhaustion_policy=ExhaustionPolicy.ZERO_BALANCE,
        )

        result = await processor.process(ITEM)

        assert result.succeeded is False
        assert result.fallback_written is True
        assert result.balance == 0
        assert balance_client.fetch_balance.await_count == 5
        chain_writer.set_user_balance.assert_awaited_once_with(0, ITEM)
        assert processor.fallback_writes == 1

    @pytest.mark.asyncio
    async def test_failed_fallback_write_is_reported(self, balance_client, chain_writer):
        balance_client.fetch_balance.side_effect = http_500()
        chain_writer.set_user_balance.side_effect = ChainWriteError("reverted")
        processor = make_processor(
            balance_client, chain_writer,
            max_retries=2, exhaustion_policy=ExhaustionPolicy.ZERO_BALANCE,
        )

        result = await processor.process(ITEM)

        assert result.fallback_written is False
        assert result.error == "reverted"
        assert processor.items_dropped == 1

    @pytest.mark.asyncio
    async def test_write_failure_consumes_attempt(self, balance_client, chain_writer):
        chain_writer.set_user_balance.side_effect = [ChainWriteError("rejected"), "0xtx2"]
        processor = make_processor(balance_client, chain_writer, max_retries=5)

        result = await processor.process(ITEM)

        assert result.succeeded is True
        assert result.attempts == 2
        assert result.tx_hash == "0xtx2"
        assert balance_client.fetch_balance.await_count == 2

    @pytest.mark.asyncio
    async def test_unusable_balance_consumes_attempt(self, balance_client, chain_writer):
        balance_client.fetch_balance.side_effect = [{"error": "busy"}, "12"]
        processor = make_processor(balance_client, chain_writer)

        result = await processor.process(ITEM)

        assert result.attempts == 2
        chain_writer.set_user_balance.assert_awaited_once_with(12, ITEM)

    @pytest.mark.asyncio
    async def test_attempts_never_exceed_bound(self, balance_client, chain_writer):
        balance_client.fetch_balance.side_effect = RuntimeError("unexpected")
        processor = make_processor(balance_client, chain_writer, max_retries=3)

        await processor.process(ITEM)
        await processor.process(ITEM)

        assert balance_client.fetch_balance.await_count == 6
        assert processor.total_attempts == 6

    @pytest.mark.asyncio
    async def test_exponential_backoff_between_attempts(self, balance_client, chain_writer):
        balance_client.fetch_balance.side_effect = http_500()
        processor = make_processor(
            balance_client, chain_writer,
            max_retries=5, retry_backoff=0.5, max_retry_backoff=2.0,
        )

        with patch("balance_relayer.request_processor.asyncio.sleep", new=AsyncMock()) as sleep:
            await processor.process(ITEM)

        # No sleep after the final attempt
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_no_backoff_after_success(self, balance_client, chain_writer):
        processor = make_processor(balance_client, chain_writer, retry_backoff=1.0)

        with patch("balance_relayer.request_processor.asyncio.sleep", new=AsyncMock()) as sleep:
            await processor.process(ITEM)

        sleep.assert_not_awaited()

    def test_invalid_max_retries(self, balance_client, chain_writer):
        with pytest.raises(ValueError):
            make_processor(balance_client, chain_writer, max_retries=0)

    def test_stats(self, balance_client, chain_writer):
        processor = make_processor(balance_client, chain_writer)
        assert processor.get_stats() == {
            'items_succeeded': 0,
            'items_dropped': 0,
            'fallback_writes': 0,
            'total_attempts': 0,
            'exhaustion_policy': 'drop',
        }
