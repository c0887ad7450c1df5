"""Tests for the BalanceRelayer orchestration."""

import asyncio
from dataclasses import replace
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from balance_relayer.config import ChainConfig, ProcessingConfig, RelayerConfig
from balance_relayer.relayer import BalanceRelayer

from conftest import USER_A, USER_B, make_update_event


@pytest.fixture
def config():
    return RelayerConfig(
        chain=ChainConfig(
            rpc_url="http://127.0.0.1:8545",
            oracle_address=USER_B,
            private_key="0x" + "1" * 64,
            bank_address=USER_A,
        ),
        processing=ProcessingConfig(sleep_interval_ms=10, event_poll_interval_ms=10),
    )


@pytest.fixture
def contract_util(mock_contract):
    util = MagicMock()
    util.get_contract_abi.return_value = []
    util.get_contract.return_value = mock_contract
    return util


@pytest.fixture
def relayer(config, contract_util):
    relayer = BalanceRelayer(config, contract_util=contract_util, balance_client=AsyncMock())
    relayer.health_server.start = AsyncMock()
    relayer.health_server.stop = AsyncMock()
    return relayer


class TestBalanceRelayer:
    """Test suite for BalanceRelayer."""

    def test_components_share_one_contract(self, relayer, contract_util, mock_contract):
        contract_util.get_contract_abi.assert_called_once_with("BalanceOracle", None)
        contract_util.get_contract.assert_called_once_with(USER_B, [])
        assert relayer.chain_writer.contract is mock_contract
        assert relayer.drain_loop.queue is relayer.queue
        assert relayer.event_listener.queue is relayer.queue

    def test_missing_caller_rejected_at_startup(self, config, contract_util):
        chain = replace(config.chain, bank_address=None)

        with pytest.raises(ValueError, match="BANK_ADDRESS"):
            BalanceRelayer(replace(config, chain=chain), contract_util=contract_util, balance_client=AsyncMock())

    def test_init_event_monitoring_installs_handlers(self, relayer):
        assert relayer.init_event_monitoring() is True

        assert relayer.listening is True
        assert sorted(relayer.poller.event_names) == ["SetUserBalanceEvent", "UpdateUserBalanceEvent"]

    def test_reinitialising_keeps_one_handler_per_event(self, relayer):
        relayer.init_event_monitoring()
        relayer.init_event_monitoring()

        assert relayer.poller.listener_count("UpdateUserBalanceEvent") == 1
        assert relayer.poller.listener_count("SetUserBalanceEvent") == 1

    def test_subscription_failure_degrades(self, relayer, mock_contract):
        mock_contract.events = SimpleNamespace()

        assert relayer.init_event_monitoring() is False
        assert relayer.listening is False
        assert relayer.get_stats()['listening'] is False

    @pytest.mark.asyncio
    async def test_event_reaches_queue(self, relayer):
        relayer.init_event_monitoring()

        await relayer.event_listener.handle_update_event(make_update_event())

        assert relayer.get_stats()['queue']['pending'] == 1

    def test_stats_shape(self, relayer):
        stats = relayer.get_stats()

        assert set(stats) == {'listening', 'queue', 'events', 'drain', 'processor', 'writer', 'poller'}
        assert stats['poller'] is None
        assert stats['processor']['exhaustion_policy'] == 'drop'

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, relayer):
        task = asyncio.create_task(relayer.run())
        await asyncio.sleep(0.1)

        assert relayer.running is True
        assert relayer.listening is True

        relayer.stop()
        await asyncio.wait_for(task, timeout=5)

        assert relayer.running is False
        assert relayer.drain_loop.is_running is False
        assert relayer.poller.is_running is False
        relayer.health_server.start.assert_awaited_once()
        relayer.health_server.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_continues_without_listening(self, relayer, mock_contract):
        mock_contract.events = SimpleNamespace()

        task = asyncio.create_task(relayer.run())
        await asyncio.sleep(0.1)

        assert relayer.running is True
        assert relayer.listening is False
        assert relayer.drain_loop.is_running is True

        relayer.stop()
        await asyncio.wait_for(task, timeout=5)
