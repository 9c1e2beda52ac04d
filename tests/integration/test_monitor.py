"""Integration tests for the position monitor — full cycle with in-memory I/O."""
from __future__ import annotations

import asyncio
import re
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import InMemoryPositionStore, StaticPoolReader, StaticPriceSource, make_position
from lending_risk.config import MonitorConfig
from lending_risk.errors import OracleUnavailable, PersistenceError
from lending_risk.models import HealthStatus, MonitorState
from lending_risk.services import PositionMonitor

# 1.5 ETH at 2500 with a 0.8 threshold gives 3000 of risk-adjusted collateral.
HEALTHY_DEBT = "1000"  # HF 3
WARNING_DEBT = "2600"  # HF ~1.154
CRITICAL_DEBT = "2900"  # HF ~1.034
LIQUIDATABLE_DEBT = "3100"  # HF ~0.968


def _monitor(store, prices, pools, notifiers, math) -> PositionMonitor:
    return PositionMonitor(
        store=store,
        oracle=prices,
        pools=pools,
        notifiers=notifiers,
        math=math,
        config=MonitorConfig(interval_seconds=60),
    )


@pytest.fixture()
def notifier() -> AsyncMock:
    return AsyncMock()


class TestCheckPosition:
    @pytest.mark.asyncio
    async def test_healthy_position_no_alert(
        self, price_source, pool_reader, notifier, risk_math, sample_position
    ) -> None:
        store = InMemoryPositionStore([sample_position])
        monitor = _monitor(store, price_source, pool_reader, [notifier], risk_math)

        check = await monitor.check_position(sample_position)
        await monitor.drain_notifications()

        assert check.status is HealthStatus.HEALTHY
        assert check.health_factor == Decimal(3)
        assert check.alert is None
        notifier.send_alert.assert_not_called()
        assert store.saved[-1].health_factor == Decimal(3)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("debt", "status", "priority", "subject_word"),
        [
            (WARNING_DEBT, HealthStatus.WARNING, "medium", "WARNING"),
            (CRITICAL_DEBT, HealthStatus.CRITICAL, "critical", "CRITICAL"),
            (LIQUIDATABLE_DEBT, HealthStatus.LIQUIDATABLE, "critical", "LIQUIDATABLE"),
        ],
    )
    async def test_alert_per_severity(
        self, price_source, pool_reader, notifier, risk_math, debt, status, priority, subject_word
    ) -> None:
        position = make_position(debt=debt)
        store = InMemoryPositionStore([position])
        monitor = _monitor(store, price_source, pool_reader, [notifier], risk_math)

        check = await monitor.check_position(position)
        await monitor.drain_notifications()

        assert check.status is status
        assert check.alert is not None
        assert check.alert.priority == priority
        notifier.send_alert.assert_called_once()
        call_args = notifier.send_alert.call_args
        assert subject_word in call_args.kwargs["subject"]
        message = call_args[0][0]
        assert "pos-1" in message
        assert "user-1" in message
        assert "ETH / USDC" in message

    @pytest.mark.asyncio
    async def test_threshold_boundary_is_healthy(
        self, price_source, pool_reader, notifier, risk_math
    ) -> None:
        """HF exactly at the warning threshold does not alert."""
        position = make_position(debt="2500")
        monitor = _monitor(
            InMemoryPositionStore([position]), price_source, pool_reader, [notifier], risk_math
        )

        check = await monitor.check_position(position)
        await monitor.drain_notifications()

        assert check.health_factor == Decimal("1.2")
        assert check.status is HealthStatus.HEALTHY
        notifier.send_alert.assert_not_called()

    @pytest.mark.asyncio
    async def test_zero_debt_skips_oracle(
        self, price_source, pool_reader, notifier, risk_math
    ) -> None:
        position = make_position(debt="0")
        store = InMemoryPositionStore([position])
        monitor = _monitor(store, price_source, pool_reader, [notifier], risk_math)

        check = await monitor.check_position(position)
        await monitor.drain_notifications()

        assert check.status is HealthStatus.HEALTHY
        assert check.health_factor is None
        assert price_source.calls == []
        assert store.saved == []

    @pytest.mark.asyncio
    async def test_failing_notifier_does_not_block(
        self, price_source, pool_reader, notifier, risk_math
    ) -> None:
        broken = AsyncMock()
        broken.send_alert.side_effect = RuntimeError("telegram down")
        position = make_position(debt=CRITICAL_DEBT)
        store = InMemoryPositionStore([position])
        monitor = _monitor(store, price_source, pool_reader, [broken, notifier], risk_math)

        check = await monitor.check_position(position)
        await monitor.drain_notifications()

        assert check.status is HealthStatus.CRITICAL
        notifier.send_alert.assert_called_once()
        assert len(store.saved) == 1


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_oracle_failure_does_not_stop_cycle(
        self, pool_reader, notifier, risk_math
    ) -> None:
        """Position #4's price lookup fails; #5-#10 are still classified and alerted."""
        later_debts = [
            WARNING_DEBT,
            CRITICAL_DEBT,
            LIQUIDATABLE_DEBT,
            WARNING_DEBT,
            CRITICAL_DEBT,
            LIQUIDATABLE_DEBT,
        ]
        positions = [make_position(f"pos-{i}", debt=HEALTHY_DEBT) for i in range(1, 4)]
        positions.append(make_position("pos-4", collateral_asset="BTC"))
        positions += [
            make_position(f"pos-{i}", debt=debt) for i, debt in enumerate(later_debts, start=5)
        ]
        prices = StaticPriceSource(
            {"ETH": "2500", "USDC": "1"},
            failing={"BTC": OracleUnavailable("BTC feed unavailable")},
        )
        store = InMemoryPositionStore(positions)
        monitor = _monitor(store, prices, pool_reader, [notifier], risk_math)

        result = await monitor.run_cycle()

        assert result.errors == 1
        assert result.positions_checked == 9
        assert monitor.stats.errors == 1
        assert monitor.stats.cycles == 1
        assert [c.position.id for c in result.checks] == [
            f"pos-{i}" for i in (1, 2, 3, 5, 6, 7, 8, 9, 10)
        ]
        assert "pos-4" not in {p.id for p in store.saved}

        assert notifier.send_alert.call_count == 6
        alerted = {
            re.search(r"Position: (pos-\d+)", c.args[0]).group(1): c.kwargs["subject"]
            for c in notifier.send_alert.call_args_list
        }
        assert set(alerted) == {f"pos-{i}" for i in range(5, 11)}
        for position_id, word in [
            ("pos-5", "WARNING"),
            ("pos-6", "CRITICAL"),
            ("pos-7", "LIQUIDATABLE"),
            ("pos-8", "WARNING"),
            ("pos-9", "CRITICAL"),
            ("pos-10", "LIQUIDATABLE"),
        ]:
            assert word in alerted[position_id]
        assert result.count(HealthStatus.WARNING) == 2
        assert result.count(HealthStatus.CRITICAL) == 2
        assert result.count(HealthStatus.LIQUIDATABLE) == 2

    @pytest.mark.asyncio
    async def test_unknown_pool_does_not_stop_cycle(
        self, price_source, pool_reader, notifier, risk_math
    ) -> None:
        positions = [make_position(f"pos-{i}") for i in range(1, 11)]
        positions[3] = make_position("pos-4", pool_address="0xunknown")
        store = InMemoryPositionStore(positions)
        monitor = _monitor(store, price_source, pool_reader, [notifier], risk_math)

        result = await monitor.run_cycle()

        assert result.positions_checked == 9
        assert result.errors == 1
        assert len(store.saved) == 9

    @pytest.mark.asyncio
    async def test_hanging_notifier_bounded_by_timeout(
        self, price_source, pool_reader, notifier, risk_math
    ) -> None:
        async def hang(*args, **kwargs):
            await asyncio.sleep(3600)

        stuck = AsyncMock()
        stuck.send_alert.side_effect = hang
        stuck.send_log.side_effect = hang
        store = InMemoryPositionStore(
            [make_position(f"pos-{i}", debt=CRITICAL_DEBT) for i in range(1, 6)]
        )
        monitor = PositionMonitor(
            store=store,
            oracle=price_source,
            pools=pool_reader,
            notifiers=[stuck, notifier],
            math=risk_math,
            config=MonitorConfig(interval_seconds=60, notify_timeout=0.05),
        )

        result = await asyncio.wait_for(monitor.run_cycle(), timeout=2)

        assert result.positions_checked == 5
        assert result.errors == 0
        assert notifier.send_alert.call_count == 5
        assert stuck.send_alert.call_count == 5
        assert len(store.saved) == 5

    @pytest.mark.asyncio
    async def test_missing_price_counts_as_error(
        self, pool_reader, notifier, risk_math, sample_position
    ) -> None:
        prices = StaticPriceSource(
            {"USDC": "1"}, failing={"ETH": OracleUnavailable("oracle down")}
        )
        store = InMemoryPositionStore([sample_position])
        monitor = _monitor(store, prices, pool_reader, [notifier], risk_math)

        result = await monitor.run_cycle()

        assert result.errors == 1
        assert result.positions_checked == 0
        assert store.saved == []

    @pytest.mark.asyncio
    async def test_stats_accumulate(self, price_source, pool_reader, notifier, risk_math) -> None:
        store = InMemoryPositionStore(
            [
                make_position("a", debt=HEALTHY_DEBT),
                make_position("b", debt=WARNING_DEBT),
                make_position("c", debt=CRITICAL_DEBT),
                make_position("d", debt=LIQUIDATABLE_DEBT),
            ]
        )
        monitor = _monitor(store, price_source, pool_reader, [notifier], risk_math)

        await monitor.run_cycle()
        await monitor.run_cycle()

        stats = monitor.stats
        assert stats.cycles == 2
        assert stats.positions_checked == 8
        assert stats.warnings == 2
        assert stats.critical_alerts == 2
        assert stats.liquidation_alerts == 2
        assert stats.last_run is not None

        monitor.reset_stats()
        assert monitor.stats.cycles == 0

    @pytest.mark.asyncio
    async def test_cycle_summary_logged(
        self, price_source, pool_reader, notifier, risk_math, sample_position
    ) -> None:
        store = InMemoryPositionStore([sample_position])
        monitor = _monitor(store, price_source, pool_reader, [notifier], risk_math)

        await monitor.run_cycle()

        notifier.send_log.assert_called_once()
        summary = notifier.send_log.call_args[0][0]
        assert "Checked: 1" in summary
        assert "Errors: 0" in summary

    @pytest.mark.asyncio
    async def test_load_failure_is_recorded(self, price_source, pool_reader, notifier, risk_math) -> None:
        store = AsyncMock()
        store.load_active_positions.side_effect = PersistenceError("disk gone")
        monitor = _monitor(store, price_source, pool_reader, [notifier], risk_math)

        result = await monitor.run_cycle()

        assert result.errors == 1
        assert monitor.stats.errors == 1
        assert monitor.stats.cycles == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(
        self, price_source, pool_reader, notifier, risk_math, sample_position
    ) -> None:
        monitor = _monitor(
            InMemoryPositionStore([sample_position]),
            price_source,
            pool_reader,
            [notifier],
            risk_math,
        )
        assert monitor.state is MonitorState.IDLE

        task = monitor.start(interval=3600)
        assert monitor.state is MonitorState.RUNNING
        assert monitor.start(interval=3600) is task

        for _ in range(100):
            if monitor.stats.cycles:
                break
            await asyncio.sleep(0.01)

        await monitor.stop()

        assert monitor.state is MonitorState.IDLE
        assert monitor.stats.cycles == 1
        assert task.done()


class TestGenerateReport:
    @pytest.mark.asyncio
    async def test_report_with_positions(
        self, price_source, pool_reader, notifier, risk_math
    ) -> None:
        store = InMemoryPositionStore(
            [make_position("pos-1"), make_position("pos-2", debt="0")]
        )
        monitor = _monitor(store, price_source, pool_reader, [notifier], risk_math)

        report = await monitor.generate_report()

        notifier.send_alert.assert_called_once()
        assert notifier.send_alert.call_args[0][0] == report
        assert "Position Risk Report" in report
        assert "pos-1 · ETH/USDC · healthy" in report
        assert "HF: 3.0000" in report
        assert "LTV: 26.67%" in report
        assert "pos-2" in report
        assert "No debt" in report

    @pytest.mark.asyncio
    async def test_report_no_positions(self, price_source, pool_reader, notifier, risk_math) -> None:
        monitor = _monitor(
            InMemoryPositionStore(), price_source, pool_reader, [notifier], risk_math
        )

        report = await monitor.generate_report()

        assert "No active positions" in report
        notifier.send_alert.assert_called_once()

    @pytest.mark.asyncio
    async def test_report_marks_unavailable_positions(
        self, price_source, notifier, risk_math, sample_position
    ) -> None:
        monitor = _monitor(
            InMemoryPositionStore([sample_position]),
            price_source,
            StaticPoolReader([]),
            [notifier],
            risk_math,
        )

        report = await monitor.generate_report()

        assert "pos-1 · unavailable" in report


class TestFormatHelpers:
    def test_format_address_long(self) -> None:
        result = PositionMonitor._format_address("0x1234567890abcdef1234567890")
        assert result == "0x12345678...567890"

    def test_format_address_short(self) -> None:
        assert PositionMonitor._format_address("0x123") == "0x123"

    def test_classify(self, price_source, pool_reader, risk_math) -> None:
        monitor = _monitor(InMemoryPositionStore(), price_source, pool_reader, [], risk_math)
        assert monitor.classify(None) is HealthStatus.HEALTHY
        assert monitor.classify(Decimal("1.2")) is HealthStatus.HEALTHY
        assert monitor.classify(Decimal("1.19")) is HealthStatus.WARNING
        assert monitor.classify(Decimal("1.05")) is HealthStatus.WARNING
        assert monitor.classify(Decimal("1.04")) is HealthStatus.CRITICAL
        assert monitor.classify(Decimal("1.0")) is HealthStatus.CRITICAL
        assert monitor.classify(Decimal("0.99")) is HealthStatus.LIQUIDATABLE
