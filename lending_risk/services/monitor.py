"""Position monitor — periodic health checks with graduated alerts."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence

from ..config import MonitorConfig
from ..interfaces.chain import PoolReader
from ..interfaces.notifier import Notifier
from ..interfaces.position_store import PositionStore
from ..interfaces.price_oracle import PriceSource
from ..models import Alert, HealthStatus, MonitorState, Position
from ..risk import RiskMath

logger = logging.getLogger(__name__)

_PRIORITY = {
    HealthStatus.WARNING: "medium",
    HealthStatus.CRITICAL: "critical",
    HealthStatus.LIQUIDATABLE: "critical",
}

_SUBJECTS = {
    HealthStatus.WARNING: "⚠️ WARNING: Health factor dropping",
    HealthStatus.CRITICAL: "🚨 CRITICAL: Liquidation risk!",
    HealthStatus.LIQUIDATABLE: "🚨 LIQUIDATABLE: Position can be liquidated",
}


@dataclass(frozen=True)
class PositionCheck:
    position: Position
    status: HealthStatus
    health_factor: Decimal | None
    alert: Alert | None = None


@dataclass(frozen=True)
class CycleResult:
    checks: tuple[PositionCheck, ...] = ()
    errors: int = 0

    @property
    def positions_checked(self) -> int:
        return len(self.checks)

    def count(self, status: HealthStatus) -> int:
        return sum(1 for c in self.checks if c.status is status)


@dataclass
class MonitorStats:
    cycles: int = 0
    positions_checked: int = 0
    warnings: int = 0
    critical_alerts: int = 0
    liquidation_alerts: int = 0
    errors: int = 0
    last_run: float | None = field(default=None)


class PositionMonitor:
    """Recompute health factors for active positions and alert on thresholds."""

    def __init__(
        self,
        store: PositionStore,
        oracle: PriceSource,
        pools: PoolReader,
        notifiers: Sequence[Notifier],
        math: RiskMath,
        config: MonitorConfig,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._pools = pools
        self._notifiers = list(notifiers)
        self._math = math
        self._config = config
        self._thresholds = config.thresholds

        self._stats = MonitorStats()
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._state = MonitorState.IDLE

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def stats(self) -> MonitorStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = MonitorStats()

    # ------------------------------------------------------------------
    # Classification and formatting
    # ------------------------------------------------------------------

    def classify(self, health_factor: Decimal | None) -> HealthStatus:
        if health_factor is None:
            return HealthStatus.HEALTHY
        if health_factor < self._thresholds.liquidation:
            return HealthStatus.LIQUIDATABLE
        if health_factor < self._thresholds.critical:
            return HealthStatus.CRITICAL
        if health_factor < self._thresholds.warning:
            return HealthStatus.WARNING
        return HealthStatus.HEALTHY

    def _threshold_for(self, status: HealthStatus) -> Decimal:
        return {
            HealthStatus.WARNING: self._thresholds.warning,
            HealthStatus.CRITICAL: self._thresholds.critical,
            HealthStatus.LIQUIDATABLE: self._thresholds.liquidation,
        }[status]

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    @staticmethod
    def _format_address(address: str) -> str:
        if len(address) > 16:
            return f"{address[:10]}...{address[-6:]}"
        return address

    def _build_alert_message(self, alert: Alert) -> str:
        if alert.severity is HealthStatus.LIQUIDATABLE:
            action = "Position is eligible for liquidation."
        elif alert.severity is HealthStatus.CRITICAL:
            action = "⚠️ Add collateral or repay debt immediately!"
        else:
            action = "Consider adding collateral or repaying part of the debt."
        return (
            f"{_SUBJECTS[alert.severity]}\n"
            f"\n"
            f"Position: {alert.position_id} · User: {alert.user_id}\n"
            f"Pool: {self._format_address(alert.pool_address)}\n"
            f"{alert.collateral_asset} / {alert.debt_asset}\n"
            f"\n"
            f"Health Factor: {alert.health_factor:.4f} (threshold {alert.threshold})\n"
            f"Priority: {alert.priority}\n"
            f"\n"
            f"{action}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    def _build_cycle_summary(self, result: CycleResult) -> str:
        return (
            f"📊 Monitoring cycle\n"
            f"\n"
            f"Checked: {result.positions_checked} · Errors: {result.errors}\n"
            f"Warning: {result.count(HealthStatus.WARNING)} · "
            f"Critical: {result.count(HealthStatus.CRITICAL)} · "
            f"Liquidatable: {result.count(HealthStatus.LIQUIDATABLE)}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _deliver(
        self, notifier: Notifier, method: str, message: str, **kwargs
    ) -> None:
        try:
            await asyncio.wait_for(
                getattr(notifier, method)(message, **kwargs),
                timeout=self._config.notify_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Notifier %s.%s timed out after %ss",
                type(notifier).__name__,
                method,
                self._config.notify_timeout,
            )
        except Exception as e:
            logger.error("Notifier %s failed: %s", method, e)

    def _dispatch(self, method: str, message: str, **kwargs) -> None:
        """Queue delivery to every notifier without waiting for it."""
        for notifier in self._notifiers:
            task = asyncio.create_task(self._deliver(notifier, method, message, **kwargs))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    def _send_log(self, message: str, silent: bool = True) -> None:
        self._dispatch("send_log", message, silent=silent)

    def _send_alert(self, message: str, subject: str = "") -> None:
        self._dispatch("send_alert", message, subject=subject)

    async def drain_notifications(self) -> None:
        """Wait for queued deliveries; each one is bounded by ``notify_timeout``."""
        if self._pending:
            await asyncio.wait(set(self._pending))

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    async def check_position(self, position: Position) -> PositionCheck:
        """Recompute one position's HF, alert if needed and persist it."""
        if not position.has_debt:
            return PositionCheck(position, HealthStatus.HEALTHY, None)

        pool = await self._pools.read_pool(position.pool_address)
        batch = await self._oracle.get_prices(
            [position.collateral_asset, position.debt_asset]
        )
        if batch.errors:
            raise next(iter(batch.errors.values()))

        hf = self._math.health_factor(position, batch.prices, pool.liquidation_threshold)
        status = self.classify(hf)
        logger.info(
            "Position %s · %s/%s · HF: %s · %s",
            position.id,
            position.collateral_asset,
            position.debt_asset,
            hf,
            status.value,
        )

        alert = None
        if status is not HealthStatus.HEALTHY:
            alert = Alert(
                severity=status,
                priority=_PRIORITY[status],
                position_id=position.id,
                user_id=position.user_id,
                pool_address=position.pool_address,
                collateral_asset=position.collateral_asset,
                debt_asset=position.debt_asset,
                health_factor=hf,
                threshold=self._threshold_for(status),
            )
            self._send_alert(
                self._build_alert_message(alert), subject=_SUBJECTS[status]
            )

        updated = position.with_health_factor(hf)
        await self._store.save_position(updated)
        return PositionCheck(updated, status, hf, alert)

    async def run_cycle(self) -> CycleResult:
        """One pass over all active positions; cycles never overlap."""
        async with self._cycle_lock:
            result = await self._run_cycle()
        self._record(result)
        return result

    async def _run_cycle(self) -> CycleResult:
        try:
            positions = await self._store.load_active_positions()
        except Exception as e:
            logger.error("Failed to load active positions: %s", e)
            return CycleResult(errors=1)

        checks: list[PositionCheck] = []
        errors = 0
        for position in positions:
            try:
                checks.append(await self.check_position(position))
            except Exception as e:
                errors += 1
                logger.error("Error checking position %s: %s", position.id, e)

        result = CycleResult(checks=tuple(checks), errors=errors)
        logger.info(
            "Monitoring cycle complete: %d checked, %d errors", len(checks), errors
        )
        self._send_log(self._build_cycle_summary(result))
        await self.drain_notifications()
        return result

    def _record(self, result: CycleResult) -> None:
        stats = self._stats
        stats.cycles += 1
        stats.positions_checked += result.positions_checked
        stats.warnings += result.count(HealthStatus.WARNING)
        stats.critical_alerts += result.count(HealthStatus.CRITICAL)
        stats.liquidation_alerts += result.count(HealthStatus.LIQUIDATABLE)
        stats.errors += result.errors
        stats.last_run = time.time()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _loop(self, interval: float) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error("Error in monitoring loop: %s", e)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def start(self, interval: float | None = None) -> asyncio.Task:
        """Start periodic monitoring in the background; idempotent while running."""
        if self._task is not None and not self._task.done():
            return self._task
        seconds = interval or self._config.interval_seconds
        logger.info("Starting position monitor (every %s seconds)", seconds)
        self._stop_event.clear()
        self._state = MonitorState.RUNNING
        self._task = asyncio.create_task(self._loop(seconds))
        return self._task

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the in-flight cycle to finish."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        self._state = MonitorState.IDLE
        logger.info("Position monitor stopped")

    async def run_continuous(self, interval: float | None = None) -> None:
        """Run the monitoring loop in the foreground until stopped or cancelled."""
        task = self.start(interval)
        try:
            await task
        finally:
            self._state = MonitorState.IDLE

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def generate_report(self) -> str:
        """Summarize every active position and send it through the notifiers."""
        positions = await self._store.load_active_positions()
        lines: list[str] = []
        for position in positions:
            try:
                lines.append(await self._report_line(position))
            except Exception as e:
                logger.error("Error reporting position %s: %s", position.id, e)
                lines.append(f"{position.id} · unavailable ({e})")

        body = "\n\n".join(lines) if lines else "No active positions found."
        report = (
            f"📋 Position Risk Report\n"
            f"\n"
            f"{body}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )
        self._send_alert(report, subject="📋 Position Risk Report")
        await self.drain_notifications()
        logger.info("Report sent")
        return report

    async def _report_line(self, position: Position) -> str:
        header = f"{position.id} · {position.collateral_asset}/{position.debt_asset}"
        if not position.has_debt:
            return (
                f"{header} · ✅ Healthy\n"
                f"  No debt · Withdrawable: {position.collateral_amount}"
            )

        pool = await self._pools.read_pool(position.pool_address)
        batch = await self._oracle.get_prices(
            [position.collateral_asset, position.debt_asset]
        )
        if batch.errors:
            raise next(iter(batch.errors.values()))

        hf = self._math.health_factor(position, batch.prices, pool.liquidation_threshold)
        ltv = self._math.ltv(position, batch.prices)
        withdrawable = self._math.max_withdrawable(
            position, batch.prices, pool.liquidation_threshold
        )
        return (
            f"{header} · {self.classify(hf).value}\n"
            f"  HF: {hf:.4f} · LTV: {ltv * 100:.2f}%\n"
            f"  Withdrawable: {withdrawable:.6f} {position.collateral_asset}"
        )
