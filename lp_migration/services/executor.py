"""Migration plan execution — dependency-gated dispatch, failure policy, rollback."""
from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timezone

from ..config import ExecutionConfig
from ..errors import StepExecutionError
from ..interfaces.liquidity import LiquidityOperations
from ..interfaces.progress import ProgressSink
from ..models import (
    ADD_LIQUIDITY,
    CLAIM_FEES,
    REMOVE_LIQUIDITY,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    VALID_TRANSITIONS,
    MigrationPlan,
    MigrationProgress,
    MigrationStep,
    Position,
    StepError,
    TxResult,
)
from ..step_graph import StepGraph

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def merge_amounts(parts: list[dict[str, float]]) -> dict[str, float]:
    merged: dict[str, float] = {}
    for amounts in parts:
        for token, amount in amounts.items():
            merged[token] = merged.get(token, 0.0) + amount
    return merged


class _PlanRun:
    """Mutable bookkeeping for one execution attempt."""

    def __init__(self, plan: MigrationPlan, owner: str) -> None:
        self.plan = plan
        self.owner = owner
        self.graph = StepGraph.from_steps(plan.steps)
        self.positions: dict[str, Position] = {p.id: p for p in plan.positions}
        self.pending: list[int] = list(range(len(plan.steps)))
        self.satisfied: set[int] = set()
        self.removed: dict[str, dict[str, float]] = {}
        self.added: set[str] = set()
        self.halt_reason: str | None = None
        # Position ids whose remove timed out; on-chain outcome unknown.
        self.unconfirmed: set[str] = set()

    def step(self, idx: int) -> MigrationStep:
        return self.graph.payload(idx)

    def next_ready(self) -> int | None:
        for idx in self.pending:
            if self.graph.dependencies(idx) <= self.satisfied:
                return idx
        return None


class PlanExecutor:
    """Run a migration plan's steps against the network.

    Claim steps are non-critical: a failure is recorded and the route carries
    on. Remove/add steps move funds; a failure halts dispatch and triggers a
    best-effort rollback of liquidity left outside any pool.
    """

    def __init__(
        self, liquidity: LiquidityOperations, config: ExecutionConfig
    ) -> None:
        self._liquidity = liquidity
        self._config = config

    # ------------------------------------------------------------------
    # Progress helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(progress: MigrationProgress, status: str) -> None:
        allowed = VALID_TRANSITIONS.get(progress.status, set())
        if status not in allowed:
            raise RuntimeError(
                f"Invalid progress transition {progress.status} -> {status}"
            )
        progress.status = status

    @staticmethod
    async def _emit(
        on_progress: ProgressSink | None, progress: MigrationProgress
    ) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(progress.snapshot())
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Progress callback failed: %s", e)

    def _finish(self, progress: MigrationProgress, status: str) -> None:
        self._transition(progress, status)
        progress.end_time = _now()

    # ------------------------------------------------------------------
    # Step dispatch
    # ------------------------------------------------------------------

    def _position(self, run: _PlanRun, position_id: str) -> Position:
        position = run.positions.get(position_id)
        if position is None:
            raise StepExecutionError(f"Position {position_id} is not part of the plan")
        return position

    async def _dispatch(self, run: _PlanRun, step: MigrationStep) -> TxResult:
        if step.type == CLAIM_FEES:
            position = self._position(run, step.position_ids[0])
            return await self._liquidity.claim_fees(position, run.owner)

        if step.type == REMOVE_LIQUIDITY:
            position = self._position(run, step.position_ids[0])
            return await self._liquidity.remove_liquidity(position, run.owner)

        if step.type == ADD_LIQUIDITY:
            amounts = merge_amounts([run.removed[pid] for pid in step.position_ids])
            return await self._liquidity.add_liquidity(
                step.pool_address, amounts, run.owner
            )

        raise StepExecutionError(f"Unknown step type: {step.type}")

    async def _run_step(self, run: _PlanRun, step: MigrationStep) -> TxResult:
        """Run one step under the step timeout; every failure becomes a TxResult."""
        timeout = self._config.step_timeout_seconds
        try:
            result = await asyncio.wait_for(self._dispatch(run, step), timeout=timeout)
        except asyncio.TimeoutError:
            if step.type == REMOVE_LIQUIDITY:
                run.unconfirmed.update(step.position_ids)
            return TxResult(success=False, error=f"Step timed out after {timeout:g}s")
        except Exception as e:
            return TxResult(success=False, error=str(e) or type(e).__name__)

        if not result.success:
            return TxResult(
                success=False,
                tx_id=result.tx_id,
                error=result.error or "Operation reported failure",
            )
        return result

    def _record(
        self,
        run: _PlanRun,
        progress: MigrationProgress,
        idx: int,
        result: TxResult,
    ) -> None:
        step = run.step(idx)

        if result.success:
            progress.completed_steps.append(step.id)
            run.satisfied.add(idx)
            if result.tx_id:
                progress.tx_ids[step.id] = result.tx_id

            if step.type == REMOVE_LIQUIDITY:
                pid = step.position_ids[0]
                position = run.positions[pid]
                run.removed[pid] = dict(result.amounts) or {
                    "liquidity": position.liquidity_amount
                }
            elif step.type == ADD_LIQUIDITY:
                run.added.update(step.position_ids)

            logger.info("Step completed: %s", step.description)
            return

        progress.failed_steps.append(step.id)
        progress.errors.append(StepError(step_id=step.id, error=result.error, timestamp=_now()))

        if step.is_critical:
            logger.error("Critical step %s failed: %s", step.id, result.error)
            if run.halt_reason is None:
                run.halt_reason = f"Critical step {step.id} failed"
        else:
            # Tolerated: dependents may still run.
            run.satisfied.add(idx)
            logger.warning(
                "Non-critical step %s failed, continuing migration: %s",
                step.id, result.error,
            )

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    async def _rollback(self, run: _PlanRun, progress: MigrationProgress) -> None:
        """Re-add liquidity that was removed but never reached its target pool."""
        for pid in sorted(run.unconfirmed - set(run.removed)):
            pool_address = run.positions[pid].pool_address
            message = (
                f"Remove for position {pid} timed out; outcome unknown, liquidity "
                f"may already be withdrawn from {pool_address}"
            )
            logger.error(message)
            progress.errors.append(
                StepError(step_id=f"rollback-{pid}", error=message, timestamp=_now())
            )

        stranded = {pid: amounts for pid, amounts in run.removed.items() if pid not in run.added}
        if not stranded:
            logger.info("No funds in intermediate state, nothing to roll back")
            return

        if not self._config.rollback_on_failure:
            for pid in stranded:
                progress.errors.append(
                    StepError(
                        step_id=f"rollback-{pid}",
                        error="Rollback disabled; liquidity left withdrawn",
                        timestamp=_now(),
                    )
                )
            return

        for pid, amounts in stranded.items():
            position = run.positions[pid]
            logger.warning(
                "Rolling back position %s: re-adding liquidity to %s",
                pid, position.pool_address,
            )
            try:
                result = await asyncio.wait_for(
                    self._liquidity.add_liquidity(position.pool_address, amounts, run.owner),
                    timeout=self._config.step_timeout_seconds,
                )
            except asyncio.TimeoutError:
                result = TxResult(success=False, error="timed out")
            except Exception as e:
                result = TxResult(success=False, error=str(e) or type(e).__name__)

            if result.success:
                message = (
                    f"Rollback succeeded: liquidity re-added to {position.pool_address}"
                    + (f" (tx {result.tx_id})" if result.tx_id else "")
                )
                if result.tx_id:
                    progress.tx_ids[f"rollback-{pid}"] = result.tx_id
            else:
                message = (
                    f"Rollback failed for {position.pool_address}: "
                    f"{result.error or 'operation reported failure'}"
                )
                logger.error(message)
            progress.errors.append(
                StepError(step_id=f"rollback-{pid}", error=message, timestamp=_now())
            )

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def _run_plan(
        self,
        run: _PlanRun,
        progress: MigrationProgress,
        on_progress: ProgressSink | None,
        cancel_event: asyncio.Event | None,
    ) -> None:
        running: dict[asyncio.Task[TxResult], int] = {}
        dispatched = 0

        while run.pending or running:
            while run.halt_reason is None and len(running) < self._config.max_parallel_steps:
                idx = run.next_ready()
                if idx is None:
                    break

                if dispatched and self._config.step_delay_seconds > 0:
                    await asyncio.sleep(self._config.step_delay_seconds)

                if cancel_event is not None and cancel_event.is_set():
                    run.halt_reason = "Migration cancelled"
                    progress.errors.append(
                        StepError(
                            step_id="cancelled",
                            error=f"Migration cancelled before step {run.step(idx).id}",
                            timestamp=_now(),
                        )
                    )
                    break

                run.pending.remove(idx)
                dispatched += 1
                progress.current_step = dispatched
                step = run.step(idx)
                logger.info(
                    "Executing step %d/%d: %s",
                    dispatched, progress.total_steps, step.description,
                )
                running[asyncio.create_task(self._run_step(run, step))] = idx

            if not running:
                if run.pending and run.halt_reason is None:
                    run.halt_reason = "Remaining steps have unsatisfiable dependencies"
                    progress.errors.append(
                        StepError(step_id="general", error=run.halt_reason, timestamp=_now())
                    )
                break

            finished, _ = await asyncio.wait(
                running, return_when=asyncio.FIRST_COMPLETED
            )
            for task in finished:
                idx = running.pop(task)
                self._record(run, progress, idx, task.result())
                await self._emit(on_progress, progress)

    async def execute(
        self,
        plan: MigrationPlan,
        user_address: str,
        on_progress: ProgressSink | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> MigrationProgress:
        """Execute ``plan`` and return its terminal progress record.

        Never raises for step or collaborator failures; everything is carried
        in the returned record. Setting ``cancel_event`` stops dispatch of new
        steps, steps already in flight run to completion.
        """
        logger.info("Starting migration plan execution: %s", plan.id)
        progress = MigrationProgress(plan_id=plan.id, total_steps=len(plan.steps))

        try:
            progress.start_time = _now()

            if not plan.steps:
                self._finish(progress, STATUS_COMPLETED)
            else:
                run = _PlanRun(plan, user_address)
                self._transition(progress, STATUS_IN_PROGRESS)
                await self._emit(on_progress, progress)

                await self._run_plan(run, progress, on_progress, cancel_event)

                if run.halt_reason is not None:
                    await self._rollback(run, progress)
                    self._finish(progress, STATUS_FAILED)
                else:
                    self._finish(progress, STATUS_COMPLETED)
        except Exception as e:
            logger.exception("Migration plan execution failed: %s", plan.id)
            progress.errors.append(
                StepError(
                    step_id="general",
                    error=str(e) or "Migration execution failed",
                    timestamp=_now(),
                )
            )
            if not progress.is_terminal:
                self._finish(progress, STATUS_FAILED)

        logger.info(
            "Migration plan %s finished: %s (%d completed, %d failed)",
            plan.id, progress.status,
            len(progress.completed_steps), len(progress.failed_steps),
        )
        await self._emit(on_progress, progress)
        return progress
