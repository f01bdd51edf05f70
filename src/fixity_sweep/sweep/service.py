"""One scheduled tick: recover -> plan -> enqueue -> drain -> notify."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from fixity_sweep.errors import QueueError, RepositoryError
from fixity_sweep.notify import Notifier
from fixity_sweep.sweep.diagnostics import DiagnosticSink
from fixity_sweep.sweep.drain import Validator, drain
from fixity_sweep.sweep.models import DrainReport, EnqueuePlan, TickConfig, TickRunStatus
from fixity_sweep.sweep.planner import ObjectSource, compute_limit, plan_enqueue
from fixity_sweep.sweep.repository import SweepRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TickSummary:
    """Result of one tick for CLI reporting."""

    run_id: str
    plan: EnqueuePlan
    report: DrainReport
    recovered: int
    remaining_depth: int


@dataclass(slots=True)
class PlanPreview:
    mode: str
    total_item_count: int
    queue_depth: int
    limit: int
    cursor_offset: int


class SweepService:
    """Coordinates the planner, the drain loop, and the notifier for one tick."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: SweepRepository,
        source: ObjectSource,
        validate: Validator,
        notifier: Notifier,
        diagnostics: DiagnosticSink | None = None,
        stale_claim_after: timedelta = timedelta(hours=1),
    ) -> None:
        self.repository = repository
        self.source = source
        self.validate = validate
        self.notifier = notifier
        self.diagnostics = diagnostics
        self.stale_claim_after = stale_claim_after

    def preview(self, config: TickConfig) -> PlanPreview:
        """Compute this tick's limit without touching the queue."""

        total = self.source.get_total_object_count()
        depth = self.repository.depth()
        return PlanPreview(
            mode=config.mode,
            total_item_count=total,
            queue_depth=depth,
            limit=compute_limit(config, total, depth),
            cursor_offset=self.repository.get_cursor(),
        )

    def drain_only(self) -> DrainReport:
        report = drain(self.repository, self.validate, diagnostics=self.diagnostics)
        self.notifier.send_mismatch_summary()
        return report

    def run_tick(self, config: TickConfig) -> TickSummary:
        """Run one full tick; the config must already be validated."""

        run_id = self.repository.start_tick_run(mode=config.mode)
        plan: EnqueuePlan | None = None
        report = DrainReport()
        recovered: list[str] = []
        try:
            recovered = self.repository.recover_stale_claims(older_than=self.stale_claim_after)
            if recovered:
                logger.warning("Released %d stale claim(s) from an earlier tick", len(recovered))
            plan = plan_enqueue(
                source=self.source,
                queue=self.repository,
                cursor=self.repository,
                config=config,
            )
            report = drain(self.repository, self.validate, diagnostics=self.diagnostics)
            self.notifier.send_mismatch_summary()
        except (QueueError, RepositoryError) as error:
            logger.error("Tick %s failed: %s", run_id, error)
            self._finish(run_id, TickRunStatus.FAILED, plan, report, recovered, str(error))
            raise
        except Exception as error:
            logger.exception("Tick %s unexpected error", run_id)
            self._finish(run_id, TickRunStatus.FAILED, plan, report, recovered, str(error))
            raise

        self._finish(run_id, TickRunStatus.SUCCEEDED, plan, report, recovered, None)
        return TickSummary(
            run_id=run_id,
            plan=plan,
            report=report,
            recovered=len(recovered),
            remaining_depth=self.repository.depth(),
        )

    def _finish(  # noqa: PLR0913
        self,
        run_id: str,
        status: TickRunStatus,
        plan: EnqueuePlan | None,
        report: DrainReport,
        recovered: list[str],
        error_summary: str | None,
    ) -> None:
        try:
            self.repository.finish_tick_run(
                run_id=run_id,
                status=status,
                computed_limit=plan.limit if plan is not None else 0,
                enqueued_count=plan.enqueued if plan is not None else 0,
                succeeded_count=len(report.succeeded),
                failed_count=len(report.failed),
                recovered_count=len(recovered),
                error_summary=error_summary,
            )
        except Exception:  # noqa: BLE001
            if status is TickRunStatus.SUCCEEDED:
                raise
            logger.debug("Could not record failed tick run %s", run_id, exc_info=True)
