"""Migration runner.

Applies an ordered, immutable list of migration steps exactly once each.
The ledger decides where to resume; every pending step runs in its own
transaction together with its ledger entry, and the first failure rolls
that transaction back and aborts the run.

Example::

    from brokerdb.core.migrations import build_migrations, run_migrations

    steps = build_migrations(catalog=catalog, lookup=lookup, project_id="my-project")
    report = run_migrations(store, steps)
    print(f"Applied {len(report.applied)} migrations, now at {report.last_applied}")
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from brokerdb.core.errors import BrokerError, MigrationDefinitionError, MigrationStepError
from brokerdb.core.logging import LogContext, get_logger
from brokerdb.core.migrations.ledger import MigrationLedger
from brokerdb.core.protocols import Store, Transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class MigrationStep:
    """One ordinal-indexed unit of schema or data change.

    ``run`` receives the open transaction for the step and raises on
    failure. Once released, a step is never edited or removed: its
    ordinal is the only thing the ledger remembers.
    """

    index: int
    description: str
    run: Callable[[Transaction], None] = field(repr=False)


def noop(tx: Transaction) -> None:
    """Body of a step that deliberately does nothing."""


@dataclass
class MigrationReport:
    """Result of a successful migration run."""

    start: int
    applied: list[int] = field(default_factory=list)
    last_applied: int | None = None

    @property
    def up_to_date(self) -> bool:
        """True when nothing was pending."""
        return not self.applied


class MigrationRunner:
    """Runs pending migration steps against a store.

    Parameters
    ----------
    store
        The broker database (``SqlStore`` or anything matching ``Store``).
    steps
        Ordered steps; ``steps[i].index`` must equal ``i``.
    ledger
        Defaults to a ``MigrationLedger`` on ``store``.
    """

    def __init__(
        self,
        store: Store,
        steps: Sequence[MigrationStep],
        *,
        ledger: MigrationLedger | None = None,
    ) -> None:
        self._store = store
        self._steps = tuple(steps)
        self._ledger = ledger or MigrationLedger(store)
        _check_contiguous(self._steps)

    @property
    def steps(self) -> tuple[MigrationStep, ...]:
        return self._steps

    @property
    def ledger(self) -> MigrationLedger:
        return self._ledger

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> MigrationReport:
        """Apply every pending step in ascending order.

        Raises the first step failure after rolling its transaction back;
        earlier steps of the same run stay committed.
        """
        last = self._ledger.last_applied()
        start = 0 if last is None else last + 1
        report = MigrationReport(start=start, last_applied=last)

        logger.info(
            "migration.run.started",
            last_applied=last,
            pending=max(len(self._steps) - start, 0),
        )

        for step in self._steps[start:]:
            with LogContext(migration_id=step.index):
                self._apply(step)
            report.applied.append(step.index)
            report.last_applied = step.index

        logger.info(
            "migration.run.completed",
            applied=report.applied,
            last_applied=report.last_applied,
        )
        return report

    def pending(self) -> list[MigrationStep]:
        """Return the steps a ``run()`` would execute now."""
        last = self._ledger.last_applied()
        start = 0 if last is None else last + 1
        return list(self._steps[start:])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply(self, step: MigrationStep) -> None:
        logger.info("migration.step.started", description=step.description)
        started = time.monotonic()

        tx = self._store.begin()
        try:
            step.run(tx)
            self._ledger.record_applied(tx, step.index)
            tx.commit()
        except BrokerError as exc:
            tx.rollback()
            exc.with_context(step=step.description, migration_id=step.index)
            logger.error("migration.step.failed", **exc.to_dict())
            raise
        except Exception as exc:
            tx.rollback()
            error = MigrationStepError(
                f"Migration {step.index} ({step.description}) failed: {exc}",
                migration_id=step.index,
                cause=exc,
            ).with_context(step=step.description)
            logger.error("migration.step.failed", **error.to_dict())
            raise error from exc

        logger.info(
            "migration.step.applied",
            description=step.description,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )


def run_migrations(store: Store, steps: Sequence[MigrationStep]) -> MigrationReport:
    """Bring ``store`` up to date with ``steps``.

    The library entry point for the hosting process, called once at
    startup before the process serves requests.
    """
    return MigrationRunner(store, steps).run()


def _check_contiguous(steps: Sequence[MigrationStep]) -> None:
    for position, step in enumerate(steps):
        if step.index != position:
            raise MigrationDefinitionError(
                f"Migration at position {position} has ordinal {step.index}; "
                "ordinals must be 0-based and contiguous"
            ).with_context(migration_id=step.index, step=step.description)
