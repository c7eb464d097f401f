"""Progress hooks for embedding the engine (CLI spinner, web job status, tests)."""

from src.models import (
    Dimension,
    FixerResult,
    ReconciliationResult,
    RefinementAttempt,
    RefinementRunResult,
)


class RefinementObserver:
    """No-op base class. Override the hooks you care about.

    Hooks are called synchronously from the event loop and must not block.
    """

    def on_fixers_selected(self, dimensions: list[Dimension]) -> None:
        pass

    def on_fixer_complete(self, result: FixerResult) -> None:
        pass

    def on_reconciliation_complete(self, attempt_number: int, result: ReconciliationResult) -> None:
        pass

    def on_round_complete(self, attempt: RefinementAttempt) -> None:
        pass

    def on_run_complete(self, result: RefinementRunResult) -> None:
        pass


NULL_OBSERVER = RefinementObserver()
