import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from application.dtos import BackendConfig, InstallOutcome, OutcomeKind
from application.load_dependencies import DependencyInstallOrchestrator
from infrastructure.command_runner import CommandRunner
from infrastructure.progress_reporter import ProgressReporter
from infrastructure.tiered_cache_store import TieredCacheStore

logger = logging.getLogger(__name__)


@dataclass
class CoordinatorReport:
    outcomes: List[InstallOutcome] = field(default_factory=list)

    @property
    def fatal_outcomes(self) -> List[InstallOutcome]:
        return [outcome for outcome in self.outcomes if outcome.is_fatal]

    @property
    def succeeded(self) -> bool:
        return not self.fatal_outcomes

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


class MultiManagerCoordinator:
    """
    Runs one orchestrator per backend, all at once.

    Backends never wait on or cancel each other: a fatal error in one is
    recorded while the others run to completion and keep their cache
    entries. The run fails if any backend ended FATAL.
    """

    def __init__(self, orchestrators: Sequence[DependencyInstallOrchestrator]):
        self.orchestrators = list(orchestrators)

    async def run(self) -> CoordinatorReport:
        results = await asyncio.gather(
            *(orchestrator.load_dependencies() for orchestrator in self.orchestrators),
            return_exceptions=True,
        )

        report = CoordinatorReport()
        for orchestrator, result in zip(self.orchestrators, results):
            if isinstance(result, BaseException):
                name = orchestrator.config.name
                logger.error("[%s] unexpected error: %s", name, result, exc_info=result)
                result = InstallOutcome(name, OutcomeKind.FATAL, error=result)
            report.outcomes.append(result)

        if report.succeeded:
            logger.info("successfully installed all dependencies")
        else:
            failed = ", ".join(outcome.backend for outcome in report.fatal_outcomes)
            logger.error("error installing dependencies (%s)", failed)
        return report


def build_orchestrators(
    configs: Iterable[BackendConfig],
    cache_directory: Path,
    force_refresh: bool = False,
    progress: Optional[ProgressReporter] = None,
    command_runner: Optional[CommandRunner] = None,
) -> List[DependencyInstallOrchestrator]:
    """One orchestrator and cache store per backend; all share the cache root."""
    progress = progress or ProgressReporter()
    command_runner = command_runner or CommandRunner()
    orchestrators = []
    for config in configs:
        store = TieredCacheStore.from_settings(cache_directory, config.remote, progress)
        orchestrators.append(
            DependencyInstallOrchestrator(
                config,
                store,
                force_refresh=force_refresh,
                command_runner=command_runner,
            )
        )
    return orchestrators
