from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from jsco.config import Settings
from jsco.core.analyze import Analyzer

logger = logging.getLogger(__name__)

_analyzer: Analyzer | None = None


def configure_analyzer(settings: Settings | None = None) -> Analyzer:
    """Return the process-wide ``Analyzer``, building it from *settings* (or the environment) once."""
    global _analyzer  # noqa: PLW0603
    if _analyzer is None:
        settings = settings or Settings.from_env()
        _analyzer = Analyzer(settings=settings)
        logger.info(
            "Analyzer ready: dataset %s, %d features, %s pool, %s cache",
            _analyzer.database.version,
            len(_analyzer.database),
            settings.worker_mode,
            settings.cache_backend,
        )
    return _analyzer


async def get_analyzer() -> AsyncIterator[Analyzer]:
    yield configure_analyzer()


async def shutdown_analyzer() -> None:
    """Close the shared analyzer: HTTP client, cache store and worker pool."""
    global _analyzer  # noqa: PLW0603
    if _analyzer is None:
        return
    analyzer, _analyzer = _analyzer, None
    await analyzer.aclose()
    logger.info("Analyzer shut down")
