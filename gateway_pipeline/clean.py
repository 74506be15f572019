"""Remove generated gateway specs and conversion scratch files."""

from __future__ import annotations

import shutil
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


def clean_generated(gateway_dir: Path, generate_dir: Path) -> int:
    """Delete ``<gateway_dir>/*.yaml`` and ``generate_dir``.

    ``config.json`` is left in place. Returns the number of files removed.
    """
    removed = 0
    for path in sorted(Path(gateway_dir).glob("*.yaml")):
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("remove_failed", file=str(path), error=str(exc))
            continue
        logger.info("removed", file=str(path))
        removed += 1

    generate_dir = Path(generate_dir)
    if generate_dir.exists():
        shutil.rmtree(generate_dir)
        logger.info("removed", directory=str(generate_dir))
    else:
        logger.info("directory_not_found", directory=str(generate_dir))
    return removed
