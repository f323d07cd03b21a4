"""
Logging configuration for ShardKeeper.

Provides consistent logging setup for the API server, the demo and any
operator tooling built on the engine.
"""

import logging
import sys
from pathlib import Path


def setup_logging(
    component_name: str = "shardkeeper",
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
) -> logging.Logger:
    """
    Configure logging for a ShardKeeper component.

    Args:
        component_name: Component identifier (e.g., 'api', 'demo')
        level: Logging level name or number
        log_file: Optional file path for log output
        format_string: Custom format string (default provided)

    Returns:
        Logger for the component
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    if format_string is None:
        format_string = f"[%(asctime)s] [{component_name.upper()}] %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_string,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S"))
        logging.getLogger().addHandler(file_handler)

    logger = logging.getLogger(component_name)
    logger.info(f"{component_name.upper()} logging initialized (level={logging.getLevelName(level)})")

    return logger
