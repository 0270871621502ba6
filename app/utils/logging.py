"""
Logging setup.

Configures the loguru file sink shared by the scheduler and the workers.
"""

from loguru import logger

from app.config.settings import settings


def setup_logging(component: str = "rewards") -> None:
    """Configure logger with file rotation."""
    logger.add(
        settings.log_file,
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        encoding="utf-8",
    )

    logger.info(
        f"Starting {component}...",
        extra={"environment": settings.environment},
    )
