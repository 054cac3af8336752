import logging

from rich.logging import RichHandler


def configure_logging(level: int = logging.WARNING) -> None:
    """Routes simulator logging through rich, with simulated time in each message."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
