"""Root logger configuration (rich console output)."""

import logging

from rich.logging import RichHandler

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a RichHandler on the root logger. Safe to call more than once."""
    global _configured

    root = logging.getLogger()
    root.setLevel(level)

    if _configured:
        return

    handler = RichHandler(rich_tracebacks=True, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)

    # Third-party clients are chatty at INFO
    for noisy in ("httpx", "httpcore", "google_genai", "hpack"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True
