"""homecal - household calendar reminders and ICS feeds.

Keeps imports light so the package can be inspected without pulling in the
server stack; runtime modules are imported by the entrypoints below.
"""

__version__ = "0.1.0"

from typing import Any, Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized stderr handler when the root logger has none, then
    sets the root level. HOMECAL_DEBUG (truthy: "1", "true", "yes", "on")
    forces DEBUG regardless of ``level_name``.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("HOMECAL_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))


def load_runtime_config(args: Optional[Any] = None) -> Any:
    """Resolve configuration from file, HOMECAL_* env and CLI overrides (in that order)."""
    import logging

    from .core.config_loader import Config, config_from_env

    logger = logging.getLogger(__name__)
    cfg = config_from_env(getattr(args, "config", None))

    overrides = {}
    port = getattr(args, "port", None)
    if port is not None:
        overrides["server_port"] = port
        logger.debug("Applied command line port override: %s", port)
    data_file = getattr(args, "data_file", None)
    if data_file:
        overrides["data_file"] = data_file
    if getattr(args, "debug", False):
        overrides["debug_logging"] = True

    if overrides:
        cfg = Config.from_dict({**cfg.to_dict(), **overrides})
    return cfg


def run_server(args: Optional[Any] = None) -> None:
    """Start the homecal server and background jobs; blocks until shutdown."""
    import logging
    import os

    _init_logging(os.environ.get("HOMECAL_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    cfg = load_runtime_config(args)
    logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))
    logger.debug(
        "Resolved configuration (diagnostic): %s",
        {k: getattr(cfg, k) for k in ("server_bind", "server_port", "log_level", "data_file")},
    )

    from .api.server import start_server

    start_server(cfg)
