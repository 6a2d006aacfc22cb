"""Environment detection helpers."""

import logging
import os
import sys

from .config import Config

logger = logging.getLogger("tokenchain.utils")

_CI_VARS = (
    "CI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "JENKINS_URL",
    "CIRCLECI",
    "BUILDKITE",
    "TF_BUILD",
)


def is_interactive(config: Config | None = None) -> bool:
    """Whether a human can answer prompts.

    An explicit ``config.interactive`` wins; otherwise both stdin and stdout
    must be terminals.
    """
    if config is not None and config.interactive is not None:
        return config.interactive
    try:
        return sys.stdin.isatty() and sys.stdout.isatty()
    except (AttributeError, ValueError):
        # replaced or closed streams
        return False


def is_headless_environment() -> bool:
    """Detect environments where a local browser cannot be opened.

    Detection logic:
    - Linux: no DISPLAY / WAYLAND_DISPLAY
    - SSH sessions
    - CI environments
    """
    indicators = []

    if os.name != "nt" and sys.platform != "darwin":
        if not os.getenv("DISPLAY", "").strip() and not os.getenv("WAYLAND_DISPLAY"):
            indicators.append("no DISPLAY")

    if os.getenv("SSH_CONNECTION") or os.getenv("SSH_CLIENT") or os.getenv("SSH_TTY"):
        indicators.append("SSH connection")

    for var in _CI_VARS:
        if os.getenv(var):
            indicators.append(f"CI environment ({var})")
            break

    if indicators:
        logger.debug(f"Headless environment detected: {'; '.join(indicators)}")
    return bool(indicators)
