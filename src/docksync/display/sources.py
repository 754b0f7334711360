"""Platform display probes: macOS system_profiler and X11 xrandr."""

import json
import logging
import re
import sys

from docksync.display.base import DisplaySource
from docksync.shell import run_command

logger = logging.getLogger(__name__)

# Output names used by laptop panels
_BUILTIN_OUTPUT_PREFIXES = ("eDP", "LVDS", "DSI")
_XRANDR_CONNECTED_RE = re.compile(r"^(\S+) connected\b")


def _is_builtin_panel(display: dict) -> bool:
    name = str(display.get("_name", "")).lower()
    if "built-in" in name:
        return True
    if display.get("spdisplays_connection_type") == "spdisplays_internal":
        return True
    return "built-in" in str(display.get("spdisplays_display_type", "")).lower()


def count_external_from_system_profiler(output: str) -> int | None:
    """Count external displays in ``system_profiler SPDisplaysDataType -json``."""
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        logger.warning("system_profiler returned invalid JSON")
        return None

    count = 0
    for gpu in data.get("SPDisplaysDataType", []):
        for display in gpu.get("spdisplays_ndrvs", []):
            if not _is_builtin_panel(display):
                count += 1
    return count


def count_external_from_xrandr(output: str) -> int:
    """Count connected non-panel outputs in ``xrandr --query``."""
    count = 0
    for line in output.splitlines():
        match = _XRANDR_CONNECTED_RE.match(line)
        if match and not match.group(1).startswith(_BUILTIN_OUTPUT_PREFIXES):
            count += 1
    return count


class SystemProfilerDisplaySource(DisplaySource):
    """macOS display probe."""

    name = "system_profiler"

    def has_external_display(self) -> bool | None:
        output = run_command(["system_profiler", "SPDisplaysDataType", "-json"])
        if output is None:
            return None
        count = count_external_from_system_profiler(output)
        if count is None:
            return None
        logger.debug("Number of external displays: %d", count)
        return count > 0


class XrandrDisplaySource(DisplaySource):
    """X11 display probe."""

    name = "xrandr"

    def has_external_display(self) -> bool | None:
        output = run_command(["xrandr", "--query"])
        if output is None:
            return None
        count = count_external_from_xrandr(output)
        logger.debug("Number of external displays: %d", count)
        return count > 0


def default_display_source() -> DisplaySource:
    """Pick the probe matching the running platform."""
    if sys.platform == "darwin":
        return SystemProfilerDisplaySource()
    return XrandrDisplaySource()
