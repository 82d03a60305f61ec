"""
Focused Window Probe Module.

Reads the foreground application name and window title by shelling out to
platform utilities:
- Linux: xdotool, xprop, wmctrl or GNOME Shell over gdbus (first that works)
- macOS: osascript / System Events
- Windows: PowerShell with user32 P/Invoke

One probe is selected per process at startup with select_window_probe().
"""

import logging
import platform
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

import psutil

logger = logging.getLogger(__name__)


# Named constants
PROBE_TIMEOUT_SEC = 2.0
UNKNOWN = "unknown"


class WindowProbeError(Exception):
    """Focused window could not be determined on this host."""
    pass


@dataclass(frozen=True)
class WindowInfo:
    """The currently focused window."""
    app: str
    title: str


def _output(cmd: List[str], timeout: float = PROBE_TIMEOUT_SEC) -> str:
    """Run a command and return stripped stdout, raising WindowProbeError on failure."""
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise WindowProbeError(f"{cmd[0]}: {e}") from e
    if result.returncode != 0:
        raise WindowProbeError(f"{cmd[0]}: exit {result.returncode}")
    return result.stdout.strip()


def process_name(pid: int) -> Optional[str]:
    """Resolve a process name from its pid."""
    try:
        return psutil.Process(pid).name()
    except (psutil.Error, ValueError):
        return None


class WindowProbe(ABC):
    """Capability interface for reading the focused window."""

    name = "abstract"

    @abstractmethod
    def current_focused_window(self) -> WindowInfo:
        """
        Return the focused window.

        Raises:
            WindowProbeError: If no detection method works.
        """


# ==============================================================================
# Linux
# ==============================================================================

def extract_xprop_value(output: str) -> str:
    """Extract the value from `WM_NAME(STRING) = "value"`."""
    idx = output.find("= ")
    if idx < 0:
        return UNKNOWN
    return output[idx + 2:].strip().strip('"')


def extract_xprop_class(output: str) -> str:
    """Extract the class from `WM_CLASS(STRING) = "instance", "Class"`."""
    idx = output.find("= ")
    if idx < 0:
        return UNKNOWN
    parts = output[idx + 2:].split(",")
    candidate = parts[1] if len(parts) >= 2 else parts[0]
    return candidate.strip().strip('"') or UNKNOWN


def parse_active_window_id(output: str) -> str:
    """Extract the window id from `_NET_ACTIVE_WINDOW(WINDOW): window id # 0x3a00007`."""
    match = re.search(r"0x[0-9a-fA-F]+", output)
    if not match:
        raise WindowProbeError("invalid xprop output")
    return match.group(0)


class LinuxWindowProbe(WindowProbe):
    """Tries each X11/desktop utility in turn, most common first."""

    name = "linux"

    def __init__(self):
        self._strategies: List[Callable[[], WindowInfo]] = [
            self._try_xdotool,
            self._try_xprop,
            self._try_wmctrl,
            self._try_gdbus,
        ]

    def current_focused_window(self) -> WindowInfo:
        errors = []
        for strategy in self._strategies:
            try:
                return strategy()
            except WindowProbeError as e:
                errors.append(str(e))
        raise WindowProbeError(
            "no window detection method available; install one of: xdotool, xprop, wmctrl "
            f"({'; '.join(errors)})"
        )

    def _try_xdotool(self) -> WindowInfo:
        window_id = _output(["xdotool", "getactivewindow"])

        try:
            title = _output(["xdotool", "getwindowname", window_id])
        except WindowProbeError:
            title = UNKNOWN

        try:
            app = _output(["xdotool", "getwindowclassname", window_id])
        except WindowProbeError:
            app = self._app_from_pid(window_id)

        return WindowInfo(app=app or UNKNOWN, title=title)

    def _app_from_pid(self, window_id: str) -> str:
        try:
            pid = int(_output(["xdotool", "getwindowpid", window_id]))
        except (WindowProbeError, ValueError):
            return UNKNOWN
        return process_name(pid) or UNKNOWN

    def _try_xprop(self) -> WindowInfo:
        window_id = parse_active_window_id(_output(["xprop", "-root", "_NET_ACTIVE_WINDOW"]))

        try:
            title = extract_xprop_value(_output(["xprop", "-id", window_id, "WM_NAME"]))
        except WindowProbeError:
            title = UNKNOWN

        try:
            app = extract_xprop_class(_output(["xprop", "-id", window_id, "WM_CLASS"]))
        except WindowProbeError:
            app = UNKNOWN

        return WindowInfo(app=app, title=title)

    def _try_wmctrl(self) -> WindowInfo:
        listing = _output(["wmctrl", "-l", "-x"])
        active_id = parse_active_window_id(_output(["xprop", "-root", "_NET_ACTIVE_WINDOW"]))
        active_num = int(active_id, 16)

        for line in listing.splitlines():
            parts = line.split(None, 4)
            if len(parts) < 4:
                continue
            try:
                if int(parts[0], 16) != active_num:
                    continue
            except ValueError:
                continue
            app = parts[2].rsplit(".", 1)[-1]
            title = parts[4] if len(parts) == 5 else ""
            return WindowInfo(app=app, title=title)

        raise WindowProbeError("active window not listed by wmctrl")

    def _try_gdbus(self) -> WindowInfo:
        output = _output([
            "gdbus", "call", "--session",
            "--dest", "org.gnome.Shell",
            "--object-path", "/org/gnome/Shell",
            "--method", "org.gnome.Shell.Eval",
            "global.display.focus_window.get_wm_class() + '|' + global.display.focus_window.get_title()",
        ])
        # (true, '"Code|file.go - workspace"')
        if not output.startswith("(true"):
            raise WindowProbeError("gdbus eval refused")
        start, end = output.find('"'), output.rfind('"')
        if start < 0 or end <= start:
            raise WindowProbeError("could not parse gdbus output")
        app, sep, title = output[start + 1:end].partition("|")
        if not sep:
            raise WindowProbeError("invalid gdbus response")
        return WindowInfo(app=app, title=title)


# ==============================================================================
# macOS
# ==============================================================================

_APPLESCRIPT = """tell application "System Events"
    set frontApp to first application process whose frontmost is true
    set appName to name of frontApp
    try
        set windowTitle to name of front window of frontApp
        return appName & "|" & windowTitle
    on error
        return appName & "|"
    end try
end tell"""


class MacWindowProbe(WindowProbe):
    """Asks System Events for the frontmost process and its front window."""

    name = "darwin"

    def current_focused_window(self) -> WindowInfo:
        output = _output(["osascript", "-e", _APPLESCRIPT])
        if not output:
            raise WindowProbeError("could not parse window info")
        app, _, title = output.partition("|")
        return WindowInfo(app=app, title=title)


# ==============================================================================
# Windows
# ==============================================================================

_POWERSHELL = r'''Add-Type @"
using System;
using System.Runtime.InteropServices;
using System.Text;
public class Win32 {
    [DllImport("user32.dll")]
    public static extern IntPtr GetForegroundWindow();
    [DllImport("user32.dll")]
    public static extern int GetWindowText(IntPtr hWnd, StringBuilder text, int count);
    [DllImport("user32.dll", SetLastError=true)]
    public static extern uint GetWindowThreadProcessId(IntPtr hWnd, out uint lpdwProcessId);
}
"@
$hwnd = [Win32]::GetForegroundWindow()
$title = New-Object System.Text.StringBuilder 256
[void][Win32]::GetWindowText($hwnd, $title, $title.Capacity)
$processId = 0
[void][Win32]::GetWindowThreadProcessId($hwnd, [ref]$processId)
Write-Output "$processId|$($title.ToString())"'''


class WindowsWindowProbe(WindowProbe):
    """Reads the foreground window through PowerShell and user32.dll."""

    name = "windows"

    def current_focused_window(self) -> WindowInfo:
        output = _output(["powershell", "-NoProfile", "-Command", _POWERSHELL], timeout=5.0)
        pid_text, sep, title = output.partition("|")
        if not sep:
            raise WindowProbeError("could not parse window info")
        try:
            app = process_name(int(pid_text)) or UNKNOWN
        except ValueError:
            app = UNKNOWN
        return WindowInfo(app=app, title=title)


def select_window_probe(system: Optional[str] = None) -> WindowProbe:
    """
    Pick the window probe for the host platform.

    Raises:
        WindowProbeError: On unsupported platforms.
    """
    system = system or platform.system()
    if system == "Linux":
        probe: WindowProbe = LinuxWindowProbe()
        if not any(shutil.which(tool) for tool in ("xdotool", "xprop", "wmctrl", "gdbus")):
            logger.warning("No window detection tool found; install xdotool, xprop or wmctrl")
    elif system == "Darwin":
        probe = MacWindowProbe()
    elif system == "Windows":
        probe = WindowsWindowProbe()
    else:
        raise WindowProbeError(f"unsupported platform: {system}")

    logger.info(f"Window probe selected: {probe.name}")
    return probe
