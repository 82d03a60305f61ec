"""
Editor allow-list.

Only focus on a known editor or IDE is turned into an observation; every
other application is ignored.
"""

from typing import Iterable

# Lowercase substrings matched against the application name
KNOWN_EDITORS = (
    "code",  # VS Code, VSCodium, Xcode
    "codium",
    "cursor",
    "windsurf",
    "zed",
    "sublime",
    "atom",
    "idea",
    "intellij",
    "pycharm",
    "goland",
    "webstorm",
    "phpstorm",
    "rubymine",
    "clion",
    "rider",
    "datagrip",
    "fleet",
    "android studio",
    "eclipse",
    "netbeans",
    "vim",
    "nvim",
    "emacs",
    "helix",
    "kate",
    "gedit",
    "notepad++",
)

# Names distinctive enough to be looked for in window titles as well.
# Short ones ("code", "idea", "rider") occur in ordinary prose.
TITLE_MARKERS = (
    "visual studio code",
    "vscodium",
    "sublime text",
    "intellij idea",
    "pycharm",
    "goland",
    "webstorm",
    "phpstorm",
    "rubymine",
    "clion",
    "datagrip",
    "android studio",
    "eclipse ide",
    "netbeans",
    "nvim",
    "emacs",
    "notepad++",
)


def is_editor(
    app: str,
    title: str,
    editors: Iterable[str] = KNOWN_EDITORS,
    title_markers: Iterable[str] = TITLE_MARKERS,
) -> bool:
    """Return True if the app name, or a distinctive marker in the title, names an editor."""
    app_lower = (app or "").lower()
    if any(name in app_lower for name in editors):
        return True
    title_lower = (title or "").lower()
    return any(marker in title_lower for marker in title_markers)
