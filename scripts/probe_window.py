"""
Print the focused window and the repository it maps to.

Usage:
    python scripts/probe_window.py
"""

import sys

sys.path.insert(0, '.')

from worklog.gitinfo import GitClient, RepositoryIndex, RepositoryScanner
from worklog.perception import WindowProbeError, is_editor, select_window_probe
from worklog.system.config import load_config


def main():
    config = load_config()

    try:
        window = select_window_probe().current_focused_window()
    except WindowProbeError as e:
        print(f"❌ {e}")
        return 1

    print(f"📱 App:    {window.app}")
    print(f"📝 Title:  {window.title}")
    print(f"🧑‍💻 Editor: {'yes' if is_editor(window.app, window.title) else 'no'}")

    index = RepositoryIndex(RepositoryScanner(
        GitClient(),
        repositories=config.git.repositories,
        roots=config.git.roots,
        max_depth=config.git.max_depth,
    ))
    index.refresh()

    repo = index.match_title(window.title)
    print(f"📂 Repo:   {repo.path if repo else 'no match'}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
