"""
List the repositories the agent would track.

Usage:
    python scripts/list_repos.py
    python scripts/list_repos.py --config ~/.config/awagent/config.json
"""

import sys
import argparse

sys.path.insert(0, '.')

from worklog.gitinfo import GitClient, RepositoryIndex, RepositoryScanner
from worklog.system.config import ConfigError, load_config


def main():
    parser = argparse.ArgumentParser(description="List repositories discovered by the worklog agent")
    parser.add_argument("--config", help="path to config file")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"❌ {e}")
        return 2

    scanner = RepositoryScanner(
        GitClient(),
        repositories=config.git.repositories,
        roots=config.git.roots,
        max_depth=config.git.max_depth,
    )
    index = RepositoryIndex(scanner)
    index.refresh()

    print("=" * 70)
    print(f"📂 {len(index)} repositories (roots={config.git.roots}, maxDepth={config.git.max_depth})")
    print("=" * 70)

    for repo in index.snapshot():
        print(f"\n{repo.name} [{repo.branch or '-'}]")
        print(f"   path:   {repo.path}")
        print(f"   remote: {repo.remote or '-'}")
        print(f"   user:   {repo.user or '-'} <{repo.email or '-'}>")

    return 0


if __name__ == '__main__':
    sys.exit(main())
