"""
Sync Module Entry Point

Allows execution via: python -m apps.sync [seed]

Delegates to scheduler for all execution modes (scheduled and RUN_ONCE).
"""

from apps.sync.scheduler import cli

if __name__ == "__main__":
    cli()
