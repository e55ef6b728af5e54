"""SyncMove — script entry point.

Equivalent to the installed ``syncmove`` command; handy when running from a
checkout::

    python main.py migrate ~/Pictures/export ~/OneDrive/Pictures -n 50
"""

from __future__ import annotations

from syncmove.cli import app

if __name__ == "__main__":
    app()
