"""Module entrypoint for `python -m ait`."""

from __future__ import annotations

from ait.cli import run


if __name__ == "__main__":
    run()
