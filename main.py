#!/usr/bin/env python3
"""Roma Timer entry point.

Run with:
    python main.py
    python -m romatimer
"""

from romatimer.__main__ import main


if __name__ == "__main__":
    main()
