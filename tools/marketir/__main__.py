"""MarketIR CLI entry point — python -m tools.marketir"""

from __future__ import annotations

import sys

from tools.marketir.cli import main

if __name__ == "__main__":
    sys.exit(main())
