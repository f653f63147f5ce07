"""Run the node supervisor from a source checkout: `python main.py`."""

import sys

from rsn.node import main

if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
