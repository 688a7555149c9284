"""Allow ``python -m hub_port_mapper``."""

from __future__ import annotations

import sys


def main() -> None:
    from hub_port_mapper import run
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
