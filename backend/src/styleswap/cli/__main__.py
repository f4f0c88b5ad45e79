"""CLI entry point for styleswap.cli module.

Enables execution via: python -m styleswap.cli reconcile-holds [OPTIONS]
"""

import sys

from styleswap.cli import reconcile_holds

COMMANDS = {
    "reconcile-holds": reconcile_holds.main,
}


def run(argv: list[str]) -> int:
    if not argv or argv[0] not in COMMANDS:
        print(f"Usage: python -m styleswap.cli {{{','.join(COMMANDS)}}} [OPTIONS]", file=sys.stderr)
        return 2
    return COMMANDS[argv[0]](argv[1:])


if __name__ == "__main__":
    raise SystemExit(run(sys.argv[1:]))
