"""Operator commands for inspecting the login configuration and matrix.

Usage:
  python -m clusterlogin.admin_cli show-config
  DATABASE_URL=... python -m clusterlogin.admin_cli show-matrix
"""

from __future__ import annotations

import argparse
import json
import sys

from .auth.discovery import ConfigResolver
from .auth.matrix import load_policy
from .config import is_project_matrix_default
from .db import init_db


def show_config() -> dict:
    config, fully_discovered = ConfigResolver().resolve()
    return {"fully_discovered": fully_discovered, "config": config.summary()}


def show_matrix() -> dict:
    init_db()
    policy = load_policy(project_scoped_default=is_project_matrix_default())
    return {"project_scoped": policy.project_scoped, "grants": policy.as_dict()}


def main(argv=None):
    parser = argparse.ArgumentParser(prog="clusterlogin-admin")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("show-config", help="Print the effective login configuration")
    subparsers.add_parser("show-matrix", help="Print the persisted authorization matrix")
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if args.command == "show-config":
        details = show_config()
    else:
        details = show_matrix()
    print(json.dumps(details, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
