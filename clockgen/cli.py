#!/usr/bin/env python3
"""Check clock schematics and resolve register field operations.

Subcommands:
  validate  Validate clock schematic YAML files against an SVD device.
  resolve   Resolve a YAML list of field operations into instructions.

Usage:
    clockgen validate --svd specs/svd/device.svd -d "specs/clock/*.yaml"
    clockgen resolve --svd specs/svd/device.svd ops.yaml
"""

import argparse
import glob
import logging
import sys
from pathlib import Path

from .catalog import RegisterCatalog
from .errors import ClockgenError
from .fields import FieldResolver, load_operations, render
from .validate import load_schematic_file


def _load_catalog(svd_path):
    try:
        return RegisterCatalog.from_file(svd_path)
    except (OSError, ClockgenError) as err:
        print(f"Error: {svd_path}: {err}", file=sys.stderr)
        return None


def cmd_validate(args) -> int:
    files = []
    for pattern in args.docs:
        files.extend(glob.glob(pattern, recursive=True))
    files = [f for f in sorted(set(files)) if f.endswith(".yaml") or f.endswith(".yml")]
    if not files:
        print("No files matched", file=sys.stderr)
        return 2

    catalog = _load_catalog(args.svd) if args.svd else None
    if args.svd and catalog is None:
        return 2

    had_errors = False
    for f in files:
        try:
            load_schematic_file(f, catalog, args.schema)
        except (OSError, ClockgenError) as err:
            had_errors = True
            print(f"❌ {f} failed validation:")
            print(f"   - {err}")
        else:
            print(f"✅ {f} is valid")
    return 1 if had_errors else 0


def cmd_resolve(args) -> int:
    catalog = _load_catalog(args.svd)
    if catalog is None:
        return 2
    try:
        operations = load_operations(Path(args.operations).read_text(encoding="utf-8"))
        resolutions = FieldResolver(catalog).resolve_all(operations)
    except (OSError, ClockgenError) as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1
    for res in resolutions:
        for w in res.warnings:
            print(f"Warning: {w}", file=sys.stderr)
    print(render(resolutions))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help='Log debug output of the checks being run')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # --- validate subcommand ---
    val_p = subparsers.add_parser(
        'validate',
        help='Validate clock schematic files',
        description='Check each schematic file and report it as valid or failed. '
                    'A failing file does not stop the remaining ones.',
    )
    val_p.add_argument(
        '-d', '--docs', nargs='+', required=True,
        help='YAML schematic files or globs')
    val_p.add_argument(
        '--svd', type=Path,
        help='SVD device file used to check field references (default: skip those checks)')
    val_p.add_argument(
        '-s', '--schema', type=Path,
        help='Path to an alternative JSON Schema for the schematic structure')

    # --- resolve subcommand ---
    res_p = subparsers.add_parser(
        'resolve',
        help='Resolve field operations into instructions',
    )
    res_p.add_argument(
        '--svd', type=Path, required=True,
        help='SVD device file providing the register fields')
    res_p.add_argument(
        'operations', type=Path,
        help='YAML file with a list of field operations')

    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(levelname)s %(name)s: %(message)s')

    if args.command == 'validate':
        return cmd_validate(args)
    return cmd_resolve(args)


if __name__ == "__main__":
    sys.exit(main())
