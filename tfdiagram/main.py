#!/usr/bin/env python3
"""
tfdiagram - Terraform to Diagram Converter

Builds a diagram document from Terraform code: every file reachable from a
root file (siblings and local modules) is parsed, resources are mapped to
diagram components, containment and references become relationships, and
the result is written as YAML or JSON.

Usage:
    # Convert main.tf and everything it depends on
    tfdiagram -f ./infrastructure/main.tf

    # With a custom resource mapping
    tfdiagram -f ./infrastructure/main.tf -c terraform-diagram.config.json

    # JSON output
    tfdiagram -f ./infrastructure/main.tf -o diagram.json

    # Show which files would be parsed
    tfdiagram -f ./infrastructure/main.tf --tree
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import CONFIG_FILENAME, ConfigError, load_config, load_or_default
from .converter import convert_file
from .export import FORMATS, format_for, write_diagram
from .resolver import ModuleDependencyResolver, format_tree


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Convert Terraform code into a diagram document.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Resource mapping:
    Without -c, {CONFIG_FILENAME} is looked up in the current directory;
    if it is missing the built-in AWS mapping is used.

Examples:
    tfdiagram -f ./infrastructure/main.tf
    tfdiagram -f ./infrastructure/main.tf -o diagram.json
    tfdiagram -f ./infrastructure/main.tf --tree
        """,
    )

    parser.add_argument("-f", "--file", required=True, help="Root Terraform file")

    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        default=None,
        help=f"Resource mapping document (YAML or JSON). Default: ./{CONFIG_FILENAME} if present",
    )

    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output file path. Default: <root file stem>.diagram.yaml next to the root file",
    )

    parser.add_argument(
        "--format",
        choices=FORMATS,
        default=None,
        help="Output format. Default: taken from the output file suffix, else yaml",
    )

    parser.add_argument(
        "--tree",
        action="store_true",
        help="Print the file dependency tree and exit.",
    )

    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Parse files on this many threads.",
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    root_file = Path(args.file)
    if not root_file.is_file():
        print(f"Error: Terraform file not found: {root_file}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.tree:
            tree = ModuleDependencyResolver().build_tree(root_file, workspace=Path.cwd())
            print(format_tree(tree), end="")
            return

        if args.config:
            if args.verbose:
                print(f"Using resource mapping: {args.config}")
            config = load_config(args.config)
        else:
            config = load_or_default(Path.cwd())

        if args.verbose:
            print(f"Converting {root_file} ({len(config.resource_mappings)} resource mappings)...")

        diagram = convert_file(root_file, config, max_workers=args.jobs)

        if args.verbose:
            components = diagram.all_components()
            print(f"Created {len(components)} components:")
            for component in components:
                parent = diagram.parent_of(component.id)
                parent_name = parent.name if parent else "-"
                print(f"  - {component.kind.value} {component.name} (in {parent_name})")
            print(f"Created {len(diagram.relationships)} relationships")

        output_path = (
            Path(args.output)
            if args.output
            else root_file.with_name(f"{root_file.stem}.diagram.yaml")
        )
        fmt = args.format or format_for(output_path)
        write_diagram(diagram, output_path, fmt)

        print(f"Diagram generated: {output_path.absolute()}")
        print("\nSummary:")
        print(f"  Components: {len(diagram.all_components())}")
        print(f"  Relationships: {len(diagram.relationships)}")

    except (ConfigError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
