"""
Starkpack CLI - detect and build entry points.

Usage:
    python3 -m starkpack.runtime.main detect --app <dir> [--plan-out plan.json]
    python3 -m starkpack.runtime.main build --app <dir> --layers <dir> [--plan plan.json]

Exit codes:
    detect: 0 pass, 100 not applicable, 1 error
    build:  0 success, 1 error
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List

from ..config import ConfigValidationError, get_config_loader
from .build import Build
from .detect import Detector
from .environment import BuildContext
from .errors import BuildpackError, MissingSourcesError, ResolutionError, describe_error
from .logger import Logger
from .schemas import PlanEntry

EXIT_PASS = 0
EXIT_ERROR = 1
EXIT_NOT_APPLICABLE = 100


def load_plan(plan_path) -> List[PlanEntry]:
    if plan_path is None:
        return [PlanEntry(name="starkli")]
    try:
        with open(plan_path, "r") as f:
            data = json.load(f)
        return [PlanEntry(**entry) for entry in data.get("entries", [])]
    except (OSError, ValueError, TypeError, AttributeError) as e:
        raise ResolutionError(f"unable to read buildpack plan {plan_path}") from e


def run_detect(args, logger: Logger) -> int:
    detector = Detector(logger=logger)
    try:
        result = detector.detect(args.app)
    except MissingSourcesError as e:
        print(f"Starknet not detected: {e}")
        return EXIT_NOT_APPLICABLE
    except BuildpackError as e:
        print(f"ERROR: {describe_error(e)}")
        return EXIT_ERROR

    if not result.passed:
        print(f"Starknet not detected: {result.reason}")
        return EXIT_NOT_APPLICABLE

    if args.plan_out:
        try:
            with open(args.plan_out, "w") as f:
                json.dump(result.model_dump(), f, indent=2)
        except OSError as e:
            print(f"ERROR: unable to write build plan {args.plan_out}\n{e}")
            return EXIT_ERROR
    print("Starknet detected")
    return EXIT_PASS


def run_build(args, logger: Logger) -> int:
    try:
        loader = get_config_loader(Path(args.descriptor) if args.descriptor else None)
    except ConfigValidationError as e:
        print(f"ERROR: {e}")
        return EXIT_ERROR

    build = Build(logger=logger, config_loader=loader)
    try:
        context = BuildContext.from_environ(args.app, args.layers, plan=load_plan(args.plan))
        result = build.build(context)
    except BuildpackError as e:
        print(f"\nBuild failed:\n{describe_error(e)}")
        return EXIT_ERROR

    for process in result.processes:
        marker = " (default)" if process.default else ""
        logger.header(f"Process type {process.type}{marker}: {process.command} {' '.join(process.arguments)}")
    return EXIT_PASS


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Starkpack: Starknet buildpack detect/build phases.")
    parser.add_argument("--debug", action="store_true", help="Print executed commands")
    subparsers = parser.add_subparsers(dest="command")

    detect_parser = subparsers.add_parser("detect", help="Decide whether the buildpack applies")
    detect_parser.add_argument("--app", "-a", required=True, help="Application directory")
    detect_parser.add_argument("--plan-out", help="Write the build plan JSON here on pass")

    build_parser = subparsers.add_parser("build", help="Contribute the starkli layer")
    build_parser.add_argument("--app", "-a", required=True, help="Application directory")
    build_parser.add_argument("--layers", "-l", required=True, help="Layers directory")
    build_parser.add_argument("--plan", "-p", help="Buildpack plan JSON ({\"entries\": [...]})")
    build_parser.add_argument("--descriptor", help="Path to an alternative buildpack.yaml")

    args = parser.parse_args(argv)
    logger = Logger(debug=args.debug)

    if args.command == "detect":
        return run_detect(args, logger)
    elif args.command == "build":
        return run_build(args, logger)

    parser.print_help()
    return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
