"""Command-line entry point.

Usage::

    pybioclog parameters.yaml --output-dir results --steps 200 -v
"""

from __future__ import annotations

import argparse
import logging
import sys

from pybioclog.core.config import load_parameters
from pybioclog.core.exceptions import BioclogError
from pybioclog.simulation.driver import SimulationDriver

logger = logging.getLogger("pybioclog")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pybioclog",
        description="Coupled unsaturated flow and substrate transport with bioclogging.",
    )
    parser.add_argument("config", help="Parameter file (.yaml, .yml or .json).")
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for result, summary and restart files.",
    )
    parser.add_argument(
        "--steps",
        type=int,
        default=None,
        help="Number of time steps (overrides timestep_number_max).",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log Picard iterations.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Log warnings and errors only.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.steps is not None and args.steps <= 0:
        parser.error(f"--steps must be positive, got {args.steps}")
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        parameters = load_parameters(args.config)
        driver = SimulationDriver(parameters, output_directory=args.output_dir)
        result = driver.run(n_steps=args.steps)
    except BioclogError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    logger.info("Finished %d steps in phase %s", len(result.reports), result.phase.value)
    return 0


if __name__ == "__main__":
    sys.exit(main())
