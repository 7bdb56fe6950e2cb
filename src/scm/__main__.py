"""Command line interface: cluster a MATLAB cell array stored in a `.mat` file.

Usage:
    python -m scm data.mat results.mat
    python -m scm data.mat results.mat --variable X --trunc 20 --verbose
    python -m scm data.mat results.mat --options opts --threads 4
"""

import argparse
import sys
from pathlib import Path
from typing import Any

from scipy.io import loadmat, savemat
from scipy.io.matlab import MatReadError

from .api import cluster
from .container import CellArrayHost
from .errors import ConfigurationError, SCMError


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="scm",
        description="Cluster grouped observations with the Simultaneous Clustering Model",
    )
    parser.add_argument("input", type=Path, help="MAT-file holding the nested cell array X")
    parser.add_argument("output", type=Path, help="MAT-file to write the results to")
    parser.add_argument(
        "--variable", default="X", help="Name of the data variable (default: X)"
    )
    parser.add_argument(
        "--options",
        default=None,
        help="Name of an options struct in the input file; flags below override it",
    )
    parser.add_argument("--trunc", type=int, default=None, help="Truncation level")
    parser.add_argument("--prior", type=float, default=None, help="Prior strength")
    parser.add_argument(
        "--verbose", action="store_true", default=None, help="Print engine progress"
    )
    parser.add_argument(
        "--sparse", action="store_true", default=None, help="Use sparse updates"
    )
    parser.add_argument(
        "--threads", type=int, default=None, help="Worker threads (0: engine default)"
    )
    parser.add_argument("--seed", type=int, default=None, help="Initialisation seed")
    args = parser.parse_args(argv)

    if not args.input.exists():
        parser.error(f"input file {args.input} does not exist")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    host = CellArrayHost()
    try:
        contents = loadmat(args.input)
    except (MatReadError, ValueError, OSError) as e:
        print(f"error: cannot read {args.input}: {e}", file=sys.stderr)
        return 2

    if args.variable not in contents:
        print(f"error: {args.input} has no variable '{args.variable}'", file=sys.stderr)
        return 2

    options: dict[str, Any] = {}
    try:
        if args.options is not None:
            if args.options not in contents:
                raise ConfigurationError(f"{args.input} has no variable '{args.options}'.")
            try:
                options.update(host.fields(contents[args.options]))
            except TypeError as e:
                raise ConfigurationError(f"Options must be a struct: {e}") from e

        for key in ("trunc", "prior", "verbose", "sparse", "threads", "seed"):
            value = getattr(args, key)
            if value is not None:
                options[key] = value

        qy, qz, weights, classes, means, covariances = cluster(
            contents[args.variable], options, host=host
        )
    except SCMError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    savemat(
        args.output,
        {
            "qY": qy,
            "qZ": qz,
            "weights": weights,
            "classes": classes,
            "means": means,
            "covariances": covariances,
        },
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
