"""The `cluster` entry point."""

from __future__ import annotations

from typing import Any, TextIO

from .container import Host, marshal_input, select_host
from .marshal import ClusterResult, marshal_output
from .options import parse_options
from .results import Engine
from .shim import invoke


def cluster(
    x: Any,
    options: Any = None,
    *,
    engine: Engine | None = None,
    console: TextIO | None = None,
    host: Host | None = None,
) -> ClusterResult:
    """Cluster grouped observations with the Simultaneous Clustering Model.

    Unpacks as `qY, qZ, weights, classes, means, covariances = cluster(X, options)`.

    Args:
        x: $J$ groups, each a container of $N_{ij} \\times D$ observation matrices.
        options: Bag with any of `trunc`, `prior`, `verbose`, `sparse`, `threads`, `seed`; `None` for defaults.
        engine: Clustering engine; the reference `learn_scm` when omitted.
        console: Stream receiving the engine's diagnostic output during the call.
        host: Host of `x` and of the returned containers; inferred from `x` when omitted.

    Raises:
        InputShapeError: If `x` is malformed. The engine is not called.
        ConfigurationError: If `options` is malformed. The engine is not called.
        EngineError: If the engine fails. No partial result is returned.
    """
    if host is None:
        host = select_host(x)
    data = marshal_input(x, host)
    opts = parse_options(options, host)
    result = invoke(data, opts, engine=engine, console=console)
    return marshal_output(result, host, dim=data.dim)
