"""Output marshaller: engine results back into host containers."""

from __future__ import annotations

from typing import Any, NamedTuple

import numpy as np

from .container import Host, Matrix
from .errors import EngineError
from .results import ResultSet, WeightDistribution


class ClusterResult(NamedTuple):
    """The six outputs of `cluster`, in host containers."""

    qY: Any
    """$J$ class assignment matrices, $I_j \\times T$."""
    qZ: Any
    """$J$ containers of $I_j$ cluster assignment matrices, $N_{ij} \\times K$."""
    weights: Any
    """$J$ class weight vectors of length $T$."""
    classes: Any
    """$T$ cluster weight vectors of length $K$."""
    means: Any
    """$K$ cluster means of length $D$."""
    covariances: Any
    """$K$ cluster covariances, $D \\times D$."""


def expected_weights(distribution: WeightDistribution) -> Matrix:
    """Exponentiated expected log-weights.

    These are not renormalised, so they generally sum to slightly less than one.
    """
    return np.exp(np.asarray(distribution.expected_log_weight(), dtype=np.float64))


def _weight_vectors(
    host: Host, name: str, distributions: tuple[WeightDistribution, ...], length: int
) -> list[Matrix]:
    vectors: list[Matrix] = []
    for idx, distribution in enumerate(distributions, start=1):
        vector = host.make_vector(expected_weights(distribution))
        if vector.size != length:
            raise EngineError(f"{name}{{{idx}}} has {vector.size} weights, expected {length}.")
        vectors.append(vector)
    return vectors


def marshal_output(result: ResultSet, host: Host, dim: int | None = None) -> ClusterResult:
    """Copy a result set into the host's nested containers.

    Every returned array is a fresh float64 copy; none aliases engine memory.

    Args:
        result: Engine output.
        host: Host building the containers.
        dim: Data dimension the cluster parameters must have; taken from the first cluster when omitted.

    Raises:
        EngineError: If a weight vector, mean or covariance has the wrong size.
    """
    qy = host.make_list([host.make_matrix(q) for q in result.qY])
    qz = host.make_list(
        [host.make_list([host.make_matrix(q) for q in items]) for items in result.qZ]
    )

    weights = host.make_list(_weight_vectors(host, "weights", result.weights, result.n_classes))
    classes = host.make_list(
        _weight_vectors(host, "classes", result.classes, result.n_clusters)
    )

    means: list[Matrix] = []
    covariances: list[Matrix] = []
    for k, cluster in enumerate(result.clusters, start=1):
        mean = host.make_vector(cluster.mean)
        covariance = host.make_matrix(cluster.covariance)
        dim = mean.size if dim is None else dim
        if mean.size != dim or covariance.shape != (dim, dim):
            raise EngineError(
                f"Cluster {k} has a mean of size {mean.size} and a covariance of shape {covariance.shape}, expected {dim} and {(dim, dim)}."
            )
        means.append(mean)
        covariances.append(covariance)

    return ClusterResult(
        qY=qy,
        qZ=qz,
        weights=weights,
        classes=classes,
        means=host.make_list(means),
        covariances=host.make_list(covariances),
    )
