"""The engine contract: its call signature, the result set it returns, and the accessors its posterior distributions expose."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

import numpy as np
from numpy.typing import ArrayLike

from .container import GroupedMatrixSet, Matrix


class WeightDistribution(Protocol):
    """Posterior over mixing proportions."""

    def expected_log_weight(self) -> ArrayLike:
        """Posterior expectation of the log mixing proportions."""
        ...


class ClusterDistribution(Protocol):
    """Posterior over the parameters of a Gaussian cluster."""

    @property
    def mean(self) -> ArrayLike: ...

    @property
    def covariance(self) -> ArrayLike: ...


@dataclass(frozen=True)
class ResultSet:
    """Posterior returned by the engine.

    With $J$ groups, $T$ classes and $K$ clusters:

    - `qY[j]` is the $I_j \\times T$ class assignment of the items of group $j$,
    - `qZ[j][i]` is the $N_{ij} \\times K$ cluster assignment of item $i$ of group $j$,
    - `weights[j]` is the class-weight posterior of group $j$,
    - `classes[t]` is the cluster-weight posterior of class $t$, and
    - `clusters[k]` is the posterior of Gaussian cluster $k$.
    """

    qY: tuple[ArrayLike, ...]
    qZ: tuple[tuple[ArrayLike, ...], ...]
    weights: tuple[WeightDistribution, ...]
    classes: tuple[WeightDistribution, ...]
    clusters: tuple[ClusterDistribution, ...]
    free_energy: float = math.nan
    """Final variational free energy, NaN when not reported."""

    @property
    def n_classes(self) -> int:
        return len(self.classes)

    @property
    def n_clusters(self) -> int:
        return len(self.clusters)

    def check_consistency(self, data: GroupedMatrixSet) -> None:
        """Check that every index space agrees with the input and with each other.

        Raises:
            ValueError: On the first disagreement found.
        """
        n_groups = data.n_groups
        for name, entries in (("qY", self.qY), ("qZ", self.qZ), ("weights", self.weights)):
            if len(entries) != n_groups:
                raise ValueError(f"{name} has {len(entries)} groups, expected {n_groups}.")

        t, k = self.n_classes, self.n_clusters
        for j, items in enumerate(data.groups):
            expected = (len(items), t)
            if np.shape(self.qY[j]) != expected:
                raise ValueError(f"qY{{{j + 1}}} has shape {np.shape(self.qY[j])}, expected {expected}.")
            if len(self.qZ[j]) != len(items):
                raise ValueError(
                    f"qZ{{{j + 1}}} has {len(self.qZ[j])} items, expected {len(items)}."
                )
            for i, x in enumerate(items):
                expected = (x.shape[0], k)
                if np.shape(self.qZ[j][i]) != expected:
                    raise ValueError(
                        f"qZ{{{j + 1}}}{{{i + 1}}} has shape {np.shape(self.qZ[j][i])}, expected {expected}."
                    )


class Engine(Protocol):
    """A clustering engine with the `learn_scm` signature."""

    def __call__(
        self,
        x: tuple[tuple[Matrix, ...], ...],
        *,
        trunc: int,
        prior: float,
        verbose: bool,
        sparse: bool,
        threads: int,
        seed: int,
    ) -> ResultSet: ...
