"""Reference engine: variational Bayes for the Simultaneous Clustering Model.

The model clusters observations at two levels. Each group $j$ (e.g. an image) has class weights $\\pi_j$; each item $i$ of the group (e.g. a segment) belongs to a class $y_{ji}$; each class $t$ has cluster weights $\\eta_t$; each observation $n$ of the item belongs to a Gaussian cluster $z_{jin}$ drawn from $\\eta_{y_{ji}}$:

$$y_{ji} \\sim \\text{Cat}(\\pi_j), \\quad z_{jin} \\mid y_{ji} = t \\sim \\text{Cat}(\\eta_t), \\quad x_{jin} \\mid z_{jin} = k \\sim \\mathcal N(\\mu_k, \\Lambda_k^{-1})$$

Inference is mean-field: $q(Y) q(Z) q(\\pi) q(\\eta) q(\\mu, \\Lambda)$, with `GDirichlet`, `Dirichlet` and `GaussWish` posteriors truncated at `trunc` classes and clusters. Components whose expected count falls below `ZERO_CUTOFF` are pruned, so the returned truncation levels are at most `trunc`.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array
from numpy.typing import NDArray

from .distributions import Dirichlet, GaussWish, GDirichlet
from .options import DEFAULT_PRIOR, DEFAULT_SEED, DEFAULT_THREADS, DEFAULT_TRUNC
from .results import ResultSet

# Convergence
MAX_ITERATIONS = 1000
CONVERGENCE_TOLERANCE = 1e-5

# Expected count below which a class or cluster is pruned
ZERO_CUTOFF = 0.1

# Added to the diagonal of the data covariance in the cluster prior
COVARIANCE_FLOOR = 1e-5

# Stick-breaking prior for the group class weights is Beta(1, prior)
STICK_ALPHA = 1.0


@dataclass(frozen=True)
class _Group:
    """Observations of one group, stacked over items."""

    x: Array
    """Centred observations, shape `[N_j, D]`."""

    items: Array
    """Item index of each observation, shape `[N_j]`."""

    sizes: tuple[int, ...]
    """Observation count of each item."""

    @property
    def n_items(self) -> int:
        return len(self.sizes)

    def item_sums(self, qz: Array) -> Array:
        """Sum rows of `qz` within each item, shape `[I_j, K]`."""
        return jax.ops.segment_sum(qz, self.items, num_segments=self.n_items)

    def split(self, qz: Array) -> tuple[Array, ...]:
        """Split rows of `qz` into items."""
        return tuple(jnp.split(qz, np.cumsum(self.sizes)[:-1]))


@dataclass(frozen=True)
class _Statistics:
    """Expected sufficient statistics of one group."""

    group_counts: Array
    """Expected item count per class, shape `[T]`."""

    class_counts: Array
    """Expected observation count per class and cluster, shape `[T, K]`."""

    cluster_counts: Array
    """Shape `[K]`."""

    sums: Array
    """Shape `[K, D]`."""

    outer_sums: Array
    """Shape `[K, D, D]`."""


@dataclass(frozen=True)
class _Posterior:
    """Posteriors of all global parameters."""

    weights: GDirichlet
    """Batched over groups."""

    classes: Dirichlet
    """Batched over classes."""

    clusters: GaussWish
    """Batched over clusters."""

    def kl_divergence(self) -> Array:
        return (
            jnp.sum(self.weights.kl_divergence())
            + jnp.sum(self.classes.kl_divergence())
            + jnp.sum(self.clusters.kl_divergence())
        )


@dataclass(frozen=True)
class _Priors:
    """Prior hyperparameters, independent of the truncation levels."""

    prior: float
    location: Array
    inv_scale: Array

    def fit(self, stats: list[_Statistics]) -> _Posterior:
        """Update every posterior from the groups' statistics."""
        n_classes, n_clusters = stats[0].class_counts.shape
        dim = self.location.shape[0]

        weights = GDirichlet.from_prior(n_classes, STICK_ALPHA, self.prior).update(
            jnp.stack([s.group_counts for s in stats])
        )
        classes = Dirichlet.from_prior(n_clusters, self.prior).update(
            sum(s.class_counts for s in stats)
        )
        clusters = GaussWish.from_prior(self.location, self.prior, float(dim), self.inv_scale)
        clusters = clusters.update(
            sum(s.cluster_counts for s in stats),
            sum(s.sums for s in stats),
            sum(s.outer_sums for s in stats),
        )
        return _Posterior(weights, classes, clusters)


def _statistics(group: _Group, qy: Array, qz: Array) -> _Statistics:
    return _Statistics(
        group_counts=jnp.sum(qy, axis=0),
        class_counts=qy.T @ group.item_sums(qz),
        cluster_counts=jnp.sum(qz, axis=0),
        sums=qz.T @ group.x,
        outer_sums=jnp.einsum("nk,nd,ne->kde", qz, group.x, group.x),
    )


def _expectation(
    group: _Group,
    qz: Array,
    elog_weights: Array,
    elog_classes: Array,
    clusters: GaussWish,
) -> tuple[Array, Array, Array]:
    """Update $q(Y)$ then $q(Z)$ for one group.

    Returns:
        The new `qy` and `qz`, and the group's contribution to the free energy.
    """
    log_qy = elog_weights[None, :] + group.item_sums(qz) @ elog_classes.T
    log_qy = jax.nn.log_softmax(log_qy, axis=1)
    qy = jnp.exp(log_qy)

    log_qz = clusters.expected_log_likelihood(group.x) + (qy @ elog_classes)[group.items]
    log_norm = jax.nn.logsumexp(log_qz, axis=1)
    qz = jnp.exp(log_qz - log_norm[:, None])

    free_energy = jnp.sum(qy * (log_qy - elog_weights[None, :])) - jnp.sum(log_norm)
    return qy, qz, free_energy


def _initialize(
    key: Array, groups: list[_Group], n_classes: int, n_clusters: int
) -> tuple[list[Array], list[Array]]:
    """Soft assignments around randomly chosen observations, with Gumbel noise to break ties."""
    x = jnp.concatenate([g.x for g in groups])
    n_obs = x.shape[0]
    key_centres, key_noise, key_classes = jax.random.split(key, 3)

    idxs = jax.random.choice(
        key_centres, n_obs, shape=(n_clusters,), replace=n_obs < n_clusters
    )
    centres = x[idxs]
    spread = jnp.maximum(jnp.mean(jnp.var(x, axis=0)), COVARIANCE_FLOOR)

    qys: list[Array] = []
    qzs: list[Array] = []
    noise_keys = jax.random.split(key_noise, len(groups))
    class_keys = jax.random.split(key_classes, len(groups))
    for group, key_z, key_y in zip(groups, noise_keys, class_keys):
        sq_dist = jnp.sum((group.x[:, None, :] - centres[None]) ** 2, axis=-1)
        noise = jax.random.gumbel(key_z, sq_dist.shape)
        qzs.append(jax.nn.softmax(-0.5 * sq_dist / spread + noise, axis=1))
        qys.append(
            jax.random.dirichlet(key_y, jnp.ones(n_classes), shape=(group.n_items,))
        )
    return qys, qzs


def _survivors(mass: Array) -> Array:
    keep = (mass > ZERO_CUTOFF).at[jnp.argmax(mass)].set(True)
    return jnp.flatnonzero(keep)


def _restrict(q: Array, keep: Array) -> Array:
    """Keep the columns `keep` of an assignment matrix and renormalise its rows."""
    q = q[:, keep]
    total = jnp.sum(q, axis=1, keepdims=True)
    return jnp.where(total > 0, q / jnp.where(total > 0, total, 1.0), 1.0 / keep.size)


def _prune(qys: list[Array], qzs: list[Array]) -> tuple[list[Array], list[Array]]:
    """Drop classes and clusters with negligible expected counts."""
    keep_classes = _survivors(sum(jnp.sum(q, axis=0) for q in qys))
    keep_clusters = _survivors(sum(jnp.sum(q, axis=0) for q in qzs))
    return (
        [_restrict(q, keep_classes) for q in qys],
        [_restrict(q, keep_clusters) for q in qzs],
    )


def learn_scm(
    x: tuple[tuple[NDArray[np.float64], ...], ...],
    *,
    trunc: int = DEFAULT_TRUNC,
    prior: float = DEFAULT_PRIOR,
    verbose: bool = False,
    sparse: bool = False,
    threads: int = DEFAULT_THREADS,
    seed: int = DEFAULT_SEED,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> ResultSet:
    """Fit the Simultaneous Clustering Model by variational Bayes.

    Args:
        x: Groups of items, each an $N_{ij} \\times D$ matrix.
        trunc: Truncation level of both classes and clusters.
        prior: Concentration of the weight priors, and precision scaling of the cluster prior.
        verbose: Print progress.
        sparse: Prune empty components every iteration rather than once at convergence.
        threads: Workers updating groups concurrently; 0 uses the executor default.
        seed: Seed of the random initialisation.
        max_iterations: Iteration limit; reaching it is not an error.
        tolerance: Relative change of free energy below which iteration stops.

    Raises:
        ValueError: If the free energy becomes non-finite.
    """
    data = jnp.concatenate([jnp.asarray(item) for items in x for item in items])
    dim = data.shape[1]
    offset = jnp.mean(data, axis=0)
    cov = jnp.cov(data, rowvar=False, bias=True).reshape(dim, dim)

    groups: list[_Group] = []
    for items in x:
        sizes = tuple(item.shape[0] for item in items)
        groups.append(
            _Group(
                x=jnp.concatenate([jnp.asarray(item) for item in items]) - offset,
                items=jnp.asarray(np.repeat(np.arange(len(sizes)), sizes)),
                sizes=sizes,
            )
        )

    priors = _Priors(
        prior=prior,
        location=jnp.zeros(dim),
        inv_scale=dim * (cov + COVARIANCE_FLOOR * jnp.eye(dim)),
    )

    qys, qzs = _initialize(jax.random.PRNGKey(seed), groups, trunc, trunc)
    free_energy = jnp.inf
    n_iterations = 0

    with ThreadPoolExecutor(max_workers=threads or None) as pool:
        posterior = priors.fit(list(pool.map(_statistics, groups, qys, qzs)))

        for n_iterations in range(1, max_iterations + 1):
            elog_weights = posterior.weights.expected_log_weight()
            elog_classes = posterior.classes.expected_log_weight()

            steps = list(
                pool.map(
                    lambda group, qz, elog: _expectation(
                        group, qz, elog, elog_classes, posterior.clusters
                    ),
                    groups,
                    qzs,
                    elog_weights,
                )
            )
            qys = [qy for qy, _, _ in steps]
            qzs = [qz for _, qz, _ in steps]

            previous = free_energy
            free_energy = sum(f for _, _, f in steps) + posterior.kl_divergence()
            if not jnp.isfinite(free_energy):
                raise ValueError(
                    f"Free energy is not finite after {n_iterations} iterations."
                )
            if verbose:
                print("-", end="", flush=True)

            if sparse:
                qys, qzs = _prune(qys, qzs)
            posterior = priors.fit(list(pool.map(_statistics, groups, qys, qzs)))

            if jnp.abs(previous - free_energy) <= tolerance * jnp.abs(free_energy):
                break

        qys, qzs = _prune(qys, qzs)
        posterior = priors.fit(list(pool.map(_statistics, groups, qys, qzs)))

    n_classes, n_clusters = qys[0].shape[1], qzs[0].shape[1]
    if verbose:
        print(
            f"\nFinished in {n_iterations} iterations, free energy = {float(free_energy):.4f}, "
            f"T = {n_classes}, K = {n_clusters}."
        )

    return ResultSet(
        qY=tuple(qys),
        qZ=tuple(group.split(qz) for group, qz in zip(groups, qzs)),
        weights=tuple(posterior.weights.unstack()),
        classes=tuple(posterior.classes.unstack()),
        clusters=tuple(posterior.clusters.translate(offset).unstack()),
        free_energy=float(free_energy),
    )
