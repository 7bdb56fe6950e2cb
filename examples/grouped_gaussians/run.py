"""Cluster synthetic grouped data with the Simultaneous Clustering Model.

Each group mixes two classes of items, and each class mixes three bivariate Gaussian clusters in its own proportions. The fit should recover both the clusters of the observations and the classes of the items.
"""

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array
from sklearn.metrics import adjusted_rand_score  # pyright: ignore[reportMissingTypeStubs]

from scm import cluster

from ..shared import example_paths, initialize_jax
from .types import GroupedGaussiansResults

# Ground truth
MEANS = jnp.array([[-3.0, 0.0], [3.0, 0.0], [0.0, 3.0]])
COVARIANCES = jnp.array(
    [
        [[1.0, 0.3], [0.3, 0.5]],
        [[0.6, -0.2], [-0.2, 0.8]],
        [[0.5, 0.0], [0.0, 0.5]],
    ]
)
CLASS_WEIGHTS = jnp.array([[0.8, 0.2, 0.0], [0.0, 0.3, 0.7]])
GROUP_WEIGHTS = jnp.array([0.5, 0.5])

# Data configuration
N_GROUPS = 8
N_ITEMS = 6
N_OBSERVATIONS = 40

# Fit configuration
OPTIONS = {"trunc": 10, "prior": 1.0, "verbose": True}


### Data ###


def sample_grouped_data(
    key: Array,
) -> tuple[list[list[Array]], list[int], list[int]]:
    """Sample groups of items of observations.

    Returns:
        x: Nested groups of item matrices.
        true_classes: Class of each item.
        true_clusters: Cluster of each observation.
    """
    x: list[list[Array]] = []
    true_classes: list[int] = []
    true_clusters: list[int] = []

    for key_group in jax.random.split(key, N_GROUPS):
        items: list[Array] = []
        for key_item in jax.random.split(key_group, N_ITEMS):
            key_class, key_cluster, key_obs = jax.random.split(key_item, 3)
            y = int(jax.random.choice(key_class, GROUP_WEIGHTS.shape[0], p=GROUP_WEIGHTS))
            z = jax.random.choice(
                key_cluster, MEANS.shape[0], shape=(N_OBSERVATIONS,), p=CLASS_WEIGHTS[y]
            )
            noise = jax.random.normal(key_obs, (N_OBSERVATIONS, MEANS.shape[1]))
            chols = jnp.linalg.cholesky(COVARIANCES)[z]
            items.append(MEANS[z] + jnp.einsum("nde,ne->nd", chols, noise))
            true_classes.append(y)
            true_clusters.extend(z.tolist())
        x.append(items)

    return x, true_classes, true_clusters


### Analysis ###


def compute_results(key: Array) -> GroupedGaussiansResults:
    x, true_classes, true_clusters = sample_grouped_data(key)

    qy, qz, weights, classes, means, covariances = cluster(x, OPTIONS)

    fitted_classes = [int(c) for q in qy for c in np.argmax(q, axis=1)]
    fitted_clusters = [int(c) for items in qz for q in items for c in np.argmax(q, axis=1)]
    observations = np.concatenate([np.asarray(item) for items in x for item in items])

    return GroupedGaussiansResults(
        observations=observations.tolist(),
        true_clusters=true_clusters,
        fitted_clusters=fitted_clusters,
        true_classes=true_classes,
        fitted_classes=fitted_classes,
        true_means=MEANS.tolist(),
        true_covariances=COVARIANCES.tolist(),
        means=[m.tolist() for m in means],
        covariances=[c.tolist() for c in covariances],
        weights=[w.tolist() for w in weights],
        classes=[c.tolist() for c in classes],
        cluster_ari=float(adjusted_rand_score(true_clusters, fitted_clusters)),
        class_ari=float(adjusted_rand_score(true_classes, fitted_classes)),
    )


### Main ###


def main():
    initialize_jax()
    paths = example_paths(__file__)

    results = compute_results(jax.random.PRNGKey(0))
    print(f"Clusters found: {len(results['means'])}, classes found: {len(results['classes'])}")
    print(f"Cluster ARI: {results['cluster_ari']:.3f}, class ARI: {results['class_ari']:.3f}")

    paths.save_analysis(results)


if __name__ == "__main__":
    main()
