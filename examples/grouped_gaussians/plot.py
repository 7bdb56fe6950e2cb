"""Plotting for the grouped Gaussians example."""

from typing import cast

import matplotlib.pyplot as plt
import numpy as np

from ..shared import (
    colors,
    example_paths,
    model_colors,
    plot_covariance_ellipse,
    plot_weight_bars,
)
from .types import GroupedGaussiansResults


def main():
    paths = example_paths(__file__)
    results = cast(GroupedGaussiansResults, paths.load_analysis())

    observations = np.array(results["observations"])
    fitted_clusters = np.array(results["fitted_clusters"])

    fig = plt.figure(figsize=(15, 5))
    gs = fig.add_gridspec(1, 3)
    ax_clusters = fig.add_subplot(gs[0, 0])
    ax_weights = fig.add_subplot(gs[0, 1])
    ax_classes = fig.add_subplot(gs[0, 2])

    # Observations coloured by fitted cluster
    point_colors = [model_colors[k % len(model_colors)] for k in fitted_clusters]
    ax_clusters.scatter(observations[:, 0], observations[:, 1], c=point_colors, s=8, alpha=0.4)

    for idx, (mean, cov) in enumerate(zip(results["true_means"], results["true_covariances"])):
        plot_covariance_ellipse(
            ax_clusters,
            np.array(mean),
            np.array(cov),
            colors["ground_truth"],
            label="Ground Truth" if idx == 0 else None,
        )
    for idx, (mean, cov) in enumerate(zip(results["means"], results["covariances"])):
        plot_covariance_ellipse(
            ax_clusters,
            np.array(mean),
            np.array(cov),
            colors["fitted"],
            label="Fitted" if idx == 0 else None,
        )
    ax_clusters.set_aspect("equal")
    ax_clusters.legend()
    ax_clusters.set_title(f"Clusters (ARI {results['cluster_ari']:.2f})")

    plot_weight_bars(
        ax_weights,
        results["weights"],
        [f"{j + 1}" for j in range(len(results["weights"]))],
    )
    ax_weights.set_xlabel("Group")
    ax_weights.set_title(f"Group Class Weights (ARI {results['class_ari']:.2f})")

    plot_weight_bars(
        ax_classes,
        results["classes"],
        [f"{t + 1}" for t in range(len(results["classes"]))],
    )
    ax_classes.set_xlabel("Class")
    ax_classes.set_title("Class Cluster Weights")

    fig.tight_layout()
    paths.save_plot(fig)


if __name__ == "__main__":
    main()
