"""Shared utilities for SCM examples."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jax
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from numpy.typing import NDArray

# Standard color schemes for consistent plots
colors = {
    "ground_truth": "#000000",  # black
    "fitted": "#E24A33",  # red
}

# Sequential colors for multiple clusters/classes
model_colors = ["#348ABD", "#E24A33", "#988ED5", "#8EBA42", "#FBC15E", "#777777"]


@dataclass(frozen=True)
class ExamplePaths:
    """Output directory of one example, holding its JSON analysis and its plot."""

    results_dir: Path

    def save_analysis(self, results: Any) -> None:
        self.results_dir.mkdir(parents=True, exist_ok=True)
        with open(self.results_dir / "analysis.json", "w") as f:
            json.dump(results, f, indent=2)

    def load_analysis(self) -> Any:
        with open(self.results_dir / "analysis.json") as f:
            return json.load(f)

    def save_plot(self, fig: Figure) -> None:
        fig.savefig(self.results_dir / "plot.png", bbox_inches="tight")
        plt.close(fig)


def example_paths(module_path: str | Path) -> ExamplePaths:
    """Results live in `results/<example>/` at the repository root."""
    module_path = Path(module_path)
    return ExamplePaths(module_path.parents[2] / "results" / module_path.parent.name)


def initialize_jax(device: str = "cpu") -> None:
    jax.config.update("jax_platform_name", device)


def plot_covariance_ellipse(
    ax: Axes,
    mean: NDArray[np.float64],
    cov: NDArray[np.float64],
    color: str,
    n_std: float = 2.0,
    label: str | None = None,
) -> None:
    """Draw the `n_std` contour of a bivariate Gaussian."""
    eigvals, eigvecs = np.linalg.eigh(cov)
    angles = np.linspace(0, 2 * np.pi, 100)
    circle = np.stack([np.cos(angles), np.sin(angles)])
    ellipse = eigvecs @ (n_std * np.sqrt(eigvals)[:, None] * circle)
    ax.plot(mean[0] + ellipse[0], mean[1] + ellipse[1], color=color, label=label)
    ax.scatter([mean[0]], [mean[1]], color=color, marker="x")


def plot_weight_bars(
    ax: Axes,
    weights: list[list[float]],
    labels: list[str],
) -> None:
    """Grouped bar chart of weight vectors, one group of bars per vector."""
    n_vectors = len(weights)
    n_components = max(len(w) for w in weights)
    width = 0.8 / n_components
    for k in range(n_components):
        heights = [w[k] if k < len(w) else 0.0 for w in weights]
        ax.bar(
            np.arange(n_vectors) + k * width,
            heights,
            width=width,
            color=model_colors[k % len(model_colors)],
            label=f"{k + 1}",
        )
    ax.set_xticks(np.arange(n_vectors) + 0.4 - width / 2)
    ax.set_xticklabels(labels)
    ax.set_ylabel("exp E[log weight]")
    ax.legend(title="Component")
