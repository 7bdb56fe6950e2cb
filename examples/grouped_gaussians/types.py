"""Common definitions for the grouped Gaussians example."""

from typing import TypedDict


class GroupedGaussiansResults(TypedDict):
    """Complete results for the grouped Gaussians analysis."""

    observations: list[list[float]]  # All observations, stacked over groups and items
    true_clusters: list[int]  # Generating cluster of each observation
    fitted_clusters: list[int]  # Most probable fitted cluster of each observation
    true_classes: list[int]  # Generating class of each item
    fitted_classes: list[int]  # Most probable fitted class of each item
    true_means: list[list[float]]
    true_covariances: list[list[list[float]]]
    means: list[list[float]]  # Fitted cluster means
    covariances: list[list[list[float]]]  # Fitted cluster covariances
    weights: list[list[float]]  # Group class weights
    classes: list[list[float]]  # Class cluster weights
    cluster_ari: float  # Adjusted Rand index of observation clusters
    class_ari: float  # Adjusted Rand index of item classes
