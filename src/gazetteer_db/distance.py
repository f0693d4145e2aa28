"""
Distance metrics for coordinate matching.

Every metric takes ``(lat1, lng1, lat2, lng2)`` in degrees and returns a
distance in degrees, so the same thresholds apply whichever metric is used.
Metrics are written with numpy ufuncs and broadcast over arrays, which lets
the merge engine compute a full pairwise matrix in one call.
"""

from typing import Callable, Union

import numpy as np

ArrayLike = Union[float, np.ndarray]
DistanceMetric = Callable[[ArrayLike, ArrayLike, ArrayLike, ArrayLike], ArrayLike]


def planar_distance(lat1: ArrayLike, lng1: ArrayLike, lat2: ArrayLike, lng2: ArrayLike) -> ArrayLike:
    """Manhattan distance in degrees: |dlat| + |dlng|. Default for all matching."""
    return np.abs(np.subtract(lat1, lat2)) + np.abs(np.subtract(lng1, lng2))


def haversine_distance(lat1: ArrayLike, lng1: ArrayLike, lat2: ArrayLike, lng2: ArrayLike) -> ArrayLike:
    """Great-circle angle between two points, in degrees of arc."""
    phi1, phi2 = np.radians(lat1), np.radians(lat2)
    dphi = phi2 - phi1
    dlmb = np.radians(np.subtract(lng2, lng1))
    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlmb / 2) ** 2
    return np.degrees(2 * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0))))


METRICS: dict[str, DistanceMetric] = {
    "planar": planar_distance,
    "haversine": haversine_distance,
}


def get_metric(name: str) -> DistanceMetric:
    """Look up a metric by name ("planar" or "haversine")."""
    try:
        return METRICS[name]
    except KeyError:
        raise ValueError(f"Unknown distance metric '{name}'. Choose from: {', '.join(METRICS)}")


def max_pairwise_distance(lats: list[float], lngs: list[float], metric: DistanceMetric = planar_distance) -> float:
    """Largest distance between any two of the given points (0.0 for fewer than two)."""
    if len(lats) < 2:
        return 0.0
    lat = np.asarray(lats, dtype=float)
    lng = np.asarray(lngs, dtype=float)
    matrix = metric(lat[:, None], lng[:, None], lat[None, :], lng[None, :])
    return float(np.max(matrix))
