"""
Observation windows for spatial point patterns.

A window is a planar region of finite area (rectangle or arbitrary polygon)
wrapping a shapely geometry. Besides membership and area queries it provides
the geometric quantities needed by edge-corrected estimators:
- distance of points to the window boundary
- area of the window eroded by a distance (Hanisch correction)
- set covariance, the area of W intersected with a translated copy of itself
  (translation correction)
- proportion of a circle inside the window (Ripley's isotropic correction)
"""

from __future__ import annotations

from functools import cached_property
from typing import Sequence, Tuple

import numpy as np
import shapely
from scipy.interpolate import RegularGridInterpolator
from shapely import affinity
from shapely.geometry import Polygon, box

from pyshar.constants import (
    EPSILON,
    EROSION_SAMPLES,
    MIN_INSIDE_FRACTION,
    RMAX_EXPECTED_POINTS,
    RMAX_SHORTSIDE_FRACTION,
    SET_COVARIANCE_SAMPLES,
)
from pyshar.exceptions import WindowMismatchError


class Window:
    """Planar observation window.

    Parameters
    ----------
    geometry : shapely.geometry.Polygon or MultiPolygon
        Region of the window. Must have a positive area.

    Raises
    ------
    TypeError
        If geometry is not a polygonal shapely geometry
    WindowMismatchError
        If the geometry has no positive area

    Examples
    --------
    >>> window = Window.rectangle(0, 1, 0, 1)
    >>> window.area
    1.0
    >>> window.contains(np.array([0.5, 1.0, 1.5]), np.array([0.5, 1.0, 0.5]))
    array([ True,  True, False])
    """

    def __init__(self, geometry):
        if not isinstance(geometry, shapely.Geometry) or geometry.geom_type not in (
            "Polygon",
            "MultiPolygon",
        ):
            raise TypeError(
                f"Window geometry must be a shapely Polygon or MultiPolygon, "
                f"got {type(geometry).__name__}"
            )
        if not geometry.is_valid:
            geometry = geometry.buffer(0)
        if not np.isfinite(geometry.area) or geometry.area <= 0:
            raise WindowMismatchError(
                f"Window must have a positive finite area, got {geometry.area}"
            )
        self.geometry = geometry

    @classmethod
    def rectangle(cls, xmin: float, xmax: float, ymin: float, ymax: float) -> Window:
        """Create rectangular window from its x and y ranges."""
        if xmax <= xmin or ymax <= ymin:
            raise WindowMismatchError(
                f"Invalid rectangle: x range ({xmin}, {xmax}), y range ({ymin}, {ymax})"
            )
        return cls(box(xmin, ymin, xmax, ymax))

    @classmethod
    def from_polygon(cls, vertices: Sequence[Tuple[float, float]]) -> Window:
        """Create polygonal window from a sequence of (x, y) vertices."""
        vertices = np.asarray(vertices, dtype=float)
        if vertices.ndim != 2 or vertices.shape[1] != 2 or len(vertices) < 3:
            raise ValueError("Polygon needs at least 3 vertices given as (x, y) pairs")
        return cls(Polygon(vertices))

    def __repr__(self) -> str:
        kind = "rectangle" if self.is_rectangle else "polygon"
        xmin, ymin, xmax, ymax = self.bounds
        return f"Window({kind}, x=[{xmin:g}, {xmax:g}], y=[{ymin:g}, {ymax:g}], area={self.area:g})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Window):
            return NotImplemented
        return self is other or self.geometry.equals(other.geometry)

    def __hash__(self) -> int:
        return hash((self.bounds, round(self.area, 12)))

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------

    @cached_property
    def area(self) -> float:
        return float(self.geometry.area)

    @cached_property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(xmin, ymin, xmax, ymax) of the bounding rectangle."""
        return tuple(float(b) for b in self.geometry.bounds)

    @property
    def width(self) -> float:
        return self.bounds[2] - self.bounds[0]

    @property
    def height(self) -> float:
        return self.bounds[3] - self.bounds[1]

    @property
    def shortside(self) -> float:
        """Length of the shorter side of the bounding rectangle."""
        return min(self.width, self.height)

    @cached_property
    def is_rectangle(self) -> bool:
        bbox_area = self.width * self.height
        return abs(bbox_area - self.area) <= EPSILON * max(bbox_area, 1.0)

    def rmax(self, intensity: float) -> float:
        """Recommended maximum radius for K-type summary functions.

        Ripley's rule (a quarter of the shorter side), further limited to
        the radius of a disc expected to hold 1000 points.
        """
        ripley = RMAX_SHORTSIDE_FRACTION * self.shortside
        if intensity is None or intensity <= 0 or not np.isfinite(intensity):
            return ripley
        rlarge = np.sqrt(RMAX_EXPECTED_POINTS / (np.pi * intensity))
        return float(min(rlarge, ripley))

    # ------------------------------------------------------------------
    # Membership and sampling
    # ------------------------------------------------------------------

    def contains(self, x, y) -> np.ndarray:
        """Boundary-inclusive membership test, vectorised over points."""
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        if self.is_rectangle:
            xmin, ymin, xmax, ymax = self.bounds
            return (x >= xmin) & (x <= xmax) & (y >= ymin) & (y <= ymax)
        return shapely.intersects_xy(self.geometry, x, y)

    def random_points(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Draw n points uniformly distributed inside the window.

        Parameters
        ----------
        n : int
            Number of points
        rng : np.random.Generator
            Random stream to draw from

        Returns
        -------
        np.ndarray
            Coordinates [n, 2]
        """
        if n < 0:
            raise WindowMismatchError(f"Number of points must be non-negative, got {n}")
        xmin, ymin, xmax, ymax = self.bounds
        if n == 0:
            return np.empty((0, 2))
        if self.is_rectangle:
            return np.column_stack(
                [rng.uniform(xmin, xmax, size=n), rng.uniform(ymin, ymax, size=n)]
            )

        # Rejection sampling from the bounding rectangle
        acceptance = self.area / (self.width * self.height)
        accepted = []
        n_accepted = 0
        while n_accepted < n:
            n_draw = int(np.ceil((n - n_accepted) / acceptance * 1.2)) + 1
            candidates = np.column_stack(
                [rng.uniform(xmin, xmax, size=n_draw), rng.uniform(ymin, ymax, size=n_draw)]
            )
            inside = candidates[self.contains(candidates[:, 0], candidates[:, 1])]
            accepted.append(inside)
            n_accepted += len(inside)
        return np.concatenate(accepted)[:n]

    # ------------------------------------------------------------------
    # Edge correction geometry
    # ------------------------------------------------------------------

    def boundary_distance(self, x, y) -> np.ndarray:
        """Distance from points inside the window to its boundary."""
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        if self.is_rectangle:
            xmin, ymin, xmax, ymax = self.bounds
            return np.minimum.reduce([x - xmin, xmax - x, y - ymin, ymax - y])
        return shapely.distance(self.geometry.boundary, shapely.points(x, y))

    @cached_property
    def _erosion_table(self) -> Tuple[np.ndarray, np.ndarray]:
        distances = np.linspace(0.0, self.shortside / 2.0, EROSION_SAMPLES)
        areas = np.array([self.geometry.buffer(-d).area for d in distances])
        return distances, areas

    def eroded_area(self, d) -> np.ndarray:
        """Area of the window eroded by distance d (|W ⊖ b(0, d)|)."""
        d = np.asarray(d, dtype=float)
        if self.is_rectangle:
            return np.maximum(self.width - 2 * d, 0.0) * np.maximum(self.height - 2 * d, 0.0)
        distances, areas = self._erosion_table
        return np.interp(d, distances, areas, right=0.0)

    @cached_property
    def _set_covariance_interpolator(self) -> RegularGridInterpolator:
        xoffs = np.linspace(-self.width, self.width, SET_COVARIANCE_SAMPLES)
        yoffs = np.linspace(-self.height, self.height, SET_COVARIANCE_SAMPLES)
        table = np.zeros((xoffs.size, yoffs.size))
        for i, xoff in enumerate(xoffs):
            shifted = [affinity.translate(self.geometry, xoff=xoff, yoff=yoff) for yoff in yoffs]
            table[i] = shapely.area(shapely.intersection(self.geometry, shifted))
        return RegularGridInterpolator(
            (xoffs, yoffs), table, bounds_error=False, fill_value=0.0
        )

    def set_covariance(self, dx, dy) -> np.ndarray:
        """Area of the window intersected with its copy shifted by (dx, dy)."""
        dx = np.asarray(dx, dtype=float)
        dy = np.asarray(dy, dtype=float)
        if self.is_rectangle:
            return np.maximum(self.width - np.abs(dx), 0.0) * np.maximum(
                self.height - np.abs(dy), 0.0
            )
        if dx.size == 0:
            return np.zeros(dx.shape)
        points = np.stack([dx.ravel(), dy.ravel()], axis=-1)
        return self._set_covariance_interpolator(points).reshape(dx.shape)

    def isotropic_weights(self, x, y, d) -> np.ndarray:
        """Ripley's isotropic edge correction weights.

        The weight is the inverse proportion of the circle of radius ``d``
        centred at ``(x, y)`` that lies inside the window.

        Parameters
        ----------
        x, y : array-like
            Circle centres
        d : array-like
            Circle radii (same shape as x and y)

        Returns
        -------
        np.ndarray
            Weights >= 1
        """
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        d = np.asarray(d, dtype=float)
        positive = d > 0
        inside = np.ones_like(d)

        if self.is_rectangle:
            xmin, ymin, xmax, ymax = self.bounds
            edges = np.stack([x - xmin, xmax - x, y - ymin, ymax - y])
            safe_d = np.where(positive, d, 1.0)
            alpha = np.arccos(np.clip(edges / safe_d, 0.0, 1.0))
            outside = 2.0 * alpha.sum(axis=0)
            # Arcs outside two adjacent edges overlap beyond the corner
            for a, b in ((0, 2), (0, 3), (1, 2), (1, 3)):
                outside -= np.maximum(alpha[a] + alpha[b] - np.pi / 2.0, 0.0)
            inside = np.where(positive, 1.0 - outside / (2.0 * np.pi), 1.0)
        elif np.any(positive):
            centres = shapely.points(x[positive], y[positive])
            rings = shapely.get_exterior_ring(shapely.buffer(centres, d[positive], quad_segs=32))
            arc = shapely.length(shapely.intersection(rings, self.geometry))
            inside[positive] = arc / shapely.length(rings)

        return 1.0 / np.clip(inside, MIN_INSIDE_FRACTION, 1.0)

    def expand(self, distance: float) -> Window:
        """Window dilated by distance, used to simulate clustered processes."""
        return Window(self.geometry.buffer(distance, join_style="mitre"))
