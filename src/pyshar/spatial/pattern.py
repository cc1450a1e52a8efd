"""
Point pattern data structure.

A Pattern binds point coordinates (and optional per-point marks) to an
observation window. Patterns are immutable: coordinate and mark arrays are
read-only and every modification returns a new Pattern.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from pyshar.spatial.window import Window


@dataclass(frozen=True, eq=False)
class Pattern:
    """Spatial point pattern inside an observation window.

    Attributes
    ----------
    coords : np.ndarray
        Point coordinates [n_points, 2]
    window : Window
        Observation window, every point lies inside it (boundary inclusive)
    marks : np.ndarray, optional
        Per-point marks [n_points], numeric or categorical
    """

    coords: np.ndarray
    window: Window
    marks: Optional[np.ndarray] = None

    def __post_init__(self):
        """Validate pattern data."""
        if not isinstance(self.window, Window):
            raise TypeError(f"window must be a Window, got {type(self.window).__name__}")

        coords = np.array(self.coords, dtype=float)
        if coords.size == 0:
            coords = coords.reshape(0, 2)
        if coords.ndim != 2 or coords.shape[1] != 2:
            raise ValueError(f"coords must have shape (n_points, 2), got {coords.shape}")
        if not np.all(np.isfinite(coords)):
            raise ValueError("All coordinates must be finite")

        outside = ~self.window.contains(coords[:, 0], coords[:, 1])
        if np.any(outside):
            raise ValueError(
                f"{int(outside.sum())} point(s) lie outside the observation window"
            )

        coords.setflags(write=False)
        object.__setattr__(self, "coords", coords)

        if self.marks is not None:
            marks = np.array(self.marks)
            if marks.shape != (len(coords),):
                raise ValueError(
                    f"marks length ({marks.size}) != number of points ({len(coords)})"
                )
            marks.setflags(write=False)
            object.__setattr__(self, "marks", marks)

    @classmethod
    def _from_trusted(
        cls, coords: np.ndarray, window: Window, marks: Optional[np.ndarray]
    ) -> Pattern:
        # Arrays are already validated and read-only
        pattern = object.__new__(cls)
        object.__setattr__(pattern, "coords", coords)
        object.__setattr__(pattern, "window", window)
        object.__setattr__(pattern, "marks", marks)
        return pattern

    def __len__(self) -> int:
        return len(self.coords)

    def __repr__(self) -> str:
        marked = ", marked" if self.is_marked else ""
        return f"Pattern(n_points={self.n_points}{marked}, {self.window!r})"

    @property
    def n_points(self) -> int:
        return len(self.coords)

    @property
    def x(self) -> np.ndarray:
        return self.coords[:, 0]

    @property
    def y(self) -> np.ndarray:
        return self.coords[:, 1]

    @property
    def is_marked(self) -> bool:
        return self.marks is not None

    @property
    def has_numeric_marks(self) -> bool:
        return self.marks is not None and np.issubdtype(self.marks.dtype, np.number)

    @cached_property
    def intensity(self) -> float:
        """Number of points per unit area."""
        return self.n_points / self.window.area

    def with_point(self, index: int, xy: Sequence[float]) -> Pattern:
        """Return a copy with point ``index`` moved to ``xy``."""
        x, y = float(xy[0]), float(xy[1])
        if not self.window.contains(x, y):
            raise ValueError(f"Point ({x}, {y}) lies outside the observation window")
        coords = self.coords.copy()
        coords[index] = (x, y)
        coords.setflags(write=False)
        return Pattern._from_trusted(coords, self.window, self.marks)

    def with_coords(self, coords: np.ndarray) -> Pattern:
        """Return a pattern with new coordinates, dropping marks if counts differ."""
        coords = np.asarray(coords, dtype=float)
        marks = self.marks if self.marks is not None and len(self.marks) == len(coords) else None
        return Pattern(coords, self.window, marks)

    def with_marks(self, marks) -> Pattern:
        """Return a copy with new marks at the same locations."""
        marks = np.array(marks)
        if marks.shape != (self.n_points,):
            raise ValueError(
                f"marks length ({marks.size}) != number of points ({self.n_points})"
            )
        marks.setflags(write=False)
        return Pattern._from_trusted(self.coords, self.window, marks)

    def without_marks(self) -> Pattern:
        return Pattern._from_trusted(self.coords, self.window, None)

    def to_frame(self) -> pd.DataFrame:
        """Convert to DataFrame with columns x, y (and marks)."""
        data = {"x": self.x, "y": self.y}
        if self.marks is not None:
            data["marks"] = self.marks
        return pd.DataFrame(data)

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        window: Window,
        x: str = "x",
        y: str = "y",
        marks: Optional[str] = None,
    ) -> Pattern:
        """Create pattern from DataFrame columns.

        Parameters
        ----------
        df : pd.DataFrame
            Table with one row per point
        window : Window
            Observation window
        x, y : str
            Coordinate column names
        marks : str, optional
            Mark column name

        Returns
        -------
        Pattern
        """
        for column in (x, y) + ((marks,) if marks is not None else ()):
            if column not in df.columns:
                raise ValueError(f"Column '{column}' not found. Available: {list(df.columns)}")
        coords = df[[x, y]].to_numpy(dtype=float)
        mark_values = df[marks].to_numpy() if marks is not None else None
        return cls(coords, window, mark_values)


def create_pattern(x, y, window: Window, marks=None) -> Pattern:
    """Create pattern from separate x and y coordinate arrays."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"x shape {x.shape} != y shape {y.shape}")
    return Pattern(np.column_stack([x.ravel(), y.ravel()]), window, marks)


def random_pattern(n_points: int, window: Window, rng: np.random.Generator) -> Pattern:
    """Binomial point pattern: n_points uniformly distributed in the window."""
    return Pattern(window.random_points(n_points, rng), window)
