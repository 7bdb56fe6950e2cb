"""Host containers and the input marshaller.

A host is the environment that calls the adapter: it owns the nested container type holding the grouped data, and expects results back in the same kind of container. Each host is described by a `Host`, which exposes the few primitives the adapter needs:

- enumerate a container into its entries,
- convert an entry into a numeric matrix,
- read an options bag into a dictionary, and
- build lists, matrices and row vectors for the results.

Two hosts are provided:

- `SequenceHost`: nested Python lists or tuples of NumPy/JAX arrays.
- `CellArrayHost`: MATLAB cell arrays as loaded by `scipy.io.loadmat`, i.e. NumPy object arrays of shape `(1, n)`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, override

import numpy as np
from numpy.typing import NDArray

from .errors import InputShapeError

type Matrix = NDArray[np.float64]


def _as_float_matrix(value: Any) -> Matrix:
    """Deep copy a real 2-D array-like into a float64 matrix."""
    array = np.asarray(value)
    if np.iscomplexobj(array):
        raise TypeError("complex values are not supported")
    if array.dtype == np.bool_ or not (
        np.issubdtype(array.dtype, np.integer) or np.issubdtype(array.dtype, np.floating)
    ):
        raise TypeError(f"expected real numeric values, got dtype {array.dtype}")
    if array.ndim != 2:
        raise ValueError(f"expected a 2-D matrix, got shape {array.shape}")
    return np.array(array, dtype=np.float64, copy=True)


class Host(ABC):
    """Accessors and constructors for a host's nested containers."""

    @abstractmethod
    def enumerate(self, value: Any) -> list[Any]:
        """Return the ordered entries of a container.

        Raises:
            TypeError: If `value` is not a container of this host.
        """

    def to_matrix(self, value: Any) -> Matrix:
        """Copy an entry into a float64 matrix.

        Raises:
            TypeError: If `value` is not real and numeric.
            ValueError: If `value` does not have a row/column shape.
        """
        return _as_float_matrix(value)

    def fields(self, value: Any) -> dict[str, Any]:
        """Read an options bag into a dictionary."""
        if isinstance(value, Mapping):
            return {str(key): val for key, val in value.items()}
        if hasattr(value, "__dict__"):
            return dict(vars(value))
        raise TypeError(f"cannot read options from {type(value).__name__}")

    @abstractmethod
    def make_list(self, elements: Sequence[Any]) -> Any:
        """Build an ordered container of results."""

    def make_matrix(self, array: Any) -> Matrix:
        return np.array(array, dtype=np.float64, copy=True)

    @abstractmethod
    def make_vector(self, array: Any) -> Matrix:
        """Build a row vector."""


@dataclass(frozen=True)
class SequenceHost(Host):
    """Nested Python sequences holding array-likes."""

    @override
    def enumerate(self, value: Any) -> list[Any]:
        if isinstance(value, (str, bytes)) or value is None:
            raise TypeError(f"{type(value).__name__} is not a sequence")
        if isinstance(value, np.ndarray):
            if value.ndim == 0:
                raise TypeError("a scalar array is not a sequence")
            return list(value)
        if isinstance(value, Sequence):
            return list(value)
        raise TypeError(f"{type(value).__name__} is not a sequence")

    @override
    def make_list(self, elements: Sequence[Any]) -> list[Any]:
        return list(elements)

    @override
    def make_vector(self, array: Any) -> Matrix:
        return np.array(array, dtype=np.float64, copy=True).reshape(-1)


@dataclass(frozen=True)
class CellArrayHost(Host):
    """MATLAB cell arrays and structs in their `scipy.io.loadmat` form.

    Cells are object arrays and are enumerated in column-major order, as MATLAB does. Structs are structured arrays with a single element.
    """

    @override
    def enumerate(self, value: Any) -> list[Any]:
        if not isinstance(value, np.ndarray) or value.dtype != np.object_:
            raise TypeError(f"expected a cell array, got {type(value).__name__}")
        return list(value.ravel(order="F"))

    @override
    def fields(self, value: Any) -> dict[str, Any]:
        if isinstance(value, np.ndarray) and value.dtype.names is not None:
            if value.size != 1:
                raise TypeError(f"expected a scalar struct, got shape {value.shape}")
            record = value.ravel()[0]
            return {name: record[name] for name in value.dtype.names}
        return super().fields(value)

    @override
    def make_list(self, elements: Sequence[Any]) -> NDArray[np.object_]:
        cell = np.empty((1, len(elements)), dtype=np.object_)
        for idx, element in enumerate(elements):
            cell[0, idx] = element
        return cell

    @override
    def make_vector(self, array: Any) -> Matrix:
        return np.array(array, dtype=np.float64, copy=True).reshape(1, -1)


def select_host(value: Any) -> Host:
    """Pick the host whose container type `value` belongs to."""
    if isinstance(value, np.ndarray) and value.dtype == np.object_:
        return CellArrayHost()
    return SequenceHost()


@dataclass(frozen=True)
class GroupedMatrixSet:
    """Grouped observations: J groups, each of $I_j$ items, each an $N_{ij} \\times D$ matrix."""

    groups: tuple[tuple[Matrix, ...], ...]

    @property
    def n_groups(self) -> int:
        return len(self.groups)

    @property
    def n_items(self) -> tuple[int, ...]:
        """Number of items in each group."""
        return tuple(len(items) for items in self.groups)

    @property
    def dim(self) -> int:
        """Column count shared by every matrix."""
        return self.groups[0][0].shape[1]

    @property
    def n_observations(self) -> int:
        return sum(x.shape[0] for items in self.groups for x in items)


def marshal_input(x: Any, host: Host | None = None) -> GroupedMatrixSet:
    """Copy a host's nested grouped matrices into a `GroupedMatrixSet`.

    Args:
        x: Container of groups, each a container of $N_{ij} \\times D$ matrices.
        host: Host of `x`; chosen with `select_host` when omitted.

    Raises:
        InputShapeError: If `x` is missing, empty, not nested as expected, holds non-numeric, empty or non-finite matrices, or its matrices disagree on $D$.
    """
    if x is None:
        raise InputShapeError("Need at least some input data, X.")
    if host is None:
        host = select_host(x)

    try:
        entries = host.enumerate(x)
    except (TypeError, ValueError) as e:
        raise InputShapeError(f"X must be a container of groups: {e}") from e
    if not entries:
        raise InputShapeError("X contains no groups.")

    dim: int | None = None
    groups: list[tuple[Matrix, ...]] = []

    for j, entry in enumerate(entries, start=1):
        try:
            items = host.enumerate(entry)
        except (TypeError, ValueError) as e:
            raise InputShapeError(f"X{{{j}}} must be a container of matrices: {e}") from e
        if not items:
            raise InputShapeError(f"X{{{j}}} contains no items.")

        matrices: list[Matrix] = []
        for i, item in enumerate(items, start=1):
            where = f"X{{{j}}}{{{i}}}"
            try:
                matrix = host.to_matrix(item)
            except (TypeError, ValueError) as e:
                raise InputShapeError(f"{where} is not a numeric matrix: {e}") from e

            n_rows, n_cols = matrix.shape
            if n_rows == 0 or n_cols == 0:
                raise InputShapeError(f"{where} is empty, with shape {matrix.shape}.")
            if not np.all(np.isfinite(matrix)):
                raise InputShapeError(f"{where} contains non-finite values.")
            if dim is None:
                dim = n_cols
            elif n_cols != dim:
                raise InputShapeError(
                    f"{where} has {n_cols} columns, but previous matrices have {dim}."
                )
            matrices.append(matrix)

        groups.append(tuple(matrices))

    return GroupedMatrixSet(tuple(groups))
