"""Options accepted by `cluster`, parsed from a loosely-typed key/value bag into a validated record."""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np

from .container import Host, SequenceHost
from .errors import ConfigurationError

# Defaults
DEFAULT_TRUNC = 100
DEFAULT_PRIOR = 1.0
DEFAULT_VERBOSE = False
DEFAULT_SPARSE = False
DEFAULT_THREADS = 0  # engine chooses
DEFAULT_SEED = 0


@dataclass(frozen=True)
class Options:
    """Validated engine configuration."""

    trunc: int = DEFAULT_TRUNC
    """Truncation level, an upper bound on the number of mixture components."""

    prior: float = DEFAULT_PRIOR
    """Strength of the Dirichlet and Normal-Wishart priors."""

    verbose: bool = DEFAULT_VERBOSE
    """Print engine progress."""

    sparse: bool = DEFAULT_SPARSE
    """Use the faster, approximate sparse variational updates."""

    threads: int = DEFAULT_THREADS
    """Worker count for the engine's parallel routines; 0 lets the engine choose."""

    seed: int = DEFAULT_SEED
    """Seed of the engine's random initialisation."""

    def __post_init__(self):
        for key in ("trunc", "threads", "seed"):
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"Option '{key}' must be an integer, got {value!r}.")
        if isinstance(self.prior, bool) or not isinstance(self.prior, (int, float)):
            raise ConfigurationError(f"Option 'prior' must be a real number, got {self.prior!r}.")
        for key in ("verbose", "sparse"):
            if not isinstance(getattr(self, key), bool):
                raise ConfigurationError(
                    f"Option '{key}' must be a boolean, got {getattr(self, key)!r}."
                )

        if self.trunc < 1:
            raise ConfigurationError(f"Option 'trunc' must be at least 1, got {self.trunc}.")
        if not (math.isfinite(self.prior) and self.prior > 0):
            raise ConfigurationError(f"Option 'prior' must be positive, got {self.prior}.")
        if self.threads < 0:
            raise ConfigurationError(
                f"Option 'threads' must be non-negative, got {self.threads}."
            )
        if self.seed < 0:
            raise ConfigurationError(f"Option 'seed' must be non-negative, got {self.seed}.")


def _scalar(key: str, value: Any) -> Any:
    """Unwrap a Python, NumPy or single-element array scalar."""
    if value is None or isinstance(value, (str, bytes)):
        raise ConfigurationError(f"Option '{key}' must be a scalar, got {value!r}.")
    array = np.asarray(value)
    if array.size != 1 or array.dtype == np.object_:
        raise ConfigurationError(
            f"Option '{key}' must be a scalar, got an array of shape {array.shape}."
        )
    return array.reshape(()).item()


def _integer(key: str, value: Any) -> int:
    scalar = _scalar(key, value)
    if isinstance(scalar, bool):
        raise ConfigurationError(f"Option '{key}' must be an integer, got {scalar}.")
    if isinstance(scalar, int):
        return scalar
    if isinstance(scalar, float) and math.isfinite(scalar) and scalar.is_integer():
        return int(scalar)
    raise ConfigurationError(f"Option '{key}' must be an integer, got {scalar!r}.")


def _real(key: str, value: Any) -> float:
    scalar = _scalar(key, value)
    if isinstance(scalar, bool) or not isinstance(scalar, (int, float)):
        raise ConfigurationError(f"Option '{key}' must be a real number, got {scalar!r}.")
    return float(scalar)


def _flag(key: str, value: Any) -> bool:
    scalar = _scalar(key, value)
    if isinstance(scalar, bool):
        return scalar
    # MATLAB logicals arrive as 0/1 numbers
    if isinstance(scalar, (int, float)) and scalar in (0, 1):
        return bool(scalar)
    raise ConfigurationError(f"Option '{key}' must be a boolean, got {scalar!r}.")


_PARSERS: dict[str, Callable[[str, Any], Any]] = {
    "trunc": _integer,
    "prior": _real,
    "verbose": _flag,
    "sparse": _flag,
    "threads": _integer,
    "seed": _integer,
}


def parse_options(options: Any = None, host: Host | None = None) -> Options:
    """Build `Options` from a key/value bag overlaid on the defaults.

    Args:
        options: A mapping, an object with attributes, a host struct, or `None` for all defaults.
        host: Host used to read `options`.

    Raises:
        ConfigurationError: If `options` cannot be read, or a recognised key has a malformed or out-of-domain value. Unrecognised keys are ignored.
    """
    if options is None:
        return Options()
    if host is None:
        host = SequenceHost()

    try:
        values = host.fields(options)
    except TypeError as e:
        raise ConfigurationError(f"Options must be a struct or mapping: {e}") from e

    parsed = {key: parse(key, values[key]) for key, parse in _PARSERS.items() if key in values}
    return Options(**parsed)
