"""Tests for the options parser."""

import dataclasses
import re
from argparse import Namespace
from typing import Any

import numpy as np
import pytest

from scm import CellArrayHost, ConfigurationError, Options, parse_options
from scm.options import (
    DEFAULT_PRIOR,
    DEFAULT_SEED,
    DEFAULT_SPARSE,
    DEFAULT_THREADS,
    DEFAULT_TRUNC,
    DEFAULT_VERBOSE,
)


class TestDefaults:
    """Test default filling."""

    def test_absent_options(self) -> None:
        """Test missing options give every default and are not an error."""
        options = parse_options(None)
        assert options == Options()
        assert options.trunc == DEFAULT_TRUNC
        assert options.prior == DEFAULT_PRIOR
        assert options.verbose is DEFAULT_VERBOSE
        assert options.sparse is DEFAULT_SPARSE
        assert options.threads == DEFAULT_THREADS
        assert options.seed == DEFAULT_SEED

    def test_empty_options(self) -> None:
        assert parse_options({}) == Options()

    @pytest.mark.parametrize(
        "given",
        [
            {"trunc": 7},
            {"prior": 0.5, "sparse": True},
            {"verbose": True, "threads": 4, "seed": 3},
        ],
    )
    def test_omitted_keys_take_defaults(self, given: dict[str, Any]) -> None:
        options = parse_options(given)
        for field in dataclasses.fields(Options):
            expected = given.get(field.name, field.default)
            assert getattr(options, field.name) == expected

    def test_immutable(self) -> None:
        options = parse_options({"trunc": 3})
        with pytest.raises(dataclasses.FrozenInstanceError):
            options.trunc = 4  # pyright: ignore[reportAttributeAccessIssue]


class TestValueShapes:
    """Test accepted value representations."""

    def test_matlab_scalars(self) -> None:
        """Test 1 x 1 arrays and integer-valued doubles, as MATLAB provides them."""
        options = parse_options(
            {
                "trunc": np.array([[5.0]]),
                "prior": np.array([[0.25]]),
                "verbose": np.array([[1]], dtype=np.uint8),
                "sparse": np.array([[False]]),
                "threads": 2.0,
            }
        )
        assert options.trunc == 5
        assert isinstance(options.trunc, int)
        assert options.prior == 0.25
        assert options.verbose is True
        assert options.sparse is False
        assert options.threads == 2

    def test_numpy_scalars(self) -> None:
        options = parse_options({"trunc": np.int64(3), "prior": np.float32(2.0)})
        assert options.trunc == 3
        assert options.prior == 2.0

    def test_integer_prior(self) -> None:
        assert parse_options({"prior": 2}).prior == 2.0

    def test_namespace(self) -> None:
        """Test objects with attributes are read like mappings."""
        options = parse_options(Namespace(trunc=4, verbose=True))
        assert options.trunc == 4
        assert options.verbose is True

    def test_struct(self) -> None:
        """Test a struct as loaded by `scipy.io.loadmat`."""
        struct = np.empty((1, 1), dtype=[("trunc", object), ("sparse", object)])
        struct["trunc"][0, 0] = np.array([[3.0]])
        struct["sparse"][0, 0] = np.array([[1]], dtype=np.uint8)

        options = parse_options(struct, CellArrayHost())
        assert options.trunc == 3
        assert options.sparse is True

    def test_unrecognised_keys_ignored(self) -> None:
        options = parse_options({"trunc": 2, "maxit": 10, "colour": "red"})
        assert options == Options(trunc=2)


class TestInvalidOptions:
    """Test malformed and out-of-domain values are rejected."""

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("trunc", 0),
            ("trunc", -3),
            ("trunc", 2.5),
            ("trunc", True),
            ("trunc", "5"),
            ("trunc", None),
            ("trunc", np.array([1, 2])),
            ("prior", -1.0),
            ("prior", 0.0),
            ("prior", float("nan")),
            ("prior", float("inf")),
            ("prior", True),
            ("prior", "weak"),
            ("verbose", 2),
            ("verbose", "yes"),
            ("sparse", np.array([[1, 0]])),
            ("threads", -1),
            ("threads", 1.5),
            ("seed", -1),
        ],
    )
    def test_rejected(self, key: str, value: Any) -> None:
        with pytest.raises(ConfigurationError, match=re.escape(f"Option '{key}'")):
            parse_options({key: value})

    def test_unreadable_options(self) -> None:
        with pytest.raises(ConfigurationError, match="Options must be a struct or mapping"):
            parse_options(5)

    def test_struct_array_rejected(self) -> None:
        """Test a struct array with several elements is not an options bag."""
        structs = np.empty((1, 2), dtype=[("trunc", object)])
        with pytest.raises(ConfigurationError):
            parse_options(structs, CellArrayHost())

    def test_direct_construction_validated(self) -> None:
        with pytest.raises(ConfigurationError):
            Options(trunc=0)

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("trunc", "3"),
            ("trunc", 3.0),
            ("threads", None),
            ("seed", True),
            ("prior", "1.0"),
            ("verbose", 1),
            ("sparse", "yes"),
        ],
    )
    def test_direct_construction_typed(self, key: str, value: Any) -> None:
        """Test unparsed values given to `Options` fail as configuration errors."""
        with pytest.raises(ConfigurationError, match=re.escape(f"Option '{key}'")):
            Options(**{key: value})

    def test_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_options({"prior": -1.0})
