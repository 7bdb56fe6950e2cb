from .api import cluster
from .container import (
    CellArrayHost,
    GroupedMatrixSet,
    Host,
    SequenceHost,
    marshal_input,
    select_host,
)
from .distributions import Dirichlet, GaussWish, GDirichlet
from .engine import learn_scm
from .errors import ConfigurationError, EngineError, InputShapeError, SCMError
from .marshal import ClusterResult, expected_weights, marshal_output
from .options import Options, parse_options
from .redirect import ConsoleRedirect, is_redirected
from .results import ClusterDistribution, Engine, ResultSet, WeightDistribution
from .shim import invoke

__all__ = [
    "CellArrayHost",
    "ClusterDistribution",
    "ClusterResult",
    "ConfigurationError",
    "ConsoleRedirect",
    "Dirichlet",
    "Engine",
    "EngineError",
    "GDirichlet",
    "GaussWish",
    "GroupedMatrixSet",
    "Host",
    "InputShapeError",
    "Options",
    "ResultSet",
    "SCMError",
    "SequenceHost",
    "WeightDistribution",
    "cluster",
    "expected_weights",
    "invoke",
    "is_redirected",
    "learn_scm",
    "marshal_input",
    "marshal_output",
    "parse_options",
    "select_host",
]
