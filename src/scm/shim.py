"""Engine invocation with error isolation and console redirection."""

from __future__ import annotations

from typing import TextIO

from .container import GroupedMatrixSet
from .engine import learn_scm
from .errors import EngineError
from .options import Options
from .redirect import ConsoleRedirect
from .results import Engine, ResultSet


def invoke(
    data: GroupedMatrixSet,
    options: Options,
    engine: Engine | None = None,
    console: TextIO | None = None,
) -> ResultSet:
    """Run the engine on marshalled data.

    While the engine runs, whatever it prints goes to `console` (the current `sys.stdout` by default). The redirection is restored before this function returns or raises.

    Args:
        data: Grouped observations.
        options: Engine configuration.
        engine: Engine to call; `learn_scm` when omitted.
        console: Stream receiving the engine's output.

    Raises:
        EngineError: If the engine raises, or returns a result inconsistent with `data`. The engine's exception is chained.
    """
    if engine is None:
        engine = learn_scm

    with ConsoleRedirect(console):
        try:
            result = engine(
                data.groups,
                trunc=options.trunc,
                prior=options.prior,
                verbose=options.verbose,
                sparse=options.sparse,
                threads=options.threads,
                seed=options.seed,
            )
        except Exception as e:
            raise EngineError(str(e)) from e

    if not isinstance(result, ResultSet):
        raise EngineError(f"Engine returned {type(result).__name__}, not a ResultSet.")
    try:
        result.check_consistency(data)
    except ValueError as e:
        raise EngineError(f"Engine returned an inconsistent result: {e}") from e
    return result
