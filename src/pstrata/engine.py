"""Inference-engine abstraction.

An engine takes a program and its data payload and returns posterior
draws keyed by variable name.  Model code never talks to a sampler
directly; it goes through :func:`run_engine`, which resolves the
engine, checks that the requested variables came back, and wraps any
failure in :class:`~pstrata.exceptions.InferenceEngineError`.

Resolution follows the policy set by :mod:`._config`:

1. An engine passed explicitly (name or instance).
2. Programmatic override via :func:`~pstrata.set_engine`.
3. ``PSTRATA_ENGINE`` environment variable.
4. ``"cmdstanpy"``.

Draw layout
~~~~~~~~~~~
Each returned array has the iteration axis first, then the variable's
declared dimensions, the layout of ``CmdStanMCMC.stan_variable``:
``mean_effect`` is ``(iterations, G)``, ``mean_surv_prob`` is
``(iterations, G, T)``.  Chains are concatenated along the first axis.

Adding an engine requires a class implementing
:class:`InferenceEngine` and a call to :func:`register_engine`.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import numpy as np

from ._config import get_engine
from .exceptions import InferenceEngineError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------ #
# InferenceEngine protocol
# ------------------------------------------------------------------ #


@runtime_checkable
class InferenceEngine(Protocol):
    """Interface every inference engine must implement."""

    @property
    def name(self) -> str: ...

    def sample(
        self,
        program: str,
        data: Mapping[str, Any],
        **kwargs: Any,
    ) -> Mapping[str, np.ndarray]:
        """Draw from the posterior of *program* given *data*.

        Args:
            program: Program text.
            data: Data payload keyed by data-block name.
            **kwargs: Sampler options (chains, iterations, seed, ...).

        Returns:
            Mapping of variable name to draws, iteration axis first.
        """
        ...


# ------------------------------------------------------------------ #
# CmdStan
# ------------------------------------------------------------------ #


def _cache_dir() -> Path:
    root = os.environ.get("PSTRATA_CACHE_DIR")
    path = Path(root) if root else Path(tempfile.gettempdir()) / "pstrata_models"
    path.mkdir(parents=True, exist_ok=True)
    return path


def compile_cmdstan_model(program: str) -> Any:
    """Compile *program*, reusing an executable built for the same text.

    The program is written to ``<cache>/model_<hash>.stan``; CmdStan
    skips recompilation when the executable is newer than the source.
    The cache directory is ``PSTRATA_CACHE_DIR`` if set, otherwise a
    ``pstrata_models`` folder under the system temp directory.
    """
    import cmdstanpy

    digest = hashlib.sha256(program.encode("utf-8")).hexdigest()[:16]
    stan_file = _cache_dir() / f"model_{digest}.stan"
    if not stan_file.exists() or stan_file.read_text(encoding="utf-8") != program:
        stan_file.write_text(program, encoding="utf-8")
    logger.debug("Compiling Stan program %s.", stan_file)
    return cmdstanpy.CmdStanModel(stan_file=str(stan_file))


class CmdStanEngine:
    """NUTS sampling through CmdStan via ``cmdstanpy``.

    Args:
        chains: Number of chains.
        iter_warmup: Warm-up iterations per chain.
        iter_sampling: Retained iterations per chain.
        seed: Random seed; ``None`` lets CmdStan choose.
        refresh: Progress-report interval; ``0`` silences CmdStan.
    """

    def __init__(
        self,
        chains: int = 4,
        iter_warmup: int = 1000,
        iter_sampling: int = 1000,
        seed: int | None = None,
        refresh: int = 0,
    ) -> None:
        self.chains = chains
        self.iter_warmup = iter_warmup
        self.iter_sampling = iter_sampling
        self.seed = seed
        self.refresh = refresh

    @property
    def name(self) -> str:
        return "cmdstanpy"

    def sample(
        self,
        program: str,
        data: Mapping[str, Any],
        **kwargs: Any,
    ) -> dict[str, np.ndarray]:
        model = compile_cmdstan_model(program)
        sample_kwargs: dict[str, Any] = {
            "data": dict(data),
            "chains": int(kwargs.pop("chains", self.chains)),
            "iter_warmup": int(kwargs.pop("iter_warmup", self.iter_warmup)),
            "iter_sampling": int(kwargs.pop("iter_sampling", self.iter_sampling)),
            "refresh": int(kwargs.pop("refresh", self.refresh)),
            # CmdStan prints its own progress bars unless told otherwise.
            "show_progress": bool(kwargs.pop("show_progress", False)),
        }
        seed = kwargs.pop("seed", self.seed)
        if seed is not None:
            sample_kwargs["seed"] = int(seed)
        sample_kwargs.update(kwargs)

        fit = model.sample(**sample_kwargs)
        return {
            name: np.asarray(values, dtype=float)
            for name, values in fit.stan_variables().items()
        }


# ------------------------------------------------------------------ #
# Registry
# ------------------------------------------------------------------ #

_ENGINES: dict[str, type] = {"cmdstanpy": CmdStanEngine}


def register_engine(name: str, factory: type) -> None:
    """Register *factory* (a zero-argument callable) under *name*.

    Raises:
        ValueError: If *name* is empty or ``"auto"``.
    """
    key = name.strip().lower()
    if not key or key == "auto":
        raise ValueError(f"Invalid engine name {name!r}.")
    _ENGINES[key] = factory
    logger.debug("Registered inference engine %r.", key)


def available_engines() -> tuple[str, ...]:
    """Names of the registered engines."""
    return tuple(_ENGINES)


def resolve_engine(engine: str | InferenceEngine | None = None) -> InferenceEngine:
    """Return an engine instance for *engine*.

    Args:
        engine: An engine instance (returned as is), a registered name,
            or ``None`` for the configured default.

    Raises:
        ValueError: If *engine* names no registered engine.
        TypeError: If *engine* does not implement
            :class:`InferenceEngine`.
    """
    if engine is None:
        engine = get_engine()
    if isinstance(engine, str):
        factory = _ENGINES.get(engine.strip().lower())
        if factory is None:
            raise ValueError(
                f"Unknown engine '{engine}'. Choose from: {sorted(_ENGINES)}"
            )
        engine = factory()
    if not isinstance(engine, InferenceEngine):
        raise TypeError(
            f"{type(engine).__name__} does not implement the InferenceEngine "
            "protocol (needs 'name' and 'sample')."
        )
    return engine


def run_engine(
    engine: str | InferenceEngine | None,
    program: str,
    data: Mapping[str, Any],
    required: Sequence[str] = (),
    **kwargs: Any,
) -> dict[str, np.ndarray]:
    """Sample with *engine* and return the draws.

    Args:
        engine: See :func:`resolve_engine`.
        program: Program text.
        data: Data payload.
        required: Variables that must be present in the draws.
        **kwargs: Forwarded to :meth:`InferenceEngine.sample`.

    Returns:
        Mapping of variable name to float arrays, iteration axis first.

    Raises:
        InferenceEngineError: If sampling fails, a required variable is
            missing, or a required variable has no draws.  The
            engine's own exception is chained as ``__cause__``.
    """
    backend = resolve_engine(engine)
    logger.debug("Sampling with engine %r.", backend.name)
    try:
        raw = backend.sample(program, data, **kwargs)
    except Exception as exc:
        raise InferenceEngineError(
            f"Inference engine {backend.name!r} failed: {exc}"
        ) from exc

    draws = {name: np.asarray(values, dtype=float) for name, values in raw.items()}
    missing = [name for name in required if name not in draws]
    if missing:
        raise InferenceEngineError(
            f"Engine {backend.name!r} returned no draws for {missing}; "
            f"got {sorted(draws)}."
        )
    empty = [name for name in required if draws[name].ndim == 0 or draws[name].shape[0] == 0]
    if empty:
        raise InferenceEngineError(f"Engine {backend.name!r} returned zero draws for {empty}.")
    return draws
