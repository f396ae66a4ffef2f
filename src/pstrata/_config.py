"""Inference-engine configuration for the pstrata package.

Controls which registered inference engine :meth:`PStrataModel.fit`
uses when the caller does not pass one explicitly.

Resolution order (first match wins):
    1. Programmatic override via :func:`set_engine`.
    2. The ``PSTRATA_ENGINE`` environment variable.
    3. The default, ``"cmdstanpy"``.

Examples:
    Select the engine from the shell::

        export PSTRATA_ENGINE=cmdstanpy

    Select it programmatically::

        import pstrata
        pstrata.set_engine("cmdstanpy")

    Restore the default resolution order::

        pstrata.set_engine("auto")
"""

from __future__ import annotations

import os

_DEFAULT_ENGINE = "cmdstanpy"

# Sentinel indicating "no programmatic override has been set".
_engine_override: str | None = None


def _known_engines() -> set[str]:
    from .engine import available_engines

    return set(available_engines())


def get_engine() -> str:
    """Return the name of the active inference engine.

    Resolution order:
        1. Value set by :func:`set_engine` (unless ``"auto"``).
        2. ``PSTRATA_ENGINE`` environment variable, when it names a
           registered engine.
        3. ``"cmdstanpy"``.

    Returns:
        A registered engine name.
    """
    # 1. Programmatic override
    if _engine_override is not None and _engine_override != "auto":
        return _engine_override

    # 2. Environment variable
    env = os.environ.get("PSTRATA_ENGINE", "").strip().lower()
    if env and env in _known_engines():
        return env

    # 3. Default
    return _DEFAULT_ENGINE


def set_engine(name: str) -> None:
    """Override the engine selection.

    Args:
        name: A registered engine name or ``"auto"``
            (case-insensitive).  ``"auto"`` restores the default
            resolution order.

    Raises:
        ValueError: If *name* is not a registered engine.
    """
    global _engine_override
    normalised = name.strip().lower()
    valid = _known_engines() | {"auto"}
    if normalised not in valid:
        raise ValueError(f"Unknown engine '{name}'. Choose from: {sorted(valid)}")
    _engine_override = normalised
