"""Error taxonomy for the pstrata package.

Every error raised by the package derives from :class:`PStrataError`
so callers can catch the whole family with a single ``except`` clause.
The concrete kinds map onto the stage that detects the problem:

=============================  ==========================================
Error                          Raised when
=============================  ==========================================
``ConfigurationError``         Strata, treatment, or design declarations
                               are inconsistent with each other or with
                               the observed data.
``UnsupportedCombinationError``  A (family, link) pair is not registered,
                               or a prior's domain does not match the
                               parameter it targets.
``SynthesisError``             The group table and the generated program
                               disagree.  Always a defect.
``InferenceEngineError``       The external sampler failed or returned an
                               incomplete draws structure.
``DimensionMismatchError``     Raw draws do not line up with the group
                               table or the requested labels.
=============================  ==========================================

None of these are retried internally: a misconfigured model cannot
succeed on a second attempt.
"""

from __future__ import annotations


class PStrataError(Exception):
    """Base class for all pstrata errors."""


class ConfigurationError(PStrataError, ValueError):
    """Inconsistent strata, treatment, or design declarations."""


class UnsupportedCombinationError(PStrataError, ValueError):
    """Unregistered family/link pair or mismatched prior domain."""


class SynthesisError(PStrataError, RuntimeError):
    """Internal mismatch between the group table and the program."""


class InferenceEngineError(PStrataError, RuntimeError):
    """The inference engine failed or returned malformed draws.

    The engine's own exception, when there is one, is attached as
    ``__cause__`` so its native diagnostics are preserved untouched.
    """


class DimensionMismatchError(PStrataError, ValueError):
    """Posterior draws disagree with the group table or labels."""
