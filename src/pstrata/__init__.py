"""pstrata: Bayesian principal stratification.

Declares principal strata over a treatment and an intermediate
outcome, enumerates which (stratum, treatment) cells share outcome
parameters under exclusion restrictions, synthesizes a Stan program
for the resulting mixture model, samples it through a pluggable
inference engine (CmdStan by default), and reshapes and summarizes the
posterior on the (stratum, treatment[, time]) grid.

Public API:
    .. autosummary::
        PStrataModel
        PStrataFit
        StructuralDesign
        StrataInfo
        GroupTable
        enumerate_groups
        encode_treatment
        Family
        Link
        FamilyLinkEntry
        resolve
        supported_links
        supported_families
        PriorSpec
        ModelPriors
        prior_flat
        prior_normal
        prior_t
        prior_cauchy
        prior_lasso
        prior_logistic
        prior_chisq
        prior_inv_chisq
        prior_exponential
        prior_gamma
        prior_inv_gamma
        prior_weibull
        synthesize
        SynthesizedModel
        InferenceEngine
        CmdStanEngine
        register_engine
        get_engine
        set_engine
        PosteriorOutcome
        reshape
        summarize
        summary_array
        print_strata_table
        print_family_table
        print_outcome_summary
"""

from ._config import get_engine, set_engine
from .design import StructuralDesign
from .display import print_family_table, print_outcome_summary, print_strata_table
from .engine import (
    CmdStanEngine,
    InferenceEngine,
    available_engines,
    register_engine,
    resolve_engine,
)
from .exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    InferenceEngineError,
    PStrataError,
    SynthesisError,
    UnsupportedCombinationError,
)
from .families import (
    Family,
    FamilyLinkEntry,
    Link,
    default_link,
    resolve,
    supported_families,
    supported_links,
)
from .model import PStrataFit, PStrataModel
from .outcome import PosteriorOutcome, reshape, summarize, summary_array
from .priors import (
    ModelPriors,
    PriorSpec,
    prior_cauchy,
    prior_chisq,
    prior_exponential,
    prior_flat,
    prior_gamma,
    prior_inv_chisq,
    prior_inv_gamma,
    prior_lasso,
    prior_logistic,
    prior_normal,
    prior_t,
    prior_weibull,
)
from .strata import WILDCARD, GroupTable, StrataInfo, encode_treatment, enumerate_groups
from .synthesis import SynthesizedModel, resolve_time_points, synthesize

__version__ = "0.1.0"

__all__ = [
    # Model
    "PStrataModel",
    "PStrataFit",
    "StructuralDesign",
    # Strata
    "WILDCARD",
    "StrataInfo",
    "GroupTable",
    "enumerate_groups",
    "encode_treatment",
    # Families
    "Family",
    "Link",
    "FamilyLinkEntry",
    "resolve",
    "supported_links",
    "supported_families",
    "default_link",
    # Priors
    "PriorSpec",
    "ModelPriors",
    "prior_flat",
    "prior_normal",
    "prior_t",
    "prior_cauchy",
    "prior_lasso",
    "prior_logistic",
    "prior_chisq",
    "prior_inv_chisq",
    "prior_exponential",
    "prior_gamma",
    "prior_inv_gamma",
    "prior_weibull",
    # Synthesis
    "synthesize",
    "resolve_time_points",
    "SynthesizedModel",
    # Engines
    "InferenceEngine",
    "CmdStanEngine",
    "register_engine",
    "available_engines",
    "resolve_engine",
    "get_engine",
    "set_engine",
    # Outcomes
    "PosteriorOutcome",
    "reshape",
    "summarize",
    "summary_array",
    # Display
    "print_strata_table",
    "print_family_table",
    "print_outcome_summary",
    # Errors
    "PStrataError",
    "ConfigurationError",
    "UnsupportedCombinationError",
    "SynthesisError",
    "InferenceEngineError",
    "DimensionMismatchError",
]
