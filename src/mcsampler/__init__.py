"""
mcsampler - MCMC Sampling Engine

Public API:
    Entry points:
        rmcmc - Run chains and post-run diagnostics, return a results dict
        run_chains - Run chains to completion, return a ChainCollection
        start_chains - Start chains in the background, return a SamplingRun

    Samplers:
        MetropolisSampler - Metropolis / Metropolis-Hastings for one chain
        GibbsSampler - Systematic-scan Gibbs for one chain
        TargetDensity - Wrapper for a density or log density function

    Proposals:
        GaussianRandomWalk, UniformRandomWalk - Symmetric proposals
        IndependenceProposal, LogNormalRandomWalk - Asymmetric proposals
        make_proposal - Build a proposal from a spec dict

    Block Specifications:
        BlockSpec - Dataclass for a Gibbs parameter block
        SamplerType - Enum for block sampler types (DIRECT_CONJUGATE, METROPOLIS_HASTINGS)
        create_component_blocks - One direct block per full conditional

    Registration:
        register_model - Register a model
        get_model - Retrieve a registered model
        list_models - List all registered models

    Diagnostics:
        compute_split_rhat - Split-chain R-hat per parameter
        print_rhat_summary - Log R-hat summary and convergence verdict

    Errors:
        MCMCError, InvalidConfiguration, InvalidParameter, InvalidInput, NumericalError

Example:
    import jax.numpy as jnp
    from mcsampler import rmcmc

    results = rmcmc(
        {'num_chains': 4, 'num_iterations': 2000, 'initial_states': [0.0],
         'proposal': {'type': 'gaussian', 'scale': 1.0}},
        model=lambda x: jnp.exp(-0.5 * jnp.sum(x ** 2)),
    )
    print(results['rhat'])
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .error_handling import (
    MCMCError,
    InvalidConfiguration,
    InvalidParameter,
    InvalidInput,
    NumericalError,
)
from .registry import register_model, get_model, list_models
from .target import TargetDensity
from .batch_specs import BlockSpec, SamplerType, create_component_blocks
from .proposals import (
    Proposal,
    GaussianRandomWalk,
    UniformRandomWalk,
    IndependenceProposal,
    LogNormalRandomWalk,
    make_proposal,
)
from .mcmc.types import Chain, ChainCollection, DiagnosticResult, SamplerStatus
from .mcmc.sampler import Sampler, MetropolisSampler, GibbsSampler
from .mcmc.acceptance import acceptance_ratio, acceptance_probability, should_accept
from .mcmc.diagnostics import compute_split_rhat, print_rhat_summary

# Main MCMC entry points
from .mcmc import (
    rmcmc,
    run_chains,
    start_chains,
    SamplingRun,
)
