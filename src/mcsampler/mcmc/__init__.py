"""
MCMC Subpackage - Core MCMC sampling implementation.

This package contains the core sampling logic:
- backend: Multi-chain orchestrator (start_chains, run_chains, rmcmc)
- sampler: Per-chain driver (Sampler, MetropolisSampler, GibbsSampler)
- kernels: Compiled Metropolis / Gibbs transition kernels
- acceptance: Metropolis-Hastings acceptance rule
- config: Configuration and initialization
- diagnostics: Convergence diagnostics (split R-hat) and acceptance summaries
- types: Core data structures (Chain, ChainCollection, DiagnosticResult)
- utils: Config defaults
"""

# Import types first (needed by other modules)
from .types import Chain, ChainCollection, DiagnosticResult, SamplerStatus, StepTrace

from .acceptance import (
    acceptance_probability,
    acceptance_ratio,
    log_acceptance_ratio,
    should_accept,
)
from .kernels import GibbsKernel, MetropolisKernel, metropolis_step
from .sampler import GibbsSampler, MetropolisSampler, Sampler

# Import main entry points
from .backend import SamplingRun, rmcmc, run_chains, start_chains

# Import commonly used functions
from .config import configure_sampling, gen_chain_keys
from .diagnostics import (
    compute_and_print_rhat,
    compute_split_rhat,
    print_acceptance_summary,
    print_rhat_summary,
    rhat_values,
)

__all__ = [
    # Main entry points
    'rmcmc',
    'run_chains',
    'start_chains',
    'SamplingRun',
    # Samplers
    'Sampler',
    'MetropolisSampler',
    'GibbsSampler',
    'MetropolisKernel',
    'GibbsKernel',
    'metropolis_step',
    # Acceptance rule
    'acceptance_ratio',
    'log_acceptance_ratio',
    'acceptance_probability',
    'should_accept',
    # Types
    'Chain',
    'ChainCollection',
    'DiagnosticResult',
    'SamplerStatus',
    'StepTrace',
    # Config
    'configure_sampling',
    'gen_chain_keys',
    # Diagnostics
    'compute_split_rhat',
    'compute_and_print_rhat',
    'print_rhat_summary',
    'print_acceptance_summary',
    'rhat_values',
]
