"""
Proposal Distributions for MCMC Sampling

This package implements proposal distributions for Metropolis and
Metropolis-Hastings sampling.

To add a new proposal:
1. Create new file in proposals/ with a Proposal subclass
2. Set ``symmetric`` and implement ``sample`` and ``log_density``
3. Add it to PROPOSAL_REGISTRY below
4. Export from this __init__.py

Each proposal computes its own Hastings ratio in ``propose`` - there's no
separate symmetric/asymmetric handling needed in the transition kernel.

Symmetric proposals (q(x'|x) = q(x|x')):
    GaussianRandomWalk, UniformRandomWalk
Asymmetric proposals (Hastings correction applied):
    IndependenceProposal, LogNormalRandomWalk
"""

from ..error_handling import InvalidConfiguration
from .common import Proposal, validate_scale
from .rand_walk import GaussianRandomWalk, UniformRandomWalk
from .independent import IndependenceProposal
from .log_normal import LogNormalRandomWalk


# Map from configuration name to proposal class
PROPOSAL_REGISTRY = {
    GaussianRandomWalk.name: GaussianRandomWalk,
    UniformRandomWalk.name: UniformRandomWalk,
    IndependenceProposal.name: IndependenceProposal,
    LogNormalRandomWalk.name: LogNormalRandomWalk,
}


def make_proposal(spec):
    """
    Build a proposal from a Proposal instance or a serializable spec dict.

    Example:
        make_proposal({'type': 'gaussian', 'scale': 0.5})
        make_proposal({'type': 'independent', 'mean': [0.0, 0.0], 'cov': 2.0})

    Raises:
        InvalidConfiguration: Unknown proposal type or malformed spec
        InvalidParameter: Degenerate proposal parameters
    """
    if isinstance(spec, Proposal):
        return spec
    if not isinstance(spec, dict) or 'type' not in spec:
        raise InvalidConfiguration(
            f"proposal must be a Proposal or a dict with a 'type' key, got {spec!r}"
        )
    params = dict(spec)
    ptype = params.pop('type')
    if ptype not in PROPOSAL_REGISTRY:
        raise InvalidConfiguration(
            f"Unknown proposal type '{ptype}'. Available: {list(PROPOSAL_REGISTRY)}"
        )
    try:
        return PROPOSAL_REGISTRY[ptype](**params)
    except TypeError as e:
        raise InvalidConfiguration(f"Bad parameters for proposal '{ptype}': {e}") from e


__all__ = [
    'Proposal',
    'GaussianRandomWalk',
    'UniformRandomWalk',
    'IndependenceProposal',
    'LogNormalRandomWalk',
    'PROPOSAL_REGISTRY',
    'make_proposal',
    'validate_scale',
]
