"""
Independence Proposal for MCMC Sampling

Asymmetric proposal that ignores the current state entirely:

    x' ~ N(mean, cov)

Because q(x'|x) = N(x'; mean, cov) does not depend on x, the Hastings ratio
does not cancel:

    log q(x|x') - log q(x'|x) = log N(x; mean, cov) - log N(x'; mean, cov)

Works well when (mean, cov) roughly matches the target, e.g. a Laplace
approximation; mixes badly when the target has heavier tails than the
proposal.
"""

import numpy as np
import jax.numpy as jnp
import jax.scipy.stats as stats

from ..error_handling import InvalidParameter
from .common import Proposal, sample_diffusion


class IndependenceProposal(Proposal):
    """
    Multivariate normal independence proposal.

    Args:
        mean: Proposal mean (dim,)
        cov: Covariance matrix (dim, dim), per-parameter variances (dim,),
             or a scalar variance shared by all parameters
    """

    symmetric = False
    name = 'independent'
    _shaped_params = ('mean',)

    def __init__(self, mean, cov=1.0):
        mean = np.atleast_1d(np.asarray(mean, dtype=float))
        if mean.ndim != 1 or not np.all(np.isfinite(mean)):
            raise InvalidParameter(f"mean must be a finite 1-D array, got {mean!r}")
        dim = mean.shape[0]

        cov = np.asarray(cov, dtype=float)
        if cov.ndim == 0:
            cov = np.eye(dim) * cov
        elif cov.ndim == 1:
            cov = np.diag(cov)
        if cov.shape != (dim, dim):
            raise InvalidParameter(f"cov must have shape ({dim}, {dim}), got {cov.shape}")
        if not np.all(np.isfinite(cov)):
            raise InvalidParameter("cov must be finite")
        try:
            L = np.linalg.cholesky(cov)
        except np.linalg.LinAlgError as e:
            raise InvalidParameter(
                "cov must be positive definite (zero variance gives a degenerate proposal)"
            ) from e

        self.mean = mean
        self.cov = cov
        self.L = L

    def sample(self, key, current):
        mean = jnp.asarray(self.mean, dtype=current.dtype)
        L = jnp.asarray(self.L, dtype=current.dtype)
        return mean + sample_diffusion(key, L, current.shape)

    def log_density(self, from_state, to_state):
        del from_state  # Independent of the current state
        return stats.multivariate_normal.logpdf(to_state, self.mean, self.cov)

    def __repr__(self):
        return f"IndependenceProposal(mean={self.mean.tolist()})"
