"""
Log-Normal (Multiplicative) Random Walk for Positive Parameters

Random walk on the log scale:

    log x' ~ N(log x_current, scale^2)   i.e.   x' = x_current * exp(scale * z)

The proposal never leaves the positive orthant, which makes it a natural
choice for variances, rates, and other strictly positive parameters. It is
asymmetric on the original scale; the Hastings correction is the Jacobian
term

    log q(x|x') - log q(x'|x) = sum(log x') - sum(log x)
"""

import numpy as np
import jax.numpy as jnp
import jax.random as random
import jax.scipy.stats as stats

from ..error_handling import InvalidConfiguration
from .common import Proposal, validate_scale


class LogNormalRandomWalk(Proposal):
    """Multiplicative random walk; requires every parameter to be positive."""

    symmetric = False
    name = 'log_normal'
    _shaped_params = ('scale',)

    def __init__(self, scale=0.5):
        self.scale = validate_scale(scale, 'scale')

    def sample(self, key, current):
        noise = random.normal(key, shape=current.shape, dtype=current.dtype)
        return current * jnp.exp(noise * jnp.asarray(self.scale, dtype=current.dtype))

    def log_density(self, from_state, to_state):
        positive = jnp.all(to_state > 0) & jnp.all(from_state > 0)
        safe_to = jnp.where(to_state > 0, to_state, 1.0)
        safe_from = jnp.where(from_state > 0, from_state, 1.0)
        log_to = jnp.log(safe_to)
        logpdf = jnp.sum(stats.norm.logpdf(log_to, loc=jnp.log(safe_from), scale=self.scale) - log_to)
        return jnp.where(positive, logpdf, -jnp.inf)

    def check_state(self, state) -> None:
        super().check_state(state)
        if np.any(np.asarray(state) <= 0):
            raise InvalidConfiguration(
                "log_normal proposal requires strictly positive initial states"
            )

    def __repr__(self):
        return f"LogNormalRandomWalk(scale={self.scale.tolist()})"
