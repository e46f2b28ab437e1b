"""
Random Walk Proposals for MCMC Sampling

Symmetric proposals centered on the current state. Because
q(x'|x) = q(x|x'), the Hastings ratio is 0 and the acceptance ratio reduces
to the plain Metropolis ratio p(x') / p(x).

GaussianRandomWalk:
    x' ~ N(x_current, diag(scale^2))
    scale may be a scalar or one standard deviation per parameter.

UniformRandomWalk:
    x' ~ Uniform(x_current - half_width, x_current + half_width)
    The box proposal used in most introductory Metropolis examples.

Both reject a zero, negative, or non-finite step size at construction time.
"""

import jax.numpy as jnp
import jax.random as random
import jax.scipy.stats as stats

from .common import Proposal, validate_scale


class GaussianRandomWalk(Proposal):
    """Isotropic (or diagonal) Gaussian random walk."""

    symmetric = True
    name = 'gaussian'
    _shaped_params = ('scale',)

    def __init__(self, scale=1.0):
        self.scale = validate_scale(scale, 'scale')

    def sample(self, key, current):
        noise = random.normal(key, shape=current.shape, dtype=current.dtype)
        return current + noise * jnp.asarray(self.scale, dtype=current.dtype)

    def log_density(self, from_state, to_state):
        return jnp.sum(stats.norm.logpdf(to_state, loc=from_state, scale=self.scale))

    def __repr__(self):
        return f"GaussianRandomWalk(scale={self.scale.tolist()})"


class UniformRandomWalk(Proposal):
    """Uniform box random walk."""

    symmetric = True
    name = 'uniform'
    _shaped_params = ('half_width',)

    def __init__(self, half_width=1.0):
        self.half_width = validate_scale(half_width, 'half_width')

    def sample(self, key, current):
        half_width = jnp.asarray(self.half_width, dtype=current.dtype)
        u = random.uniform(key, shape=current.shape, dtype=current.dtype,
                           minval=-1.0, maxval=1.0)
        return current + u * half_width

    def log_density(self, from_state, to_state):
        half_width = jnp.broadcast_to(self.half_width, jnp.shape(to_state))
        inside = jnp.all(jnp.abs(to_state - from_state) <= half_width)
        log_vol = jnp.sum(jnp.log(2.0 * half_width))
        return jnp.where(inside, -log_vol, -jnp.inf)

    def __repr__(self):
        return f"UniformRandomWalk(half_width={self.half_width.tolist()})"
