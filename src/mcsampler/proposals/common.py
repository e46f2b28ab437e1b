"""
Common utilities for proposal distributions.

This module provides the shared proposal base class and the parameter
checks used across proposal implementations.

Classes:
    Proposal: Base class; subclasses implement sample() and log_density()

Functions:
    validate_scale: Check a step-size parameter is positive and finite
    sample_diffusion: Generate diffusion noise from a Cholesky factor
"""

import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..error_handling import InvalidConfiguration, InvalidParameter


class Proposal:
    """
    Base class for proposal distributions q(to | from).

    Subclasses set ``symmetric`` and implement ``sample`` and ``log_density``.
    ``propose`` is the interface used by the transition kernels and returns
    the candidate together with its own log Hastings ratio:

        log q(current | candidate) - log q(candidate | current)

    which is exactly 0 for symmetric proposals.
    """

    symmetric = True
    name = 'proposal'

    def sample(self, key, current):
        raise NotImplementedError

    def log_density(self, from_state, to_state):
        """Log proposal density of moving from ``from_state`` to ``to_state``."""
        raise NotImplementedError

    def density(self, from_state, to_state):
        """Proposal density q(to_state | from_state)."""
        return jnp.exp(self.log_density(from_state, to_state))

    def propose(self, key, current):
        """
        Draw a candidate state.

        Args:
            key: JAX random key
            current: Current parameter values (dim,)

        Returns:
            candidate: Proposed parameter values
            log_hastings_ratio: log q(current|candidate) - log q(candidate|current)
            new_key: Updated random key
        """
        new_key, proposal_key = random.split(key)
        candidate = self.sample(proposal_key, current)
        if self.symmetric:
            log_hastings_ratio = jnp.zeros((), dtype=candidate.dtype)
        else:
            log_hastings_ratio = (self.log_density(candidate, current)
                                  - self.log_density(current, candidate))
        return candidate, log_hastings_ratio, new_key

    def check_state(self, state) -> None:
        """Raise InvalidConfiguration if the proposal cannot act on ``state``."""
        dim = np.shape(state)[0]
        for attr in self._shaped_params:
            value = np.asarray(getattr(self, attr))
            if value.ndim > 0 and value.shape[0] != dim:
                raise InvalidConfiguration(
                    f"{self.name} proposal '{attr}' has length {value.shape[0]} "
                    f"but the state has {dim} parameters"
                )

    _shaped_params = ()


def validate_scale(scale, name='scale'):
    """
    Validate a step-size parameter.

    Args:
        scale: Scalar or per-parameter array of standard deviations / widths
        name: Parameter name for the error message

    Returns:
        numpy float array of the validated scale

    Raises:
        InvalidParameter: If any entry is zero, negative, or non-finite
    """
    arr = np.asarray(scale, dtype=float)
    if arr.ndim > 1:
        raise InvalidParameter(f"{name} must be a scalar or 1-D array, got shape {arr.shape}")
    if arr.size == 0:
        raise InvalidParameter(f"{name} must not be empty")
    if not np.all(np.isfinite(arr)):
        raise InvalidParameter(f"{name} must be finite, got {scale!r}")
    if np.any(arr <= 0):
        raise InvalidParameter(
            f"{name} must be strictly positive (zero gives a degenerate proposal), got {scale!r}"
        )
    return arr


def sample_diffusion(proposal_key, L, shape, scale=1.0):
    """
    Generate diffusion noise: scale * (L @ z) where z ~ N(0, I).

    Args:
        proposal_key: JAX random key for sampling.
        L: Lower Cholesky factor (n, n).
        shape: Shape for normal samples (n,).
        scale: Scalar multiplier.

    Returns:
        Diffusion vector (n,).
    """
    noise = random.normal(proposal_key, shape=shape)
    return scale * (L @ noise)
