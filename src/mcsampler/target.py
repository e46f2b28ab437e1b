"""
Target Density Wrapper

The sampler treats the target as a black box: a JAX-traceable function of a
state returning a nonnegative density, known up to a normalizing constant.
Callers may supply either the density itself or its logarithm.

Kernels only ever see log values. Contract violations are reported through an
``invalid`` flag rather than silently mapped to zero density:
    - density mode: NaN, negative, or +inf values are invalid
    - log mode: NaN or +inf values are invalid
A density of exactly zero (log density -inf) is valid.
"""

from typing import Callable, Optional, Tuple

import jax.numpy as jnp

from .error_handling import InvalidConfiguration


class TargetDensity:
    """
    Unnormalized target density over parameter states.

    Args:
        density: fn(state) -> scalar >= 0
        log_density: fn(state) -> scalar log density (alternative to density)
        label: Optional name used in log and error messages

    Exactly one of density / log_density must be given.
    """

    def __init__(self, density: Optional[Callable] = None,
                 log_density: Optional[Callable] = None,
                 label: Optional[str] = None):
        if (density is None) == (log_density is None):
            raise InvalidConfiguration(
                "TargetDensity needs exactly one of 'density' or 'log_density'"
            )
        if density is not None and not callable(density):
            raise InvalidConfiguration("'density' must be callable")
        if log_density is not None and not callable(log_density):
            raise InvalidConfiguration("'log_density' must be callable")
        self.density_fn = density
        self.log_density_fn = log_density
        self.label = label

    @property
    def is_log(self) -> bool:
        return self.log_density_fn is not None

    def evaluate(self, state) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
        """
        Evaluate the target at a state (traceable).

        Returns:
            log_p: Log density (-inf for zero density; 0.0 where invalid)
            raw: The value returned by the user function
            invalid: True where the value violates the density contract
        """
        if self.is_log:
            raw = jnp.reshape(jnp.asarray(self.log_density_fn(state)), ())
            invalid = jnp.isnan(raw) | jnp.isposinf(raw)
            log_p = raw
        else:
            raw = jnp.reshape(jnp.asarray(self.density_fn(state)), ())
            invalid = jnp.isnan(raw) | (raw < 0) | jnp.isposinf(raw)
            safe = jnp.where(invalid, 1.0, raw)
            log_p = jnp.log(safe)
        log_p = jnp.where(invalid, 0.0, log_p)
        return log_p, raw, invalid

    def __call__(self, state):
        """Density value at a state (exp of the log density in log mode)."""
        if self.is_log:
            return jnp.exp(self.log_density_fn(state))
        return self.density_fn(state)

    def __repr__(self):
        kind = 'log_density' if self.is_log else 'density'
        return f"TargetDensity({kind}, label={self.label!r})"


def as_target(model) -> TargetDensity:
    """
    Coerce a TargetDensity, a density callable, or a model dict into a TargetDensity.

    Model dicts use the registry keys 'density' or 'log_density'.
    """
    if isinstance(model, TargetDensity):
        return model
    if isinstance(model, dict):
        return TargetDensity(density=model.get('density'),
                             log_density=model.get('log_density'),
                             label=model.get('label'))
    if callable(model):
        return TargetDensity(density=model)
    raise InvalidConfiguration(f"Cannot build a target density from {type(model).__name__}")
