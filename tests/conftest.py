"""
Pytest configuration and shared fixtures for mcsampler tests.
"""

import pytest
import numpy as np
import jax.numpy as jnp

from mcsampler.registry import register_model, _REGISTRY
from mcsampler.target import TargetDensity
from mcsampler import reference_models


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def basic_mcmc_config():
    """Small Metropolis configuration for tests."""
    return {
        'num_chains': 2,
        'num_iterations': 200,
        'rng_seed': 42,
        'initial_states': [0.0, 0.0],
        'proposal': {'type': 'gaussian', 'scale': 1.0},
    }


@pytest.fixture
def gaussian_target():
    """2-D standard normal target density."""
    return TargetDensity(density=reference_models.gaussian_density, label='gaussian')


@pytest.fixture
def flat_target():
    return TargetDensity(density=reference_models.flat_density, label='flat')


@pytest.fixture
def register_reference_models():
    """
    Fixture to register reference models and clean up after test.

    Usage:
        def test_something(register_reference_models):
            # Reference models are now registered
            ...
    """
    # Save any existing registrations
    original_registrations = {}
    for name, config in reference_models.REFERENCE_MODELS.items():
        if name in _REGISTRY:
            original_registrations[name] = _REGISTRY.pop(name)
        register_model(name, config)

    yield  # Run the test

    # Restore original registry state
    for name in reference_models.REFERENCE_MODELS.keys():
        if name in original_registrations:
            _REGISTRY[name] = original_registrations[name]
        elif name in _REGISTRY:
            del _REGISTRY[name]


@pytest.fixture
def negative_density():
    """Density that violates nonnegativity away from the origin."""
    return lambda x: jnp.where(jnp.sum(x ** 2) < 0.01, 1.0, -1.0)


@pytest.fixture
def nan_density():
    """Density that returns NaN away from the origin."""
    return lambda x: jnp.where(jnp.sum(x ** 2) < 0.01, 1.0, jnp.nan)


@pytest.fixture
def hand_split_reference():
    """
    Hand-computed split R-hat for the single chain [1, 2, ..., 10].

    Halves [1..5] and [6..10]: means 3 and 8, grand mean 5.5, n = 5, m = 2.
        B = 5 / 1 * ((3 - 5.5)^2 + (8 - 5.5)^2) = 62.5
        W = (2.5 + 2.5) / 2 = 2.5
        var_hat = 4/5 * 2.5 + 62.5 / 5 = 14.5
        R_hat = sqrt(14.5 / 2.5) = sqrt(5.8)
    """
    return {
        'chain': np.arange(1.0, 11.0),
        'W': 2.5,
        'B': 62.5,
        'var_hat': 14.5,
        'rhat': np.sqrt(5.8),
    }
