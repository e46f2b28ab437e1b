"""
Model Registration System

This module provides a registry for target models that can be used with the
sampling backend. User code registers models via register_model(), and the
backend retrieves them via get_model() when a config names a 'model_id'.

Example usage:
    from mcsampler import register_model, GaussianRandomWalk

    def my_density(x):
        return jnp.exp(-0.5 * jnp.sum(x ** 2))

    register_model('std_normal_2d', {
        'density': my_density,
        'initial_state': lambda key: jax.random.normal(key, (2,)),
        # optional:
        'proposal': {'type': 'gaussian', 'scale': 1.0},
        'label': 'Standard normal (2-D)',
    })
"""

from .error_handling import InvalidConfiguration

_REGISTRY = {}

TARGET_KEYS = ('density', 'log_density', 'blocks')


def register_model(name, config):
    """
    Register a target model with the sampling system.

    Args:
        name: Unique model identifier string (e.g., 'beta_binomial')
        config: Dict containing model functions. At least one of:

                density: fn(state) -> scalar >= 0
                    Unnormalized target density.

                log_density: fn(state) -> scalar
                    Log of the unnormalized target density.

                blocks: List[BlockSpec]
                    Gibbs blocks (direct conditionals or Metropolis blocks).

            Optional:
                initial_state: array (dim,) or (num_chains, dim), or
                    fn(key) -> array (dim,) drawn once per chain.

                proposal: Proposal or proposal spec dict used when the
                    config does not give one.

                label: Human-readable name for log messages.

    Raises:
        InvalidConfiguration: If no target key is given or name is already registered.
    """
    if name in _REGISTRY:
        raise InvalidConfiguration(f"Model '{name}' is already registered")

    if not any(config.get(k) is not None for k in TARGET_KEYS):
        raise InvalidConfiguration(
            f"Model '{name}' needs at least one of {list(TARGET_KEYS)}"
        )
    if config.get('density') is not None and config.get('log_density') is not None:
        raise InvalidConfiguration(
            f"Model '{name}' gives both 'density' and 'log_density'; pick one"
        )

    _REGISTRY[name] = config


def get_model(name):
    """
    Get a registered model configuration by name.

    Raises:
        KeyError: If the model is not registered
    """
    if name not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise KeyError(f"Unknown model '{name}'. Available: {available}")
    return _REGISTRY[name]


def list_models():
    """List all registered model names."""
    return list(_REGISTRY.keys())


def clear_registry():
    """
    Clear all registered models. Primarily for testing.
    """
    _REGISTRY.clear()
