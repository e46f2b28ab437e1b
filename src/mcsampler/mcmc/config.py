"""
Sampling Configuration and Initialization.

This module handles setting up and validating sampling configurations:
- configure_sampling: Main configuration entry point
- resolve_model: Turn a model id, model dict, TargetDensity or callable into a model dict
- build_kernel: Build the shared transition kernel for a run
- gen_chain_keys: Generate one independent JAX key stream per chain
- initial_states: Seed state for every chain

Configuration is split into two parts:
- user_config: Plain config dict (ints, strings, lists) describing the run
- runtime_ctx: JAX-dependent objects that exist only during execution
  (kernel, PRNG keys, initial state matrix)

All config keys use lowercase with underscores (e.g., 'num_chains', 'model_id').
"""

from typing import Any, Dict, List, Optional, Tuple

import jax
import jax.random as random
import numpy as np

from ..batch_specs import summarize_blocks
from ..error_handling import InvalidConfiguration, validate_mcmc_config
from ..registry import get_model
from ..target import TargetDensity, as_target
from .kernels import GibbsKernel, MetropolisKernel
from .utils import clean_config

import logging
logger = logging.getLogger('mcsampler')


def gen_chain_keys(num_chains: int, rng_seed: int = 42,
                   chain_seeds: Optional[List[int]] = None) -> Tuple[List[Any], List[Any]]:
    """
    Generate per-chain JAX random keys.

    With ``chain_seeds`` every chain gets PRNGKey(seed); otherwise the keys are
    split from PRNGKey(rng_seed). Each chain key is then split once more into
    a sampling key and an initialization key.

    Returns:
        (chain_keys, init_keys): Lists of length num_chains
    """
    if chain_seeds is not None:
        roots = [random.PRNGKey(int(seed)) for seed in chain_seeds]
    else:
        roots = list(random.split(random.PRNGKey(rng_seed), num_chains))

    chain_keys, init_keys = [], []
    for root in roots:
        chain_key, init_key = random.split(root)
        chain_keys.append(chain_key)
        init_keys.append(init_key)
    return chain_keys, init_keys


def resolve_model(model, model_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Normalize the model argument of the entry points into a model dict.

    Args:
        model: Registered model name, model dict, TargetDensity, density
               callable, or None (then ``model_id`` names a registered model)
        model_id: Registry name from the config

    Returns:
        Dict with keys 'target' (TargetDensity or None), 'blocks',
        'initial_state', 'proposal', 'label'
    """
    if model is None:
        if model_id is None:
            raise InvalidConfiguration("No model given and no 'model_id' in the config")
        model = model_id
    if isinstance(model, str):
        label = model
        model = get_model(model)
        model = dict(model, label=model.get('label', label))

    if isinstance(model, TargetDensity) or (callable(model) and not isinstance(model, dict)):
        return {
            'target': as_target(model),
            'blocks': None,
            'initial_state': None,
            'proposal': None,
            'label': getattr(model, 'label', None),
        }
    if not isinstance(model, dict):
        raise InvalidConfiguration(f"Cannot use {type(model).__name__} as a model")

    has_target = model.get('density') is not None or model.get('log_density') is not None
    if not has_target and not model.get('blocks'):
        raise InvalidConfiguration("A model needs 'density', 'log_density' or 'blocks'")
    return {
        'target': as_target(model) if has_target else None,
        'blocks': model.get('blocks'),
        'initial_state': model.get('initial_state'),
        'proposal': model.get('proposal'),
        'label': model.get('label'),
    }


def build_kernel(sampler: str, model: Dict[str, Any], proposal=None):
    """
    Build the transition kernel shared by every chain of a run.

    Raises:
        InvalidConfiguration: The model lacks what the sampler needs
    """
    if sampler == 'metropolis':
        if model['target'] is None:
            raise InvalidConfiguration(
                "sampler 'metropolis' needs a model with 'density' or 'log_density'"
            )
        return MetropolisKernel(model['target'], proposal)
    if sampler == 'gibbs':
        if not model['blocks']:
            raise InvalidConfiguration("sampler 'gibbs' needs a model with 'blocks'")
        return GibbsKernel(model['blocks'], model['target'])
    raise InvalidConfiguration(f"Unknown sampler '{sampler}'")


def initial_states(mcmc_config: Dict[str, Any], model: Dict[str, Any],
                   init_keys: List[Any]) -> np.ndarray:
    """
    Seed state for every chain, shape (num_chains, dim).

    Config 'initial_states' wins over the model's 'initial_state'. A single
    state is shared by every chain; a model callable is drawn once per chain
    with that chain's init key.
    """
    num_chains = mcmc_config['num_chains']
    source = mcmc_config.get('initial_states')
    if source is None:
        source = model.get('initial_state')
    if source is None:
        raise InvalidConfiguration(
            "No initial state: set 'initial_states' in the config or 'initial_state' on the model"
        )

    if callable(source):
        states = np.stack([np.atleast_1d(np.asarray(source(key), dtype=float))
                           for key in init_keys])
    else:
        states = np.asarray(source, dtype=float)
        if states.ndim <= 1:
            states = np.tile(np.atleast_1d(states), (num_chains, 1))

    if states.ndim != 2 or states.shape[0] != num_chains:
        raise InvalidConfiguration(
            f"Initial states must have shape (num_chains={num_chains}, dim), got {states.shape}"
        )
    if not np.all(np.isfinite(states)):
        raise InvalidConfiguration("Initial states contain NaN or Inf values")
    return states


def configure_sampling(
    mcmc_config: Dict[str, Any],
    model=None,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Configure a multi-chain run from a config dict and a model.

    Args:
        mcmc_config: Input configuration dict ('num_chains', 'num_iterations', ...)
        model: See resolve_model

    Returns:
        user_config: Cleaned, validated config dict
        runtime_ctx: Dict with 'kernel', 'chain_keys', 'initial_states', 'model'

    Raises:
        InvalidConfiguration: Invalid config values or model/sampler mismatch
    """
    mcmc_config = clean_config(dict(mcmc_config))
    model = resolve_model(model, mcmc_config.get('model_id'))

    mcmc_config.setdefault('sampler', 'gibbs' if model['blocks'] else 'metropolis')
    if mcmc_config.get('proposal') is None and model['proposal'] is not None:
        mcmc_config['proposal'] = model['proposal']

    validate_mcmc_config(mcmc_config)

    # Precision; x64 is never switched back off
    if mcmc_config['use_double']:
        jax.config.update("jax_enable_x64", True)

    kernel = build_kernel(mcmc_config['sampler'], model, mcmc_config.get('proposal'))
    if model['blocks']:
        logger.debug(summarize_blocks(model['blocks']))

    chain_keys, init_keys = gen_chain_keys(mcmc_config['num_chains'],
                                           mcmc_config['rng_seed'],
                                           mcmc_config.get('chain_seeds'))
    states = initial_states(mcmc_config, model, init_keys)
    for state in states:
        kernel.check_state(state)

    user_config = dict(mcmc_config)
    user_config['num_params'] = int(states.shape[1])
    user_config['model_label'] = model['label']

    runtime_ctx = {
        'kernel': kernel,
        'chain_keys': chain_keys,
        'initial_states': states,
        'model': model,
    }

    logger.info(f"Configured {kernel.name} sampling: {user_config['num_chains']} chains x "
                f"{user_config['num_iterations']} iterations, {user_config['num_params']} params")
    return user_config, runtime_ctx
