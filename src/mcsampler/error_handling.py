"""
Error Handling and Validation Utilities for the Sampling Engine

This module defines the error hierarchy raised by mcsampler, configuration
validation, and post-run diagnostic tools for MCMC chains.

Error kinds:
    InvalidConfiguration - bad iteration/chain counts, bad seeds, bad proposals
    InvalidParameter     - degenerate proposal parameters (zero variance, etc.)
    InvalidInput         - mismatched or too-short chains given to diagnostics
    NumericalError       - density contract violations, zero within-chain variance

A rejected proposal is normal sampling behaviour and is never an error.
"""

from typing import Any, Dict

import numpy as np

import logging
logger = logging.getLogger('mcsampler')


class MCMCError(Exception):
    """Base class for all mcsampler errors."""


class InvalidConfiguration(MCMCError, ValueError):
    """Sampler configuration is unusable (counts, seeds, proposal, initial states)."""


class InvalidParameter(InvalidConfiguration):
    """A proposal or block was configured with a degenerate parameter."""


class InvalidInput(MCMCError, ValueError):
    """Chains handed to a diagnostic do not satisfy its preconditions."""


class NumericalError(MCMCError, ArithmeticError):
    """A numerical contract was violated (NaN/negative density, zero variance)."""


SAMPLER_NAMES = ('metropolis', 'gibbs')


def validate_mcmc_config(mcmc_config: Dict[str, Any]) -> None:
    """
    Validates that a sampling configuration is sensible.

    All problems are collected and reported together.

    Args:
        mcmc_config: Configuration dictionary (already passed through clean_config)

    Raises:
        InvalidConfiguration: If configuration is invalid
    """
    errors = []

    required_keys = ['num_chains', 'num_iterations', 'sampler']
    for key in required_keys:
        if key not in mcmc_config:
            errors.append(f"Missing required config key: '{key}'")

    num_chains = mcmc_config.get('num_chains')
    if num_chains is not None:
        if not _is_int(num_chains) or num_chains < 1:
            errors.append(f"num_chains must be a positive integer, got {num_chains!r}")

    num_iterations = mcmc_config.get('num_iterations')
    if num_iterations is not None:
        if not _is_int(num_iterations) or num_iterations < 1:
            errors.append(f"num_iterations must be a positive integer, got {num_iterations!r}")

    chunk_size = mcmc_config.get('chunk_size')
    if chunk_size is not None:
        if not _is_int(chunk_size) or chunk_size < 1:
            errors.append(f"chunk_size must be a positive integer, got {chunk_size!r}")

    max_workers = mcmc_config.get('max_workers')
    if max_workers is not None:
        if not _is_int(max_workers) or max_workers < 1:
            errors.append(f"max_workers must be a positive integer, got {max_workers!r}")

    sampler = mcmc_config.get('sampler')
    if sampler is not None and sampler not in SAMPLER_NAMES:
        errors.append(f"sampler must be one of {SAMPLER_NAMES}, got {sampler!r}")

    if sampler == 'metropolis' and mcmc_config.get('proposal') is None:
        errors.append("sampler 'metropolis' requires a 'proposal'")

    chain_seeds = mcmc_config.get('chain_seeds')
    if chain_seeds is not None:
        seeds = list(chain_seeds)
        if _is_int(num_chains) and len(seeds) != num_chains:
            errors.append(
                f"chain_seeds has {len(seeds)} entries but num_chains is {num_chains}"
            )
        if not all(_is_int(s) for s in seeds):
            errors.append("chain_seeds must all be integers")
        elif len(set(seeds)) != len(seeds):
            errors.append("chain_seeds must be distinct so each chain owns an independent stream")

    initial_states = mcmc_config.get('initial_states')
    if initial_states is not None:
        init = np.asarray(initial_states, dtype=float)
        if init.ndim not in (1, 2):
            errors.append(
                f"initial_states must be a single state or one state per chain, got shape {init.shape}"
            )
        elif init.ndim == 2 and _is_int(num_chains) and init.shape[0] != num_chains:
            errors.append(
                f"initial_states has {init.shape[0]} rows but num_chains is {num_chains}"
            )
        elif init.size == 0:
            errors.append("initial_states must not be empty")
        elif not np.all(np.isfinite(init)):
            errors.append("initial_states contains NaN or Inf values")

    if errors:
        raise InvalidConfiguration("Invalid MCMC configuration:\n  " + "\n  ".join(errors))


def _is_int(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def diagnose_sampler_issues(history: np.ndarray, diagnostics: Dict[str, Any]) -> Dict[str, Any]:
    """
    Analyzes MCMC history to identify common issues.

    Args:
        history: MCMC history array (n_samples, n_chains, n_params)
        diagnostics: Existing diagnostics dict to extend

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = diagnostics | {
        'issues': [],
        'warnings': [],
        'info': []
    }

    # Check for NaN/Inf in history
    if not np.all(np.isfinite(history)):
        diagnostics['issues'].append(
            "History contains NaN or Inf values - sampler became unstable"
        )

    # Check for stuck chains (variance near zero in every parameter)
    if history.shape[0] > 1:
        chain_vars = np.var(history, axis=0)
        stuck_chains = int(np.sum(np.all(chain_vars < 1e-10, axis=1)))
        if stuck_chains > 0:
            diagnostics['warnings'].append(
                f"{stuck_chains} chain(s) appear stuck (near-zero variance)"
            )

    # Summary info
    diagnostics['info'].append(f"Total samples: {history.shape[0] * history.shape[1]}")
    diagnostics['info'].append(f"Number of chains: {history.shape[1]}")
    diagnostics['info'].append(f"Number of parameters: {history.shape[2]}")

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Log diagnostics from diagnose_sampler_issues."""
    if diagnostics['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("[OK] No issues detected")
