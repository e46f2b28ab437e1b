"""
MCMC Diagnostics.

Convergence diagnostics for MCMC chains:
- compute_split_rhat: Split-chain R-hat (Gelman et al., BDA3 section 11.4)
- rhat_values: R-hat array from a list of DiagnosticResult
- print_rhat_summary: Log R-hat statistics with convergence check
- compute_and_print_rhat: compute_split_rhat + print_rhat_summary
- print_acceptance_summary: Log per-chain acceptance rate statistics
"""

import time
from typing import List, Optional

import numpy as np

from ..error_handling import InvalidInput, NumericalError
from .types import ChainCollection, DiagnosticResult

import logging
logger = logging.getLogger('mcsampler')


# R-hat below this value is read as "chains have mixed"
RHAT_THRESHOLD = 1.01

# Acceptance rates below this value are flagged
LOW_ACCEPTANCE = 0.10


def split_chains(history: np.ndarray) -> np.ndarray:
    """
    Split each chain into two contiguous halves.

    Args:
        history: (n_total, k, n_params); an odd n_total drops the final draw

    Returns:
        (n, 2k, n_params) with n = n_total // 2. Sub-chain j < k is the first
        half of chain j, sub-chain k + j its second half.
    """
    n = history.shape[0] // 2
    return np.concatenate([history[:n], history[n:2 * n]], axis=1)


def _split_rhat_stats(sub_chains: np.ndarray):
    """
    Between/within variance decomposition over sub-chains (NumPy, float64).

    Runs on the host in double precision whatever JAX's x64 setting is, so
    parameters with a large mean keep their sub-chain means and variances.

    Args:
        sub_chains: (n, m, n_params)

    Returns:
        W, B, var_hat, rhat: each (n_params,)
    """
    n, m, _ = sub_chains.shape

    # 1. Sub-chain means and grand mean
    sub_means = np.mean(sub_chains, axis=0)           # (m, n_params)
    grand_mean = np.mean(sub_means, axis=0)           # (n_params,)

    # 2. Between-sub-chain variance
    # B = n / (m - 1) * sum_j (mean_j - grand_mean)^2
    B = n / (m - 1) * np.sum((sub_means - grand_mean) ** 2, axis=0)

    # 3. Within-sub-chain variance: mean of the sample variances
    W = np.mean(np.var(sub_chains, axis=0, ddof=1), axis=0)

    # 4. Pooled variance estimate and the ratio
    var_hat = (n - 1) / n * W + B / n
    with np.errstate(divide='ignore', invalid='ignore'):
        rhat = np.sqrt(var_hat / W)
    return W, B, var_hat, rhat


def _as_history(chains, timeout: Optional[float]) -> np.ndarray:
    if isinstance(chains, ChainCollection):
        if not chains.all_terminated():
            logger.info("Waiting for chains to terminate before computing R-hat...")
            if not chains.wait_until_terminated(timeout):
                raise InvalidInput("Chains are still being sampled; R-hat needs terminated chains")
        return chains.to_array()
    if isinstance(chains, (list, tuple)):
        return ChainCollection.from_sequences(chains).to_array()

    history = np.asarray(chains, dtype=float)
    if history.ndim == 2:
        history = history[:, :, np.newaxis]
    if history.ndim != 3:
        raise InvalidInput(
            f"history must have shape (n_samples, n_chains, n_params), got {history.shape}"
        )
    return history


def compute_split_rhat(chains, strict: bool = True,
                       timeout: Optional[float] = None) -> List[DiagnosticResult]:
    """
    Split-chain R-hat for every parameter.

    Each of the k chains (length n_total, equal across chains) is split into
    two halves of length n = n_total // 2, giving m = 2k sub-chains. An odd
    n_total drops the final draw. Then

        B = n / (m - 1) * sum_j (mean_j - mean)^2
        W = mean_j s_j^2
        var_hat = (n - 1) / n * W + B / n
        R_hat = sqrt(var_hat / W)

    Args:
        chains: ChainCollection (blocks until every chain terminated), list of
                per-chain sequences, or array (n_samples, n_chains[, n_params])
        strict: If True, W == 0 raises NumericalError. If False, those
                parameters get rhat = nan (undefined) and a warning is logged.
        timeout: Seconds to wait for running chains (ChainCollection input)

    Returns:
        One DiagnosticResult per parameter

    Raises:
        InvalidInput: Unequal chain lengths, fewer than 4 draws, non-finite draws
        NumericalError: Zero within-chain variance (strict mode)
    """
    history = _as_history(chains, timeout)
    n_total, k, n_params = history.shape
    if k < 1 or n_params < 1:
        raise InvalidInput(f"history has no chains or no parameters: shape {history.shape}")
    if n_total < 4:
        raise InvalidInput(f"Split R-hat needs chains of length >= 4, got {n_total}")
    if not np.all(np.isfinite(history)):
        raise InvalidInput("history contains NaN or Inf values")
    if n_total % 2:
        logger.debug(f"Odd chain length {n_total}: dropping the final draw")

    sub_chains = split_chains(history)
    n, m = sub_chains.shape[0], sub_chains.shape[1]

    # W == 0 exactly when every sub-chain is constant in that parameter
    constant = np.all(sub_chains == sub_chains[:1], axis=(0, 1))
    if np.any(constant):
        params = np.flatnonzero(constant).tolist()
        if strict:
            raise NumericalError(
                f"Zero within-chain variance (W == 0) for parameter(s) {params}; R-hat is undefined"
            )
        logger.warning(f"R-hat undefined for parameter(s) {params}: zero within-chain variance")

    W, B, var_hat, rhat = _split_rhat_stats(sub_chains.astype(np.float64))
    W = np.where(constant, 0.0, W)
    rhat = np.where(constant, np.nan, rhat)

    return [
        DiagnosticResult(parameter=i, W=float(W[i]), B=float(B[i]), var_hat=float(var_hat[i]),
                         rhat=float(rhat[i]), n=n, m=m)
        for i in range(n_params)
    ]


def rhat_values(results: List[DiagnosticResult]) -> np.ndarray:
    """R-hat per parameter (nan where undefined)."""
    return np.array([r.rhat for r in results], dtype=float)


def print_rhat_summary(results: List[DiagnosticResult], threshold: float = RHAT_THRESHOLD) -> bool:
    """
    Log R-hat statistics and the convergence verdict.

    Returns:
        True if every defined R-hat is below ``threshold`` (and at least one is defined)
    """
    rhat = rhat_values(results)
    defined = np.isfinite(rhat)
    k = results[0].m // 2 if results else 0

    logger.info(f"--- Split R-hat Results ({len(results)} params, {k} chains) ---")
    n_undefined = int(np.sum(~defined))
    if n_undefined:
        logger.warning(f"  {n_undefined} params have undefined R-hat (zero within-chain variance)")
    if not np.any(defined):
        logger.warning("  No defined R-hat values")
        return False

    max_rhat = float(np.max(rhat[defined]))
    logger.info(f"  Max: {max_rhat:.4f}")
    logger.info(f"  Median: {float(np.median(rhat[defined])):.4f}")
    logger.info(f"  Threshold: {threshold:.4f}")

    if max_rhat < threshold:
        logger.info(f"  Converged (max < {threshold:.4f})")
        return True
    logger.info(f"  Not Converged (max = {max_rhat:.4f} >= {threshold:.4f})")
    return False


def compute_and_print_rhat(chains, threshold: float = RHAT_THRESHOLD,
                           strict: bool = False) -> Optional[np.ndarray]:
    """
    Compute split R-hat and log summary statistics.

    Returns:
        R-hat values array, or None if the chains are too short
    """
    logger.info("--- Computing Split R-hat ---")
    rhat_start = time.perf_counter()
    try:
        results = compute_split_rhat(chains, strict=strict)
    except InvalidInput as e:
        logger.warning(f"Skipping R-hat: {e}")
        return None
    logger.info(f"Diagnostics complete in {time.perf_counter() - rhat_start:.4f}s")

    print_rhat_summary(results, threshold)
    return rhat_values(results)


def print_acceptance_summary(acceptance_rates: np.ndarray, labels: Optional[List[str]] = None) -> None:
    """
    Log summary statistics for acceptance rates.

    Args:
        acceptance_rates: (n_chains, n_blocks) as from ChainCollection.acceptance_rates()
        labels: Optional block labels
    """
    rates = np.atleast_2d(np.asarray(acceptance_rates, dtype=float))
    if rates.size == 0:
        return
    n_blocks = rates.shape[1]
    if labels is None:
        labels = [f"Block {i}" for i in range(n_blocks)]

    logger.info(f"--- Acceptance Rates ({rates.shape[0]} chains) ---")
    for b in range(n_blocks):
        block_rates = rates[:, b]
        logger.info(f"  {labels[b]}: mean {np.nanmean(block_rates):.3f} "
                    f"(min {np.nanmin(block_rates):.3f}, max {np.nanmax(block_rates):.3f})")

    low = np.argwhere(rates < LOW_ACCEPTANCE)
    for chain, block in low:
        logger.warning(f"  Chain {chain}, {labels[block]}: low acceptance rate "
                       f"{rates[chain, block]:.3f} (< {LOW_ACCEPTANCE:.0%})")
