"""
MCMC Backend - Main Entry Points.

This module runs many chains of one model concurrently:

- start_chains: Launch one Sampler per chain on a thread pool, return a SamplingRun
- run_chains: Blocking run, returns the terminated ChainCollection
- rmcmc: Blocking run plus post-run diagnostics, returns a results dict

Chains share only the read-only transition kernel (target density, proposal,
compiled step function); each owns its Chain and PRNG stream. A SamplingRun
is the join point: wait() blocks until every chain has terminated and then
re-raises the first chain failure, if any.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait as wait_futures
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..error_handling import diagnose_sampler_issues, print_diagnostics
from .config import configure_sampling
from .diagnostics import compute_split_rhat, print_acceptance_summary, print_rhat_summary, rhat_values
from .kernels import GibbsKernel
from .sampler import Sampler
from .types import ChainCollection, SamplerStatus

import logging
logger = logging.getLogger('mcsampler')

__all__ = [
    'SamplingRun',
    'start_chains',
    'run_chains',
    'rmcmc',
]


class SamplingRun:
    """
    Handle on a set of chains sampling in the background.

    Args:
        samplers: One Sampler per chain, all sharing ``stop_event``
        num_iterations: Iterations per chain
        max_workers: Thread pool size (default: one thread per chain)
        stop_event: Shared cooperative-stop event
    """

    def __init__(self, samplers: List[Sampler], num_iterations: int,
                 max_workers: Optional[int] = None,
                 stop_event: Optional[threading.Event] = None,
                 user_config: Optional[Dict[str, Any]] = None):
        self.samplers = list(samplers)
        self.user_config = user_config
        self.kernel = self.samplers[0].kernel if self.samplers else None
        self.num_iterations = num_iterations
        self.chains = ChainCollection(s.chain for s in self.samplers)
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._start = time.perf_counter()
        self.wall_time: Optional[float] = None

        executor = ThreadPoolExecutor(max_workers=max_workers or len(self.samplers),
                                      thread_name_prefix='mcsampler-chain')
        self._futures = [executor.submit(s.run, num_iterations) for s in self.samplers]
        # Submitted chains keep running; the pool is released once they finish
        executor.shutdown(wait=False)

    def stop(self) -> None:
        """Ask every chain to stop after its current iteration (or chunk)."""
        logger.info("Stop requested for all chains")
        self._stop_event.set()

    def done(self) -> bool:
        return all(f.done() for f in self._futures)

    @property
    def statuses(self) -> List[SamplerStatus]:
        return [s.status for s in self.samplers]

    def wait(self, timeout: Optional[float] = None) -> ChainCollection:
        """
        Block until every chain has terminated.

        Returns:
            The ChainCollection of terminated chains

        Raises:
            TimeoutError: If ``timeout`` seconds pass first
            Exception: The first chain failure (by chain index), after all chains joined
        """
        _, not_done = wait_futures(self._futures, timeout=timeout)
        if not_done:
            raise TimeoutError(f"{len(not_done)} chain(s) still running after {timeout}s")
        if self.wall_time is None:
            self.wall_time = time.perf_counter() - self._start

        failures = [(s.chain_id, f.exception()) for s, f in zip(self.samplers, self._futures)
                    if f.exception() is not None]
        if failures:
            logger.error(f"{len(failures)} of {len(self.samplers)} chain(s) failed")
            raise failures[0][1]
        return self.chains

    def __repr__(self):
        running = sum(not f.done() for f in self._futures)
        return f"SamplingRun(chains={len(self.samplers)}, running={running})"


def start_chains(mcmc_config: Dict[str, Any], model=None,
                 stop_event: Optional[threading.Event] = None) -> SamplingRun:
    """
    Configure a run and start every chain in the background.

    Args:
        mcmc_config: Config dict (see configure_sampling)
        model: Registered model name, model dict, TargetDensity or density callable
        stop_event: Optional externally owned stop event

    Returns:
        SamplingRun; call wait() to join
    """
    user_config, runtime_ctx = configure_sampling(mcmc_config, model)
    stop_event = stop_event if stop_event is not None else threading.Event()

    samplers = [
        Sampler(runtime_ctx['kernel'], state, key=key, chain_id=j,
                chunk_size=user_config['chunk_size'], stop_event=stop_event)
        for j, (state, key) in enumerate(zip(runtime_ctx['initial_states'],
                                             runtime_ctx['chain_keys']))
    ]
    logger.info(f"Starting {len(samplers)} chains ({user_config['num_iterations']} iterations each)")
    return SamplingRun(samplers, user_config['num_iterations'],
                       max_workers=user_config['max_workers'], stop_event=stop_event,
                       user_config=user_config)


def _block_labels(kernel) -> List[str]:
    if isinstance(kernel, GibbsKernel):
        return [spec.label or f"Block {i}" for i, spec in enumerate(kernel.blocks)]
    return [kernel.name]


def run_chains(mcmc_config: Dict[str, Any], model=None) -> ChainCollection:
    """
    Run every chain to completion.

    Returns:
        ChainCollection of terminated chains, each of length num_iterations + 1

    Raises:
        InvalidConfiguration: Invalid config or model
        NumericalError: A chain hit an invalid density or conditional value
    """
    run = start_chains(mcmc_config, model)
    chains = run.wait()

    logger.info("--- MCMC Run Summary ---")
    logger.info(f"  Total Wall Time: {timedelta(seconds=int(run.wall_time))} ({run.wall_time:.2f}s)")
    print_acceptance_summary(chains.acceptance_rates(), _block_labels(run.kernel))
    return chains


def rmcmc(mcmc_config: Dict[str, Any], model=None) -> Dict[str, Any]:
    """
    Run MCMC sampling and post-run diagnostics.

    Args:
        mcmc_config: Config dict with keys like 'num_chains', 'num_iterations',
                     'rng_seed', 'proposal', 'sampler', 'model_id'
        model: Optional model (overrides 'model_id')

    Returns:
        results: Dict with 'chains' (ChainCollection), 'history'
                 (n_samples, n_chains, n_params), 'rhat' (per-parameter array
                 or None), 'rhat_results' (DiagnosticResult list),
                 'acceptance_rates', 'diagnostics', 'wall_time', 'mcmc_config'
    """
    run = start_chains(mcmc_config, model)
    chains = run.wait()
    user_config = run.user_config

    logger.info("--- MCMC Run Summary ---")
    logger.info(f"  Total Wall Time: {timedelta(seconds=int(run.wall_time))} ({run.wall_time:.2f}s)")

    lengths = chains.lengths()
    length = min(lengths)
    if len(set(lengths)) > 1:
        logger.warning(f"Chains stopped at different lengths {lengths}; "
                       f"history truncated to {length}")
    history = chains.to_array(length)

    rhat_results = None
    rhat = None
    if length >= 4:
        rhat_results = compute_split_rhat(history, strict=False)
        print_rhat_summary(rhat_results)
        rhat = rhat_values(rhat_results)
    else:
        logger.warning(f"Chains too short for R-hat ({length} < 4)")

    acceptance_rates = chains.acceptance_rates()
    print_acceptance_summary(acceptance_rates, _block_labels(run.kernel))

    logger.info("--- Post-Run Diagnostics ---")
    diagnostics = diagnose_sampler_issues(history, {
        'rhat': rhat,
        'wall_time': run.wall_time,
        'n_degenerate': [chains[j].n_degenerate for j in chains],
    })
    print_diagnostics(diagnostics)

    return {
        'chains': chains,
        'history': history,
        'rhat': rhat,
        'rhat_results': rhat_results,
        'acceptance_rates': acceptance_rates,
        'diagnostics': diagnostics,
        'wall_time': run.wall_time,
        'mcmc_config': user_config,
    }
