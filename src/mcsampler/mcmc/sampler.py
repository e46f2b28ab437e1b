"""
Per-Chain Samplers.

A Sampler drives one chain: it owns the Chain, the chain's PRNG key and the
kernel carry, and repeatedly asks a (shared, read-only) kernel to advance
the chain. Lifecycle:

    INITIALIZED -> RUNNING -> TERMINATED
                           -> FAILED      (numerical contract violation)

Every iteration appends exactly one state. A cooperative stop request is
honoured between kernel calls, i.e. after the current iteration when
``chunk_size == 1`` (the default) or after the current chunk otherwise.
"""

import threading
from typing import Optional

import jax.random as random
import numpy as np

from ..error_handling import InvalidConfiguration, NumericalError
from .kernels import GibbsKernel, MetropolisKernel
from .types import Chain, SamplerStatus

import logging
logger = logging.getLogger('mcsampler')


class Sampler:
    """
    Drive one chain with a transition kernel.

    Args:
        kernel: MetropolisKernel or GibbsKernel (may be shared across chains)
        initial_state: Seed state (dim,)
        key: JAX PRNG key owned by this chain
        seed: Integer seed used when ``key`` is not given
        chain_id: Index of this chain in its collection
        chunk_size: Iterations per compiled kernel call
        stop_event: Shared threading.Event for cooperative stopping
    """

    def __init__(self, kernel, initial_state, key=None, seed: Optional[int] = None,
                 chain_id: int = 0, chunk_size: int = 1,
                 stop_event: Optional[threading.Event] = None):
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, (int, np.integer)) or chunk_size < 1:
            raise InvalidConfiguration(f"chunk_size must be a positive integer, got {chunk_size!r}")

        state = np.atleast_1d(np.asarray(initial_state, dtype=float))
        if state.ndim != 1 or state.size == 0:
            raise InvalidConfiguration(
                f"initial_state must be a non-empty 1-D vector, got shape {state.shape}"
            )
        if not np.all(np.isfinite(state)):
            raise InvalidConfiguration("initial_state contains NaN or Inf values")
        kernel.check_state(state)

        if key is None:
            key = random.PRNGKey(chain_id if seed is None else seed)

        self.kernel = kernel
        self.chain_id = chain_id
        self.chunk_size = int(chunk_size)
        self.chain = Chain(state, chain_id=chain_id, n_blocks=kernel.n_blocks)
        self.status = SamplerStatus.INITIALIZED
        self._key = key
        self._stop_event = stop_event if stop_event is not None else threading.Event()

    def request_stop(self) -> None:
        """Ask the sampler to stop after the current iteration (or chunk)."""
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def run(self, num_iterations: int) -> Chain:
        """
        Run the chain for ``num_iterations`` iterations.

        Returns:
            The terminated Chain (length num_iterations + 1 unless stopped early)

        Raises:
            InvalidConfiguration: Non-positive iteration count, or sampler reused
            NumericalError: Target density or conditional violated its contract;
                the chain is truncated at the last valid state and marked FAILED
        """
        if isinstance(num_iterations, bool) or not isinstance(num_iterations, (int, np.integer)) \
                or num_iterations < 1:
            raise InvalidConfiguration(
                f"num_iterations must be a positive integer, got {num_iterations!r}"
            )
        if self.status != SamplerStatus.INITIALIZED:
            raise InvalidConfiguration(
                f"Chain {self.chain_id} sampler has already run (status: {self.status.value})"
            )

        self.status = SamplerStatus.RUNNING
        try:
            self._run(int(num_iterations))
        except Exception:
            self.status = SamplerStatus.FAILED
            logger.error(f"Chain {self.chain_id} failed after {self.chain.num_iterations} iterations")
            raise
        else:
            self.status = SamplerStatus.TERMINATED
        finally:
            self.chain.terminate()

        if self.chain.n_degenerate:
            logger.debug(f"Chain {self.chain_id}: {self.chain.n_degenerate} zero-density "
                         f"proposal(s) rejected")
        return self.chain

    def _run(self, num_iterations: int) -> None:
        carry = self.kernel.init_carry(self._key, self.chain.current_state)
        remaining = num_iterations
        while remaining > 0:
            if self._stop_event.is_set():
                logger.info(f"Chain {self.chain_id} stopped after "
                            f"{self.chain.num_iterations}/{num_iterations} iterations")
                break
            n_steps = min(self.chunk_size, remaining)
            carry, trace = self.kernel.sample(carry, n_steps)

            invalid = np.asarray(trace.invalid)
            if invalid.any():
                first_bad = int(np.argmax(invalid))
                self.chain.extend(trace, first_bad)
                bad_value = float(np.asarray(trace.bad_value)[first_bad])
                raise NumericalError(
                    f"Chain {self.chain_id}: {self.kernel.name} update produced an invalid "
                    f"value {bad_value!r} at iteration {self.chain.num_iterations + 1} "
                    f"(densities must be finite and nonnegative, draws finite)"
                )
            self.chain.extend(trace)
            remaining -= n_steps

    def __repr__(self):
        return (f"{type(self).__name__}(chain_id={self.chain_id}, status={self.status.value}, "
                f"length={len(self.chain)})")


class MetropolisSampler(Sampler):
    """
    Metropolis / Metropolis-Hastings sampler for one chain.

    Example:
        sampler = MetropolisSampler(
            target=lambda x: jnp.exp(-0.5 * jnp.sum(x ** 2)),
            proposal=GaussianRandomWalk(scale=0.8),
            initial_state=[0.0, 0.0],
            seed=1,
        )
        chain = sampler.run(5000)
    """

    def __init__(self, target, proposal, initial_state, **kwargs):
        super().__init__(MetropolisKernel(target, proposal), initial_state, **kwargs)


class GibbsSampler(Sampler):
    """
    Systematic-scan Gibbs sampler for one chain.

    ``blocks`` is a list of BlockSpec; direct blocks draw from their exact
    full conditionals, Metropolis blocks need the joint ``target``.
    """

    def __init__(self, blocks, initial_state, target=None, **kwargs):
        super().__init__(GibbsKernel(blocks, target), initial_state, **kwargs)
