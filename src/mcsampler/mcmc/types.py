"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by the samplers:
- SamplerStatus: Lifecycle of a per-chain sampler
- StepTrace: Per-iteration outputs of a compiled transition kernel
- Chain: Append-only sequence of states owned by one sampler
- ChainCollection: Mapping chain index -> Chain, the input to diagnostics
- DiagnosticResult: Split R-hat statistics for one parameter

States are stored as read-only numpy vectors; once appended they never change.
"""

import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional

import jax.numpy as jnp
import numpy as np

from ..error_handling import InvalidInput


class SamplerStatus(Enum):
    """
    Lifecycle of a per-chain sampler.

    Proposing and evaluating happen inside the compiled kernel, so a sampler
    is RUNNING for the whole loop. Each iteration's Accepted / Rejected
    outcome is recorded on the Chain instead: ``Chain.accepted[i]`` is True
    when iteration i + 1 took the candidate and False when it re-appended
    the current state.
    """
    INITIALIZED = 'initialized'
    RUNNING = 'running'
    TERMINATED = 'terminated'
    FAILED = 'failed'


class StepTrace(NamedTuple):
    """
    Outputs of a kernel over a run of iterations (leading axis = iteration).

    states: (n_steps, n_params) state after each iteration
    accepted: (n_steps, n_blocks) whether each block update was accepted
    accept_prob: (n_steps, n_blocks) acceptance probability min(r, 1)
    degenerate: (n_steps,) number of zero/zero density edge cases
    invalid: (n_steps,) True if the iteration violated a numerical contract
    bad_value: (n_steps,) offending raw value when invalid
    """
    states: jnp.ndarray
    accepted: jnp.ndarray
    accept_prob: jnp.ndarray
    degenerate: jnp.ndarray
    invalid: jnp.ndarray
    bad_value: jnp.ndarray


def _freeze(state) -> np.ndarray:
    arr = np.array(state, copy=True)
    arr.flags.writeable = False
    return arr


class Chain:
    """
    Append-only sequence of states, seeded with an initial state.

    A chain grows by exactly one state per iteration: the accepted candidate,
    or the current state again on rejection. Acceptance flags and
    probabilities are recorded per iteration and per block (one block for
    plain Metropolis).

    After ``terminate()`` the chain is read-only and ``wait()`` returns.
    """

    def __init__(self, initial_state, chain_id: int = 0, n_blocks: int = 1):
        initial = np.atleast_1d(np.asarray(initial_state))
        if initial.ndim != 1:
            raise InvalidInput(f"A state must be a 1-D vector, got shape {initial.shape}")
        self.chain_id = chain_id
        self.n_blocks = n_blocks
        self._states: List[np.ndarray] = [_freeze(initial)]
        self._accepted: List[np.ndarray] = []
        self._accept_prob: List[np.ndarray] = []
        self.n_degenerate = 0
        self._terminated = threading.Event()

    # ------------------------------------------------------------------
    # Growth
    # ------------------------------------------------------------------

    def append(self, state, accepted=True, accept_prob=1.0) -> None:
        """Append one iteration's state."""
        if self._terminated.is_set():
            raise InvalidInput(f"Chain {self.chain_id} is terminated and read-only")
        state = np.atleast_1d(np.asarray(state))
        if state.shape != self._states[0].shape:
            raise InvalidInput(
                f"State shape {state.shape} does not match chain shape {self._states[0].shape}"
            )
        self._states.append(_freeze(state))
        self._accepted.append(np.broadcast_to(np.asarray(accepted, dtype=bool), (self.n_blocks,)).copy())
        self._accept_prob.append(
            np.broadcast_to(np.asarray(accept_prob, dtype=float), (self.n_blocks,)).copy()
        )

    def extend(self, trace: StepTrace, n_steps: Optional[int] = None) -> None:
        """Append the first ``n_steps`` iterations of a kernel trace (all by default)."""
        states = np.asarray(trace.states)
        accepted = np.asarray(trace.accepted)
        accept_prob = np.asarray(trace.accept_prob)
        if n_steps is None:
            n_steps = states.shape[0]
        for i in range(n_steps):
            self.append(states[i], accepted[i], accept_prob[i])
        self.n_degenerate += int(np.sum(np.asarray(trace.degenerate)[:n_steps]))

    def terminate(self) -> None:
        self._terminated.set()

    @property
    def terminated(self) -> bool:
        return self._terminated.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the chain is terminated; returns False on timeout."""
        return self._terminated.wait(timeout)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._states)

    def __getitem__(self, index) -> np.ndarray:
        return self._states[index]

    def __iter__(self):
        return iter(list(self._states))

    @property
    def initial_state(self) -> np.ndarray:
        return self._states[0]

    @property
    def current_state(self) -> np.ndarray:
        return self._states[-1]

    @property
    def num_iterations(self) -> int:
        """Iterations run so far (length minus the seed state)."""
        return len(self._states) - 1

    @property
    def num_params(self) -> int:
        return self._states[0].shape[0]

    def to_array(self) -> np.ndarray:
        """Stacked states, shape (len(chain), n_params)."""
        return np.stack(self._states)

    @property
    def accepted(self) -> np.ndarray:
        """Per-iteration acceptance flags, shape (num_iterations, n_blocks)."""
        if not self._accepted:
            return np.zeros((0, self.n_blocks), dtype=bool)
        return np.stack(self._accepted)

    @property
    def accept_probs(self) -> np.ndarray:
        """Per-iteration acceptance probabilities, shape (num_iterations, n_blocks)."""
        if not self._accept_prob:
            return np.zeros((0, self.n_blocks))
        return np.stack(self._accept_prob)

    def acceptance_rate(self) -> np.ndarray:
        """Fraction of accepted updates per block (NaN before the first iteration)."""
        if not self._accepted:
            return np.full(self.n_blocks, np.nan)
        return np.mean(self.accepted, axis=0)

    def __repr__(self):
        state = 'terminated' if self.terminated else 'open'
        return f"Chain(id={self.chain_id}, length={len(self)}, params={self.num_params}, {state})"


class ChainCollection(Mapping):
    """
    Mapping from chain index to Chain.

    Diagnostics consume a collection through ``to_array()``, which requires
    every chain to have the same length.
    """

    def __init__(self, chains: Optional[Iterable[Chain]] = None):
        self._chains: Dict[int, Chain] = {}
        for chain in chains or ():
            self.add(chain)

    @classmethod
    def from_array(cls, history) -> 'ChainCollection':
        """
        Build a terminated collection from a history array.

        Args:
            history: (n_samples, n_chains, n_params), or (n_samples, n_chains)
                     for a single parameter
        """
        history = np.asarray(history)
        if history.ndim == 2:
            history = history[:, :, np.newaxis]
        if history.ndim != 3:
            raise InvalidInput(
                f"history must have shape (n_samples, n_chains, n_params), got {history.shape}"
            )
        collection = cls()
        for j in range(history.shape[1]):
            chain = Chain(history[0, j], chain_id=j)
            for state in history[1:, j]:
                chain.append(state)
            chain.terminate()
            collection.add(chain)
        return collection

    @classmethod
    def from_sequences(cls, sequences) -> 'ChainCollection':
        """Build a terminated collection from per-chain sequences (lengths may differ)."""
        collection = cls()
        for j, seq in enumerate(sequences):
            seq = np.asarray(seq, dtype=float)
            if seq.ndim == 1:
                seq = seq[:, np.newaxis]
            if seq.shape[0] == 0:
                raise InvalidInput(f"Chain {j} is empty")
            chain = Chain(seq[0], chain_id=j)
            for state in seq[1:]:
                chain.append(state)
            chain.terminate()
            collection.add(chain)
        return collection

    def add(self, chain: Chain) -> None:
        if chain.chain_id in self._chains:
            raise InvalidInput(f"Duplicate chain index {chain.chain_id}")
        self._chains[chain.chain_id] = chain

    def __getitem__(self, chain_id: int) -> Chain:
        return self._chains[chain_id]

    def __iter__(self):
        return iter(sorted(self._chains))

    def __len__(self) -> int:
        return len(self._chains)

    @property
    def num_chains(self) -> int:
        return len(self._chains)

    def lengths(self) -> List[int]:
        return [len(self._chains[j]) for j in self]

    def all_terminated(self) -> bool:
        return all(chain.terminated for chain in self._chains.values())

    def wait_until_terminated(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every chain has terminated.

        Returns False if ``timeout`` (seconds, shared across chains) expires first.
        """
        if timeout is None:
            for chain in self._chains.values():
                chain.wait()
            return True
        deadline = time.monotonic() + timeout
        for chain in self._chains.values():
            remaining = max(0.0, deadline - time.monotonic())
            if not chain.wait(remaining):
                return False
        return True

    def check_equal_length(self) -> int:
        """Return the common chain length, raising InvalidInput if lengths differ."""
        if not self._chains:
            raise InvalidInput("ChainCollection is empty")
        lengths = self.lengths()
        if len(set(lengths)) != 1:
            raise InvalidInput(f"Chains have unequal lengths: {lengths}")
        n_params = {self._chains[j].num_params for j in self}
        if len(n_params) != 1:
            raise InvalidInput(f"Chains have different parameter counts: {sorted(n_params)}")
        return lengths[0]

    def to_array(self, length: Optional[int] = None) -> np.ndarray:
        """
        Stacked history, shape (n_samples, n_chains, n_params).

        Args:
            length: Use only the first ``length`` states of each chain. By
                    default all chains must have equal length.
        """
        if length is None:
            self.check_equal_length()
        else:
            shortest = min(self.lengths())
            if length > shortest:
                raise InvalidInput(f"length {length} exceeds shortest chain ({shortest})")
        return np.stack([self._chains[j].to_array()[:length] for j in self], axis=1)

    def acceptance_rates(self) -> np.ndarray:
        """Per-chain, per-block acceptance rates, shape (n_chains, n_blocks)."""
        return np.stack([self._chains[j].acceptance_rate() for j in self])

    def __repr__(self):
        return f"ChainCollection(chains={self.num_chains}, lengths={self.lengths()})"


@dataclass(frozen=True)
class DiagnosticResult:
    """
    Split R-hat statistics for one parameter.

    W: mean within-sub-chain variance
    B: between-sub-chain variance
    var_hat: pooled posterior variance estimate
    rhat: potential scale reduction (NaN when undefined, i.e. W == 0)
    n: sub-chain length
    m: number of sub-chains
    """
    parameter: int
    W: float
    B: float
    var_hat: float
    rhat: float
    n: int
    m: int

    @property
    def defined(self) -> bool:
        return bool(np.isfinite(self.rhat))

    def converged(self, threshold: float = 1.01) -> bool:
        """R-hat near 1 (below ``threshold``) indicates adequate mixing."""
        return self.defined and self.rhat < threshold
