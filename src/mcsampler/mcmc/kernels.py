"""
MCMC Transition Kernels.

A kernel owns the read-only pieces of a sampler (target density, proposal,
Gibbs blocks) and a jit-compiled function that advances one chain by a
fixed number of iterations with ``jax.lax.scan``:

- MetropolisKernel: Metropolis / Metropolis-Hastings over the full state
- GibbsKernel: systematic-scan Gibbs over BlockSpecs, with exact conditional
  draws and optional Metropolis-within-Gibbs blocks

Kernels hold no per-chain state, so one kernel (and one compilation) is
shared by every chain of a run. The per-chain carry is (key, state[, log_p]).

Numerical contract violations are not handled inside the kernel; they are
flagged in the returned StepTrace and the sampler aborts the chain at the
first flagged iteration.
"""

from typing import List, Optional, Tuple

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..batch_specs import BlockSpec, block_offsets, total_block_params, validate_block_specs
from ..error_handling import InvalidConfiguration, NumericalError
from ..proposals import make_proposal
from ..target import TargetDensity, as_target
from .acceptance import (
    acceptance_probability,
    is_degenerate,
    log_acceptance_ratio,
    should_accept,
)
from .types import StepTrace

import logging
logger = logging.getLogger('mcsampler')


def metropolis_step(key, state, log_p, target: TargetDensity, proposal):
    """
    Perform one Metropolis-Hastings step.

    Args:
        key: JAX random key
        state: Current state (dim,)
        log_p: Log target density at ``state``
        target: TargetDensity
        proposal: Proposal (computes its own Hastings ratio)

    Returns:
        next_state, next_log_p, new_key, accepted, accept_prob, degenerate, invalid, raw_candidate
    """
    candidate, log_hastings_ratio, key = proposal.propose(key, state)
    log_p_candidate, raw_candidate, invalid = target.evaluate(candidate)
    log_p_candidate = log_p_candidate.astype(state.dtype)

    log_r = log_acceptance_ratio(log_p_candidate, log_p, log_hastings_ratio)
    degenerate = is_degenerate(log_p_candidate, log_p) & ~invalid
    r = jnp.exp(log_r)

    new_key, accept_key = random.split(key)
    uniform_draw = random.uniform(accept_key, shape=(), dtype=state.dtype)

    accept = should_accept(r, uniform_draw) & ~invalid
    accept_prob = jnp.where(invalid, 0.0, acceptance_probability(r))
    next_state = jnp.where(accept, candidate, state)
    next_log_p = jnp.where(accept, log_p_candidate, log_p)

    return (next_state, next_log_p, new_key, accept, accept_prob, degenerate,
            invalid, jnp.asarray(raw_candidate, dtype=state.dtype))


def _check_initial_density(target: TargetDensity, state) -> None:
    """Fail fast on an invalid initial density; warn on a zero one."""
    log_p, raw, invalid = target.evaluate(jnp.asarray(state))
    if bool(invalid):
        raise NumericalError(
            f"Target density at the initial state is invalid (got {float(raw)!r}); "
            f"densities must be finite and nonnegative"
        )
    if bool(jnp.isneginf(log_p)):
        logger.warning("Target density is zero at the initial state; "
                       "the first candidate with positive density will be accepted")


class MetropolisKernel:
    """
    Metropolis (symmetric proposal) / Metropolis-Hastings (asymmetric) kernel.

    Args:
        target: TargetDensity, density callable, or model dict
        proposal: Proposal instance or proposal spec dict
    """

    n_blocks = 1

    def __init__(self, target, proposal):
        self.target = as_target(target)
        if proposal is None:
            raise InvalidConfiguration("Metropolis sampling requires a proposal")
        self.proposal = make_proposal(proposal)
        self._sample = jax.jit(self._sample_steps, static_argnums=(1,))

    @property
    def name(self) -> str:
        return 'metropolis' if self.proposal.symmetric else 'metropolis_hastings'

    def check_state(self, state) -> None:
        self.proposal.check_state(state)

    def init_carry(self, key, state) -> Tuple:
        state = jnp.asarray(state)
        _check_initial_density(self.target, state)
        log_p, _, _ = self.target.evaluate(state)
        return (key, state, log_p.astype(state.dtype))

    def _step(self, carry, _):
        key, state, log_p = carry
        (next_state, next_log_p, key, accept, accept_prob,
         degenerate, invalid, raw_candidate) = metropolis_step(key, state, log_p,
                                                               self.target, self.proposal)
        out = StepTrace(
            states=next_state,
            accepted=accept[None],
            accept_prob=accept_prob[None],
            degenerate=degenerate.astype(jnp.int32),
            invalid=invalid,
            bad_value=raw_candidate,
        )
        return (key, next_state, next_log_p), out

    def _sample_steps(self, carry, num_steps):
        return jax.lax.scan(self._step, carry, None, length=num_steps)

    def sample(self, carry, num_steps: int):
        """Advance one chain by ``num_steps`` iterations; returns (carry, StepTrace)."""
        return self._sample(carry, num_steps)

    def __repr__(self):
        return f"MetropolisKernel(target={self.target!r}, proposal={self.proposal!r})"


class GibbsKernel:
    """
    Systematic-scan Gibbs kernel.

    Each iteration updates the blocks in list order. A block sees the current
    values of every other parameter, including values already updated earlier
    in the same sweep. Direct blocks are always accepted; Metropolis blocks
    accept or reject against the joint target density.

    Args:
        blocks: List of BlockSpec
        target: Joint target density, required only for Metropolis blocks
    """

    def __init__(self, blocks: List[BlockSpec], target: Optional[object] = None):
        validate_block_specs(blocks)
        self.blocks = list(blocks)
        self.offsets = block_offsets(self.blocks)
        self.n_blocks = len(self.blocks)
        self.n_params = total_block_params(self.blocks)
        self.target = as_target(target) if target is not None else None
        if self.target is None and any(b.is_mh_sampler() for b in self.blocks):
            raise InvalidConfiguration(
                "Metropolis-within-Gibbs blocks require a joint target density"
            )
        self._sample = jax.jit(self._sample_steps, static_argnums=(1,))

    name = 'gibbs'

    def check_state(self, state) -> None:
        dim = np.shape(state)[0]
        if dim != self.n_params:
            raise InvalidConfiguration(
                f"Gibbs blocks cover {self.n_params} parameters but the state has {dim}"
            )
        for spec, (start, end) in zip(self.blocks, self.offsets):
            if spec.is_mh_sampler():
                spec.proposal.check_state(np.asarray(state)[start:end])

    def init_carry(self, key, state) -> Tuple:
        state = jnp.asarray(state)
        if self.target is not None:
            _check_initial_density(self.target, state)
        return (key, state)

    def _direct_update(self, key, state, spec, start, end):
        key, draw_key = random.split(key)
        indices = jnp.arange(start, end)
        values = jnp.reshape(jnp.asarray(spec.conditional(draw_key, state, indices),
                                         dtype=state.dtype), (spec.size,))
        finite = jnp.isfinite(values)
        invalid = ~jnp.all(finite)
        bad_value = values[jnp.argmin(finite.astype(jnp.int32))]
        next_state = state.at[start:end].set(jnp.where(invalid, state[start:end], values))
        return (next_state, key, jnp.asarray(True), jnp.asarray(1.0, dtype=state.dtype),
                jnp.asarray(False), invalid, bad_value)

    def _metropolis_update(self, key, state, spec, start, end):
        log_p, raw_current, invalid_current = self.target.evaluate(state)
        current_block = state[start:end]

        def block_target_state(block_values):
            return state.at[start:end].set(block_values)

        candidate_block, log_hastings_ratio, key = spec.proposal.propose(key, current_block)
        candidate = block_target_state(candidate_block)
        log_p_candidate, raw_candidate, invalid_candidate = self.target.evaluate(candidate)
        invalid = invalid_current | invalid_candidate

        log_r = log_acceptance_ratio(log_p_candidate, log_p, log_hastings_ratio)
        degenerate = is_degenerate(log_p_candidate, log_p) & ~invalid
        r = jnp.exp(log_r)

        key, accept_key = random.split(key)
        uniform_draw = random.uniform(accept_key, shape=(), dtype=state.dtype)
        accept = should_accept(r, uniform_draw) & ~invalid
        accept_prob = jnp.where(invalid, 0.0, acceptance_probability(r)).astype(state.dtype)
        next_state = jnp.where(accept, candidate, state)
        bad_value = jnp.where(invalid_current, raw_current, raw_candidate).astype(state.dtype)
        return next_state, key, accept, accept_prob, degenerate, invalid, bad_value

    def _step(self, carry, _):
        key, state = carry
        accepted, probs = [], []
        n_degenerate = jnp.asarray(0, dtype=jnp.int32)
        invalid = jnp.asarray(False)
        bad_value = jnp.zeros((), dtype=state.dtype)

        for spec, (start, end) in zip(self.blocks, self.offsets):
            if spec.is_direct_sampler():
                update = self._direct_update
            else:
                update = self._metropolis_update
            (state, key, block_accept, block_prob,
             block_degenerate, block_invalid, block_bad) = update(key, state, spec, start, end)
            accepted.append(block_accept)
            probs.append(block_prob)
            n_degenerate = n_degenerate + block_degenerate.astype(jnp.int32)
            # Report the first offending value of the sweep
            bad_value = jnp.where(block_invalid & ~invalid, block_bad, bad_value)
            invalid = invalid | block_invalid

        out = StepTrace(
            states=state,
            accepted=jnp.stack(accepted),
            accept_prob=jnp.stack(probs),
            degenerate=n_degenerate,
            invalid=invalid,
            bad_value=bad_value,
        )
        return (key, state), out

    def _sample_steps(self, carry, num_steps):
        return jax.lax.scan(self._step, carry, None, length=num_steps)

    def sample(self, carry, num_steps: int):
        """Advance one chain by ``num_steps`` sweeps; returns (carry, StepTrace)."""
        return self._sample(carry, num_steps)

    def __repr__(self):
        return f"GibbsKernel(blocks={len(self.blocks)}, params={self.n_params})"
