"""
Metropolis-Hastings Acceptance Rule.

Pure, traceable functions for the accept/reject decision. Random draws are
passed in, so each piece can be tested without a random stream:

- log_acceptance_ratio: log r from log densities and the log Hastings ratio
- acceptance_ratio: r in density space (same rule, exponentiated)
- acceptance_probability: min(r, 1), clamped to [0, 1]
- should_accept: accept iff u < min(r, 1)

Zero-density convention: when p(current) == 0 the ratio is +inf (the
candidate is always accepted) unless p(candidate) == 0 as well, in which case
the ratio is 0 and the step is a rejection. Only the target densities decide
this case; the proposal densities play no part. The zero/zero case is
reported separately by ``is_degenerate`` so callers can count it.

``acceptance_ratio`` takes raw densities and returns NaN when any of them is
negative, NaN or infinite. An invalid density is never read as zero.
"""

import jax.numpy as jnp


def _log_numerator(log_p_candidate, log_hastings_ratio):
    # NaN Hastings terms (e.g. -inf - -inf) force rejection
    log_hastings_ratio = jnp.nan_to_num(log_hastings_ratio, nan=-jnp.inf,
                                        posinf=jnp.inf, neginf=-jnp.inf)
    return jnp.nan_to_num(log_p_candidate + log_hastings_ratio, nan=-jnp.inf,
                          posinf=jnp.inf, neginf=-jnp.inf)


def is_degenerate(log_p_candidate, log_p_current):
    """True when the target density is zero at both the candidate and the current state."""
    return jnp.isneginf(log_p_current) & jnp.isneginf(log_p_candidate)


def log_acceptance_ratio(log_p_candidate, log_p_current, log_hastings_ratio=0.0):
    """
    Log of the Metropolis-Hastings ratio.

        log r = log p(x') - log p(x) + [log q(x|x') - log q(x'|x)]

    For symmetric proposals ``log_hastings_ratio`` is 0 and this is the plain
    Metropolis ratio.

    Args:
        log_p_candidate: Log target density at the candidate (-inf for zero)
        log_p_current: Log target density at the current state (-inf for zero)
        log_hastings_ratio: log q(current|candidate) - log q(candidate|current)

    Returns:
        log r, in [-inf, +inf]; never NaN for non-NaN inputs
    """
    numerator = _log_numerator(log_p_candidate, log_hastings_ratio)
    zero_current = jnp.isneginf(log_p_current)
    safe_current = jnp.where(zero_current, 0.0, log_p_current)
    regular = jnp.nan_to_num(numerator - safe_current, nan=-jnp.inf,
                             posinf=jnp.inf, neginf=-jnp.inf)
    from_zero = jnp.where(jnp.isneginf(log_p_candidate), -jnp.inf, jnp.inf)
    return jnp.where(zero_current, from_zero, regular)


def acceptance_ratio(p_candidate, p_current, q_reverse=1.0, q_forward=1.0):
    """
    Metropolis-Hastings ratio in density space.

        r = p(x') q(x|x') / (p(x) q(x'|x))

    Args:
        p_candidate: Target density at the candidate
        p_current: Target density at the current state
        q_reverse: Proposal density q(current | candidate)
        q_forward: Proposal density q(candidate | current)

    Returns:
        r >= 0 (possibly +inf), or NaN if any density is negative, NaN or
        infinite
    """
    densities = [jnp.asarray(d) for d in (p_candidate, p_current, q_reverse, q_forward)]
    invalid = jnp.zeros((), dtype=bool)
    for d in densities:
        invalid = invalid | ~jnp.isfinite(d) | (d < 0)
    p_candidate, p_current, q_reverse, q_forward = (jnp.where(invalid, 1.0, d) for d in densities)

    log_hastings = jnp.log(q_reverse) - jnp.log(q_forward)
    log_r = log_acceptance_ratio(jnp.log(p_candidate), jnp.log(p_current), log_hastings)
    return jnp.where(invalid, jnp.nan, jnp.exp(log_r))


def acceptance_probability(r):
    """Acceptance probability min(r, 1), clamped to [0, 1]."""
    return jnp.clip(jnp.minimum(r, 1.0), 0.0, 1.0)


def should_accept(r, uniform_draw):
    """
    Accept/reject decision for a ratio and a uniform draw on [0, 1).

    Accepts iff uniform_draw < min(r, 1), so r >= 1 always accepts and r == 0
    never does.
    """
    return uniform_draw < acceptance_probability(r)
