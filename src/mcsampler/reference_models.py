"""
Reference Models - Targets with Known Answers

This module contains small models used for testing the samplers and for
examples. Each has a known analytical answer (or a known failure mode),
allowing us to verify sampler and diagnostic correctness.

DO NOT import this module in production sampling code.
These models are for testing/validation only.
"""

import numpy as np
import jax
import jax.numpy as jnp
import jax.scipy.stats as stats
import jax.random as random

from .batch_specs import BlockSpec, SamplerType


# ============================================================================
# GAUSSIAN - Standard Normal Density
# ============================================================================

def gaussian_density(x):
    """Unnormalized standard normal density in any dimension."""
    return jnp.exp(-0.5 * jnp.sum(x ** 2))


def make_gaussian_model(dim=2, scale=1.0):
    return {
        'density': gaussian_density,
        'initial_state': np.zeros(dim),
        'proposal': {'type': 'gaussian', 'scale': scale},
        'label': f'Standard normal ({dim}-D)',
    }


# ============================================================================
# FLAT / UNIT BOX - Uniform Targets
# ============================================================================

def flat_density(x):
    """
    Constant density everywhere (improper uniform).

    Every ratio is p(x') / p(x) = 1, so every proposal is accepted.
    """
    return jnp.ones((), dtype=x.dtype)


def unit_box_density(x):
    """Uniform density on [0, 1]^d; zero outside."""
    inside = jnp.all((x >= 0.0) & (x <= 1.0))
    return jnp.where(inside, 1.0, 0.0)


# ============================================================================
# BIMODAL - Two Well-Separated Normal Modes
# ============================================================================

BIMODAL_MODES = (-5.0, 5.0)


def bimodal_density(x):
    """
    Equal mixture of N(-5, 1) and N(5, 1) per coordinate.

    The modes are 10 standard deviations apart: a random walk with a small
    step never crosses between them in a short run.
    """
    lo, hi = BIMODAL_MODES
    return jnp.prod(0.5 * jnp.exp(-0.5 * (x - lo) ** 2) + 0.5 * jnp.exp(-0.5 * (x - hi) ** 2))


# ============================================================================
# BETA-BINOMIAL - Two-Block Gibbs (Casella & George, 1992)
# ============================================================================

def make_beta_binomial_model(n=16, alpha=2.0, beta=4.0):
    """
    Beta-Binomial model sampled by Gibbs.

    Model (state = [x, theta]):
        x | theta ~ Binomial(n, theta)
        theta | x ~ Beta(x + alpha, n - x + beta)

    Analytical marginals:
        theta ~ Beta(alpha, beta)      E[theta] = alpha / (alpha + beta)
        x ~ BetaBinomial(n, alpha, beta)   E[x] = n * alpha / (alpha + beta)
    """

    def draw_x(key, state, indices):
        theta = state[1]
        # Binomial(n, theta) as a sum of n Bernoulli draws (n is static)
        successes = jnp.sum(random.bernoulli(key, theta, shape=(n,)))
        return jnp.reshape(successes, (1,)).astype(state.dtype)

    def draw_theta(key, state, indices):
        x = state[0]
        theta = random.beta(key, x + alpha, n - x + beta, dtype=state.dtype)
        return jnp.reshape(theta, (1,))

    blocks = [
        BlockSpec(size=1, sampler_type=SamplerType.DIRECT_CONJUGATE,
                  conditional=draw_x, label='x'),
        BlockSpec(size=1, sampler_type=SamplerType.DIRECT_CONJUGATE,
                  conditional=draw_theta, label='theta'),
    ]
    return {
        'blocks': blocks,
        'initial_state': np.array([float(n // 2), 0.5]),
        'label': f'Beta-Binomial (n={n}, alpha={alpha}, beta={beta})',
    }


def beta_binomial_analytical_means(n=16, alpha=2.0, beta=4.0):
    """
    Returns:
        (E[x], E[theta]) under the joint stationary distribution
    """
    mean_theta = alpha / (alpha + beta)
    return n * mean_theta, mean_theta


# ============================================================================
# NORMAL-NORMAL - Metropolis-within-Gibbs
# ============================================================================

def make_bivariate_normal_model(rho=0.5):
    """
    Bivariate normal with unit variances and correlation ``rho``.

    Block 0 is drawn from its exact conditional
        x0 | x1 ~ N(rho * x1, 1 - rho^2)
    and block 1 takes a Gaussian random-walk MH step against the joint density.
    Both marginals are N(0, 1).
    """
    sd = float(np.sqrt(1.0 - rho ** 2))

    def log_density(x):
        quad = (x[0] ** 2 - 2.0 * rho * x[0] * x[1] + x[1] ** 2) / (1.0 - rho ** 2)
        return -0.5 * quad

    def draw_x0(key, state, indices):
        return rho * state[1] + sd * random.normal(key, shape=(1,), dtype=state.dtype)

    blocks = [
        BlockSpec(size=1, sampler_type=SamplerType.DIRECT_CONJUGATE,
                  conditional=draw_x0, label='x0'),
        BlockSpec(size=1, sampler_type=SamplerType.METROPOLIS_HASTINGS,
                  proposal={'type': 'gaussian', 'scale': 1.5}, label='x1'),
    ]
    return {
        'log_density': log_density,
        'blocks': blocks,
        'initial_state': np.zeros(2),
        'label': f'Bivariate normal (rho={rho})',
    }


# ============================================================================
# SKILL RATING - Pairwise Comparison Log Density
# ============================================================================

def make_skill_rating_model(games, n_players, prior_sd=1.0):
    """
    Skill ratings from head-to-head card games.

    Model:
        skill_i ~ N(0, prior_sd^2)                           [Prior]
        P(winner beats loser) = sigmoid(skill_w - skill_l)   [Likelihood]

    Args:
        games: Sequence of (winner, loser) player index pairs
        n_players: Number of players (state dimension)
        prior_sd: Prior standard deviation of each skill

    Only skill differences enter the likelihood; the prior pins the location.
    """
    games = np.asarray(games, dtype=np.int32).reshape(-1, 2)
    winners = jnp.asarray(games[:, 0])
    losers = jnp.asarray(games[:, 1])

    def log_density(skill):
        log_prior = jnp.sum(stats.norm.logpdf(skill, 0.0, prior_sd))
        log_lik = jnp.sum(jax.nn.log_sigmoid(skill[winners] - skill[losers]))
        return log_prior + log_lik

    return {
        'log_density': log_density,
        'initial_state': np.zeros(n_players),
        'proposal': {'type': 'gaussian', 'scale': 0.5},
        'label': f'Skill rating ({n_players} players, {len(games)} games)',
    }


# ============================================================================
# AR(1) - Synthetic Chains for Diagnostics
# ============================================================================

def ar1_chains(n_samples, n_chains=2, phi=0.5, sigma=1.0, seed=0):
    """
    Independent AR(1) chains x_t = phi * x_{t-1} + eps_t, eps_t ~ N(0, sigma^2).

    Every chain starts in the stationary distribution N(0, sigma^2 / (1 - phi^2)),
    so all chains sample the same stationary process.

    Returns:
        history: (n_samples, n_chains)
    """
    rng = np.random.default_rng(seed)
    stationary_sd = sigma / np.sqrt(1.0 - phi ** 2)
    history = np.empty((n_samples, n_chains))
    history[0] = rng.normal(0.0, stationary_sd, size=n_chains)
    eps = rng.normal(0.0, sigma, size=(n_samples, n_chains))
    for t in range(1, n_samples):
        history[t] = phi * history[t - 1] + eps[t]
    return history


# ============================================================================
# REGISTRY TABLE
# ============================================================================

REFERENCE_MODELS = {
    'gaussian_2d': make_gaussian_model(),
    'flat_1d': {
        'density': flat_density,
        'initial_state': np.zeros(1),
        'proposal': {'type': 'uniform', 'half_width': 1.0},
        'label': 'Flat (1-D)',
    },
    'bimodal_1d': {
        'density': bimodal_density,
        'initial_state': np.array([BIMODAL_MODES[0]]),
        'proposal': {'type': 'gaussian', 'scale': 0.5},
        'label': 'Bimodal (1-D)',
    },
    'beta_binomial': make_beta_binomial_model(),
    'bivariate_normal': make_bivariate_normal_model(),
}
