"""
Sampler Tests - Metropolis, Metropolis-Hastings and Gibbs

Tests single-chain samplers end to end: chain growth, the accept/reject
contract, zero-density edge cases, numerical failures, stopping, and
agreement with analytical answers.
Run with: pytest tests/test_samplers.py -v
"""

import threading
import time

import numpy as np
import jax
import jax.numpy as jnp
import pytest

from mcsampler import reference_models
from mcsampler.batch_specs import BlockSpec, SamplerType, create_component_blocks
from mcsampler.error_handling import InvalidConfiguration, InvalidInput, NumericalError
from mcsampler.mcmc.sampler import GibbsSampler, MetropolisSampler
from mcsampler.mcmc.types import SamplerStatus
from mcsampler.proposals import GaussianRandomWalk, LogNormalRandomWalk, UniformRandomWalk
from mcsampler.target import TargetDensity


# ============================================================================
# METROPOLIS: CHAIN CONTRACT
# ============================================================================

class TestMetropolisChain:

    @pytest.mark.parametrize("chunk_size", [1, 7])
    def test_chain_length_is_iterations_plus_one(self, gaussian_target, chunk_size):
        sampler = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0],
                                    seed=0, chunk_size=chunk_size)
        chain = sampler.run(50)
        assert len(chain) == 51
        assert chain.num_iterations == 50
        assert sampler.status == SamplerStatus.TERMINATED
        assert chain.terminated

    def test_chain_starts_at_initial_state(self, gaussian_target):
        chain = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.3, -0.2],
                                  seed=0).run(10)
        np.testing.assert_allclose(chain.initial_state, [0.3, -0.2])

    def test_flat_target_accepts_everything(self, flat_target):
        """With p(x') / p(x) = 1 every proposal is accepted."""
        chain = MetropolisSampler(flat_target, GaussianRandomWalk(1.0), [0.0],
                                  seed=3).run(300)
        assert np.all(chain.accepted)
        np.testing.assert_allclose(chain.acceptance_rate(), [1.0])
        np.testing.assert_allclose(chain.accept_probs, 1.0)
        states = chain.to_array()
        assert np.all(states[1:] != states[:-1])

    def test_acceptance_probability_in_unit_interval(self, gaussian_target):
        chain = MetropolisSampler(gaussian_target, GaussianRandomWalk(2.5), [0.0, 0.0],
                                  seed=4).run(500)
        probs = chain.accept_probs
        assert probs.shape == (500, 1)
        assert np.all((probs >= 0.0) & (probs <= 1.0))
        rate = float(chain.acceptance_rate()[0])
        assert 0.0 < rate < 1.0

    def test_rejection_repeats_current_state(self, gaussian_target):
        chain = MetropolisSampler(gaussian_target, GaussianRandomWalk(3.0), [0.0, 0.0],
                                  seed=5).run(300)
        states = chain.to_array()
        accepted = chain.accepted[:, 0]
        assert np.any(~accepted)
        np.testing.assert_array_equal(states[1:][~accepted], states[:-1][~accepted])
        assert np.all(np.any(states[1:][accepted] != states[:-1][accepted], axis=1))

    def test_status_and_per_iteration_outcomes(self, gaussian_target):
        """The sampler ends TERMINATED; each iteration's outcome lives on the chain."""
        sampler = MetropolisSampler(gaussian_target, GaussianRandomWalk(2.0), [0.0, 0.0], seed=6)
        assert sampler.status == SamplerStatus.INITIALIZED
        chain = sampler.run(200)
        assert sampler.status == SamplerStatus.TERMINATED
        assert chain.accepted.shape == (200, 1)
        moved = np.any(chain.to_array()[1:] != chain.to_array()[:-1], axis=1)
        np.testing.assert_array_equal(chain.accepted[:, 0], moved)

    def test_same_seed_same_chain(self, gaussian_target):
        a = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0], seed=11).run(100)
        b = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0], seed=11).run(100)
        c = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0], seed=12).run(100)
        np.testing.assert_array_equal(a.to_array(), b.to_array())
        assert not np.array_equal(a.to_array(), c.to_array())

    def test_states_are_read_only(self, gaussian_target):
        chain = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0],
                                  seed=0).run(5)
        with pytest.raises(ValueError):
            chain[1][0] = 10.0
        with pytest.raises(InvalidInput):
            chain.append(np.zeros(2))


# ============================================================================
# METROPOLIS: DISTRIBUTIONAL CHECKS
# ============================================================================

class TestMetropolisTargets:

    def test_gaussian_moments(self, gaussian_target):
        chain = MetropolisSampler(gaussian_target, GaussianRandomWalk(2.0), [0.0, 0.0],
                                  seed=21).run(8000)
        draws = chain.to_array()[1000:]
        np.testing.assert_allclose(draws.mean(axis=0), [0.0, 0.0], atol=0.15)
        np.testing.assert_allclose(draws.std(axis=0), [1.0, 1.0], rtol=0.12)

    def test_hastings_correction_for_log_normal_walk(self):
        """Exponential(1) target with a multiplicative walk has mean 1 only if corrected."""
        target = TargetDensity(log_density=lambda x: jnp.sum(jnp.where(x > 0, -x, -jnp.inf)))
        chain = MetropolisSampler(target, LogNormalRandomWalk(1.0), [1.0],
                                  seed=22).run(12000)
        draws = chain.to_array()[2000:, 0]
        assert np.all(draws > 0)
        np.testing.assert_allclose(draws.mean(), 1.0, atol=0.1)

    def test_zero_density_candidates_rejected(self):
        """A uniform target on [0, 1] never leaves its support."""
        target = TargetDensity(density=reference_models.unit_box_density)
        chain = MetropolisSampler(target, UniformRandomWalk(0.5), [0.5], seed=23).run(2000)
        states = chain.to_array()
        assert np.all((states >= 0.0) & (states <= 1.0))
        np.testing.assert_allclose(states.mean(), 0.5, atol=0.06)

    def test_zero_current_density_accepts_positive_candidate(self):
        """From a zero-density start the first candidate inside the support is taken."""
        target = TargetDensity(density=reference_models.unit_box_density)
        chain = MetropolisSampler(target, UniformRandomWalk(0.5), [1.2], seed=24).run(200)
        states = chain.to_array()[:, 0]
        entered = np.flatnonzero(states <= 1.0)
        assert entered.size > 0
        assert np.all(states[entered[0]:] <= 1.0)

    def test_zero_zero_is_rejected_and_counted(self):
        """Start and every candidate outside the support: reject, count, keep going."""
        target = TargetDensity(density=reference_models.unit_box_density)
        sampler = MetropolisSampler(target, UniformRandomWalk(0.5), [5.0], seed=25)
        chain = sampler.run(50)
        assert sampler.status == SamplerStatus.TERMINATED
        assert len(chain) == 51
        assert not np.any(chain.accepted)
        assert chain.n_degenerate == 50
        np.testing.assert_allclose(chain.to_array(), 5.0)


# ============================================================================
# METROPOLIS: FAILURES AND LIFECYCLE
# ============================================================================

class TestMetropolisFailures:

    def test_negative_density_fails_fast(self, negative_density):
        sampler = MetropolisSampler(negative_density, GaussianRandomWalk(1.0), [0.0, 0.0], seed=0)
        with pytest.raises(NumericalError, match="Chain 0"):
            sampler.run(100)
        assert sampler.status == SamplerStatus.FAILED
        chain = sampler.chain
        assert chain.terminated
        assert len(chain) < 101
        # Nothing past the last valid state is recorded
        assert np.all(np.sum(chain.to_array() ** 2, axis=1) < 0.01)

    def test_nan_density_fails_fast(self, nan_density):
        sampler = MetropolisSampler(nan_density, GaussianRandomWalk(1.0), [0.0, 0.0], seed=1)
        with pytest.raises(NumericalError):
            sampler.run(100)
        assert sampler.status == SamplerStatus.FAILED
        assert np.all(np.sum(sampler.chain.to_array() ** 2, axis=1) < 0.01)

    def test_invalid_initial_density(self):
        sampler = MetropolisSampler(lambda x: -jnp.sum(x ** 2) - 1.0, GaussianRandomWalk(1.0),
                                    [0.0], seed=0)
        with pytest.raises(NumericalError, match="initial state"):
            sampler.run(10)
        assert sampler.status == SamplerStatus.FAILED
        assert len(sampler.chain) == 1

    def test_cannot_run_twice(self, gaussian_target):
        sampler = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0], seed=0)
        sampler.run(5)
        with pytest.raises(InvalidConfiguration, match="already run"):
            sampler.run(5)

    @pytest.mark.parametrize("num_iterations", [0, -3, 2.5, True])
    def test_bad_iteration_count(self, gaussian_target, num_iterations):
        sampler = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0], seed=0)
        with pytest.raises(InvalidConfiguration):
            sampler.run(num_iterations)

    def test_bad_chunk_size(self, gaussian_target):
        with pytest.raises(InvalidConfiguration):
            MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0], chunk_size=0)

    def test_nonfinite_initial_state(self, gaussian_target):
        with pytest.raises(InvalidConfiguration):
            MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, np.nan])

    def test_missing_proposal(self, gaussian_target):
        with pytest.raises(InvalidConfiguration):
            MetropolisSampler(gaussian_target, None, [0.0, 0.0])


class TestStop:

    def test_stop_before_run(self, gaussian_target):
        sampler = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0], seed=0)
        sampler.request_stop()
        chain = sampler.run(100)
        assert len(chain) == 1
        assert sampler.status == SamplerStatus.TERMINATED

    def test_stop_during_run(self, gaussian_target):
        sampler = MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0], seed=0)
        worker = threading.Thread(target=sampler.run, args=(1_000_000,))
        worker.start()

        deadline = time.monotonic() + 120
        while len(sampler.chain) < 10 and time.monotonic() < deadline:
            time.sleep(0.01)
        sampler.request_stop()
        worker.join(timeout=60)

        assert not worker.is_alive()
        assert sampler.status == SamplerStatus.TERMINATED
        assert 10 <= len(sampler.chain) < 1_000_001
        assert sampler.chain.terminated

    def test_shared_stop_event(self, gaussian_target):
        event = threading.Event()
        samplers = [MetropolisSampler(gaussian_target, GaussianRandomWalk(1.0), [0.0, 0.0],
                                      seed=j, stop_event=event) for j in range(2)]
        samplers[0].request_stop()
        assert all(s.stop_requested for s in samplers)


# ============================================================================
# GIBBS
# ============================================================================

class TestGibbsSampler:

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_beta_binomial_means(self, seed):
        """Casella & George: E[theta] = alpha / (alpha + beta), E[x] = n E[theta]."""
        n, alpha, beta = 16, 2.0, 4.0
        model = reference_models.make_beta_binomial_model(n, alpha, beta)
        sampler = GibbsSampler(model['blocks'], model['initial_state'], seed=seed)
        draws = sampler.run(4000).to_array()[500:]

        mean_x, mean_theta = reference_models.beta_binomial_analytical_means(n, alpha, beta)
        np.testing.assert_allclose(draws[:, 1].mean(), mean_theta, atol=0.04)
        np.testing.assert_allclose(draws[:, 0].mean(), mean_x, atol=0.6)
        # x stays a count in [0, n]
        assert np.all(draws[:, 0] == np.round(draws[:, 0]))
        assert np.all((draws[:, 0] >= 0) & (draws[:, 0] <= n))

    def test_chain_length_and_direct_acceptance(self):
        model = reference_models.make_beta_binomial_model()
        chain = GibbsSampler(model['blocks'], model['initial_state'], seed=0,
                             chunk_size=16).run(40)
        assert len(chain) == 41
        assert chain.accepted.shape == (40, 2)
        assert np.all(chain.accepted)

    def test_systematic_scan_sees_updated_blocks(self):
        """Block 1 sees block 0's value from the same sweep."""
        blocks = create_component_blocks([
            lambda key, state, idx: state[1:2] + 1.0,
            lambda key, state, idx: state[0:1] * 2.0,
        ])
        chain = GibbsSampler(blocks, [0.0, 0.0], seed=0).run(3)
        np.testing.assert_array_equal(chain.to_array(),
                                      [[0.0, 0.0], [1.0, 2.0], [3.0, 6.0], [7.0, 14.0]])

    def test_single_block_gives_iid_draws(self):
        """K = 1: every iteration is an independent draw from the conditional."""
        blocks = [BlockSpec(size=1, conditional=lambda key, state, idx:
                            jax.random.normal(key, (1,), dtype=state.dtype))]
        draws = GibbsSampler(blocks, [0.0], seed=7).run(5000).to_array()[1:, 0]
        np.testing.assert_allclose(draws.mean(), 0.0, atol=0.06)
        np.testing.assert_allclose(draws.var(), 1.0, rtol=0.08)
        lag1 = np.corrcoef(draws[:-1], draws[1:])[0, 1]
        assert abs(lag1) < 0.06

    def test_metropolis_within_gibbs(self):
        model = reference_models.make_bivariate_normal_model(rho=0.5)
        sampler = GibbsSampler(model['blocks'], model['initial_state'],
                               target=model['log_density'], seed=8)
        chain = sampler.run(8000)
        draws = chain.to_array()[1000:]
        np.testing.assert_allclose(draws.mean(axis=0), [0.0, 0.0], atol=0.15)
        np.testing.assert_allclose(draws.var(axis=0), [1.0, 1.0], rtol=0.15)
        rates = chain.acceptance_rate()
        assert rates[0] == 1.0
        assert 0.0 < rates[1] < 1.0

    def test_nan_conditional_fails(self):
        blocks = create_component_blocks([
            lambda key, state, idx: state[1:2],
            lambda key, state, idx: jnp.full((1,), jnp.nan),
        ])
        sampler = GibbsSampler(blocks, [0.0, 0.0], seed=0)
        with pytest.raises(NumericalError):
            sampler.run(10)
        assert sampler.status == SamplerStatus.FAILED
        assert len(sampler.chain) == 1

    def test_mh_block_needs_target(self):
        blocks = [BlockSpec(size=1, sampler_type=SamplerType.METROPOLIS_HASTINGS,
                            proposal={'type': 'gaussian', 'scale': 1.0})]
        with pytest.raises(InvalidConfiguration):
            GibbsSampler(blocks, [0.0])

    def test_state_dimension_must_match_blocks(self):
        model = reference_models.make_beta_binomial_model()
        with pytest.raises(InvalidConfiguration):
            GibbsSampler(model['blocks'], [1.0, 0.5, 0.0])

    def test_direct_block_needs_conditional(self):
        with pytest.raises(InvalidConfiguration):
            BlockSpec(size=1, sampler_type=SamplerType.DIRECT_CONJUGATE)
