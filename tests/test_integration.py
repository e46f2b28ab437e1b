"""
Integration Tests for Multi-Chain Sampling

Runs complete multi-chain jobs through run_chains / start_chains / rmcmc and
checks the results against analytical answers and the failure contract.
Run with: pytest tests/test_integration.py -v
"""

import time

import numpy as np
import jax.numpy as jnp
import pytest

from mcsampler import reference_models
from mcsampler.error_handling import NumericalError
from mcsampler.mcmc import SamplerStatus, rmcmc, run_chains, start_chains


def validate_beta_binomial(history, n=16, alpha=2.0, beta=4.0, tolerance=0.05):
    """Check pooled posterior means against the analytical values."""
    mean_x, mean_theta = reference_models.beta_binomial_analytical_means(n, alpha, beta)
    draws = history.reshape(-1, history.shape[2])
    theta_err = abs(draws[:, 1].mean() - mean_theta)
    x_err = abs(draws[:, 0].mean() - mean_x)
    assert theta_err < tolerance, f"theta mean off by {theta_err:.4f}"
    assert x_err < n * tolerance, f"x mean off by {x_err:.4f}"


def wait_for_progress(run, min_length, timeout=120):
    deadline = time.monotonic() + timeout
    while min(run.chains.lengths()) < min_length and time.monotonic() < deadline:
        time.sleep(0.01)


# ============================================================================
# RUN_CHAINS
# ============================================================================

class TestRunChains:

    def test_every_chain_has_iterations_plus_one(self, basic_mcmc_config):
        chains = run_chains(basic_mcmc_config, reference_models.gaussian_density)
        assert chains.num_chains == 2
        assert chains.lengths() == [201, 201]
        assert chains.all_terminated()
        assert chains.to_array().shape == (201, 2, 2)

    def test_chains_use_independent_streams(self, basic_mcmc_config):
        chains = run_chains(basic_mcmc_config, reference_models.gaussian_density)
        assert not np.array_equal(chains[0].to_array(), chains[1].to_array())

    def test_chain_depends_only_on_its_seed(self, basic_mcmc_config):
        first = run_chains(dict(basic_mcmc_config, chain_seeds=[10, 20]),
                           reference_models.gaussian_density)
        second = run_chains(dict(basic_mcmc_config, chain_seeds=[30, 10]),
                            reference_models.gaussian_density)
        np.testing.assert_array_equal(first[0].to_array(), second[1].to_array())

    def test_reproducible_from_rng_seed(self, basic_mcmc_config):
        a = run_chains(basic_mcmc_config, reference_models.gaussian_density)
        b = run_chains(basic_mcmc_config, reference_models.gaussian_density)
        np.testing.assert_array_equal(a.to_array(), b.to_array())

    def test_fewer_workers_than_chains(self, basic_mcmc_config):
        config = dict(basic_mcmc_config, num_chains=3, max_workers=1, num_iterations=50)
        chains = run_chains(config, reference_models.gaussian_density)
        assert chains.lengths() == [51, 51, 51]

    def test_chunked_run_matches_length(self, basic_mcmc_config):
        config = dict(basic_mcmc_config, chunk_size=32)
        chains = run_chains(config, reference_models.gaussian_density)
        assert chains.lengths() == [201, 201]


# ============================================================================
# RMCMC
# ============================================================================

class TestRmcmc:

    def test_gibbs_beta_binomial(self, register_reference_models):
        results = rmcmc({'num_chains': 4, 'num_iterations': 2000, 'model_id': 'beta_binomial'})
        history = results['history']
        assert history.shape == (2001, 4, 2)
        validate_beta_binomial(history[200:])

        assert results['mcmc_config']['sampler'] == 'gibbs'
        assert results['rhat'].shape == (2,)
        assert np.all(results['rhat'] < 1.05)
        assert results['acceptance_rates'].shape == (4, 2)
        np.testing.assert_allclose(results['acceptance_rates'], 1.0)
        assert not results['diagnostics']['issues']

    def test_metropolis_results(self, register_reference_models):
        results = rmcmc({'num_chains': 4, 'num_iterations': 3000, 'model_id': 'gaussian_2d'})
        draws = results['history'][500:].reshape(-1, 2)
        np.testing.assert_allclose(draws.mean(axis=0), [0.0, 0.0], atol=0.1)
        np.testing.assert_allclose(draws.std(axis=0), [1.0, 1.0], rtol=0.1)
        assert np.all(results['rhat'] < 1.05)
        assert len(results['rhat_results']) == 2
        assert results['wall_time'] > 0

    def test_separated_modes_not_converged(self, register_reference_models):
        results = rmcmc({'num_chains': 2, 'num_iterations': 300, 'model_id': 'bimodal_1d',
                         'initial_states': [[-5.0], [5.0]]})
        assert results['rhat'][0] > 1.2
        assert not results['rhat_results'][0].converged()

    def test_skill_rating_model(self):
        """The player who wins most is rated highest."""
        games = [(0, 1), (0, 2), (0, 1), (1, 2), (0, 2), (1, 2), (0, 1), (2, 1)]
        model = reference_models.make_skill_rating_model(games, n_players=3)
        results = rmcmc({'num_chains': 2, 'num_iterations': 3000}, model)
        means = results['history'][500:].reshape(-1, 3).mean(axis=0)
        assert means[0] > means[1]
        assert means[0] > means[2]

    def test_short_run_skips_rhat(self, basic_mcmc_config):
        results = rmcmc(dict(basic_mcmc_config, num_iterations=2),
                        reference_models.gaussian_density)
        assert results['rhat'] is None
        assert results['history'].shape == (3, 2, 2)


# ============================================================================
# BACKGROUND RUNS, STOPPING AND FAILURES
# ============================================================================

class TestSamplingRun:

    def test_stop_all_chains(self, basic_mcmc_config):
        run = start_chains(dict(basic_mcmc_config, num_iterations=1_000_000),
                           reference_models.gaussian_density)
        wait_for_progress(run, 5)
        run.stop()
        chains = run.wait(timeout=120)

        assert run.done()
        assert run.statuses == [SamplerStatus.TERMINATED, SamplerStatus.TERMINATED]
        assert chains.all_terminated()
        assert all(5 <= n < 1_000_001 for n in chains.lengths())

    def test_wait_timeout(self, basic_mcmc_config):
        run = start_chains(dict(basic_mcmc_config, num_iterations=1_000_000),
                           reference_models.gaussian_density)
        with pytest.raises(TimeoutError):
            run.wait(timeout=0.01)
        run.stop()
        run.wait(timeout=120)

    def test_failed_chain_does_not_stop_others(self):
        """Chain 0 walks into a NaN region; chain 1 never gets near it."""
        model = {'density': lambda x: jnp.where(x[0] < 0.0, jnp.nan, 1.0)}
        config = {'num_chains': 2, 'num_iterations': 200,
                  'initial_states': [[0.0], [50.0]],
                  'proposal': {'type': 'uniform', 'half_width': 1.0}}
        run = start_chains(config, model)
        with pytest.raises(NumericalError, match="Chain 0"):
            run.wait(timeout=120)

        assert run.statuses == [SamplerStatus.FAILED, SamplerStatus.TERMINATED]
        assert run.chains.all_terminated()
        assert len(run.chains[1]) == 201
        assert np.all(run.chains[0].to_array() >= 0.0)

    def test_run_chains_surfaces_failure(self, nan_density, basic_mcmc_config):
        with pytest.raises(NumericalError):
            run_chains(basic_mcmc_config, nan_density)
