def clean_config(mcmc_config):
    """
    Cleans the config dict and sets defaults.
    All config keys use lowercase with underscores.

    'sampler' is left unset here: configure_sampling picks it from the model.
    """
    mcmc_config.setdefault('num_chains', 4)
    mcmc_config.setdefault('num_iterations', 1000)
    mcmc_config.setdefault('rng_seed', 42)
    mcmc_config.setdefault('chunk_size', 1)
    mcmc_config.setdefault('use_double', False)
    mcmc_config.setdefault('max_workers', None)
    mcmc_config.setdefault('chain_seeds', None)
    mcmc_config.setdefault('initial_states', None)

    return mcmc_config
