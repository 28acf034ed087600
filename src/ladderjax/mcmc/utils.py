import numpy as np

from ..settings import CONFIG_DEFAULTS


def clean_config(mcmc_config):
    """
    Cleans the config dict and sets defaults.
    All config keys use lowercase with underscores.

    A manual ladder fixes the number of rungs, so 'rungs' defaults to its
    length when 'beta_manual' is given.
    """
    mcmc_config = dict(mcmc_config or {})

    beta_manual = mcmc_config.get('beta_manual')
    if isinstance(beta_manual, (list, tuple, np.ndarray)) and 'rungs' not in mcmc_config:
        mcmc_config['rungs'] = len(beta_manual)

    for key, value in CONFIG_DEFAULTS.items():
        mcmc_config.setdefault(key, value)

    return mcmc_config


def as_phase_list(value, n_phases):
    """Expand a bool (applies to every phase) or a per-phase list into a list."""
    if isinstance(value, (list, tuple)):
        return [bool(v) for v in value]
    return [bool(value)] * n_phases


def burnin_lengths(burnin):
    """Burn-in phase lengths as a list of ints."""
    if isinstance(burnin, (list, tuple)):
        return [int(n) for n in burnin]
    return [int(burnin)]
