"""
Configuration Tests - clean_config, validation, ladder construction, param specs

Tests:
- clean_config defaults and beta_manual -> rungs
- validate_mcmc_config: every rejected value raises ConfigError
- build_beta_ladder: monotone, cold rung 1, hot rung 0, even spacing, gti_pow
- make_param_specs / validate_param_specs
- configure_chain / initialize_chain: initial-value checks

Run with: pytest tests/test_config.py -v
"""

import importlib
import os

import jax.numpy as jnp
import numpy as np
import pytest

from ladderjax import (
    ParamSpec,
    ConfigError,
    CallbackError,
    make_param_specs,
    validate_param_specs,
    validate_mcmc_config,
)
from ladderjax import jax_config
from ladderjax.mcmc import utils as mcmc_utils
from ladderjax.mcmc.utils import clean_config
from ladderjax.mcmc.tempering import build_beta_ladder, beta_midpoints
from ladderjax.settings import CONFIG_DEFAULTS

from .conftest import (
    setup_chain,
    std_normal_loglike,
    flat_logprior,
    support_below_half_logprior,
    raising_loglike,
    nan_above_one_loglike,
)


class TestCleanConfig:

    def test_defaults_filled(self):
        cfg = clean_config({})
        for key, value in CONFIG_DEFAULTS.items():
            assert cfg[key] == value

    def test_user_values_kept(self):
        cfg = clean_config({'rungs': 7, 'burnin': [10, 20]})
        assert cfg['rungs'] == 7
        assert cfg['burnin'] == [10, 20]

    def test_input_not_mutated(self):
        user = {'samples': 5}
        clean_config(user)
        assert user == {'samples': 5}

    def test_beta_manual_sets_rungs(self):
        cfg = clean_config({'beta_manual': [1.0, 0.5, 0.0]})
        assert cfg['rungs'] == 3

    def test_none_config(self):
        assert clean_config(None)['samples'] == CONFIG_DEFAULTS['samples']

    def test_import_keeps_user_environment(self, monkeypatch):
        monkeypatch.setenv("TF_CPP_MIN_LOG_LEVEL", "0")
        importlib.reload(mcmc_utils)
        importlib.reload(jax_config)
        assert os.environ["TF_CPP_MIN_LOG_LEVEL"] == "0"


class TestValidateConfig:

    @pytest.mark.parametrize("override", [
        {'rungs': 0},
        {'rungs': 2.5},
        {'gti_pow': 0.5},
        {'gti_pow': float('nan')},
        {'burnin': -1},
        {'burnin': [100, -5]},
        {'samples': -10},
        {'swap_interval': 0},
        {'chunk_size': 0},
        {'chains': 0},
        {'bw_init': 0.0},
        {'cov_min_samples': 1},
        {'burnin': [100, 100], 'bw_update': [True]},
        {'burnin': [100], 'coupling_on': [True, False]},
        {'beta_manual': []},
        {'beta_manual': [1.0, 0.7, 0.8, 0.0]},
        {'beta_manual': [1.0, 1.0, 0.0]},
        {'beta_manual': [0.9, 0.5, 0.0]},
        {'beta_manual': [1.2, 0.5, 0.0]},
        {'beta_manual': [1.0, 0.5, 0.0], 'rungs': 4},
        {'gti_pow': None},
        {'burnin': 'x'},
        {'burnin': [100, None]},
        {'samples': '10'},
        {'rungs': True},
        {'chunk_size': None},
        {'bw_init': 'wide'},
        {'cov_min_samples': 2.5},
        {'beta_manual': 'abc'},
    ])
    def test_rejected(self, override):
        with pytest.raises(ConfigError):
            validate_mcmc_config(clean_config(override))

    def test_defaults_valid(self):
        validate_mcmc_config(clean_config({}))

    def test_all_errors_reported_together(self):
        with pytest.raises(ConfigError) as excinfo:
            validate_mcmc_config(clean_config({'rungs': 0, 'swap_interval': 0, 'samples': -1}))
        message = str(excinfo.value)
        assert 'rungs' in message
        assert 'swap_interval' in message
        assert 'samples' in message

    def test_wrong_types_collected(self):
        """Non-numeric values are reported with the other problems, not raised raw."""
        with pytest.raises(ConfigError) as excinfo:
            validate_mcmc_config(clean_config({'gti_pow': None, 'burnin': 'x', 'rungs': 0}))
        message = str(excinfo.value)
        assert 'gti_pow' in message
        assert 'burnin[0]' in message
        assert 'rungs' in message

    def test_numpy_scalars_accepted(self):
        validate_mcmc_config(clean_config({
            'burnin': np.int64(10), 'samples': np.int32(5), 'gti_pow': np.float64(2.0),
        }))

    def test_per_phase_lists_accepted(self):
        validate_mcmc_config(clean_config({
            'burnin': [100, 200, 300],
            'bw_update': [True, True, False],
            'cov_update': [False, True, False],
            'coupling_on': [False, True, True],
        }))

    def test_beta_manual_either_order(self):
        validate_mcmc_config(clean_config({'beta_manual': [0.0, 0.25, 1.0]}))
        validate_mcmc_config(clean_config({'beta_manual': [1.0, 0.25, 0.0]}))


class TestBetaLadder:

    def test_single_rung(self):
        np.testing.assert_array_equal(build_beta_ladder(1), [1.0])

    @pytest.mark.parametrize("n_rungs,gti_pow", [(2, 1.0), (5, 1.0), (10, 3.0), (20, 2.5)])
    def test_cold_first_strictly_decreasing(self, n_rungs, gti_pow):
        betas = build_beta_ladder(n_rungs, gti_pow)
        assert betas.shape == (n_rungs,)
        assert betas[0] == 1.0
        assert betas[-1] == 0.0
        assert np.all(np.diff(betas) < 0)

    def test_even_spacing_for_unit_power(self):
        betas = build_beta_ladder(5, 1.0)
        np.testing.assert_allclose(betas, [1.0, 0.75, 0.5, 0.25, 0.0])

    def test_power_concentrates_near_hot_end(self):
        betas = build_beta_ladder(5, 3.0)
        np.testing.assert_allclose(betas, [1.0, 0.75 ** 3, 0.5 ** 3, 0.25 ** 3, 0.0])

    def test_manual_ladder_sorted_cold_first(self):
        betas = build_beta_ladder(3, beta_manual=[0.0, 0.3, 1.0])
        np.testing.assert_array_equal(betas, [1.0, 0.3, 0.0])

    def test_manual_ladder_overrides_power(self):
        betas = build_beta_ladder(3, gti_pow=4.0, beta_manual=[1.0, 0.6, 0.1])
        np.testing.assert_array_equal(betas, [1.0, 0.6, 0.1])

    def test_midpoints(self):
        np.testing.assert_allclose(beta_midpoints([1.0, 0.5, 0.0]), [0.75, 0.25])
        assert beta_midpoints([1.0]).size == 0


class TestParamSpecs:

    def test_dict_of_lists(self):
        specs = make_param_specs({
            'name': ['mu', 'sigma'],
            'min': [-np.inf, 0.0],
            'max': [np.inf, np.inf],
            'init': [0.0, 1.0],
        })
        assert [s.name for s in specs] == ['mu', 'sigma']
        assert specs[1].min == 0.0

    def test_tuples_and_dicts(self):
        specs = make_param_specs([('a', 0, 1, 0.5), {'name': 'b', 'init': 2.0}])
        assert specs[0].max == 1.0
        assert specs[1].init == 2.0

    @pytest.mark.parametrize("spec", [
        ParamSpec('a', min=1.0, max=0.0, init=0.5),
        ParamSpec('a', min=0.0, max=1.0, init=1.0),
        ParamSpec('a', min=0.0, max=1.0, init=2.0),
        ParamSpec('a', init=np.inf),
        ParamSpec('a', min=0.0, max=1.0, init=0.5, trans_type='none'),
        ParamSpec('a', min=0.0, init=0.5, trans_type='logit'),
        ParamSpec('a', min=0.0, max=1.0, init=0.5, trans_type='log'),
    ])
    def test_invalid_spec(self, spec):
        with pytest.raises(ConfigError):
            validate_param_specs([spec])

    def test_empty(self):
        with pytest.raises(ConfigError):
            validate_param_specs([])

    def test_duplicate_names(self):
        with pytest.raises(ConfigError):
            validate_param_specs([ParamSpec('a'), ParamSpec('a')])


class TestChainSetup:

    def test_initial_carry_shapes(self):
        params = [ParamSpec('a', init=0.1), ParamSpec('b', min=0, init=1.0)]
        carry, user_config, runtime_ctx, model_ctx = setup_chain(
            params, std_normal_loglike, flat_logprior, mcmc_config={'rungs': 4})
        assert carry.ladder.theta_work.shape == (4, 2)
        assert carry.adapter.cov_chol.shape == (4, 2, 2)
        assert carry.counters.swap_attempts.shape == (3,)
        assert runtime_ctx['betas'].dtype == jnp.float64
        # Every rung starts at the initial values (working domain of 1.0 is 0.0)
        np.testing.assert_allclose(carry.ladder.theta_work[:, 1], 0.0)
        np.testing.assert_allclose(jnp.exp(carry.adapter.log_bw), 0.1)

    def test_init_outside_support(self):
        params = [ParamSpec('a', init=0.7)]
        with pytest.raises(ConfigError):
            setup_chain(params, std_normal_loglike, support_below_half_logprior)

    def test_nan_at_init(self):
        params = [ParamSpec('a', init=1.5)]
        with pytest.raises(CallbackError):
            setup_chain(params, nan_above_one_loglike, flat_logprior)

    def test_raising_callback(self):
        with pytest.raises(CallbackError, match="ValueError"):
            setup_chain([ParamSpec('a')], raising_loglike, flat_logprior)

    def test_data_must_be_numeric(self):
        with pytest.raises(ConfigError):
            setup_chain([ParamSpec('a')], std_normal_loglike, flat_logprior,
                        data={'x': ['not', 'numbers']})

    def test_underflowing_ladder_rejected(self):
        """Huge gti_pow sends several hot-end powers to 0.0."""
        assert not np.all(np.diff(build_beta_ladder(20, 300.0)) < 0)
        with pytest.raises(ConfigError, match="Non-monotonic ladder"):
            setup_chain([ParamSpec('a')], std_normal_loglike, flat_logprior,
                        mcmc_config={'rungs': 20, 'gti_pow': 300.0})

    def test_ladder_checked_in_run_dtype(self, single_precision):
        """(1/19)**40 is representable in float64 but not in float32."""
        config = {'rungs': 20, 'gti_pow': 40.0}
        _, _, runtime_ctx, _ = setup_chain([ParamSpec('a')], std_normal_loglike, flat_logprior,
                                           mcmc_config=config)
        assert np.all(np.diff(np.asarray(runtime_ctx['betas'])) < 0)
        with pytest.raises(ConfigError, match="float32"):
            setup_chain([ParamSpec('a')], std_normal_loglike, flat_logprior,
                        mcmc_config=dict(config, use_double=False))

    def test_phase_list_attached(self):
        _, _, _, model_ctx = setup_chain(
            [ParamSpec('a')], std_normal_loglike, flat_logprior,
            mcmc_config={'burnin': [10, 20], 'samples': 5})
        assert [p.NAME for p in model_ctx['phases']] == ['burnin_0', 'burnin_1', 'sampling']
