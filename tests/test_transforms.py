"""
Reparameterization Tests - natural <-> working domain maps

Tests:
- to_working / to_natural round trips for every transform type
- log-Jacobian against the derivative computed by JAX
- bounds respected for extreme working values
- trans type inference and resolution from ParamSpec

Run with: pytest tests/test_transforms.py -v
"""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from ladderjax import ParamSpec, TransType, ConfigError
from ladderjax.mcmc.transforms import to_working, to_natural
from ladderjax.mcmc.types import build_param_arrays


def _mixed_param_arrays():
    """One parameter of each transform type."""
    specs = [
        ParamSpec('free', init=0.3),
        ParamSpec('pos', min=1.0, init=2.5),
        ParamSpec('neg', max=-2.0, init=-3.0),
        ParamSpec('unit', min=-1.0, max=4.0, init=0.5),
    ]
    return build_param_arrays(specs)


class TestRoundTrip:

    def test_trans_types_assigned(self):
        pa = _mixed_param_arrays()
        np.testing.assert_array_equal(
            pa.trans_types,
            [TransType.NONE, TransType.LOG_LOWER, TransType.LOG_UPPER, TransType.LOGIT]
        )

    @pytest.mark.parametrize("natural", [
        [0.3, 2.5, -3.0, 0.5],
        [-50.0, 1.001, -2.001, -0.999],
        [1e3, 100.0, -100.0, 3.999],
    ])
    def test_natural_working_natural(self, natural):
        pa = _mixed_param_arrays()
        natural = jnp.array(natural)
        back, _ = to_natural(to_working(natural, pa), pa)
        np.testing.assert_allclose(back, natural, rtol=1e-9, atol=1e-9)

    def test_working_natural_working(self):
        pa = _mixed_param_arrays()
        work = jnp.array([-1.5, 0.7, -2.0, 1.3])
        natural, _ = to_natural(work, pa)
        np.testing.assert_allclose(to_working(natural, pa), work, rtol=1e-9, atol=1e-9)

    def test_extreme_working_values_stay_in_bounds(self):
        pa = _mixed_param_arrays()
        for w in (-30.0, 30.0):
            natural, log_jac = to_natural(jnp.full(4, w), pa)
            assert natural[1] >= 1.0
            assert natural[2] <= -2.0
            assert -1.0 <= natural[3] <= 4.0
            assert np.isfinite(float(log_jac))

    def test_batched_over_rungs(self):
        pa = _mixed_param_arrays()
        work = jnp.stack([jnp.zeros(4), jnp.ones(4)])
        natural, log_jac = jax.vmap(to_natural, in_axes=(0, None))(work, pa)
        assert natural.shape == (2, 4)
        assert log_jac.shape == (2,)


class TestJacobian:

    @pytest.mark.parametrize("work", [
        [0.0, 0.0, 0.0, 0.0],
        [1.2, -0.8, 2.3, -3.1],
        [-4.0, 3.0, -1.0, 5.0],
    ])
    def test_log_jacobian_matches_derivative(self, work):
        """The map is elementwise, so log|J| is the sum of log|d nat_i / d w_i|."""
        pa = _mixed_param_arrays()
        work = jnp.array(work)
        jac = jax.jacfwd(lambda w: to_natural(w, pa)[0])(work)
        expected = jnp.sum(jnp.log(jnp.abs(jnp.diag(jac))))
        _, log_jac = to_natural(work, pa)
        np.testing.assert_allclose(log_jac, expected, rtol=1e-9, atol=1e-9)

    def test_identity_has_zero_jacobian(self):
        pa = build_param_arrays([ParamSpec('a'), ParamSpec('b')])
        _, log_jac = to_natural(jnp.array([3.0, -7.0]), pa)
        assert float(log_jac) == 0.0


class TestTransTypeResolution:

    def test_inferred_from_bounds(self):
        assert ParamSpec('a').trans_type == TransType.NONE
        assert ParamSpec('a', min=0, init=1).trans_type == TransType.LOG_LOWER
        assert ParamSpec('a', max=0, init=-1).trans_type == TransType.LOG_UPPER
        assert ParamSpec('a', min=0, max=1, init=0.5).trans_type == TransType.LOGIT

    def test_log_string_resolves_side(self):
        assert ParamSpec('a', min=0, init=1, trans_type='log').trans_type == TransType.LOG_LOWER
        assert ParamSpec('a', max=0, init=-1, trans_type='log').trans_type == TransType.LOG_UPPER

    def test_integer_codes(self):
        assert ParamSpec('a', min=0, max=1, init=0.5, trans_type=3).trans_type == TransType.LOGIT

    def test_unknown_string_rejected(self):
        with pytest.raises(ConfigError):
            ParamSpec('a', trans_type='sqrt')

    def test_unknown_integer_rejected(self):
        with pytest.raises(ConfigError):
            ParamSpec('a', trans_type=7)
