import numpy as np
import pytest

from offspring_risk.errors import InvalidSampleError
from offspring_risk.fitting.likelihood import (
    delta_method_se,
    numerical_hessian,
    validate_sample,
)


def test_validate_sample_accepts_integer_valued_floats():
    x = validate_sample([0, 1.0, 2, 10])
    assert x.dtype == np.int64
    assert x.tolist() == [0, 1, 2, 10]


@pytest.mark.parametrize(
    "bad",
    [
        [],
        [0, -1, 2],
        [0, 1.5],
        [0, np.nan],
        [0, np.inf],
        [[0, 1], [2, 3]],
        ["a", "b"],
    ],
)
def test_validate_sample_rejects_malformed(bad):
    with pytest.raises(InvalidSampleError) as info:
        validate_sample(bad)
    # offending input travels with the error
    assert "sample" in info.value.inputs


def test_numerical_hessian_of_quadratic():
    def f(x):
        return x[0] ** 2 + 3.0 * x[0] * x[1] + 2.0 * x[1] ** 2

    H = numerical_hessian(f, [0.7, -1.3])
    assert np.allclose(H, [[2.0, 3.0], [3.0, 4.0]], atol=1e-5)


def test_delta_method_linear_map_is_exact():
    cov = np.array([[0.04, 0.0], [0.0, 0.09]])
    se = delta_method_se(lambda t: t[1], [2.0, 5.0], cov)
    assert se == pytest.approx(0.3, rel=1e-8)
