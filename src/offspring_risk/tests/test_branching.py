import math

import numpy as np
import pytest

from offspring_risk.analytic.branching import (
    extinction_q,
    offspring_pgf,
    probability_extinct,
    proportion_cluster_size,
    proportion_transmission,
)
from offspring_risk.errors import InvalidParameterError


# ---------- cluster size ----------

def test_cluster_size_decreasing_probabilities():
    probs = proportion_cluster_size(R=1.2, k=0.5, cluster_size=[2, 5, 10])
    assert probs.shape == (3,)
    assert np.all((probs > 0) & (probs < 1))
    assert np.all(np.diff(probs) < 0)


def test_cluster_size_matches_direct_sum():
    """sum_{x>=s} x P(x) / R for the negative binomial."""
    from scipy.stats import nbinom

    R, k = 1.2, 0.5
    x = np.arange(0, 5000)
    pmf = nbinom.pmf(x, k, k / (k + R))
    for s in (1, 2, 5, 10):
        direct = np.sum(x[x >= s] * pmf[x >= s]) / R
        assert proportion_cluster_size(R, k, [s])[0] == pytest.approx(direct, rel=1e-8)


def test_cluster_size_converges_to_poisson():
    sizes = [2, 3, 5]
    poisson_vals = proportion_cluster_size(2.0, math.inf, sizes)
    nb_vals = proportion_cluster_size(2.0, 1e7, sizes)
    assert np.allclose(nb_vals, poisson_vals, atol=1e-5)


@pytest.mark.parametrize("sizes", [[0], [2, 0.5], [], [-1]])
def test_cluster_size_rejects_bad_sizes(sizes):
    with pytest.raises(InvalidParameterError):
        proportion_cluster_size(1.2, 0.5, sizes)


# ---------- transmission ----------

def test_transmission_proportion_grows_with_k():
    ks = [0.05, 0.1, 0.5, 1.0, 5.0, 50.0]
    props = [proportion_transmission(2.0, k, 0.8) for k in ks]
    assert np.all(np.diff(props) >= -1e-12)
    assert props[0] < 0.2
    assert props[-1] < 0.8


def test_transmission_limits():
    assert proportion_transmission(1.5, 0.3, 1.0) == pytest.approx(1.0)
    assert proportion_transmission(1.5, math.inf, 0.8) == pytest.approx(0.8)
    assert proportion_transmission(1.5, 1e8, 0.8) == pytest.approx(0.8, abs=1e-3)


def test_transmission_independent_of_R():
    assert proportion_transmission(0.8, 0.4) == pytest.approx(proportion_transmission(3.0, 0.4))


@pytest.mark.parametrize("f", [0.0, -0.1, 1.2])
def test_transmission_rejects_bad_fraction(f):
    with pytest.raises(InvalidParameterError):
        proportion_transmission(1.2, 0.5, f)


# ---------- extinction ----------

def test_extinction_certain_when_subcritical():
    for R in (0.0, 0.5, 1.0):
        for k in (0.1, 1.0, math.inf):
            for n in (1, 5):
                assert probability_extinct(R, k, n) == 1.0


def test_extinction_geometric_closed_form():
    # k = 1 gives a geometric offspring distribution with q = 1 / R
    assert probability_extinct(2.0, 1.0) == pytest.approx(0.5, abs=1e-10)
    assert probability_extinct(4.0, 1.0, num_init_infect=2) == pytest.approx(0.0625, abs=1e-10)


def test_extinction_root_is_fixed_point():
    R, k = 1.8, 0.3
    q = probability_extinct(R, k)
    assert float(offspring_pgf(q, R, k)) == pytest.approx(q, abs=1e-10)
    assert 0.0 < q < 1.0


def test_extinction_converges_to_poisson():
    for R in (1.2, 2.0, 3.5):
        assert probability_extinct(R, 1e7) == pytest.approx(extinction_q(R), abs=1e-5)
        assert probability_extinct(R, math.inf) == pytest.approx(extinction_q(R))


def test_poisson_with_control_uses_general_root():
    # individual control with k = inf has no closed form; compare to a direct fixed point
    R, c = 3.0, 0.2
    q = probability_extinct(R, math.inf, ind_control=c)
    assert c + (1 - c) * math.exp(-R * (1 - q)) == pytest.approx(q, abs=1e-10)


def test_extinction_increases_with_control():
    R, k = 1.2, 0.5
    assert probability_extinct(R, k, 1, ind_control=0.5) > probability_extinct(R, k, 1, ind_control=0.0)

    controls = np.linspace(0.0, 0.9, 10)
    for kind in ("ind_control", "pop_control"):
        probs = [probability_extinct(3.0, 0.3, 1, **{kind: c}) for c in controls]
        assert np.all(np.diff(probs) >= -1e-10)


def test_extinction_decreases_with_initial_infections():
    probs = [probability_extinct(1.5, 0.5, n) for n in (1, 2, 5, 10)]
    assert np.all(np.diff(probs) <= 0)
    assert probs[1] == pytest.approx(probs[0] ** 2)


@pytest.mark.parametrize("kwargs", [
    dict(R=-1.0, k=0.5),
    dict(R=math.inf, k=0.5),
    dict(R=1.2, k=0.0),
    dict(R=1.2, k=0.5, num_init_infect=0),
    dict(R=1.2, k=0.5, num_init_infect=1.5),
    dict(R=1.2, k=0.5, ind_control=1.0),
    dict(R=1.2, k=0.5, ind_control=-0.1),
    dict(R=1.2, k=0.5, pop_control=1.0),
])
def test_extinction_rejects_bad_parameters(kwargs):
    with pytest.raises(InvalidParameterError):
        probability_extinct(**kwargs)
