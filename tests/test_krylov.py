import numpy as np
import pytest

from saddle_nk.krylov import dirder, givapp, dgmres
from saddle_nk.testproblems import heq, toy2d


def _linear_field(A, b):
    def f(x):
        return A @ x - b
    return f


def _three_eigenvalue_matrix(n=6, seed=0):
    # symmetric matrix with exactly three distinct eigenvalues
    rng = np.random.default_rng(seed)
    Q, _ = np.linalg.qr(rng.standard_normal((n, n)))
    lam = np.array([1.0, 1.0, 2.0, 2.0, 3.0, 3.0])[:n]
    return Q @ np.diag(lam) @ Q.T


def test_dirder_zero_direction_skips_evaluation():
    calls = []

    def f(x):
        calls.append(x)
        return x

    x = np.array([1.0, 2.0, 3.0])
    out = dirder(x, np.zeros(3), f, x)
    assert calls == []
    np.testing.assert_array_equal(out, np.zeros(3))


@pytest.mark.parametrize("make", [heq, toy2d])
def test_dirder_matches_analytic_jacobian(make):
    prob = make()
    rng = np.random.default_rng(0)
    x = prob.randinit(rng)
    w = rng.standard_normal(x.size)
    Jw = dirder(x, w, prob.f, prob.f(x))
    np.testing.assert_allclose(Jw, prob.df(x) @ w, rtol=1e-5, atol=1e-6)


def test_givapp_preserves_norm_and_input_real():
    rng = np.random.default_rng(0)
    theta = rng.uniform(0, 2 * np.pi, size=4)
    c, s = np.cos(theta), np.sin(theta)
    vin = rng.standard_normal(5)
    vkeep = vin.copy()
    vrot = givapp(c, s, vin, 4)
    np.testing.assert_allclose(np.linalg.norm(vrot), np.linalg.norm(vin))
    np.testing.assert_array_equal(vin, vkeep)


def test_givapp_complex_rotation_annihilates_second_entry():
    # rotation chosen the way dgmres chooses it: c = conj(a)/nu, s = -b/nu with b real
    a = 0.3 - 1.2j
    b = 0.7
    nu = np.sqrt(abs(a) ** 2 + b ** 2)
    c = np.array([np.conj(a) / nu])
    s = np.array([-b / nu])
    out = givapp(c, s, np.array([a, b]), 1)
    assert abs(out[1]) < 1e-14
    np.testing.assert_allclose(out[0], nu)
    np.testing.assert_allclose(np.linalg.norm(out), np.linalg.norm([a, b]))


def test_dgmres_linear_field_three_eigenvalues():
    A = _three_eigenvalue_matrix()
    b = np.random.default_rng(1).standard_normal(6)
    f = _linear_field(A, b)
    xc = np.zeros(6)
    x, error, k = dgmres(f(xc), f, xc, 1e-6, 6)

    assert k <= 3
    assert error.size == k + 1
    assert error[-1] <= 1e-6 * np.linalg.norm(b)
    assert np.all(np.diff(error) <= 1e-12)
    np.testing.assert_allclose(x, np.linalg.solve(A, b), atol=1e-5)


def test_dgmres_early_exit():
    A = _three_eigenvalue_matrix()
    b = np.ones(6)
    f = _linear_field(A, b)
    xc = np.zeros(6)

    # zero right-hand side
    x, error, k = dgmres(np.zeros(6), f, xc, 1e-6, 6)
    assert k == 0
    np.testing.assert_array_equal(x, np.zeros(6))

    # kmax = 0
    x, error, k = dgmres(f(xc), f, xc, 1e-6, 0)
    assert k == 0 and error.size == 1

    # tolerance already met by the initial iterate
    x, error, k = dgmres(f(xc), f, xc, 2.0, 6)
    assert k == 0


def test_dgmres_silent_when_kmax_exhausted():
    A = _three_eigenvalue_matrix()
    b = np.random.default_rng(2).standard_normal(6)
    f = _linear_field(A, b)
    xc = np.zeros(6)
    x, error, k = dgmres(f(xc), f, xc, 1e-10, 1)
    assert k == 1
    assert error.size == 2
    assert error[-1] > 1e-10 * np.linalg.norm(b)
    assert error[-1] <= error[0]


@pytest.mark.parametrize("reorth", ['brown_hindmarsh', 'never', 'always', 1, 2, 3])
def test_dgmres_reorth_policies_agree(reorth):
    A = _three_eigenvalue_matrix()
    b = np.random.default_rng(3).standard_normal(6)
    f = _linear_field(A, b)
    xc = np.zeros(6)
    x, error, k = dgmres(f(xc), f, xc, 1e-8, 6, reorth=reorth)
    np.testing.assert_allclose(x, np.linalg.solve(A, b), atol=1e-5)


@pytest.mark.parametrize("reorth", ['sometimes', 4, None])
def test_dgmres_rejects_unknown_reorth(reorth):
    f = _linear_field(np.eye(2), np.ones(2))
    with pytest.raises(ValueError):
        dgmres(-np.ones(2), f, np.zeros(2), 1e-6, 2, reorth=reorth)


def test_dgmres_xinit_is_used():
    A = _three_eigenvalue_matrix()
    b = np.random.default_rng(4).standard_normal(6)
    f = _linear_field(A, b)
    xc = np.zeros(6)
    xstar = np.linalg.solve(A, b)
    x, error, k = dgmres(f(xc), f, xc, 1e-6, 6, xinit=xstar)
    assert k == 0
    np.testing.assert_allclose(x, xstar)


def test_dgmres_complex_field():
    lam = np.array([1.0 + 1.0j, 1.0 + 1.0j, 2.0 - 0.5j, 2.0 - 0.5j, 3.0, 3.0])
    A = np.diag(lam)
    rng = np.random.default_rng(5)
    b = rng.standard_normal(6) + 1j * rng.standard_normal(6)
    f = _linear_field(A, b)
    xc = np.zeros(6, dtype=complex)
    x, error, k = dgmres(f(xc), f, xc, 1e-6, 6)
    assert np.iscomplexobj(x)
    assert k <= 3
    np.testing.assert_allclose(x, b / lam, atol=1e-5)
