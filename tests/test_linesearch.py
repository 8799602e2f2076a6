import numpy as np
import pytest

from saddle_nk.linesearch import ArmijoFailure, armijo_backtrack, flipped_step, parab3p
from saddle_nk.preconditioners import IdentityPreconditioner


def identity_field(x):
    return np.array(x, dtype=float)


def test_parab3p_interior_minimizer():
    # q(l) = 1 - 2 l + 4 l^2 has its minimum at l = 0.25
    q = lambda l: 1.0 - 2.0 * l + 4.0 * l ** 2
    assert parab3p(1.0, 2.0, q(0.0), q(1.0), q(2.0)) == pytest.approx(0.25)


def test_parab3p_safeguards():
    # minimizer at 0.025 is clipped to sigma0 * lambdac
    q = lambda l: 1.0 - 0.2 * l + 4.0 * l ** 2
    assert parab3p(1.0, 2.0, q(0.0), q(1.0), q(2.0)) == pytest.approx(0.1)
    # non-negative curvature falls back to sigma1 * lambdac
    assert parab3p(0.5, 1.0, 1.0, 2.0, 3.0) == pytest.approx(0.25)


def test_armijo_accepts_full_newton_step():
    x = np.array([1.0, -2.0])
    f0 = identity_field(x)
    alpha, xt, ft, nft, nevals = armijo_backtrack(identity_field, x, -f0, f0, IdentityPreconditioner())
    assert alpha == 1.0 and nevals == 1
    np.testing.assert_allclose(xt, 0.0)
    assert nft == pytest.approx(0.0)


def test_armijo_respects_initial_step():
    x = np.array([1.0, -2.0])
    f0 = identity_field(x)
    alpha, xt, ft, nft, nevals = armijo_backtrack(
        identity_field, x, -f0, f0, IdentityPreconditioner(), alpha0=0.5
    )
    assert alpha == 0.5
    np.testing.assert_allclose(xt, 0.5 * x)


def test_armijo_backtracks_on_overshoot():
    # f(x) = x^3 from x = 1 along p = -4 lands on -3; halving gives -1, then the parabola hits 0
    field = lambda x: x ** 3
    x = np.array([1.0])
    f0 = field(x)
    p = -4.0 * f0
    alpha, xt, ft, nft, nevals = armijo_backtrack(field, x, p, f0, IdentityPreconditioner())
    assert nevals == 3
    assert alpha == pytest.approx(0.25)
    assert nft <= (1.0 - 1e-4 * alpha) * np.linalg.norm(f0)


def test_armijo_failure_on_ascent_direction():
    x = np.array([1.0, 1.0])
    f0 = identity_field(x)
    with pytest.raises(ArmijoFailure):
        armijo_backtrack(identity_field, x, f0, f0, IdentityPreconditioner())


def test_flipped_step_secant_is_exact_on_linear_field():
    x = np.array([1.0, 0.0])
    f0 = identity_field(x)
    p = np.array([-1.0, 0.0])
    alpha, xt, ft, nft, nevals = flipped_step(identity_field, x, p, f0, IdentityPreconditioner(), 1.0)
    assert nevals == 2
    assert alpha == pytest.approx(1.0)
    np.testing.assert_allclose(xt, 0.0, atol=1e-14)


def test_flipped_step_respects_maxstep():
    x = np.array([1.0, 0.0])
    f0 = identity_field(x)
    p = np.array([-1.0, 0.0])
    alpha, xt, ft, nft, nevals = flipped_step(
        identity_field, x, p, f0, IdentityPreconditioner(), 1.0, maxstep=0.1
    )
    assert np.linalg.norm(xt - x, np.inf) <= 0.1 + 1e-15
    np.testing.assert_allclose(ft, identity_field(xt))


def test_flipped_step_without_secant_information():
    # constant field: the secant denominator vanishes, only the trial step is taken
    field = lambda x: np.array([1.0, 2.0])
    x = np.zeros(2)
    p = np.array([1.0, 1.0])
    alpha, xt, ft, nft, nevals = flipped_step(field, x, p, field(x), IdentityPreconditioner(), 0.5)
    assert nevals == 1
    assert alpha == pytest.approx(0.33)
    np.testing.assert_allclose(xt, 0.33 * p)


def test_armijo_rejects_non_finite_trial():
    # x^3 is only defined for |x| <= 2 here; the full step lands on -3
    def field(x):
        if np.max(np.abs(x)) > 2.0:
            return np.full_like(x, np.nan)
        return x ** 3

    x = np.array([1.0])
    f0 = field(x)
    alpha, xt, ft, nft, nevals = armijo_backtrack(field, x, -4.0 * f0, f0, IdentityPreconditioner())
    assert np.isfinite(nft)
    assert nevals == 3
    assert alpha == pytest.approx(0.25)
    np.testing.assert_allclose(xt, 0.0)


def test_flipped_step_halves_non_finite_trial():
    def field(x):
        if np.max(np.abs(x)) > 1.5:
            return np.full_like(x, np.nan)
        return np.array(x, dtype=float)

    x = np.array([1.0, 0.0])
    f0 = field(x)
    p = np.array([-4.0, 0.0])
    alpha, xt, ft, nft, nevals = flipped_step(field, x, p, f0, IdentityPreconditioner(), 1.0)
    assert np.all(np.isfinite(ft))
    assert nevals == 3
    assert alpha == pytest.approx(0.25)
    np.testing.assert_allclose(xt, 0.0, atol=1e-12)


def test_flipped_step_fails_when_field_never_finite():
    field = lambda x: np.full_like(x, np.nan)
    x = np.array([1.0, 0.0])
    with pytest.raises(ArmijoFailure):
        flipped_step(field, x, np.array([-1.0, 0.0]), np.array([1.0, 0.0]),
                     IdentityPreconditioner(), 1.0)
