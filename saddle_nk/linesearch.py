"""Step-length selection for the stabilized Newton-Krylov solver.

Two strategies are used depending on the direction returned by the subspace
builder:

* ``armijo_backtrack`` for genuine Newton directions: backtracking on the
  merit function ``phi(alpha) = ||dE(x + alpha p)||_P`` with safeguarded
  three-point parabolic interpolation.
* ``flipped_step`` for directions built after an eigenvalue flip, where no
  descent merit function is available: a crude trial step followed by at most
  one secant correction on ``g(t) = dE(x + t p) . p``.

Both return ``(alpha, xt, ft, nft, nevals)`` with ``ft = dE(xt)`` and
``nft = ||ft||_P``.
"""

import numpy as np


class ArmijoFailure(RuntimeError):
    """Raised when the Armijo step length falls below the admissible floor."""


def parab3p(lambdac, lambdam, ff0, ffc, ffm, sigma0: float = 0.1, sigma1: float = 0.5):
    """Safeguarded step from a three-point parabolic model.

    Fits ``p(lambda) = ff0 + (c1 lambda + c2 lambda^2)/d1`` through the merit
    values ``ff0, ffc, ffm`` at ``0, lambdac, lambdam`` and returns its
    minimizer clipped to ``[sigma0 lambdac, sigma1 lambdac]``. Negative
    curvature returns ``sigma1 * lambdac``.
    """
    c2 = lambdam * (ffc - ff0) - lambdac * (ffm - ff0)
    if c2 >= 0:
        return sigma1 * lambdac
    c1 = lambdac * lambdac * (ffm - ff0) - lambdam * lambdam * (ffc - ff0)
    lambdap = -c1 * 0.5 / c2
    lambdap = max(lambdap, sigma0 * lambdac)
    lambdap = min(lambdap, sigma1 * lambdac)
    return lambdap


def armijo_backtrack(field, x, p, f0, P, alpha0: float = 1.0, c_armijo: float = 1e-4,
                     min_alpha: float = 1e-8, sigma0: float = 0.1, sigma1: float = 0.5,
                     verbose: int = 0):
    """Backtracking Armijo line search along a Newton direction.

    The first reduction halves the step, later ones use :func:`parab3p` on the
    squared merit values. A trial with a non-finite merit value is rejected
    and halved.

    Raises
    ------
    ArmijoFailure
        If the step length drops below ``min_alpha`` before the sufficient
        decrease test ``||ft||_P <= (1 - c_armijo alpha) ||f0||_P`` holds.
    """
    nf0 = P.dualnorm(f0)
    alpha = alphat = float(alpha0)
    xt = x + alphat * p
    ft = field(xt)
    nevals = 1
    nft = P.dualnorm(ft)

    alpham = alphat
    nfm = 0.0
    iarm = 0
    while not np.isfinite(nft) or nft > (1.0 - c_armijo * alphat) * nf0:
        if iarm == 0 or not (np.isfinite(nft) and np.isfinite(nfm)):
            alpha *= 0.5
        else:
            alpha = parab3p(alphat, alpham, nf0 ** 2, nft ** 2, nfm ** 2, sigma0=sigma0, sigma1=sigma1)
        alphat, alpham, nfm = alpha, alphat, nft
        if alphat < min_alpha:
            raise ArmijoFailure(
                f"Armijo failure, step-size too small (alpha={alphat:.3e} < {min_alpha:.1e})"
            )
        xt = x + alphat * p
        ft = field(xt)
        nevals += 1
        nft = P.dualnorm(ft)
        iarm += 1
        if verbose > 2:
            print(f"[armijo] backtrack {iarm}: alpha={alphat:.3e} |f|_P={nft:.3e}")

    return alphat, xt, ft, nft, nevals


def flipped_step(field, x, p, f0, P, alpha_old: float, maxstep: float = np.inf,
                 shrink: float = 0.66, den_tol: float = 1e-4,
                 t_min: float = 0.1, t_max: float = 4.0, min_alpha: float = 1e-8,
                 verbose: int = 0):
    """Crude step along an eigenvalue-flipped direction.

    Takes ``alpha = shrink * alpha_old`` (capped so that ``||alpha p||_inf <=
    maxstep``), halved while the field is not finite there. If the secant root
    of ``g(t) = (1-t) f0.p + t ft.p`` is well conditioned
    (``|(f0 - ft).p| > den_tol``), one corrected step scaled by the root
    clipped to ``[t_min, t_max]`` is tried and kept unless ``|ft.p|`` grew or
    the field is not finite there. Inner products are Euclidean.

    Raises
    ------
    ArmijoFailure
        If the trial step is halved below ``min_alpha`` without reaching a
        point where the field is finite.
    """
    pinf = np.linalg.norm(p, np.inf)

    def _cap(a):
        if pinf > 0:
            return min(a, maxstep / pinf)
        return a

    alphat = _cap(shrink * alpha_old)
    xt = x + alphat * p
    ft = field(xt)
    nevals = 1
    nft = P.dualnorm(ft)
    while not np.isfinite(nft):
        alphat *= 0.5
        if alphat < min_alpha:
            raise ArmijoFailure(
                f"Flipped step failure, field not finite down to alpha={alphat:.3e}"
            )
        xt = x + alphat * p
        ft = field(xt)
        nevals += 1
        nft = P.dualnorm(ft)

    den = np.dot(f0 - ft, p)
    if abs(den) > den_tol:
        t = np.dot(f0, p) / den
        t = min(max(t, t_min), t_max)
        alpham, xm, fm, nfm = alphat, xt, ft, nft
        alphat = _cap(t * alpham)
        xt = x + alphat * p
        ft = field(xt)
        nevals += 1
        nft = P.dualnorm(ft)
        if not np.isfinite(nft) or abs(np.dot(ft, p)) > abs(np.dot(fm, p)):
            # the secant step is worse than the trial, revert
            alphat, xt, ft, nft = alpham, xm, fm, nfm
        if verbose > 2:
            print(f"[flipped] t={t:.3e} alpha={alphat:.3e}")

    return alphat, xt, ft, nft, nevals
