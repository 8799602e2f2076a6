# krylov.py  (finite-difference Krylov kernels)

"""Jacobian-free Krylov building blocks.

``dirder`` approximates a Jacobian-vector product with one extra field
evaluation, ``givapp`` applies stored Givens rotations and ``dgmres`` combines
both into an unrestarted GMRES for the Newton equation ``f'(xc) s = -f(xc)``.
Real and complex fields are both supported.
"""

from __future__ import annotations

import numpy as np
import scipy.linalg as sla

# Accepted names for the reorthogonalization policy of ``dgmres``.
_REORTH = {
    1: 'brown_hindmarsh',
    2: 'never',
    3: 'always',
    'brown_hindmarsh': 'brown_hindmarsh',
    'never': 'never',
    'always': 'always',
}


def dirder(x, w, f, f0, h: float = 1e-7):
    """Finite difference directional derivative, approximates ``f'(x) w``.

    Parameters
    ----------
    x, w : ndarray
        Point and direction.
    f : callable
        Vector field ``f(x) -> ndarray``.
    f0 : ndarray
        ``f(x)``; in nonlinear iterations this is always available already.
    h : float, default 1e-7
        Base difference increment.

    Returns
    -------
    ndarray
        Approximation to ``f'(x) w``. A zero direction returns zeros without
        evaluating ``f``.
    """
    x = np.asarray(x)
    w = np.asarray(w)
    nw = np.linalg.norm(w)
    if nw == 0:
        return np.zeros(np.shape(x), dtype=np.result_type(x, f0, float))

    # scale the increment with the size of x along w
    epsnew = h
    xs = np.real(np.vdot(x, w)) / nw
    if xs != 0.0:
        epsnew *= max(abs(xs), 1.0) * np.sign(xs)
    epsnew /= nw
    f1 = f(x + epsnew * w)
    return (f1 - f0) / epsnew


def givapp(c, s, vin, k: int):
    """Apply a sequence of ``k`` Givens rotations to a copy of ``vin``.

    Rotation ``i`` acts on the pair ``(v[i], v[i+1])``. The conjugate on the
    second term makes the same code valid for complex arithmetic.
    """
    c = np.asarray(c)
    s = np.asarray(s)
    vin = np.asarray(vin)
    vrot = vin.astype(np.result_type(vin, c, s, float), copy=True)
    for i in range(k):
        w1 = c[i] * vrot[i] - s[i] * vrot[i + 1]
        w2 = s[i] * vrot[i] + np.conj(c[i]) * vrot[i + 1]
        vrot[i] = w1
        vrot[i + 1] = w2
    return vrot


def _reorth_policy(reorth):
    try:
        return _REORTH[reorth.lower() if isinstance(reorth, str) else reorth]
    except (KeyError, TypeError):
        raise ValueError(
            f"Unknown reorthogonalization policy: {reorth!r}. "
            "Use 'brown_hindmarsh', 'never' or 'always'."
        ) from None


def dgmres(f0, f, xc, errtol: float, kmax: int, reorth='brown_hindmarsh', xinit=None, h: float = 1e-7):
    """GMRES linear equation solver for use in Newton-GMRES solvers.

    Solves ``f'(xc) x = -f0`` where every product with ``f'(xc)`` is replaced
    by a call to :func:`dirder`. No restarts are performed; running out of
    ``kmax`` is silent and must be detected from the returned history.

    Parameters
    ----------
    f0 : ndarray
        ``f(xc)``.
    f : callable
        Nonlinear function. Any preconditioning is folded into ``f``.
    xc : ndarray
        Current point.
    errtol : float
        Relative residual reduction factor.
    kmax : int
        Maximum number of iterations (Krylov dimension).
    reorth : {'brown_hindmarsh', 'never', 'always'} or {1, 2, 3}
        Reorthogonalization method. ``'brown_hindmarsh'`` reorthogonalizes
        only when the Gram-Schmidt pass lost significant digits.
    xinit : ndarray, optional
        Initial iterate, zero by default.
    h : float, default 1e-7
        Difference increment passed to :func:`dirder`.

    Returns
    -------
    x : ndarray
        Approximate solution.
    error : ndarray
        Residual norms for the history of the iteration.
    total_iters : int
        Number of iterations.
    """
    policy = _reorth_policy(reorth)
    f0 = np.asarray(f0)
    xc = np.asarray(xc)
    n = f0.size
    dtype = np.result_type(f0, xc, float)
    if xinit is None:
        x = np.zeros(n, dtype=dtype)
    else:
        x = np.asarray(xinit, dtype=np.result_type(xinit, dtype)).copy()

    # The right side of the linear equation for the step is -f0.
    b = -f0
    r = -dirder(xc, x, f, f0, h=h) - f0

    kmax = int(kmax)
    hmat = np.zeros((kmax + 1, kmax), dtype=dtype)
    v = np.zeros((n, kmax + 1), dtype=dtype)
    c = np.zeros(kmax, dtype=dtype)
    s = np.zeros(kmax, dtype=dtype)
    rho = np.linalg.norm(r)
    g = np.zeros(kmax + 1, dtype=dtype)
    g[0] = rho
    errtol = errtol * np.linalg.norm(b)
    error = [rho]

    # Test for termination on entry.
    if rho < errtol or rho == 0 or kmax == 0:
        return x, np.asarray(error), 0

    v[:, 0] = r / rho
    k = 0

    while rho > errtol and k < kmax:
        k += 1
        col = k - 1

        v[:, k] = dirder(xc, v[:, col], f, f0, h=h)
        normav = np.linalg.norm(v[:, k])

        # Modified Gram-Schmidt
        for j in range(k):
            hmat[j, col] = np.vdot(v[:, j], v[:, k])
            v[:, k] -= hmat[j, col] * v[:, j]
        hmat[k, col] = np.linalg.norm(v[:, k])
        normav2 = np.real(hmat[k, col])

        if (policy == 'brown_hindmarsh' and normav + 0.001 * normav2 == normav) or policy == 'always':
            for j in range(k):
                hr = np.vdot(v[:, j], v[:, k])
                hmat[j, col] += hr
                v[:, k] -= hr * v[:, j]
            hmat[k, col] = np.linalg.norm(v[:, k])

        # happy breakdown: leave the zero vector unnormalized
        if hmat[k, col] != 0:
            v[:, k] = v[:, k] / hmat[k, col]

        if k > 1:
            hmat[:k, col] = givapp(c[:col], s[:col], hmat[:k, col], col)

        nu = np.linalg.norm(hmat[col:k + 1, col])
        if nu != 0:
            c[col] = np.conj(hmat[col, col] / nu)
            s[col] = -hmat[k, col] / nu
            hmat[col, col] = c[col] * hmat[col, col] - s[col] * hmat[k, col]
            hmat[k, col] = 0
            g[col:k + 1] = givapp(c[col:k], s[col:k], g[col:k + 1], 1)

        rho = abs(g[k])
        error.append(rho)

    # Either k == kmax or rho <= errtol; form the solution.
    y = sla.solve_triangular(hmat[:k, :k], g[:k], lower=False, check_finite=False)
    x = x + v[:, :k] @ y
    return x, np.asarray(error), k
