"""Reference problems for the Newton-Krylov solvers.

Each problem is a :class:`TestProblem` with the field ``f``, its Jacobian
``df`` (dense, analytic), a deterministic starting point ``init()`` and a
perturbed one ``randinit(rng=None)``.
"""

from typing import Callable, NamedTuple

import numpy as np


class TestProblem(NamedTuple):
    f: Callable
    df: Callable
    init: Callable
    randinit: Callable
    name: str


# [1] some random 2D problem; critical points (0, 0) and (-1, 0)
def toy2d_f(x):
    return np.array([x[0] + x[1] + x[0] ** 2, x[1] + x[0] * x[1]])


def toy2d_df(x):
    return np.array([[1.0 + 2.0 * x[0], 1.0],
                     [x[1], 1.0 + x[0]]])


def toy2d():
    return TestProblem(
        f=toy2d_f,
        df=toy2d_df,
        init=lambda: np.array([1.0, 1.0]),
        randinit=lambda rng=None: np.random.default_rng(rng).random(2),
        name="toy2d",
    )


# [2] Chandrasekhar H-equation, cf. C. T. Kelley, "Solving Nonlinear Equations with Newton's Method"
def heq(c: float = 0.9, n: int = 100):
    gr = (np.arange(1, n + 1) - 0.5) / n
    A = np.outer(gr, np.ones(n))
    A = (0.5 * c / n) * A / (A + A.T)

    def f(x):
        return x - 1.0 / (1.0 - A @ x)

    def df(x):
        u = 1.0 - A @ x
        return np.eye(n) - (1.0 / u ** 2)[:, None] * A

    return TestProblem(
        f=f,
        df=df,
        init=lambda: np.ones(n),
        randinit=lambda rng=None: np.ones(n) + 0.1 * (np.random.default_rng(rng).random(n) - 0.5),
        name="H-equation",
    )


# [3] double well E = (x1^2 - 1)^2 + sum_{i>1} x_i^2: minima at (+-1, 0, ...), index-1 saddle at 0
def double_well(d: int = 2):
    def f(x):
        g = 2.0 * np.asarray(x, dtype=float)
        g[0] = 4.0 * x[0] * (x[0] ** 2 - 1.0)
        return g

    def df(x):
        H = 2.0 * np.eye(d)
        H[0, 0] = 12.0 * x[0] ** 2 - 4.0
        return H

    return TestProblem(
        f=f,
        df=df,
        init=lambda: np.full(d, 0.3),
        randinit=lambda rng=None: 0.5 * (np.random.default_rng(rng).random(d) - 0.5),
        name="double-well",
    )


def all_problems():
    return [toy2d(), heq(), double_well()]
