import numpy as np
import pytest
import torch

from stepwise import NumericalError
from stepwise.utils import approx_grad, approx_hessian, like, safe_solve, to_numpy


def test_approx_grad_matches_linear_function():
    def fun(x: np.ndarray) -> float:
        return float(3 * x[0] - 2 * x[1])

    grad = approx_grad(fun, np.array([0.2, -0.1]))
    assert np.allclose(grad, np.array([3.0, -2.0]), atol=1e-6)


def test_approx_hessian_matches_quadratic():
    def fun(x: np.ndarray) -> float:
        return float(x[0] ** 2 + 3 * x[1] ** 2)

    hess = approx_hessian(fun, np.array([0.5, -1.5]))
    assert np.allclose(hess, np.diag([2.0, 6.0]), atol=1e-3)


def test_evaluation_counts_reported():
    def fun(x: np.ndarray) -> float:
        return float(np.sum(x**2))

    _, grad_evals = approx_grad(fun, np.zeros(3), return_evals=True)
    _, hess_evals = approx_hessian(fun, np.zeros(3), return_evals=True)
    assert grad_evals == 6
    assert hess_evals == 1 + 2 * 3 + 2 * 3 * 2


def test_approx_grad_keeps_shape():
    grad = approx_grad(lambda x: float(np.sum(x)), np.zeros((2, 2)))
    assert grad.shape == (2, 2)
    assert np.allclose(grad, 1.0)


def test_approx_grad_invalid_eps():
    with pytest.raises(ValueError):
        approx_grad(lambda x: float(x[0]), np.array([0.0]), eps=0.0)
    with pytest.raises(ValueError):
        approx_hessian(lambda x: float(x[0]), np.array([0.0]), eps=-1.0)


def test_safe_solve_regularizes_singular_matrix():
    mat = np.array([[1.0, 1.0], [1.0, 1.0]])
    vec = np.array([1.0, 1.0])
    solution = safe_solve(mat, vec)
    assert np.allclose(mat @ solution, vec, atol=1e-6)


def test_safe_solve_zero_matrix_without_ridge_raises():
    with pytest.raises(NumericalError):
        safe_solve(np.zeros((2, 2)), np.ones(2), reg=0.0)


def test_tensor_round_trip_conversion():
    ref = torch.tensor([1.0, 2.0], dtype=torch.float32)
    arr = to_numpy(ref)
    assert arr.dtype == np.float64
    back = like(arr * 2, ref)
    assert isinstance(back, torch.Tensor)
    assert back.dtype == torch.float32
    assert torch.equal(back, torch.tensor([2.0, 4.0]))
    assert like(arr, arr) is arr
