import dataclasses
import pytest

import jax.numpy as jnp
import numpy as np

import gausshermite as gh
from gausshermite.basis import packed
from gausshermite.integrals import FAST_EXP_RELATIVE_TOLERANCE
from gausshermite.model import builder as builder_lib


def _grid_coordinates(radius: float, spacing: float) -> tuple[np.ndarray, ...]:
    grid = gh.analysis.build_centered_grid(radius, spacing)
    return gh.analysis.generate_coordinates(grid)


def _evaluate_pixels(order: int, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Evaluates the unscaled basis pixel by pixel."""
    evaluator = gh.HermiteEvaluator(order)
    result = np.zeros((x.shape[0], evaluator.size))
    for p in range(x.shape[0]):
        evaluator.fill_evaluation(result[p], x[p], y[p])
    return result


@dataclasses.dataclass
class _EllipseTestCase:
    order: int
    axes: gh.Axes


_ELLIPSE_TEST_CASES = [
    _EllipseTestCase(order=0, axes=gh.Axes(a=2.0, b=1.0, theta=0.0)),
    _EllipseTestCase(order=2, axes=gh.Axes(a=3.0, b=2.0, theta=0.4)),
    _EllipseTestCase(order=5, axes=gh.Axes(a=1.5, b=1.2, theta=-1.1)),
]


@pytest.mark.parametrize("order", [0, 1, 2, 4])
def test_unit_circle_matches_scalar_evaluator(order):
    x, y = _grid_coordinates(radius=3.0, spacing=0.5)
    builder = gh.ModelBuilder(order, x, y)
    builder.update(gh.Axes(a=1.0, b=1.0, theta=0.0))

    expected = _evaluate_pixels(order, x, y)
    assert builder.model.shape == (x.shape[0], packed.compute_size(order))
    np.testing.assert_allclose(builder.model, expected, rtol=1e-12, atol=1e-15)

    # A centered ellipse applies the same translation-free transform.
    builder.update(gh.Ellipse(core=gh.Axes(1.0, 1.0, 0.0), center=(0.0, 0.0)))
    np.testing.assert_allclose(builder.model, expected, rtol=1e-12, atol=1e-15)


def test_single_pixel_order_2():
    builder = gh.ModelBuilder(2, np.array([1.0]), np.array([0.0]))
    builder.update(gh.Axes(a=1.0, b=1.0))

    g = np.exp(-0.5) / np.sqrt(np.pi)
    expected = np.array(
        [[g, 0.0, np.sqrt(2.0) * g, -g / np.sqrt(2.0), 0.0, g / np.sqrt(2.0)]]
    )
    np.testing.assert_allclose(builder.model, expected, rtol=1e-14, atol=1e-16)


@pytest.mark.parametrize("case", _ELLIPSE_TEST_CASES)
def test_elliptical_transform(case):
    x, y = _grid_coordinates(radius=4.0, spacing=0.7)
    builder = gh.ModelBuilder(case.order, x, y)
    builder.update(case.axes)

    T = np.asarray(case.axes.grid_transform())
    xt, yt = T @ np.stack([x, y])
    expected = _evaluate_pixels(case.order, xt, yt) * np.linalg.det(T)

    np.testing.assert_allclose(builder.model, expected, rtol=1e-12, atol=1e-15)


@pytest.mark.parametrize("case", _ELLIPSE_TEST_CASES)
def test_leading_function_carries_total_flux(case):
    spacing = 0.1
    x, y = _grid_coordinates(radius=30.0, spacing=spacing)
    builder = gh.ModelBuilder(case.order, x, y)
    builder.update(case.axes)

    # The integral of psi_0(u) psi_0(v) over the plane, for any ellipse.
    flux = np.sum(builder.model[:, 0]) * spacing**2
    np.testing.assert_allclose(flux, 2.0 * np.sqrt(np.pi), rtol=1e-10)


def test_center_translation():
    x, y = _grid_coordinates(radius=4.0, spacing=0.5)
    axes = gh.Axes(a=2.0, b=1.5, theta=0.3)
    center = np.array([0.7, -1.2])

    builder = gh.ModelBuilder(3, x, y)
    builder.update(gh.Ellipse(core=axes, center=center))

    shifted = gh.ModelBuilder(3, x - center[0], y - center[1])
    shifted.update(axes)

    np.testing.assert_allclose(
        builder.model, shifted.model, rtol=1e-12, atol=1e-15
    )


@pytest.mark.parametrize("case", _ELLIPSE_TEST_CASES)
def test_add_model_vector_matches_matrix(case):
    rng = np.random.default_rng(case.order)
    x, y = _grid_coordinates(radius=4.0, spacing=0.5)
    builder = gh.ModelBuilder(case.order, x, y)
    builder.update(case.axes)

    for order in range(case.order + 1):
        size = packed.compute_size(order)
        coefficients = rng.normal(size=size)
        initial = rng.normal(size=x.shape[0])

        matrix = np.zeros((x.shape[0], size))
        builder.add_model_matrix(order, matrix)
        expected = initial + matrix @ coefficients

        output = initial.copy()
        builder.add_model_vector(order, coefficients, output)
        np.testing.assert_allclose(output, expected, rtol=1e-12, atol=1e-14)


def test_add_model_matrix_accumulates():
    x, y = _grid_coordinates(radius=2.0, spacing=0.5)
    builder = gh.ModelBuilder(3, x, y)
    builder.update(gh.Axes(a=1.5, b=1.0, theta=0.2))
    model = np.asarray(builder.model)

    output = np.ones((x.shape[0], 10))
    builder.add_model_matrix(3, output)
    builder.add_model_matrix(3, output)
    np.testing.assert_allclose(output, 1.0 + 2.0 * model, rtol=1e-14)

    # A lower order adds the leading columns only.
    output = np.zeros((x.shape[0], 3))
    builder.add_model_matrix(1, output)
    np.testing.assert_array_equal(output, model[:, :3])


def test_composite_model():
    x, y = _grid_coordinates(radius=5.0, spacing=0.5)
    inner = gh.ModelBuilder(2, x, y)
    inner.update(gh.Axes(a=1.0, b=0.8, theta=0.1))
    outer = gh.ModelBuilder(4, x, y)
    outer.update(gh.Axes(a=3.0, b=2.5, theta=0.1))

    output = np.zeros((x.shape[0], 6))
    inner.add_model_matrix(2, output)
    outer.add_model_matrix(2, output)

    expected = np.asarray(inner.model) + np.asarray(outer.model)[:, :6]
    np.testing.assert_allclose(output, expected, rtol=1e-14)


def test_update_replaces_model():
    x, y = _grid_coordinates(radius=3.0, spacing=0.5)
    builder = gh.ModelBuilder(2, x, y)
    builder.update(gh.Axes(a=4.0, b=1.0, theta=1.0))
    builder.update(gh.Axes(a=2.0, b=1.5, theta=-0.3))

    fresh = gh.ModelBuilder(2, x, y)
    fresh.update(gh.Axes(a=2.0, b=1.5, theta=-0.3))
    np.testing.assert_array_equal(builder.model, fresh.model)


@pytest.mark.parametrize("case", _ELLIPSE_TEST_CASES)
def test_approximate_exp(case):
    x, y = _grid_coordinates(radius=6.0, spacing=0.5)
    exact = gh.ModelBuilder(case.order, x, y)
    approximate = gh.ModelBuilder(
        case.order, x, y, gh.BuilderOptions(use_approximate_exp=True)
    )
    exact.update(case.axes)
    approximate.update(case.axes)

    np.testing.assert_allclose(
        approximate.model,
        exact.model,
        rtol=FAST_EXP_RELATIVE_TOLERANCE,
        atol=1e-300,
    )


def _finite_difference(order, x, y, parameters, step=1e-6):
    """Central differences of build_model. shape (n_pixels, n_basis, n_params)"""
    columns = []
    for k in range(parameters.shape[0]):
        delta = np.zeros_like(parameters)
        delta[k] = step
        plus = builder_lib.build_model(order, x, y, parameters + delta)
        minus = builder_lib.build_model(order, x, y, parameters - delta)
        columns.append((np.asarray(plus) - np.asarray(minus)) / (2 * step))
    return np.stack(columns, axis=-1)


@pytest.mark.parametrize(
    "ellipse",
    [
        gh.Axes(a=2.0, b=1.5, theta=0.3),
        gh.Ellipse(core=gh.Axes(a=2.0, b=1.5, theta=0.3), center=(0.4, -0.2)),
    ],
)
def test_compute_derivative(ellipse):
    x, y = _grid_coordinates(radius=3.0, spacing=0.75)
    builder = gh.ModelBuilder(3, x, y)
    builder.update(ellipse)

    derivative = builder.compute_derivative()
    n_params = np.asarray(ellipse.parameters).shape[0]
    assert derivative.shape == (x.shape[0], 10, n_params)

    expected = _finite_difference(3, x, y, np.asarray(ellipse.parameters))
    np.testing.assert_allclose(derivative, expected, rtol=1e-6, atol=1e-8)


def test_compute_derivative_approximate_exp():
    x, y = _grid_coordinates(radius=3.0, spacing=0.75)
    ellipse = gh.Axes(a=2.0, b=1.5, theta=0.3)
    exact = gh.ModelBuilder(2, x, y)
    approximate = gh.ModelBuilder(
        2, x, y, gh.BuilderOptions(use_approximate_exp=True)
    )
    exact.update(ellipse)
    approximate.update(ellipse)

    np.testing.assert_allclose(
        approximate.compute_derivative(),
        exact.compute_derivative(),
        rtol=1e-5,
        atol=1e-10,
    )


def test_float32():
    x, y = _grid_coordinates(radius=3.0, spacing=0.5)
    single = gh.ModelBuilder(
        3, x, y, gh.BuilderOptions(dtype=np.float32)
    )
    double = gh.ModelBuilder(3, x, y)
    ellipse = gh.Axes(a=2.0, b=1.5, theta=0.3)
    single.update(ellipse)
    double.update(ellipse)

    assert single.dtype == np.float32
    assert single.model.dtype == jnp.float32
    assert double.model.dtype == jnp.float64
    np.testing.assert_allclose(single.model, double.model, rtol=1e-4, atol=1e-6)

    output = np.zeros(x.shape[0], dtype=np.float32)
    single.add_model_vector(3, np.ones(10), output)
    assert output.dtype == np.float32


def test_integer_coordinates_are_promoted():
    builder = gh.ModelBuilder(1, np.array([0, 1, 2]), np.array([0, 0, 1]))
    assert builder.dtype == np.float64
    assert builder.n_pixels == 3
    assert builder.size == 3
    assert builder.order == 1


def test_mismatched_coordinates():
    with pytest.raises(ValueError, match="y"):
        gh.ModelBuilder(2, np.zeros(5), np.zeros(4))
    with pytest.raises(ValueError):
        gh.ModelBuilder(2, np.zeros((2, 3)), np.zeros((2, 3)))


def test_invalid_order():
    with pytest.raises(ValueError):
        gh.ModelBuilder(-1, np.zeros(3), np.zeros(3))


def test_invalid_options():
    with pytest.raises(ValueError):
        gh.BuilderOptions(dtype=np.int32)


def test_model_requires_update():
    builder = gh.ModelBuilder(2, np.zeros(3), np.zeros(3))
    with pytest.raises(RuntimeError):
        builder.model
    with pytest.raises(RuntimeError):
        builder.compute_derivative()
    with pytest.raises(RuntimeError):
        builder.add_model_matrix(2, np.zeros((3, 6)))


def test_update_requires_ellipse():
    builder = gh.ModelBuilder(2, np.zeros(3), np.zeros(3))
    with pytest.raises(TypeError):
        builder.update((2.0, 1.0, 0.0))


def test_precondition_violations():
    builder = gh.ModelBuilder(2, np.zeros(4), np.zeros(4))
    builder.update(gh.Axes(a=1.0, b=1.0))

    with pytest.raises(ValueError, match="exceeds"):
        builder.add_model_matrix(3, np.zeros((4, 10)))

    output = np.full((4, 6), 2.0)
    with pytest.raises(ValueError, match="output"):
        builder.add_model_matrix(1, output)
    np.testing.assert_array_equal(output, np.full((4, 6), 2.0))

    with pytest.raises(ValueError, match="coefficients"):
        builder.add_model_vector(2, np.zeros(3), np.zeros(4))

    output = np.full(5, 2.0)
    with pytest.raises(ValueError, match="output"):
        builder.add_model_vector(2, np.zeros(6), output)
    np.testing.assert_array_equal(output, np.full(5, 2.0))


@pytest.mark.parametrize("use_approximate_exp", [False, True])
def test_far_pixels_are_finite(use_approximate_exp):
    order = 20
    x = np.array([0.0, 5.0, 200.0], dtype=np.float32)
    y = np.zeros(3, dtype=np.float32)
    builder = gh.ModelBuilder(
        order,
        x,
        y,
        gh.BuilderOptions(use_approximate_exp=use_approximate_exp),
    )
    builder.update(gh.Axes(a=1.0, b=1.0))

    assert builder.dtype == np.float32
    assert np.all(np.isfinite(builder.model))
    np.testing.assert_allclose(
        builder.model, _evaluate_pixels(order, x, y), rtol=1e-4, atol=1e-6
    )
    np.testing.assert_array_equal(builder.model[2], 0.0)

    output = np.zeros(3, dtype=np.float32)
    builder.add_model_vector(order, np.ones(builder.size), output)
    assert np.all(np.isfinite(output))
    assert np.all(np.isfinite(builder.compute_derivative()))


def test_far_pixels_are_finite_float64():
    builder = gh.ModelBuilder(30, np.array([0.0, 1e12]), np.zeros(2))
    builder.update(gh.Ellipse(gh.Axes(a=2.0, b=1.0, theta=0.4)))

    assert np.all(np.isfinite(builder.model))
    np.testing.assert_array_equal(builder.model[1], 0.0)
    assert np.all(np.isfinite(builder.compute_derivative()))


@pytest.mark.parametrize("n_parameters", [2, 4, 6])
def test_build_model_rejects_parameter_length(n_parameters):
    x = np.zeros(3)
    with pytest.raises(ValueError, match="parameters"):
        builder_lib.build_model(2, x, x, jnp.ones(n_parameters))
