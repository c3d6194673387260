"""
Unit tests for turning observations into regression problems.
"""

import numpy as np
import pytest

from nutsbridge.data import initial_guess, parse_observations, regression_from_observations
from nutsbridge.errors import ObservationError
from nutsbridge.models import RegressionModel


class TestParseObservations:

    def test_header_and_rows(self):
        rows, names = parse_observations("year, tmax\n1990, 12.5\n\n1991,13.0\n")
        assert names == ['year', 'tmax']
        np.testing.assert_array_equal(rows, [[1990.0, 12.5], [1991.0, 13.0]])

    def test_header_only(self):
        rows, names = parse_observations("x,y\n")
        assert names == ['x', 'y']
        assert rows.shape == (0, 2)

    def test_empty(self):
        with pytest.raises(ObservationError):
            parse_observations("   \n")

    def test_column_count_mismatch(self):
        with pytest.raises(ObservationError, match="Line 3"):
            parse_observations("x,y\n1,2\n3\n")

    def test_non_numeric(self):
        with pytest.raises(ObservationError, match="Line 2"):
            parse_observations("x,y\n1,abc\n")

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            parse_observations("x,y\n1,2,3\n")


class TestRegressionFromObservations:

    def test_centered(self):
        rows = [[1.0, 5.0], [2.0, 8.0], [3.0, 11.0]]
        problem = regression_from_observations(rows, names=['x', 'y'])
        assert isinstance(problem.model, RegressionModel)
        assert problem.x_offset == pytest.approx(2.0)
        np.testing.assert_allclose(problem.model.x, [-1.0, 0.0, 1.0])
        assert problem.names == ['x', 'y']
        # centered x sums to zero so the slope guess falls back to zero
        np.testing.assert_allclose(problem.initial_position[:2], [8.0, 0.0])
        assert problem.initial_position[2] > 0

    def test_uncentered(self):
        problem = regression_from_observations([[1.0, 2.0], [3.0, 6.0]], center=False)
        assert problem.x_offset == 0.0
        np.testing.assert_allclose(problem.model.x, [1.0, 3.0])
        assert problem.initial_position[1] == pytest.approx(2.0)

    def test_initial_position_in_support(self):
        problem = regression_from_observations([[0.0, 0.0], [1.0, 2.0], [2.0, 4.0]])
        assert np.isfinite(problem.model.logp(problem.initial_position))

    @pytest.mark.parametrize("rows", [
        np.zeros((0, 2)),
        np.zeros((3, 3)),
        [1.0, 2.0],
    ])
    def test_malformed(self, rows):
        with pytest.raises(ObservationError):
            regression_from_observations(rows)


def test_initial_guess():
    x = np.array([1.0, 2.0, 3.0])
    y = np.array([2.0, 4.0, 6.0])
    alpha, beta, sigma = initial_guess(x, y)
    assert alpha == pytest.approx(4.0)
    assert beta == pytest.approx(2.0)
    # residuals -4, -4, -4
    assert sigma == pytest.approx(np.sqrt(48.0) / 3)
