"""Tests for the variational posteriors.

Expectations and divergences are checked against closed forms evaluated with SciPy.
"""

import jax
import jax.numpy as jnp
import numpy as np
import pytest
from jax import Array
from scipy import stats
from scipy.special import betaln, digamma

from scm import Dirichlet, GaussWish, GDirichlet
from scm.distributions import multidigamma

jax.config.update("jax_platform_name", "cpu")

# Tolerances
RTOL = 1e-4
ATOL = 1e-4


@pytest.fixture
def key() -> Array:
    """Random key for tests."""
    return jax.random.PRNGKey(0)


class TestGDirichlet:
    """Test the stick-breaking posterior."""

    def test_single_weight(self) -> None:
        """Test one weight takes the whole stick."""
        dist = GDirichlet.from_prior(1)
        assert dist.n_weights == 1
        assert jnp.allclose(dist.expected_log_weight(), jnp.zeros(1))
        assert jnp.allclose(dist.kl_divergence(), 0.0)

    def test_update(self) -> None:
        """Test each stick counts its own weight against all later ones."""
        dist = GDirichlet.from_prior(3, 1.0, 2.0).update(jnp.array([3.0, 1.0, 2.0]))
        assert jnp.allclose(dist.alpha, jnp.array([4.0, 2.0]))
        assert jnp.allclose(dist.beta, jnp.array([5.0, 4.0]))

    def test_expected_log_weight(self) -> None:
        alpha = np.array([2.0, 0.5, 3.0])
        beta = np.array([1.5, 4.0, 0.7])
        dist = GDirichlet(alpha=jnp.asarray(alpha), beta=jnp.asarray(beta))

        elog_v = digamma(alpha) - digamma(alpha + beta)
        elog_rest = digamma(beta) - digamma(alpha + beta)
        expected = [elog_v[0], elog_rest[0] + elog_v[1], elog_rest[:2].sum() + elog_v[2]]
        expected.append(elog_rest.sum())

        assert np.allclose(dist.expected_log_weight(), expected, rtol=RTOL, atol=ATOL)

    def test_weights_subnormalised(self) -> None:
        """Test exponentiated expected log-weights sum to at most one."""
        dist = GDirichlet.from_prior(5, 1.0, 3.0).update(jnp.array([10.0, 0.0, 2.0, 5.0, 1.0]))
        total = jnp.sum(jnp.exp(dist.expected_log_weight()))
        assert 0.0 < total <= 1.0

    def test_kl_divergence(self) -> None:
        """Test KL against the Beta entropy and cross-entropy."""
        a0, b0 = 1.0, 2.5
        alpha = np.array([3.0, 0.8])
        beta = np.array([2.0, 6.0])
        dist = GDirichlet(
            alpha=jnp.asarray(alpha), beta=jnp.asarray(beta), prior_alpha=a0, prior_beta=b0
        )

        elog_v = digamma(alpha) - digamma(alpha + beta)
        elog_rest = digamma(beta) - digamma(alpha + beta)
        cross = (a0 - 1) * elog_v + (b0 - 1) * elog_rest - betaln(a0, b0)
        expected = np.sum(-stats.beta(alpha, beta).entropy() - cross)

        assert np.allclose(dist.kl_divergence(), expected, rtol=RTOL, atol=ATOL)

    def test_kl_zero_at_prior(self) -> None:
        assert jnp.allclose(GDirichlet.from_prior(4, 1.0, 0.5).kl_divergence(), 0.0, atol=ATOL)

    def test_batched(self) -> None:
        """Test batched updates act per row and unstack into rows."""
        counts = jnp.array([[1.0, 2.0, 0.0], [0.0, 0.0, 4.0]])
        batch = GDirichlet.from_prior(3).update(counts)
        singles = batch.unstack()

        assert batch.expected_log_weight().shape == (2, 3)
        assert batch.kl_divergence().shape == (2,)
        assert len(singles) == 2
        for row, single in zip(counts, singles):
            expected = GDirichlet.from_prior(3).update(row)
            assert jnp.allclose(single.expected_log_weight(), expected.expected_log_weight())


class TestDirichlet:
    """Test the Dirichlet posterior."""

    def test_expected_log_weight(self) -> None:
        alpha = np.array([0.5, 2.0, 7.0])
        dist = Dirichlet(alpha=jnp.asarray(alpha))
        expected = digamma(alpha) - digamma(alpha.sum())
        assert np.allclose(dist.expected_log_weight(), expected, rtol=RTOL, atol=ATOL)

    def test_kl_divergence(self) -> None:
        """Test KL against the Dirichlet entropy and cross-entropy."""
        a0 = 0.7
        alpha = np.array([1.5, 3.0, 0.9, 4.0])
        dist = Dirichlet(alpha=jnp.asarray(alpha), prior_alpha=a0)

        elog = digamma(alpha) - digamma(alpha.sum())
        prior = stats.dirichlet(np.full(4, a0))
        # log density of the prior, up to the (a0 - 1) sum log pi term
        log_norm = prior.logpdf(np.full(4, 0.25)) - (a0 - 1) * 4 * np.log(0.25)
        cross = log_norm + (a0 - 1) * elog.sum()
        expected = -stats.dirichlet(alpha).entropy() - cross

        assert np.allclose(dist.kl_divergence(), expected, rtol=RTOL, atol=ATOL)

    def test_update_and_unstack(self) -> None:
        counts = jnp.array([[2.0, 0.0], [0.5, 1.5], [0.0, 0.0]])
        batch = Dirichlet.from_prior(2, 0.5).update(counts)
        singles = batch.unstack()

        assert batch.n_weights == 2
        assert len(singles) == 3
        assert jnp.allclose(singles[1].alpha, jnp.array([1.0, 2.0]))
        assert jnp.allclose(singles[2].kl_divergence(), 0.0, atol=ATOL)


class TestGaussWish:
    """Test the Normal-Wishart posterior."""

    MEAN = jnp.array([1.0, -2.0])
    COV = jnp.array([[2.0, 0.6], [0.6, 1.0]])

    def fit(self, key: Array, n_samples: int) -> tuple[GaussWish, Array]:
        """Posterior of a single cluster given samples from `MEAN` and `COV`."""
        x = jax.random.multivariate_normal(key, self.MEAN, self.COV, shape=(n_samples,))
        prior = GaussWish.from_prior(jnp.zeros(2), 1.0, 2.0, 2.0 * jnp.eye(2))
        posterior = prior.update(
            jnp.array([float(n_samples)]),
            jnp.sum(x, axis=0)[None],
            (x.T @ x)[None],
        )
        return posterior, x

    def test_update_recovers_parameters(self, key: Array) -> None:
        posterior, _ = self.fit(key, 20000)
        single = posterior.unstack()[0]

        assert jnp.allclose(single.mean, self.MEAN, atol=0.05)
        assert jnp.allclose(single.covariance, self.COV, atol=0.1)
        assert jnp.allclose(single.covariance, single.covariance.T)

    def test_update_without_data(self) -> None:
        """Test a cluster with no observations keeps its prior."""
        prior = GaussWish.from_prior(jnp.ones(3), 2.0, 3.0, jnp.eye(3))
        posterior = prior.update(jnp.zeros(1), jnp.zeros((1, 3)), jnp.zeros((1, 3, 3)))
        single = posterior.unstack()[0]

        assert jnp.allclose(single.mean, jnp.ones(3))
        assert jnp.allclose(single.covariance, jnp.eye(3) / 3.0)
        assert jnp.allclose(posterior.kl_divergence(), 0.0, atol=ATOL)

    def test_expected_log_likelihood(self, key: Array) -> None:
        """Test a concentrated posterior approaches the Gaussian log-density."""
        posterior, x = self.fit(key, 20000)
        points = x[:10]
        expected = stats.multivariate_normal(np.asarray(self.MEAN), np.asarray(self.COV))

        loglik = posterior.expected_log_likelihood(points)
        assert loglik.shape == (10, 1)
        assert np.allclose(loglik[:, 0], expected.logpdf(np.asarray(points)), atol=0.1)

    def test_expected_log_det_precision(self) -> None:
        nu, dim = 5.0, 3
        inv_scale = jnp.diag(jnp.array([1.0, 2.0, 4.0]))
        dist = GaussWish.from_prior(jnp.zeros(dim), 1.0, nu, inv_scale)

        expected = (
            sum(digamma((nu - d) / 2) for d in range(dim)) + dim * np.log(2.0) - np.log(8.0)
        )
        assert np.allclose(dist.expected_log_det_precision(), expected, rtol=RTOL, atol=ATOL)

    def test_kl_divergence(self, key: Array) -> None:
        """Test KL is zero at the prior and positive away from it."""
        prior = GaussWish.from_prior(jnp.zeros(2), 1.0, 2.0, 2.0 * jnp.eye(2))
        posterior, _ = self.fit(key, 50)

        assert jnp.allclose(prior.kl_divergence(), 0.0, atol=ATOL)
        assert posterior.kl_divergence().shape == (1,)
        assert posterior.kl_divergence()[0] > 0.0

    def test_translate(self, key: Array) -> None:
        """Test translation moves the mean and leaves the covariance."""
        posterior, _ = self.fit(key, 100)
        shift = jnp.array([10.0, 5.0])
        moved = posterior.translate(shift)

        assert jnp.allclose(moved.mean, posterior.mean + shift)
        assert jnp.allclose(moved.covariance, posterior.covariance)
        assert jnp.allclose(moved.kl_divergence(), posterior.kl_divergence(), rtol=RTOL, atol=ATOL)


def test_multidigamma() -> None:
    a = np.array([2.0, 3.5])
    expected = [digamma(v) + digamma(v - 0.5) + digamma(v - 1.0) for v in a]
    assert np.allclose(multidigamma(jnp.asarray(a), 3), expected, rtol=RTOL, atol=ATOL)
