"""Variational posteriors of the Simultaneous Clustering Model.

Each class holds the parameters of a conjugate posterior together with its prior, and supports batching: every parameter may carry leading batch axes, in which case methods act elementwise over the batch and `unstack` splits the batch into single distributions.

- `GDirichlet`: generalised Dirichlet (truncated stick-breaking) posterior over group class weights.
- `Dirichlet`: Dirichlet posterior over class cluster weights.
- `GaussWish`: Normal-Wishart posterior over a Gaussian cluster's mean and precision.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Self

import jax.numpy as jnp
from jax import Array
from jax.scipy.special import betaln, digamma, gammaln, multigammaln


def multidigamma(a: Array, dim: int) -> Array:
    """Multivariate digamma function $\\psi_D(a) = \\sum_{d=1}^D \\psi(a + (1 - d)/2)$."""
    offsets = 0.5 * jnp.arange(dim)
    return jnp.sum(digamma(jnp.asarray(a)[..., None] - offsets), axis=-1)


@dataclass(frozen=True)
class GDirichlet:
    """Truncated stick-breaking posterior over $T$ weights.

    The weights are $\\pi_t = v_t \\prod_{s<t} (1 - v_s)$ with $v_t \\sim \\text{Beta}(\\alpha_t, \\beta_t)$ for $t < T$, and $v_T = 1$ so that the truncated weights sum to one.
    """

    alpha: Array
    """First Beta parameters of the $T - 1$ sticks."""

    beta: Array
    """Second Beta parameters of the $T - 1$ sticks."""

    prior_alpha: float = 1.0
    prior_beta: float = 1.0

    @classmethod
    def from_prior(cls, n_weights: int, prior_alpha: float = 1.0, prior_beta: float = 1.0) -> Self:
        return cls(
            alpha=jnp.full(n_weights - 1, prior_alpha),
            beta=jnp.full(n_weights - 1, prior_beta),
            prior_alpha=prior_alpha,
            prior_beta=prior_beta,
        )

    @property
    def n_weights(self) -> int:
        return self.alpha.shape[-1] + 1

    def update(self, counts: Array) -> Self:
        """Posterior given expected counts of shape `[..., T]`."""
        # tail[t] = sum of counts from t onwards
        tail = jnp.flip(jnp.cumsum(jnp.flip(counts, axis=-1), axis=-1), axis=-1)
        return replace(
            self,
            alpha=self.prior_alpha + counts[..., :-1],
            beta=self.prior_beta + tail[..., 1:],
        )

    def expected_log_weight(self) -> Array:
        """$\\mathbb E[\\log \\pi_t] = \\mathbb E[\\log v_t] + \\sum_{s<t} \\mathbb E[\\log(1 - v_s)]$."""
        total = digamma(self.alpha + self.beta)
        elog_stick = digamma(self.alpha) - total
        elog_rest = digamma(self.beta) - total
        zeros = jnp.zeros((*self.alpha.shape[:-1], 1))
        return jnp.concatenate([elog_stick, zeros], axis=-1) + jnp.concatenate(
            [zeros, jnp.cumsum(elog_rest, axis=-1)], axis=-1
        )

    def kl_divergence(self) -> Array:
        """KL divergence from the prior, summed over sticks."""
        a, b = self.alpha, self.beta
        a0, b0 = self.prior_alpha, self.prior_beta
        kl = (
            betaln(a0, b0)
            - betaln(a, b)
            + (a - a0) * digamma(a)
            + (b - b0) * digamma(b)
            + (a0 - a + b0 - b) * digamma(a + b)
        )
        return jnp.sum(kl, axis=-1)

    def unstack(self) -> list[Self]:
        return [replace(self, alpha=a, beta=b) for a, b in zip(self.alpha, self.beta)]


@dataclass(frozen=True)
class Dirichlet:
    """Dirichlet posterior over $K$ weights."""

    alpha: Array
    """Concentration parameters."""

    prior_alpha: float = 1.0

    @classmethod
    def from_prior(cls, n_weights: int, prior_alpha: float = 1.0) -> Self:
        return cls(alpha=jnp.full(n_weights, prior_alpha), prior_alpha=prior_alpha)

    @property
    def n_weights(self) -> int:
        return self.alpha.shape[-1]

    def update(self, counts: Array) -> Self:
        """Posterior given expected counts of shape `[..., K]`."""
        return replace(self, alpha=self.prior_alpha + counts)

    def expected_log_weight(self) -> Array:
        """$\\mathbb E[\\log \\pi_k] = \\psi(\\alpha_k) - \\psi(\\sum_l \\alpha_l)$."""
        return digamma(self.alpha) - digamma(jnp.sum(self.alpha, axis=-1, keepdims=True))

    def kl_divergence(self) -> Array:
        a = self.alpha
        a0 = self.prior_alpha
        total = jnp.sum(a, axis=-1)
        return (
            gammaln(total)
            - jnp.sum(gammaln(a), axis=-1)
            - gammaln(self.n_weights * a0)
            + self.n_weights * gammaln(a0)
            + jnp.sum((a - a0) * (digamma(a) - digamma(total)[..., None]), axis=-1)
        )

    def unstack(self) -> list[Self]:
        return [replace(self, alpha=a) for a in self.alpha]


@dataclass(frozen=True)
class GaussWish:
    """Normal-Wishart posterior over the mean $\\mu$ and precision $\\Lambda$ of a Gaussian.

    $$\\Lambda \\sim \\mathcal W(W, \\nu), \\quad \\mu \\mid \\Lambda \\sim \\mathcal N(m, (\\beta \\Lambda)^{-1})$$

    The scale $W$ is stored through its inverse.
    """

    location: Array
    """Mean $m$ of the mean, shape `[..., D]`."""

    beta: Array
    """Precision scaling $\\beta$ of the mean."""

    nu: Array
    """Degrees of freedom $\\nu$."""

    inv_scale: Array
    """Inverse scale matrix $W^{-1}$, shape `[..., D, D]`."""

    prior_location: Array
    prior_beta: float
    prior_nu: float
    prior_inv_scale: Array

    @classmethod
    def from_prior(
        cls, location: Array, beta: float, nu: float, inv_scale: Array
    ) -> Self:
        return cls(
            location=location,
            beta=jnp.asarray(beta),
            nu=jnp.asarray(nu),
            inv_scale=inv_scale,
            prior_location=location,
            prior_beta=beta,
            prior_nu=nu,
            prior_inv_scale=inv_scale,
        )

    @property
    def dim(self) -> int:
        return self.location.shape[-1]

    @property
    def mean(self) -> Array:
        """Posterior mean of the cluster mean."""
        return self.location

    @property
    def covariance(self) -> Array:
        """Cluster covariance $W^{-1} / \\nu$, the inverse of the expected precision."""
        return self.inv_scale / self.nu[..., None, None]

    def update(self, counts: Array, sums: Array, outer_sums: Array) -> Self:
        """Posterior given expected sufficient statistics.

        Args:
            counts: Expected observation counts, shape `[K]`.
            sums: Expected sums of observations, shape `[K, D]`.
            outer_sums: Expected sums of outer products, shape `[K, D, D]`.
        """
        m0, b0 = self.prior_location, self.prior_beta
        beta = b0 + counts
        nu = self.prior_nu + counts

        safe = jnp.where(counts > 0, counts, 1.0)
        centroid = sums / safe[:, None]
        scatter = outer_sums - counts[:, None, None] * jnp.einsum(
            "kd,ke->kde", centroid, centroid
        )
        offset = centroid - m0
        shrink = b0 * counts / (b0 + counts)
        inv_scale = (
            self.prior_inv_scale
            + scatter
            + shrink[:, None, None] * jnp.einsum("kd,ke->kde", offset, offset)
        )
        inv_scale = 0.5 * (inv_scale + jnp.swapaxes(inv_scale, -1, -2))

        return replace(
            self,
            location=(b0 * m0 + sums) / beta[:, None],
            beta=beta,
            nu=nu,
            inv_scale=inv_scale,
        )

    def translate(self, shift: Array) -> Self:
        """Move the posterior and its prior by `shift` in data space."""
        return replace(
            self,
            location=self.location + shift,
            prior_location=self.prior_location + shift,
        )

    def expected_log_det_precision(self) -> Array:
        """$\\mathbb E[\\log |\\Lambda|] = \\psi_D(\\nu/2) + D \\log 2 + \\log |W|$."""
        _, logdet_inv_scale = jnp.linalg.slogdet(self.inv_scale)
        return multidigamma(self.nu / 2, self.dim) + self.dim * jnp.log(2.0) - logdet_inv_scale

    def expected_log_likelihood(self, x: Array) -> Array:
        """Expected Gaussian log-density of each row of `x` (shape `[N, D]`) under each of `K` batched clusters, shape `[N, K]`."""
        scale = jnp.linalg.inv(self.inv_scale)
        diff = x[:, None, :] - self.location[None]
        quad = jnp.einsum("nkd,kde,nke->nk", diff, scale, diff)
        return 0.5 * (
            self.expected_log_det_precision()
            - self.dim / self.beta
            - self.nu * quad
            - self.dim * jnp.log(2 * jnp.pi)
        )

    def kl_divergence(self) -> Array:
        """KL divergence from the prior: Gaussian part in expectation over $\\Lambda$, plus the Wishart part."""
        dim = self.dim
        b, b0 = self.beta, self.prior_beta
        n, n0 = self.nu, self.prior_nu
        scale = jnp.linalg.inv(self.inv_scale)
        _, logdet_inv_scale = jnp.linalg.slogdet(self.inv_scale)
        _, logdet_prior_inv_scale = jnp.linalg.slogdet(self.prior_inv_scale)

        diff = self.location - self.prior_location
        gauss = 0.5 * (
            dim * (b0 / b - 1 + jnp.log(b / b0))
            + b0 * n * jnp.einsum("...d,...de,...e->...", diff, scale, diff)
        )

        trace = jnp.einsum("de,...ed->...", self.prior_inv_scale, scale)
        wishart = (
            0.5 * n0 * (logdet_inv_scale - logdet_prior_inv_scale)
            + 0.5 * n * (trace - dim)
            + multigammaln(n0 / 2, dim)
            - multigammaln(n / 2, dim)
            + 0.5 * (n - n0) * multidigamma(n / 2, dim)
        )
        return gauss + wishart

    def unstack(self) -> list[Self]:
        return [
            replace(self, location=m, beta=b, nu=n, inv_scale=w)
            for m, b, n, w in zip(self.location, self.beta, self.nu, self.inv_scale)
        ]
