"""
Ability estimation for Computerized Adaptive Testing under the 3PL model.

Primary estimator is Maximum Likelihood (MLE) solved with Newton-Raphson
using Fisher scoring:

    theta_{k+1} = theta_k + L'(theta_k) / I(theta_k)

    L'(theta) = sum a_i * (x_i - P_i) * (P_i - c_i) / (P_i * (1 - c_i))

MLE is undefined for all-correct and all-incorrect response patterns (the
likelihood is monotone and the estimate diverges), and 3PL likelihoods can
fail to converge when guessing explains the correct answers. In those cases
the estimate falls back to Expected A Posteriori (EAP) with a standard
normal prior, integrated numerically over a bounded theta grid
(Bock & Mislevy, 1982):

    theta_hat = integral(theta * L(theta) * prior(theta)) / integral(L(theta) * prior(theta))

An MLE that converges but carries less test information than the prior
(SE above the prior SD), or that lands within one Newton step of a theta
bound, is treated as non-convergent as well. Short incorrect-heavy 3PL
histories otherwise produce interior maxima near -4 with SE above 10, where
one extra correct answer can move the estimate by several logits.

Standard error is 1 / sqrt(I(theta_hat)) for MLE and the posterior standard
deviation for EAP. Every function here is a pure function of the response
history.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from nclex_cat.core.cat.errors import EstimatorNonConvergence
from nclex_cat.core.cat.irt import (
    THETA_MAX,
    THETA_MIN,
    clamp_theta,
    fisher_information_3pl,
    log_likelihood_terms,
    probability_3pl,
    validate_item_parameters,
)

logger = logging.getLogger(__name__)

# (discrimination a, difficulty b, guessing c, is_correct)
ResponseTuple = Tuple[float, float, float, bool]

# Newton-Raphson configuration
MLE_TOLERANCE = 1e-4
MLE_MAX_ITERATIONS = 25
# Largest single Newton step, in logits
MLE_MAX_STEP = 1.0
# Below this test information the Newton step is numerically meaningless
MIN_TEST_INFORMATION = 1e-8
# Coarse grid used to pick the Newton starting point (3PL likelihoods can be
# multimodal; starting at the best grid point keeps NR on the global peak)
START_GRID_STEP = 0.5

# EAP quadrature configuration
QUADRATURE_POINTS = 81
QUADRATURE_RANGE = (THETA_MIN, THETA_MAX)
PRIOR_MEAN = 0.0
PRIOR_SD = 1.0

# An MLE must carry at least the prior's precision to be reported
MIN_MLE_INFORMATION = 1.0 / PRIOR_SD**2
# MLEs this close to a theta bound are treated as divergent
MLE_BOUND_MARGIN = MLE_MAX_STEP

# Reported SE before any response. Finite so it survives JSON and SQL.
SE_SENTINEL = 999.0

METHOD_PRIOR = "prior"
METHOD_MLE = "mle"
METHOD_EAP = "eap"


@dataclass(frozen=True)
class AbilityEstimate:
    """Point estimate of ability with its standard error."""

    theta: float
    se: float
    method: str


def estimate_ability(responses: Sequence[ResponseTuple]) -> AbilityEstimate:
    """
    Estimate ability from an ordered response history.

    Uses MLE when the response pattern is mixed and Newton-Raphson converges
    to an interior point; otherwise falls back to EAP. Non-convergence is
    recovered here and never propagates to the caller.

    Args:
        responses: Sequence of (a, b, c, is_correct) tuples in administration
            order.

    Returns:
        AbilityEstimate with theta in [-4, 4], SE >= 0 and the method used
        ("prior", "mle" or "eap").

    Raises:
        ValueError: If any item has invalid 3PL parameters.
    """
    if not responses:
        return AbilityEstimate(theta=PRIOR_MEAN, se=SE_SENTINEL, method=METHOD_PRIOR)

    for i, (a, b, c, _) in enumerate(responses):
        try:
            validate_item_parameters(a, b, c)
        except ValueError as e:
            raise ValueError(f"Invalid item parameters for response {i}: {e}") from e

    n_correct = sum(1 for r in responses if r[3])
    if n_correct == 0 or n_correct == len(responses):
        theta, se = estimate_ability_eap(responses)
        return AbilityEstimate(theta=theta, se=se, method=METHOD_EAP)

    try:
        theta, se = estimate_ability_mle(responses)
    except EstimatorNonConvergence as e:
        logger.warning(f"MLE not usable, using EAP fallback: {e}")
        theta, se = estimate_ability_eap(responses)
        return AbilityEstimate(theta=theta, se=se, method=METHOD_EAP)

    return AbilityEstimate(theta=theta, se=se, method=METHOD_MLE)


def estimate_ability_mle(
    responses: Sequence[ResponseTuple],
    tolerance: float = MLE_TOLERANCE,
    max_iterations: int = MLE_MAX_ITERATIONS,
    min_information: float = MIN_MLE_INFORMATION,
) -> Tuple[float, float]:
    """
    Maximum likelihood ability estimate via Newton-Raphson (Fisher scoring).

    Args:
        responses: Sequence of (a, b, c, is_correct) tuples.
        tolerance: Convergence threshold on |theta_{k+1} - theta_k|.
        max_iterations: Iteration cap.
        min_information: Test information the estimate must reach to be
            accepted (SE <= 1 / sqrt(min_information)).

    Returns:
        Tuple of (theta_estimate, standard_error).

    Raises:
        EstimatorNonConvergence: If the iteration cap is reached, the test
            information vanishes or stays below ``min_information``, or the
            estimate lies within ``MLE_BOUND_MARGIN`` of a theta bound (the
            unconstrained MLE diverges or is not identified).
    """
    if not responses:
        raise EstimatorNonConvergence("MLE requires at least one response")

    theta = _best_grid_start(responses)

    for iteration in range(1, max_iterations + 1):
        score = 0.0
        information = 0.0
        for a, b, c, is_correct in responses:
            prob = probability_3pl(theta, a, b, c)
            x = 1.0 if is_correct else 0.0
            score += a * (x - prob) * (prob - c) / (prob * (1.0 - c))
            information += fisher_information_3pl(theta, a, b, c)

        if information < MIN_TEST_INFORMATION:
            raise EstimatorNonConvergence(
                "Test information vanished during Newton-Raphson",
                context={"theta": round(theta, 4), "iteration": iteration},
            )

        step = max(-MLE_MAX_STEP, min(MLE_MAX_STEP, score / information))
        new_theta = clamp_theta(theta + step)

        if abs(new_theta - theta) < tolerance:
            theta = new_theta
            break
        theta = new_theta
    else:
        raise EstimatorNonConvergence(
            f"Newton-Raphson did not converge in {max_iterations} iterations",
            context={"theta": round(theta, 4)},
        )

    if theta <= THETA_MIN + MLE_BOUND_MARGIN or theta >= THETA_MAX - MLE_BOUND_MARGIN:
        raise EstimatorNonConvergence(
            "MLE diverged towards a theta bound",
            context={"theta": round(theta, 4), "n_responses": len(responses)},
        )

    information = total_information(theta, responses)
    if information < max(min_information, MIN_TEST_INFORMATION):
        raise EstimatorNonConvergence(
            "Test information at the MLE is below the prior's",
            context={"theta": round(theta, 4), "information": round(information, 4)},
        )

    return (theta, 1.0 / math.sqrt(information))


def estimate_ability_eap(
    responses: Sequence[ResponseTuple],
    prior_mean: float = PRIOR_MEAN,
    prior_sd: float = PRIOR_SD,
) -> Tuple[float, float]:
    """
    Estimate ability using Expected A Posteriori (EAP) with numerical quadrature.

    The EAP estimate is the posterior mean:
        theta_hat = E[theta | responses] = sum(theta_i * p(theta_i | responses))

    Standard error is the posterior standard deviation:
        SE = sqrt(Var[theta | responses])

    Args:
        responses: Sequence of (a, b, c, is_correct) tuples.
        prior_mean: Mean of the Gaussian prior on theta.
        prior_sd: Standard deviation of the Gaussian prior on theta.

    Returns:
        Tuple of (theta_estimate, standard_error).
    """
    # Edge case: no responses, return the prior
    if not responses:
        return (prior_mean, prior_sd)

    theta_min, theta_max = QUADRATURE_RANGE
    n_points = QUADRATURE_POINTS
    step = (theta_max - theta_min) / (n_points - 1)
    theta_points = [theta_min + step * i for i in range(n_points)]

    # log N(theta | mu, sigma^2) up to a constant
    variance = prior_sd**2
    log_priors = [-((theta - prior_mean) ** 2) / (2.0 * variance) for theta in theta_points]

    log_posteriors = [
        lp + _log_likelihood(theta, responses)
        for theta, lp in zip(theta_points, log_priors)
    ]

    # Normalize using log-sum-exp for numerical stability
    max_log_post = max(log_posteriors)
    posteriors = [math.exp(lp - max_log_post) for lp in log_posteriors]
    posterior_sum = sum(posteriors)

    if posterior_sum == 0.0:
        logger.warning(
            "Posterior collapsed to zero at all quadrature points. "
            "Returning prior estimate."
        )
        return (prior_mean, prior_sd)

    posterior_probs = [p / posterior_sum for p in posteriors]

    theta_hat = sum(theta * prob for theta, prob in zip(theta_points, posterior_probs))
    posterior_variance = sum(
        (theta - theta_hat) ** 2 * prob
        for theta, prob in zip(theta_points, posterior_probs)
    )

    return (clamp_theta(theta_hat), math.sqrt(posterior_variance))


def total_information(theta: float, responses: Sequence[ResponseTuple]) -> float:
    """Sum of 3PL item information over the administered items at theta."""
    return sum(fisher_information_3pl(theta, a, b, c) for a, b, c, _ in responses)


def _log_likelihood(theta: float, responses: Sequence[ResponseTuple]) -> float:
    total = 0.0
    for a, b, c, is_correct in responses:
        log_p, log_q = log_likelihood_terms(theta, a, b, c)
        total += log_p if is_correct else log_q
    return total


def _best_grid_start(responses: Sequence[ResponseTuple]) -> float:
    grid: List[float] = []
    theta = THETA_MIN + START_GRID_STEP
    while theta < THETA_MAX:
        grid.append(theta)
        theta += START_GRID_STEP
    return max(grid, key=lambda t: _log_likelihood(t, responses))
