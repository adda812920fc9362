"""
Three-parameter logistic (3PL) IRT model functions.

    P(theta) = c + (1 - c) / (1 + exp(-a * (theta - b)))

    I(theta) = a^2 * (P - c)^2 * (1 - P) / (P * (1 - c)^2)

Where a is discrimination, b is difficulty and c is the pseudo-guessing
lower asymptote. All functions are pure and safe for extreme logits.

References:
    - Birnbaum, A. (1968). Some latent trait models and their use in
      inferring an examinee's ability. In Lord & Novick, Statistical
      theories of mental test scores.
    - Lord, F. M. (1980). Applications of item response theory to practical
      testing problems.
"""

import math

THETA_MIN = -4.0
THETA_MAX = 4.0

# Probabilities are kept strictly inside (0, 1) so logs stay finite.
_PROB_EPSILON = 1e-10


def clamp_theta(theta: float) -> float:
    """Clamp an ability value to the supported [-4, 4] logit range."""
    return max(THETA_MIN, min(THETA_MAX, theta))


def _sigmoid(logit: float) -> float:
    if logit >= 0:
        return 1.0 / (1.0 + math.exp(-logit))
    exp_logit = math.exp(logit)
    return exp_logit / (1.0 + exp_logit)


def validate_item_parameters(
    discrimination: float, difficulty: float, guessing: float
) -> None:
    """
    Validate 3PL item parameters.

    Raises:
        ValueError: If a <= 0, c outside [0, 1) or b is not finite.
    """
    if discrimination <= 0:
        raise ValueError(
            f"Discrimination parameter must be positive, got {discrimination}"
        )
    if not (0.0 <= guessing < 1.0):
        raise ValueError(f"Guessing parameter must be in [0, 1), got {guessing}")
    if not math.isfinite(difficulty):
        raise ValueError(f"Difficulty parameter must be finite, got {difficulty}")


def probability_3pl(
    theta: float,
    discrimination: float,
    difficulty: float,
    guessing: float = 0.0,
) -> float:
    """
    Probability of a correct response under the 3PL model.

    Args:
        theta: Ability level.
        discrimination: Item discrimination (a > 0).
        difficulty: Item difficulty (b).
        guessing: Pseudo-guessing lower asymptote (0 <= c < 1).

    Returns:
        P(correct | theta), clipped to the open interval (0, 1).
    """
    prob = guessing + (1.0 - guessing) * _sigmoid(
        discrimination * (theta - difficulty)
    )
    return min(max(prob, _PROB_EPSILON), 1.0 - _PROB_EPSILON)


def fisher_information_3pl(
    theta: float,
    discrimination: float,
    difficulty: float,
    guessing: float = 0.0,
) -> float:
    """
    Fisher information of a 3PL item at a given ability level.

    Reduces to the 2PL form a^2 * P * (1 - P) when c = 0.

    Args:
        theta: Ability level.
        discrimination: Item discrimination (a). Must be > 0.
        difficulty: Item difficulty (b).
        guessing: Pseudo-guessing parameter (c).

    Returns:
        Fisher information value (non-negative).

    Raises:
        ValueError: If discrimination is not positive.
    """
    if discrimination <= 0:
        raise ValueError(
            f"Discrimination parameter must be positive, got {discrimination}"
        )

    prob = probability_3pl(theta, discrimination, difficulty, guessing)
    if prob <= guessing:
        return 0.0

    one_minus_c = 1.0 - guessing
    return (
        discrimination**2
        * (prob - guessing) ** 2
        * (1.0 - prob)
        / (prob * one_minus_c**2)
    )


def log_likelihood_terms(
    theta: float,
    discrimination: float,
    difficulty: float,
    guessing: float = 0.0,
) -> tuple[float, float]:
    """Return (log P(correct), log P(incorrect)) at theta."""
    prob = probability_3pl(theta, discrimination, difficulty, guessing)
    return math.log(prob), math.log(1.0 - prob)
