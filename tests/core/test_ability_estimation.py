"""
Tests for MLE/EAP ability estimation.
"""

import math
import random

import pytest

from nclex_cat.core.cat.ability_estimation import (
    METHOD_EAP,
    METHOD_MLE,
    METHOD_PRIOR,
    PRIOR_SD,
    SE_SENTINEL,
    estimate_ability,
    estimate_ability_eap,
    estimate_ability_mle,
    total_information,
)
from nclex_cat.core.cat.errors import EstimatorNonConvergence
from nclex_cat.core.cat.irt import THETA_MAX, THETA_MIN, probability_3pl


def _item(is_correct, a=1.0, b=0.0, c=0.0):
    return (a, b, c, is_correct)


# Correct at -x paired with incorrect at +x: the score cancels at theta = 0
BALANCED_HISTORY = [
    _item(True, a=1.5, b=-0.5),
    _item(False, a=1.5, b=0.5),
    _item(True, a=1.5, b=-0.25),
    _item(False, a=1.5, b=0.25),
    _item(True, a=1.5, b=0.0),
    _item(False, a=1.5, b=0.0),
]


class TestEstimateAbility:
    def test_empty_history_returns_prior(self):
        estimate = estimate_ability([])
        assert estimate.theta == 0.0
        assert estimate.se == SE_SENTINEL
        assert estimate.method == METHOD_PRIOR

    def test_all_correct_uses_eap(self):
        estimate = estimate_ability([_item(True, c=0.2) for _ in range(5)])
        assert estimate.method == METHOD_EAP
        assert estimate.theta > 0.0
        assert math.isfinite(estimate.se)

    def test_all_incorrect_uses_eap(self):
        estimate = estimate_ability([_item(False, c=0.2) for _ in range(5)])
        assert estimate.method == METHOD_EAP
        assert estimate.theta < 0.0

    def test_mixed_pattern_uses_mle(self):
        estimate = estimate_ability([_item(True)] * 4 + [_item(False)] * 4)
        assert estimate.method == METHOD_MLE
        # Score equation 4 - 8P = 0 puts the MLE at the common difficulty
        assert estimate.theta == pytest.approx(0.0, abs=1e-3)
        # I = 8 * 0.25
        assert estimate.se == pytest.approx(1.0 / math.sqrt(2.0), abs=1e-3)

    def test_mle_closed_form_two_thirds_correct(self):
        """Six correct of nine identical 2PL items gives P = 2/3, theta = ln 2."""
        estimate = estimate_ability([_item(True)] * 6 + [_item(False)] * 3)
        assert estimate.method == METHOD_MLE
        assert estimate.theta == pytest.approx(math.log(2.0), abs=1e-3)

    def test_weak_mle_falls_back_to_eap(self):
        """Two items carry less information than the N(0, 1) prior."""
        estimate = estimate_ability([_item(True), _item(False)])
        assert estimate.method == METHOD_EAP
        assert estimate.theta == pytest.approx(0.0, abs=1e-9)
        assert estimate.se < PRIOR_SD

    def test_correct_answer_in_incorrect_heavy_history_does_not_lower_theta(self):
        """The MLE for the middle pattern sits near -3.9 with SE above 10."""
        all_wrong = [
            _item(False, b=-0.56, c=0.2),
            _item(False, b=0.44, c=0.2),
            _item(False, b=0.35, c=0.2),
        ]
        one_right = list(all_wrong)
        one_right[1] = _item(True, b=0.44, c=0.2)

        before = estimate_ability(all_wrong)
        after = estimate_ability(one_right)
        assert after.method == METHOD_EAP
        assert after.se <= PRIOR_SD
        assert after.theta >= before.theta

    def test_additional_correct_response_raises_mle(self):
        before = estimate_ability(BALANCED_HISTORY)
        after = estimate_ability(BALANCED_HISTORY + [_item(True, a=1.5, b=0.2)])
        assert before.method == after.method == METHOD_MLE
        assert before.theta == pytest.approx(0.0, abs=1e-3)
        assert after.theta > before.theta

    def test_additional_incorrect_response_lowers_mle(self):
        before = estimate_ability(BALANCED_HISTORY)
        after = estimate_ability(BALANCED_HISTORY + [_item(False, a=1.5, b=0.2)])
        assert before.method == after.method == METHOD_MLE
        assert after.theta < before.theta

    def test_theta_is_bounded(self):
        many_correct = [_item(True, a=2.5, b=3.0) for _ in range(40)]
        many_wrong = [_item(False, a=2.5, b=-3.0) for _ in range(40)]
        assert THETA_MIN <= estimate_ability(many_correct).theta <= THETA_MAX
        assert THETA_MIN <= estimate_ability(many_wrong).theta <= THETA_MAX

    def test_invalid_item_parameters_raise(self):
        with pytest.raises(ValueError, match="response 1"):
            estimate_ability([_item(True), (0.0, 0.0, 0.0, False)])

    def test_is_pure(self):
        history = [_item(True, c=0.2), _item(False, b=1.0, c=0.2), _item(True, b=0.4)]
        assert estimate_ability(history) == estimate_ability(list(history))


class TestEstimateAbilityMLE:
    def test_standard_error_matches_test_information(self):
        history = BALANCED_HISTORY + [_item(True, a=1.5, b=0.2)]
        theta, se = estimate_ability_mle(history)
        assert se == pytest.approx(1.0 / math.sqrt(total_information(theta, history)))

    def test_information_below_prior_raises(self):
        with pytest.raises(EstimatorNonConvergence, match="below the prior"):
            estimate_ability_mle([_item(True), _item(False)])

    def test_information_floor_can_be_lowered(self):
        theta, se = estimate_ability_mle([_item(True), _item(False)], min_information=0.0)
        assert theta == pytest.approx(0.0, abs=1e-3)
        # I = 2 * 0.25
        assert se == pytest.approx(math.sqrt(2.0), abs=1e-3)

    def test_estimate_near_bound_raises(self):
        history = [_item(True, a=2.0, b=3.5), _item(False, a=2.0, b=3.5)]
        with pytest.raises(EstimatorNonConvergence, match="theta bound"):
            estimate_ability_mle(history)
        assert estimate_ability(history).method == METHOD_EAP

    def test_zero_iterations_raises(self):
        with pytest.raises(EstimatorNonConvergence):
            estimate_ability_mle([_item(True), _item(False)], max_iterations=0)

    def test_empty_history_raises(self):
        with pytest.raises(EstimatorNonConvergence):
            estimate_ability_mle([])

    def test_divergent_pattern_raises(self):
        """All-correct likelihood is monotone, so Newton-Raphson hits the bound."""
        with pytest.raises(EstimatorNonConvergence):
            estimate_ability_mle([_item(True) for _ in range(5)])


class TestEstimateAbilityEAP:
    def test_empty_history_returns_prior(self):
        assert estimate_ability_eap([]) == (0.0, 1.0)

    def test_custom_prior_is_returned_without_responses(self):
        assert estimate_ability_eap([], prior_mean=0.5, prior_sd=2.0) == (0.5, 2.0)

    def test_correct_answer_moves_estimate_up(self):
        theta_one, _ = estimate_ability_eap([_item(True, c=0.2)])
        theta_two, _ = estimate_ability_eap([_item(True, c=0.2), _item(True, c=0.2)])
        assert 0.0 < theta_one < theta_two

    def test_incorrect_answer_moves_estimate_down(self):
        theta_one, _ = estimate_ability_eap([_item(False, c=0.2)])
        theta_two, _ = estimate_ability_eap([_item(False, c=0.2), _item(False, c=0.2)])
        assert theta_two < theta_one < 0.0

    def test_posterior_sd_shrinks_below_prior(self):
        _, se = estimate_ability_eap([_item(True), _item(False)])
        assert 0.0 < se < 1.0

    def test_symmetric_pattern_centres_on_prior_mean(self):
        theta, _ = estimate_ability_eap([_item(True), _item(False)])
        assert theta == pytest.approx(0.0, abs=1e-9)


def test_total_information_sums_items():
    history = [_item(True, a=1.5), _item(False, a=1.5)]
    assert total_information(0.0, history) == pytest.approx(2 * 0.5625)


def _simulated_history(rng, length):
    """Responses drawn from the 3PL model at a random true ability."""
    true_theta = rng.uniform(-2.0, 2.0)
    history = []
    for _ in range(length):
        a = rng.uniform(0.5, 2.0)
        b = rng.uniform(-2.5, 2.5)
        c = rng.uniform(0.0, 0.25)
        history.append((a, b, c, rng.random() < probability_3pl(true_theta, a, b, c)))
    return history


def _single_flips(history):
    """Yield (before, after) pairs with one incorrect response made correct."""
    for i, (a, b, c, is_correct) in enumerate(history):
        if not is_correct:
            flipped = list(history)
            flipped[i] = (a, b, c, True)
            yield history, flipped


class TestMonotonicCorrectnessBias:
    """Replacing an incorrect response with a correct one never lowers theta."""

    @pytest.fixture(scope="class")
    def histories(self):
        rng = random.Random(20240611)
        return [_simulated_history(rng, rng.randint(2, 20)) for _ in range(150)]

    def test_flip_never_lowers_estimate_within_estimator(self, histories):
        compared = 0
        for history in histories:
            for before_history, after_history in _single_flips(history):
                before = estimate_ability(before_history)
                after = estimate_ability(after_history)
                if before.method != after.method:
                    continue
                assert after.theta >= before.theta - 1e-3, (before_history, after_history)
                compared += 1
        assert compared > 100

    def test_flip_never_lowers_eap_estimate(self, histories):
        for history in histories:
            for before_history, after_history in _single_flips(history):
                before, _ = estimate_ability_eap(before_history)
                after, _ = estimate_ability_eap(after_history)
                assert after >= before - 1e-9

    def test_reported_se_never_exceeds_prior_sd_for_mle(self, histories):
        for history in histories:
            estimate = estimate_ability(history)
            if estimate.method == METHOD_MLE:
                assert estimate.se <= PRIOR_SD
                assert THETA_MIN + 1.0 < estimate.theta < THETA_MAX - 1.0
