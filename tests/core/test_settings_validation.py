"""
Tests for Settings configuration validation in config.py.
"""
import pytest
from pydantic import ValidationError


class TestExamLengthValidation:
    """Tests for CAT_MIN_ITEMS / CAT_MAX_ITEMS validation."""

    def test_defaults_are_nclex_lengths(self):
        """Default bounds are the NCLEX-RN 60-145 item range."""
        from nclex_cat.core.config import Settings

        settings = Settings()
        assert settings.CAT_MIN_ITEMS == 60
        assert settings.CAT_MAX_ITEMS == 145
        assert settings.CAT_SE_THRESHOLD == pytest.approx(0.3)
        assert settings.CAT_CUT_SCORE == pytest.approx(0.0)

    def test_equal_bounds_allowed(self):
        from nclex_cat.core.config import Settings

        settings = Settings(CAT_MIN_ITEMS=75, CAT_MAX_ITEMS=75)
        assert settings.CAT_MAX_ITEMS == 75

    def test_max_below_min_rejected(self):
        from nclex_cat.core.config import Settings

        with pytest.raises(ValidationError, match="CAT_MAX_ITEMS"):
            Settings(CAT_MIN_ITEMS=100, CAT_MAX_ITEMS=80)

    def test_non_positive_se_threshold_rejected(self):
        from nclex_cat.core.config import Settings

        with pytest.raises(ValidationError):
            Settings(CAT_SE_THRESHOLD=0.0)

    def test_cut_score_outside_theta_range_rejected(self):
        from nclex_cat.core.config import Settings

        with pytest.raises(ValidationError):
            Settings(CAT_CUT_SCORE=4.5)


class TestTestPlanValidation:
    """Tests for CAT_TEST_PLAN validation."""

    def test_default_plan_covers_every_category(self):
        from nclex_cat.core.config import Settings
        from nclex_cat.models.models import NCLEXCategory

        settings = Settings()
        assert set(settings.CAT_TEST_PLAN) == {c.value for c in NCLEXCategory}

    def test_infeasible_plan_rejected(self):
        """Minimums of 20% in all eight categories cannot fit in 60 items."""
        from nclex_cat.core.config import Settings
        from nclex_cat.models.models import NCLEXCategory

        plan = {c.value: {"min": 20, "max": 30} for c in NCLEXCategory}
        with pytest.raises(ValidationError, match="minimums"):
            Settings(CAT_TEST_PLAN=plan)

    def test_unknown_category_rejected(self):
        from nclex_cat.core.config import Settings

        with pytest.raises(ValidationError, match="Unknown test plan category"):
            Settings(CAT_TEST_PLAN={"cardiology": {"min": 0, "max": 100}})
