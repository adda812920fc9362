"""
Monte Carlo simulation of NCLEX adaptive exams.

Simulates N examinees with known ability taking exams through
CATSessionManager against a synthetic 3PL item bank, then aggregates the
properties an operational exam must show: classification accuracy, test
length, stop-reason distribution, content-plan compliance and item exposure.

Synthetic item parameters follow typical operational banks (Lord, 1980):
    - Discrimination (a) ~ LogNormal(0.0, 0.3), clipped to [0.5, 2.5]
    - Difficulty (b) ~ Normal(0.0, 1.0), clipped to [-3.0, 3.0]
    - Guessing (c) ~ Uniform(0.0, 0.25) for multiple-choice items

References:
    - Weiss, D. J. (2004). Computerized adaptive testing for effective and
      efficient measurement in counseling and education.
    - Spray, J. A., & Reckase, M. D. (1996). Comparison of SPRT and sequential
      Bayes procedures for classifying examinees into two categories using a
      computerized test.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from nclex_cat.core.cat.content_balancing import is_content_satisfied, is_within_quotas
from nclex_cat.core.cat.engine import CATSessionManager
from nclex_cat.core.cat.exam_config import ExamConfig
from nclex_cat.core.cat.exposure_control import (
    DEFAULT_EXPOSURE_ALERT_THRESHOLD,
    ExposureMonitor,
    InMemoryExposureCounter,
)
from nclex_cat.core.cat.irt import probability_3pl
from nclex_cat.models.models import ExamOutcome, NCLEXCategory

logger = logging.getLogger(__name__)

DISCRIMINATION_LOGNORMAL_MEAN = 0.0
DISCRIMINATION_LOGNORMAL_SD = 0.3
DISCRIMINATION_MIN = 0.5
DISCRIMINATION_MAX = 2.5
DIFFICULTY_NORMAL_MEAN = 0.0
DIFFICULTY_NORMAL_SD = 1.0
DIFFICULTY_MIN = -3.0
DIFFICULTY_MAX = 3.0
GUESSING_MAX = 0.25


@dataclass
class SimulatedItem:
    """Lightweight item representation for simulation (not a DB model)."""

    id: int
    category: NCLEXCategory
    discrimination: float  # a
    difficulty: float  # b
    guessing: float  # c
    times_administered: int = 0
    is_active: bool = True


@dataclass
class SimulationConfig:
    """Configuration for a simulation run."""

    n_examinees: int = 200
    theta_mean: float = 0.0
    theta_sd: float = 1.0
    seed: int = 42
    exam_config: ExamConfig = field(default_factory=ExamConfig)
    exposure_alert_threshold: float = DEFAULT_EXPOSURE_ALERT_THRESHOLD


@dataclass
class ExamineeResult:
    """Per-examinee simulation results."""

    true_theta: float
    estimated_theta: float
    final_se: float
    bias: float  # estimated_theta - true_theta
    items_administered: int
    result: Optional[ExamOutcome]
    stop_reason: Optional[str]
    correctly_classified: bool
    content_compliant: bool
    category_counts: Dict[NCLEXCategory, int]
    administered_item_ids: List[int] = field(default_factory=list)


@dataclass
class SimulationResult:
    """Aggregate simulation results."""

    config: SimulationConfig
    examinee_results: List[ExamineeResult]
    mean_items: float
    median_items: float
    mean_se: float
    mean_bias: float
    rmse: float
    classification_accuracy: float
    content_compliance_rate: float
    max_exposure_rate: float
    stop_reason_counts: Dict[str, int]
    result_counts: Dict[str, int]


def generate_item_bank(
    n_items_per_category: int = 60,
    categories: Optional[List[NCLEXCategory]] = None,
    seed: int = 42,
) -> List[SimulatedItem]:
    """
    Generate a synthetic item bank with realistic 3PL parameters.

    Args:
        n_items_per_category: Number of items to generate per category.
        categories: Categories to populate. Defaults to all eight.
        seed: Random seed for reproducibility.
    """
    if categories is None:
        categories = list(NCLEXCategory)

    rng = np.random.default_rng(seed)
    items = []
    item_id = 1

    for category in categories:
        for _ in range(n_items_per_category):
            a = rng.lognormal(
                mean=DISCRIMINATION_LOGNORMAL_MEAN, sigma=DISCRIMINATION_LOGNORMAL_SD
            )
            b = rng.normal(loc=DIFFICULTY_NORMAL_MEAN, scale=DIFFICULTY_NORMAL_SD)
            c = rng.uniform(0.0, GUESSING_MAX)
            items.append(
                SimulatedItem(
                    id=item_id,
                    category=category,
                    discrimination=float(np.clip(a, DISCRIMINATION_MIN, DISCRIMINATION_MAX)),
                    difficulty=float(np.clip(b, DIFFICULTY_MIN, DIFFICULTY_MAX)),
                    guessing=float(c),
                )
            )
            item_id += 1

    logger.info(
        f"Generated item bank: {len(items)} items across {len(categories)} categories "
        f"({n_items_per_category} per category)"
    )
    return items


def simulate_response(
    true_theta: float, item: SimulatedItem, rng: random.Random
) -> bool:
    """Draw a response from the 3PL model at the examinee's true ability."""
    prob = probability_3pl(true_theta, item.discrimination, item.difficulty, item.guessing)
    return rng.random() < prob


def simulate_examinee(
    true_theta: float,
    item_bank: List[SimulatedItem],
    manager: CATSessionManager,
    counter: InMemoryExposureCounter,
    rng: random.Random,
    examinee_id: int = 0,
) -> ExamineeResult:
    """
    Run one exam to completion for an examinee of known ability.

    The bank's ``times_administered`` fields are kept in step with the shared
    counter so exposure tie-breaking behaves as it does against the database.
    """
    config = manager.config
    session = manager.initialize(candidate_id=f"sim-{examinee_id}", session_id=examinee_id)
    manager.begin(session)

    while not session.is_terminal:
        item = manager.choose_next_item(session, item_bank)
        if item is None:
            break
        item.times_administered = counter.get(item.id)
        manager.record_response(session, item, simulate_response(true_theta, item, rng))

    passed_truly = true_theta >= config.cut_score
    if session.result == ExamOutcome.PASSED:
        correct = passed_truly
    elif session.result == ExamOutcome.FAILED:
        correct = not passed_truly
    else:
        correct = False

    return ExamineeResult(
        true_theta=true_theta,
        estimated_theta=session.theta,
        final_se=session.se,
        bias=session.theta - true_theta,
        items_administered=len(session.responses),
        result=session.result,
        stop_reason=session.stop_reason,
        correctly_classified=correct,
        content_compliant=(
            is_content_satisfied(session.category_counts, config.quotas)
            and is_within_quotas(session.category_counts, config.quotas)
        ),
        category_counts=dict(session.category_counts),
        administered_item_ids=session.administered_item_ids,
    )


def run_simulation(
    item_bank: List[SimulatedItem], config: Optional[SimulationConfig] = None
) -> SimulationResult:
    """
    Simulate ``config.n_examinees`` exams sharing one item bank.

    True abilities are drawn from N(theta_mean, theta_sd) and clipped to the
    theta bounds. Runs are reproducible for a given seed.
    """
    config = config or SimulationConfig()
    logger.info(
        f"Starting CAT simulation: N={config.n_examinees}, "
        f"theta ~ N({config.theta_mean}, {config.theta_sd}^2)"
    )

    rng = random.Random(config.seed)
    np_rng = np.random.default_rng(config.seed)
    counter = InMemoryExposureCounter()
    monitor = ExposureMonitor(config.exposure_alert_threshold)
    manager = CATSessionManager(
        config.exam_config, rng, exposure_counter=counter, monitor=monitor
    )

    examinee_results = []
    for examinee_id in range(1, config.n_examinees + 1):
        true_theta = float(
            np.clip(np_rng.normal(loc=config.theta_mean, scale=config.theta_sd), -4.0, 4.0)
        )
        examinee_results.append(
            simulate_examinee(true_theta, item_bank, manager, counter, rng, examinee_id)
        )
        if examinee_id % 100 == 0:
            logger.info(f"Completed {examinee_id}/{config.n_examinees} examinees")

    monitor.check_and_alert()
    rates = monitor.get_exposure_rates()
    return aggregate_results(
        config, examinee_results, max(rates.values()) if rates else 0.0
    )


def aggregate_results(
    config: SimulationConfig,
    examinee_results: List[ExamineeResult],
    max_exposure_rate: float = 0.0,
) -> SimulationResult:
    """
    Compute aggregate metrics from individual examinee results.

    Raises:
        ValueError: If examinee_results is empty.
    """
    if not examinee_results:
        raise ValueError("Cannot aggregate results from empty examinee list")

    n = len(examinee_results)
    lengths = np.array([r.items_administered for r in examinee_results])
    errors = np.array([r.final_se for r in examinee_results])
    biases = np.array([r.bias for r in examinee_results])

    stop_reason_counts: Dict[str, int] = {}
    result_counts: Dict[str, int] = {}
    for r in examinee_results:
        reason = r.stop_reason or "unknown"
        stop_reason_counts[reason] = stop_reason_counts.get(reason, 0) + 1
        outcome = r.result.value if r.result else "unknown"
        result_counts[outcome] = result_counts.get(outcome, 0) + 1

    result = SimulationResult(
        config=config,
        examinee_results=examinee_results,
        mean_items=float(np.mean(lengths)),
        median_items=float(np.median(lengths)),
        mean_se=float(np.mean(errors)),
        mean_bias=float(np.mean(biases)),
        rmse=float(np.sqrt(np.mean(biases**2))),
        classification_accuracy=sum(r.correctly_classified for r in examinee_results) / n,
        content_compliance_rate=sum(r.content_compliant for r in examinee_results) / n,
        max_exposure_rate=max_exposure_rate,
        stop_reason_counts=stop_reason_counts,
        result_counts=result_counts,
    )

    logger.info(
        f"Simulation complete: mean_items={result.mean_items:.1f}, "
        f"mean_SE={result.mean_se:.3f}, RMSE={result.rmse:.3f}, "
        f"accuracy={result.classification_accuracy:.1%}, "
        f"content_compliance={result.content_compliance_rate:.1%}"
    )
    return result
