"""
Per-instance explanations with local surrogate models (LIME).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import numpy as np
import pandas as pd
from lime.lime_tabular import LimeTabularExplainer

from .config import DEFAULT_SEED, N_EXPLAINED_INSTANCES, TOP_K_WEIGHTS
from .exceptions import InsufficientPositivesError
from .model import Classifier
from .provider import COORD_COLUMNS, LABEL_COLUMN, PRESENCE

logger = logging.getLogger(__name__)


@dataclass
class InstanceExplanation:
    """Local surrogate weights for one explained row."""

    row_index: int
    probability: float
    weights: list[tuple[str, float]]  # (feature name, signed weight)
    conditions: list[str] = field(default_factory=list)  # e.g. "Annual_precip > 0.85"
    intercept: Optional[float] = None
    local_prediction: Optional[float] = None
    score: Optional[float] = None
    x: Optional[float] = None
    y: Optional[float] = None

    def to_dict(self) -> dict:
        conditions = self.conditions or [None] * len(self.weights)
        return {
            "row_index": self.row_index,
            "x": self.x,
            "y": self.y,
            "probability": self.probability,
            "intercept": self.intercept,
            "local_prediction": self.local_prediction,
            "score": self.score,
            "weights": [
                {"feature": name, "condition": condition, "weight": weight}
                for (name, weight), condition in zip(self.weights, conditions)
            ],
        }


class InstanceExplainer(Protocol):
    def explain(
        self, classifier: Classifier, background: pd.DataFrame, instance: pd.Series
    ) -> InstanceExplanation:
        ...


def sample_positive_instances(
    test: pd.DataFrame,
    n: int = N_EXPLAINED_INSTANCES,
    seed: int = DEFAULT_SEED,
    replace: bool = False,
) -> pd.DataFrame:
    """
    Draw presence rows from the test set for explanation.

    Args:
        test: Test partition with a label column
        n: Number of rows to draw
        seed: Random seed
        replace: Sample with replacement, allowing n to exceed the number
            of presence rows

    Returns:
        DataFrame of n sampled rows, original index preserved
    """
    positives = test[test[LABEL_COLUMN] == PRESENCE]
    if positives.empty:
        raise InsufficientPositivesError("Test set has no presence rows to explain")
    if not replace and len(positives) < n:
        raise InsufficientPositivesError(
            f"Test set has {len(positives)} presence rows, need {n} (sampling without replacement)"
        )
    return positives.sample(n=n, replace=replace, random_state=seed)


def _for_label(value, label):
    # lime keeps some attributes per label in newer releases
    return value[label] if isinstance(value, dict) else value


class LimeInstanceExplainer:
    """
    LIME tabular explanations of the presence probability.

    Perturbations are drawn around each instance using the training set
    statistics and weighted by proximity; a sparse linear model fitted on
    the classifier's outputs gives the per-feature weights.
    """

    def __init__(
        self,
        top_k: int = TOP_K_WEIGHTS,
        seed: int = DEFAULT_SEED,
        num_samples: int = 5000,
        discretize_continuous: bool = True,
    ):
        self.top_k = top_k
        self.seed = seed
        self.num_samples = num_samples
        self.discretize_continuous = discretize_continuous

    def _build_explainer(self, background: pd.DataFrame) -> LimeTabularExplainer:
        # A fresh explainer per instance keeps each explanation independent of call order
        return LimeTabularExplainer(
            background.to_numpy(dtype=np.float64),
            mode="classification",
            feature_names=list(background.columns),
            class_names=["absence", "presence"],
            discretize_continuous=self.discretize_continuous,
            random_state=self.seed,
        )

    def explain(
        self, classifier: Classifier, background: pd.DataFrame, instance: pd.Series
    ) -> InstanceExplanation:
        explainer = self._build_explainer(background)

        def predict_fn(rows: np.ndarray) -> np.ndarray:
            p = classifier.predict_proba(rows)
            return np.column_stack([1 - p, p])

        features = list(background.columns)
        row = instance[features].to_numpy(dtype=np.float64)
        exp = explainer.explain_instance(
            row, predict_fn, labels=(1,), num_features=self.top_k, num_samples=self.num_samples
        )

        return InstanceExplanation(
            row_index=int(instance.name),
            probability=float(classifier.predict_proba(row.reshape(1, -1))[0]),
            weights=[(features[i], float(weight)) for i, weight in exp.as_map()[1]],
            conditions=[condition for condition, _ in exp.as_list(label=1)],
            intercept=float(exp.intercept[1]),
            local_prediction=float(np.ravel(_for_label(exp.local_pred, 1))[0]),
            score=float(_for_label(exp.score, 1)),
        )


def explain_positive_instances(
    explainer: InstanceExplainer,
    classifier: Classifier,
    train: pd.DataFrame,
    test: pd.DataFrame,
    feature_columns: list[str],
    n: int = N_EXPLAINED_INSTANCES,
    seed: int = DEFAULT_SEED,
    replace: bool = False,
) -> list[InstanceExplanation]:
    """Sample n presence rows from the test set and explain each one."""
    sampled = sample_positive_instances(test, n=n, seed=seed, replace=replace)
    background = train[feature_columns]

    explanations = []
    for index, instance in sampled.iterrows():
        explanation = explainer.explain(classifier, background, instance[feature_columns])
        if all(c in sampled.columns for c in COORD_COLUMNS):
            explanation.x = float(instance[COORD_COLUMNS[0]])
            explanation.y = float(instance[COORD_COLUMNS[1]])
        logger.info(f"  Row {index}: p={explanation.probability:.3f}")
        for name, weight in explanation.weights:
            logger.debug(f"    {name}: {weight:+.4f}")
        explanations.append(explanation)
    return explanations
