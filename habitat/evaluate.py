"""
Held-out evaluation: AUC and feature importance ranking.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from sklearn.metrics import roc_auc_score

from .config import TOP_N_FEATURES
from .model import Classifier

logger = logging.getLogger(__name__)


@dataclass
class AucResult:
    """Area under the ROC curve, or the reason it could not be computed."""

    value: Optional[float]
    reason: Optional[str] = None

    @property
    def computable(self) -> bool:
        return self.value is not None

    def to_dict(self) -> dict:
        return {"value": self.value, "computable": self.computable, "reason": self.reason}


@dataclass
class FeatureImportance:
    feature: str
    score: float


@dataclass
class Evaluation:
    auc: AucResult
    importance: list[FeatureImportance] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "auc": self.auc.to_dict(),
            "feature_importance": [{"feature": f.feature, "score": f.score} for f in self.importance],
        }


def compute_auc(classifier: Classifier, X_test, y_test) -> AucResult:
    """
    Compute AUC of the classifier on a held-out set.

    A test set that is empty or holds a single label class yields a
    not-computable result rather than an error.
    """
    y_test = np.asarray(y_test)
    if len(y_test) == 0:
        return AucResult(value=None, reason="test set is empty")

    classes = np.unique(y_test)
    if len(classes) < 2:
        return AucResult(value=None, reason=f"test set contains only label {classes[0]}")

    probabilities = classifier.predict_proba(X_test)
    return AucResult(value=float(roc_auc_score(y_test, probabilities)))


def rank_features(importances: dict[str, float], n: Optional[int] = TOP_N_FEATURES) -> list[FeatureImportance]:
    """Sort features by descending importance and keep the top n (all if n is None)."""
    ranked = sorted(importances.items(), key=lambda item: (-item[1], item[0]))
    if n is not None:
        ranked = ranked[:n]
    return [FeatureImportance(feature=name, score=float(score)) for name, score in ranked]


def evaluate(classifier: Classifier, X_test, y_test, top_n: int = TOP_N_FEATURES) -> Evaluation:
    auc = compute_auc(classifier, X_test, y_test)
    if auc.computable:
        logger.info(f"  AUC: {auc.value:.3f}")
    else:
        logger.warning(f"  AUC not computable: {auc.reason}")

    importance = rank_features(classifier.feature_importances(), n=top_n)
    for rank, item in enumerate(importance, start=1):
        logger.info(f"  {rank}. {item.feature}: {item.score:.4f}")

    return Evaluation(auc=auc, importance=importance)
