"""
Accumulated local effects (ALE) for numeric features.

ALE describes how the predicted probability changes with one feature,
averaging local prediction differences within quantile bins so that
correlated features do not bias the estimate the way a partial
dependence average would.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np
import pandas as pd

from .config import ALE_BINS
from .exceptions import SchemaMismatchError
from .model import Classifier

logger = logging.getLogger(__name__)


@dataclass
class ALECurve:
    """
    A centered first-order ALE curve.

    effects[i] is the accumulated effect at edges[i]; counts[j] is the
    number of training rows falling in the bin edges[j]..edges[j+1].
    """

    feature: str
    edges: np.ndarray
    effects: np.ndarray
    counts: np.ndarray

    def weighted_mean(self) -> float:
        """Count-weighted mean of bin-midpoint effects; 0 for a centered curve."""
        if len(self.edges) < 2 or self.counts.sum() == 0:
            return float(self.effects.mean()) if len(self.effects) else 0.0
        midpoints = (self.effects[:-1] + self.effects[1:]) / 2
        return float(np.average(midpoints, weights=self.counts))

    def points(self) -> list[tuple[float, float]]:
        return list(zip(self.edges.tolist(), self.effects.tolist()))

    def to_dict(self) -> dict:
        return {
            "feature": self.feature,
            "edges": self.edges.tolist(),
            "effects": self.effects.tolist(),
            "counts": self.counts.tolist(),
        }


class EffectEstimator(Protocol):
    def explain(self, classifier: Classifier, X: pd.DataFrame, feature: str) -> ALECurve:
        ...


class AccumulatedLocalEffects:
    """First-order ALE with quantile bins."""

    def __init__(self, n_bins: int = ALE_BINS):
        if n_bins < 1:
            raise ValueError("n_bins must be positive")
        self.n_bins = n_bins

    def explain(self, classifier: Classifier, X: pd.DataFrame, feature: str) -> ALECurve:
        """
        Compute the ALE curve of one feature over the training rows.

        Args:
            classifier: Trained classifier
            X: Training features used as the reference distribution
            feature: Name of the feature to explain

        Returns:
            ALECurve centered so its count-weighted mean is zero
        """
        if feature not in X.columns:
            raise SchemaMismatchError(f"Unknown feature for ALE: {feature!r}")

        values = X[feature].to_numpy(dtype=np.float64)
        edges = np.unique(np.quantile(values, np.linspace(0, 1, self.n_bins + 1)))

        if len(edges) < 2:
            logger.debug(f"  {feature} has a single value; ALE is flat")
            return ALECurve(feature, edges, np.zeros(len(edges)), np.array([len(values)]))

        n_bins = len(edges) - 1
        # Bin 0 is closed on the left so the minimum is included
        bins = np.clip(np.digitize(values, edges, right=True) - 1, 0, n_bins - 1)

        lower = X.copy()
        upper = X.copy()
        lower[feature] = edges[bins]
        upper[feature] = edges[bins + 1]
        diffs = classifier.predict_proba(upper) - classifier.predict_proba(lower)

        counts = np.bincount(bins, minlength=n_bins)
        totals = np.bincount(bins, weights=diffs, minlength=n_bins)
        local = np.divide(totals, counts, out=np.zeros(n_bins), where=counts > 0)

        accumulated = np.concatenate([[0.0], np.cumsum(local)])
        midpoints = (accumulated[:-1] + accumulated[1:]) / 2
        effects = accumulated - np.average(midpoints, weights=counts)

        return ALECurve(feature, edges, effects, counts)
