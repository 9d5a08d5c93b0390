"""
Species presence classifier training and feature importance.
"""

import logging
from typing import Literal, Optional, Protocol

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.inspection import permutation_importance
from sklearn.linear_model import LogisticRegression
from sklearn.neighbors import KNeighborsClassifier

from .config import DEFAULT_SEED
from .exceptions import SchemaMismatchError

logger = logging.getLogger(__name__)


ModelType = Literal["rf", "lr", "knn"]


class Classifier(Protocol):
    """A fitted binary classifier bound to a named feature schema."""

    feature_names: list[str]

    def predict_proba(self, X) -> np.ndarray:
        """Probability of presence for each row."""
        ...

    def feature_importances(self) -> dict[str, float]:
        ...


class SpeciesClassifier:
    """
    A presence/absence classifier over standardized climate features.
    """

    MODELS = {
        "rf": lambda seed, **params: RandomForestClassifier(
            **{"n_estimators": 100, "random_state": seed, **params}
        ),
        "lr": lambda seed, **params: LogisticRegression(
            **{"max_iter": 1000, "random_state": seed, **params}
        ),
        "knn": lambda seed, **params: KNeighborsClassifier(**{"n_neighbors": 5, **params}),
    }

    def __init__(self, model_type: ModelType = "rf", seed: int = DEFAULT_SEED, **params):
        """
        Initialize the classifier.

        Args:
            model_type: Type of model to use ("rf", "lr", "knn")
            seed: Random seed passed to the estimator
            **params: Estimator hyperparameters overriding the defaults
        """
        if model_type not in self.MODELS:
            raise ValueError(f"Unknown model type: {model_type}. Choose from {list(self.MODELS.keys())}")

        self.model_type = model_type
        self.seed = seed
        self.model = self.MODELS[model_type](seed, **params)
        self.feature_names: Optional[list[str]] = None
        self.is_trained = False
        self.train_stats = {}
        self._importances: Optional[dict[str, float]] = None
        self._X_train: Optional[np.ndarray] = None
        self._y_train: Optional[np.ndarray] = None

    def train(self, X: pd.DataFrame, y: np.ndarray) -> dict:
        """
        Fit the classifier on the training set.

        Args:
            X: Training features, one named column per feature
            y: Labels (1 for presence, 0 for absence)

        Returns:
            Dictionary with training statistics
        """
        y = np.asarray(y)
        if len(X) != len(y):
            raise ValueError(f"X has {len(X)} rows but y has {len(y)} labels")
        if len(np.unique(y)) < 2:
            raise ValueError("Training set must contain both presence and absence rows")

        self.feature_names = list(X.columns)
        values = X.to_numpy(dtype=np.float64)
        self.model.fit(values, y)
        self.is_trained = True
        self._importances = None
        self._X_train, self._y_train = values, y

        self.train_stats = {
            "model_type": self.model_type,
            "n_train": len(y),
            "n_positive_train": int((y == 1).sum()),
            "n_negative_train": int((y == 0).sum()),
        }
        return self.train_stats

    def _as_array(self, X) -> np.ndarray:
        if isinstance(X, pd.DataFrame):
            missing = [c for c in self.feature_names if c not in X.columns]
            if missing:
                raise SchemaMismatchError(f"Input lacks model features: {missing}")
            return X[self.feature_names].to_numpy(dtype=np.float64)

        values = np.asarray(X, dtype=np.float64)
        if values.ndim == 1:
            values = values.reshape(1, -1)
        if values.shape[1] != len(self.feature_names):
            raise SchemaMismatchError(
                f"Expected {len(self.feature_names)} features, got {values.shape[1]}"
            )
        return values

    def predict_proba(self, X) -> np.ndarray:
        """
        Predict the probability of presence.

        Args:
            X: Feature matrix or DataFrame with the model's feature columns

        Returns:
            Array of probabilities for the presence class
        """
        if not self.is_trained:
            raise RuntimeError("Model has not been trained yet")
        probs = self.model.predict_proba(self._as_array(X))
        return probs[:, list(self.model.classes_).index(1)]

    def feature_importances(self) -> dict[str, float]:
        """
        Global importance score per feature.

        Tree models report impurity-based importance; other models use
        permutation importance on the training set, computed once and
        cached for the fitted model.
        """
        if not self.is_trained:
            raise RuntimeError("Model has not been trained yet")

        if self._importances is None:
            if hasattr(self.model, "feature_importances_"):
                scores = self.model.feature_importances_
            else:
                logger.info("Computing permutation importance...")
                scores = permutation_importance(
                    self.model, self._X_train, self._y_train,
                    scoring="roc_auc", n_repeats=10, random_state=self.seed,
                ).importances_mean
            self._importances = dict(zip(self.feature_names, np.asarray(scores, dtype=float).tolist()))

        return dict(self._importances)

    @property
    def hyperparameters(self) -> dict:
        """Estimator configuration, restricted to JSON-safe values."""
        return {
            key: value
            for key, value in self.model.get_params().items()
            if value is None or isinstance(value, (bool, int, float, str))
        }
