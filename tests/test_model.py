import numpy as np
import pytest

from habitat.evaluate import compute_auc, evaluate, rank_features
from habitat.exceptions import SchemaMismatchError
from habitat.model import SpeciesClassifier

from conftest import FEATURES


def test_unknown_model_type():
    with pytest.raises(ValueError, match="Unknown model type"):
        SpeciesClassifier(model_type="xgb")


def test_predict_before_training_raises(dataset):
    with pytest.raises(RuntimeError):
        SpeciesClassifier().predict_proba(dataset[FEATURES])


def test_training_requires_both_classes(dataset):
    presence = dataset[dataset["label"] == 1]
    with pytest.raises(ValueError, match="both"):
        SpeciesClassifier().train(presence[FEATURES], presence["label"].to_numpy())


def test_probabilities_in_unit_interval(trained):
    classifier, split = trained
    probs = classifier.predict_proba(split.X_test)
    assert probs.shape == (len(split.X_test),)
    assert ((probs >= 0) & (probs <= 1)).all()


def test_predict_proba_matches_columns_by_name(trained):
    classifier, split = trained
    reordered = split.X_test[FEATURES[::-1]]
    np.testing.assert_array_equal(
        classifier.predict_proba(reordered), classifier.predict_proba(split.X_test)
    )


def test_predict_proba_accepts_arrays(trained):
    classifier, split = trained
    values = split.X_test.to_numpy()
    np.testing.assert_array_equal(classifier.predict_proba(values), classifier.predict_proba(split.X_test))
    with pytest.raises(SchemaMismatchError):
        classifier.predict_proba(values[:, :2])


def test_seed_fixes_hyperparameters_and_predictions(trained):
    classifier, split = trained
    again = SpeciesClassifier(seed=42, n_estimators=30)
    again.train(split.X_train, split.y_train)
    assert again.hyperparameters == classifier.hyperparameters
    assert again.hyperparameters["random_state"] == 42
    np.testing.assert_array_equal(again.predict_proba(split.X_test), classifier.predict_proba(split.X_test))


def test_feature_importances_are_stable(trained):
    classifier, _ = trained
    first = classifier.feature_importances()
    assert set(first) == set(FEATURES)
    assert first == classifier.feature_importances()
    assert sum(first.values()) == pytest.approx(1.0)


def test_permutation_importance_for_linear_model(trained):
    _, split = trained
    classifier = SpeciesClassifier(model_type="lr", seed=42)
    classifier.train(split.X_train, split.y_train)
    importances = classifier.feature_importances()
    assert set(importances) == set(FEATURES)
    assert importances == classifier.feature_importances()


def test_auc_on_separable_data(trained):
    classifier, split = trained
    auc = compute_auc(classifier, split.X_test, split.y_test)
    assert auc.computable
    assert auc.value > 0.9


def test_auc_not_computable_for_single_class(trained):
    classifier, split = trained
    X = split.X_test.iloc[:10]
    auc = compute_auc(classifier, X, np.zeros(10, dtype=int))
    assert not auc.computable
    assert auc.value is None
    assert "only label 0" in auc.reason


def test_auc_not_computable_for_empty_test(trained):
    classifier, split = trained
    auc = compute_auc(classifier, split.X_test.iloc[:0], np.array([], dtype=int))
    assert not auc.computable


def test_rank_features_keeps_top_n():
    scores = {f"f{i}": float(i) for i in range(8)}
    ranked = rank_features(scores, n=5)
    assert [r.feature for r in ranked] == ["f7", "f6", "f5", "f4", "f3"]
    assert len(rank_features(scores, n=None)) == 8


def test_evaluate_bundle(trained):
    classifier, split = trained
    evaluation = evaluate(classifier, split.X_test, split.y_test, top_n=2)
    assert len(evaluation.importance) == 2
    result = evaluation.to_dict()
    assert result["auc"]["computable"] is True
    assert result["feature_importance"][0]["score"] >= result["feature_importance"][1]["score"]
