"""Discrete Super Learner for binary nuisance regressions.

Each candidate learner in the library is cross-validated, the single
candidate with the lowest cross-validated risk is selected, and that
candidate is refit on the full data. Predictions are probabilities of the
positive class.
"""
# ruff: noqa: N803

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from numpy.typing import NDArray
from sklearn.base import clone
from sklearn.dummy import DummyClassifier
from sklearn.ensemble import GradientBoostingClassifier, RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.model_selection import KFold, StratifiedKFold
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import PolynomialFeatures, StandardScaler

from ..core.base import EstimationError

__all__ = ["SuperLearner", "SuperLearnerConfig", "available_learners", "make_learner"]

logger = logging.getLogger(__name__)

LearnerLibrary = Union[list[Union[str, tuple[str, Any]]], dict[str, Any]]

# Large C keeps the logistic fits effectively unpenalized
_UNPENALIZED_C = 1e6


def _glm() -> Any:
    return make_pipeline(
        StandardScaler(), LogisticRegression(C=_UNPENALIZED_C, max_iter=1000)
    )


def _glm_interaction() -> Any:
    return make_pipeline(
        PolynomialFeatures(degree=2, interaction_only=True, include_bias=False),
        StandardScaler(),
        LogisticRegression(C=_UNPENALIZED_C, max_iter=2000),
    )


_LEARNER_FACTORIES = {
    "mean": lambda: DummyClassifier(strategy="prior"),
    "glm": _glm,
    "logistic_regression": _glm,
    "glm_interaction": _glm_interaction,
    "ridge_logistic": lambda: make_pipeline(
        StandardScaler(), LogisticRegression(C=1.0, max_iter=1000)
    ),
    "random_forest": lambda: RandomForestClassifier(
        n_estimators=200, min_samples_leaf=20
    ),
    "gradient_boosting": lambda: GradientBoostingClassifier(),
}


def available_learners() -> list[str]:
    """Names of the built-in candidate learners."""
    return sorted(_LEARNER_FACTORIES)


def make_learner(name: str) -> Any:
    """Create an unfitted built-in candidate learner by name.

    Raises:
        EstimationError: If the name is unknown
    """
    if name not in _LEARNER_FACTORIES:
        raise EstimationError(
            f"Unknown learner '{name}'. Available learners: {available_learners()}"
        )
    return _LEARNER_FACTORIES[name]()


def _set_random_state(estimator: Any, random_state: Optional[int]) -> Any:
    """Seed every random_state parameter of an estimator, including pipeline steps."""
    if random_state is None:
        return estimator
    params = {
        key: random_state
        for key in estimator.get_params(deep=True)
        if key == "random_state" or key.endswith("__random_state")
    }
    if params:
        estimator.set_params(**params)
    return estimator


def _positive_class_probability(estimator: Any, X: NDArray[Any]) -> NDArray[Any]:
    """Probability of class 1 from a fitted classifier."""
    classes = list(estimator.classes_)
    proba = estimator.predict_proba(X)
    if 1 not in classes:
        return np.zeros(X.shape[0])
    return np.asarray(proba[:, classes.index(1)], dtype=float)


def _fit_fold(
    name: str,
    learner: Any,
    X: NDArray[Any],
    y: NDArray[Any],
    train_idx: NDArray[Any],
    val_idx: NDArray[Any],
) -> tuple[str, NDArray[Any], Optional[NDArray[Any]], Optional[str]]:
    """Fit one candidate on one training split and predict its validation split."""
    model = clone(learner)
    try:
        model.fit(X[train_idx], y[train_idx])
        predictions = _positive_class_probability(model, X[val_idx])
    except Exception as e:  # candidate failures are reported, not fatal
        return name, val_idx, None, f"{type(e).__name__}: {e}"
    return name, val_idx, predictions, None


@dataclass
class SuperLearnerConfig:
    """Configuration for cross-validated discrete selection."""

    cv_folds: int = 10
    stratified: bool = True
    n_jobs: int = 1
    parallel_backend: str = "threading"

    def __post_init__(self) -> None:
        if self.cv_folds < 2:
            raise ValueError("cv_folds must be at least 2")


class SuperLearner:
    """Discrete Super Learner over a library of binary classifiers.

    The cross-validated risk of a candidate is the mean squared error of its
    out-of-fold predicted probabilities. Candidates that fail to fit are
    logged and reported with a NaN risk; if every candidate fails, fitting
    raises EstimationError.

    Attributes:
        base_learners: Library as a list of names / (name, estimator) pairs
            or a dict of name -> estimator
        config: Cross-validation configuration
        random_state: Seed for fold assignment and seeded learners
        fitted_learner_: Selected candidate refit on the full data
        cv_risks_: Cross-validated risk per candidate
        selected_learner_: Name of the selected candidate
        intercept_only_: Whether X had no columns, so every candidate was
            fit as the marginal rate
    """

    def __init__(
        self,
        base_learners: Optional[LearnerLibrary] = None,
        config: Optional[SuperLearnerConfig] = None,
        random_state: Optional[int] = None,
    ) -> None:
        if base_learners is None:
            base_learners = ["glm", "glm_interaction"]

        self.base_learners = base_learners
        self.config = config or SuperLearnerConfig()
        self.random_state = random_state

        self.is_fitted = False
        self.feature_names_: Optional[list[str]] = None
        self.fitted_learner_: Any = None
        self.cv_risks_: Optional[pd.Series] = None
        self.cv_predictions_: dict[str, NDArray[Any]] = {}
        self.learner_errors_: dict[str, str] = {}
        self.selected_learner_: Optional[str] = None
        self.intercept_only_ = False

    def _resolve_library(self) -> dict[str, Any]:
        """Turn the library specification into named, seeded estimators."""
        if isinstance(self.base_learners, dict):
            entries = list(self.base_learners.items())
        else:
            entries = []
            for entry in self.base_learners:
                if isinstance(entry, str):
                    entries.append((entry, make_learner(entry)))
                elif isinstance(entry, tuple) and len(entry) == 2:
                    entries.append(entry)
                else:
                    entries.append((type(entry).__name__, entry))

        library: dict[str, Any] = {}
        for name, learner in entries:
            if name in library:
                raise EstimationError(f"Duplicate learner name '{name}' in library")
            library[name] = _set_random_state(clone(learner), self.random_state)
        return library

    def _create_splits(
        self, X: NDArray[Any], y: NDArray[Any]
    ) -> list[tuple[NDArray[Any], NDArray[Any]]]:
        """Create cross-validation splits, stratified on y when possible."""
        n_folds = min(self.config.cv_folds, len(y))
        if n_folds < 2:
            raise EstimationError("At least 2 observations are required for cross-validation")

        min_class_count = int(np.min(np.bincount(y, minlength=2)))
        if self.config.stratified and min_class_count >= n_folds:
            splitter = StratifiedKFold(
                n_splits=n_folds, shuffle=True, random_state=self.random_state
            )
            return list(splitter.split(X, y))

        splitter = KFold(n_splits=n_folds, shuffle=True, random_state=self.random_state)
        return list(splitter.split(X))

    def _as_array(self, X: pd.DataFrame | NDArray[Any]) -> NDArray[Any]:
        if isinstance(X, pd.DataFrame):
            if self.feature_names_ is not None:
                X = X[self.feature_names_]
            X = X.to_numpy()
        X = np.asarray(X, dtype=float)
        if X.ndim == 2 and X.shape[1] == 0:
            # No covariates: a constant column carries the intercept-only fit
            return np.ones((X.shape[0], 1))
        return X

    def fit(self, X: pd.DataFrame | NDArray[Any], y: pd.Series | NDArray[Any]) -> SuperLearner:
        """Cross-validate the library, select the best candidate and refit it.

        Args:
            X: Covariate matrix
            y: Binary 0/1 target

        Returns:
            self: The fitted super learner

        Raises:
            EstimationError: If the library is empty or every candidate fails
        """
        library = self._resolve_library()
        if not library:
            raise EstimationError("Super learner library is empty")

        self.feature_names_ = list(X.columns) if isinstance(X, pd.DataFrame) else None
        self.intercept_only_ = np.asarray(X).ndim == 2 and np.asarray(X).shape[1] == 0
        X_arr = self._as_array(X)
        y_arr = np.asarray(y).astype(int)

        if self.intercept_only_:
            logger.debug("No covariates given; every candidate is fit as the marginal rate")
            library = {name: DummyClassifier(strategy="prior") for name in library}

        splits = self._create_splits(X_arr, y_arr)

        results = Parallel(
            n_jobs=self.config.n_jobs, backend=self.config.parallel_backend
        )(
            delayed(_fit_fold)(name, learner, X_arr, y_arr, train_idx, val_idx)
            for name, learner in library.items()
            for train_idx, val_idx in splits
        )

        cv_predictions = {name: np.full(len(y_arr), np.nan) for name in library}
        self.learner_errors_ = {}
        for name, val_idx, predictions, error in results:
            if error is not None:
                self.learner_errors_.setdefault(name, error)
                continue
            cv_predictions[name][val_idx] = predictions

        risks = {}
        for name, predictions in cv_predictions.items():
            if name in self.learner_errors_:
                logger.warning(
                    "Candidate learner %s failed during cross-validation: %s",
                    name,
                    self.learner_errors_[name],
                )
                risks[name] = np.nan
            else:
                risks[name] = float(np.mean((y_arr - predictions) ** 2))

        self.cv_risks_ = pd.Series(risks, name="cv_risk", dtype=float)
        self.cv_predictions_ = cv_predictions

        if self.cv_risks_.isna().all():
            raise EstimationError(
                f"All candidate learners failed to fit: {self.learner_errors_}"
            )

        self.selected_learner_ = str(self.cv_risks_.idxmin())
        self.fitted_learner_ = clone(library[self.selected_learner_])
        try:
            self.fitted_learner_.fit(X_arr, y_arr)
        except Exception as e:
            raise EstimationError(
                f"Selected learner '{self.selected_learner_}' failed on the full data: {e}"
            ) from e

        self.is_fitted = True
        logger.debug(
            "Super learner selected %s (cv risks: %s)",
            self.selected_learner_,
            self.cv_risks_.to_dict(),
        )
        return self

    def predict_proba(self, X: pd.DataFrame | NDArray[Any]) -> NDArray[Any]:
        """Class probabilities, columns ordered (P(y=0), P(y=1))."""
        p1 = self.predict(X)
        return np.column_stack([1 - p1, p1])

    def predict(self, X: pd.DataFrame | NDArray[Any]) -> NDArray[Any]:
        """Predicted probability of the positive class."""
        if not self.is_fitted:
            raise EstimationError("Super learner must be fitted before prediction")
        return _positive_class_probability(self.fitted_learner_, self._as_array(X))

    @property
    def selected_algorithm_name(self) -> str:
        """Name of the candidate chosen by cross-validated risk."""
        if self.selected_learner_ is None:
            raise EstimationError("Super learner must be fitted first")
        return self.selected_learner_

    @property
    def cv_risks(self) -> pd.Series:
        """Cross-validated risk per candidate learner."""
        if self.cv_risks_ is None:
            raise EstimationError("Super learner must be fitted first")
        return self.cv_risks_.copy()

    def get_learner_performance(self) -> dict[str, float]:
        """Cross-validated risk per candidate as a plain dictionary."""
        return {name: float(risk) for name, risk in self.cv_risks.items()}

    def get_learner_weights(self) -> dict[str, float]:
        """Discrete selection weights: 1 for the selected candidate, 0 otherwise."""
        selected = self.selected_algorithm_name
        return {name: float(name == selected) for name in self.cv_risks.index}
