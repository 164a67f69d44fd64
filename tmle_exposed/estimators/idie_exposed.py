"""Targeted Maximum Likelihood Estimation of the IDIE among the exposed.

The Interventional Disparity Indirect Effect among the exposed compares the
outcome risk of the exposed (A=1) had their probability of the mediator (Z)
been that of comparable unexposed individuals (psi0) with their risk under
their own mediator distribution (psi1). Exposure, mediator and outcome are
all binary; the structure is A -> Z -> Y with measured confounders.

The estimator:
1. Fits exposure, mediator and outcome regressions with discrete Super Learning
2. Builds an expanded table with the mediator forced to 0 and 1 and fills it
   with predictions under observed and counterfactual exposure/mediator values
3. Computes plug-in estimates and efficient influence curves
4. Targets the exposure, mediator and outcome predictions iteratively
5. Reports estimates with influence-curve standard errors
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from shared.config import TMLEConfig

from ..core.base import BaseEstimator, EstimationError, IDIEData, IDIEEffect
from ..ml.super_learner import LearnerLibrary, SuperLearner, SuperLearnerConfig
from ..utils.validation import (
    EXPOSURE,
    MEDIATOR,
    OBSERVED_MEDIATOR,
    OUTCOME,
    bound_probabilities,
    summarize_distribution,
    validate_idie_data,
)
from .influence import (
    aggregate_over_mediator,
    eic_psi0,
    eic_psi1,
    influence_se,
    observed_rows,
    psi0_plugin,
    psi1_empirical,
)
from .targeting import TargetedUpdater, TargetingResult, warn_not_converged

__all__ = [
    "IDIEExposedEstimator",
    "build_counterfactual_predictions",
    "estimate_idie_exposed",
]

logger = logging.getLogger(__name__)

EXPOSURE_MODEL = "exposure"
MEDIATOR_MODEL = "mediator"
OUTCOME_MODEL = "outcome"

DEFAULT_LIBRARY = ["glm", "glm_interaction"]

# Prediction columns summarized among exposed, observed-mediator rows
DISTRIBUTION_COLUMNS = {
    "distribution_A1": "pihat",
    "distribution_Z_a1": "gammahat_a1",
    "distribution_Z_a0": "gammahat_a0",
    "distribution_Y": "Qhat",
    "distribution_Y_a1": "Qhat_a1",
}


def _predict(
    model: SuperLearner, frame: pd.DataFrame, features: list[str], bound: float
) -> NDArray[Any]:
    return bound_probabilities(model.predict(frame[features]), bound)


def build_counterfactual_predictions(
    frame: pd.DataFrame,
    models: dict[str, SuperLearner],
    confounders_a: list[str],
    confounders_z: list[str],
    confounders_y: list[str],
    probability_bound: float = 1e-6,
) -> pd.DataFrame:
    """Build the expanded prediction table from fitted nuisance models.

    Every observation appears twice, with the mediator forced to 1 and to 0,
    and keeps its observed mediator in z_obs. Counterfactual settings are
    predicted on fresh copies; the input frame is not modified.

    Args:
        frame: Validated analysis frame with A, Z, Y and confounders
        models: Fitted exposure, mediator and outcome models
        confounders_a: Features of the exposure model
        confounders_z: Confounders of the mediator model (A is added)
        confounders_y: Confounders of the outcome model (A and Z are added)
        probability_bound: Predictions are clipped to [bound, 1 - bound]

    Returns:
        Expanded table with 2n rows and all prediction columns
    """
    features_z = [*confounders_z, EXPOSURE]
    features_y = [*confounders_y, EXPOSURE, MEDIATOR]
    exposure_model = models[EXPOSURE_MODEL]
    mediator_model = models[MEDIATOR_MODEL]
    outcome_model = models[OUTCOME_MODEL]

    base = frame.assign(
        pihat=_predict(exposure_model, frame, confounders_a, probability_bound),
        gammahat=_predict(mediator_model, frame, features_z, probability_bound),
        gammahat_a0=_predict(
            mediator_model, frame.assign(**{EXPOSURE: 0}), features_z, probability_bound
        ),
        gammahat_a1=_predict(
            mediator_model, frame.assign(**{EXPOSURE: 1}), features_z, probability_bound
        ),
    )

    observed_mediator = base[MEDIATOR].to_numpy()
    expanded = pd.concat(
        [
            base.assign(**{MEDIATOR: 1, OBSERVED_MEDIATOR: observed_mediator}),
            base.assign(**{MEDIATOR: 0, OBSERVED_MEDIATOR: observed_mediator}),
        ],
        ignore_index=True,
    )

    expanded["Qhat"] = _predict(outcome_model, expanded, features_y, probability_bound)
    expanded["Qhat_a1"] = _predict(
        outcome_model, expanded.assign(**{EXPOSURE: 1}), features_y, probability_bound
    )
    expanded["Qhat_a1_z0"] = _predict(
        outcome_model,
        expanded.assign(**{EXPOSURE: 1, MEDIATOR: 0}),
        features_y,
        probability_bound,
    )
    expanded["Qhat_a1_z1"] = _predict(
        outcome_model,
        expanded.assign(**{EXPOSURE: 1, MEDIATOR: 1}),
        features_y,
        probability_bound,
    )

    # No intervention, and mediator distributed as among the unexposed
    expanded["psi_1"] = aggregate_over_mediator(expanded, "gammahat_a1")
    expanded["psi_0"] = aggregate_over_mediator(expanded, "gammahat_a0")

    return expanded


class IDIEExposedEstimator(BaseEstimator):
    """Targeted estimator of the Interventional Disparity Indirect Effect among the exposed.

    Nuisance models are selected by discrete Super Learning: the single
    candidate with the lowest cross-validated risk is used. A library with
    one candidate simply fits that candidate.

    Attributes:
        exposure_library: Candidate learners for P(A=1 | confounders_a)
        mediator_library: Candidate learners for P(Z=1 | confounders_z, A)
        outcome_library: Candidate learners for P(Y=1 | confounders_y, A, Z)
        max_iterations: Maximum iterations of the targeting loop
        cv_folds: Cross-validation folds of the Super Learner
        probability_bound: Predictions are clipped to [bound, 1 - bound]
        recompute_se: Recompute se0 and se_diff from the targeted fit
    """

    def __init__(
        self,
        exposure_library: Optional[LearnerLibrary] = None,
        mediator_library: Optional[LearnerLibrary] = None,
        outcome_library: Optional[LearnerLibrary] = None,
        max_iterations: Optional[int] = None,
        cv_folds: Optional[int] = None,
        probability_bound: Optional[float] = None,
        recompute_se: Optional[bool] = None,
        n_jobs: Optional[int] = None,
        random_state: Optional[int] = None,
        config: Optional[TMLEConfig] = None,
        verbose: bool = False,
    ) -> None:
        """Initialize the estimator.

        Keyword arguments left as None fall back to the configuration.

        Args:
            exposure_library: Candidate learners for the exposure model
            mediator_library: Candidate learners for the mediator model
            outcome_library: Candidate learners for the outcome model
            max_iterations: Maximum iterations of the targeting loop
            cv_folds: Number of Super Learner cross-validation folds
            probability_bound: Distance kept between predictions and 0/1
            recompute_se: Whether to recompute se0/se_diff after targeting
            n_jobs: Parallel jobs for candidate-by-fold fits
            random_state: Random seed for fold assignment and learners
            config: Settings object; read from the environment when None
            verbose: Whether to log progress at INFO level
        """
        config = config or TMLEConfig()
        super().__init__(
            random_state=random_state if random_state is not None else config.random_state,
            verbose=verbose,
        )

        self.config = config
        self.exposure_library = DEFAULT_LIBRARY if exposure_library is None else exposure_library
        self.mediator_library = DEFAULT_LIBRARY if mediator_library is None else mediator_library
        self.outcome_library = DEFAULT_LIBRARY if outcome_library is None else outcome_library
        self.max_iterations = (
            max_iterations if max_iterations is not None else config.max_iterations
        )
        self.cv_folds = cv_folds if cv_folds is not None else config.cv_folds
        self.probability_bound = (
            probability_bound if probability_bound is not None else config.probability_bound
        )
        self.recompute_se = recompute_se if recompute_se is not None else config.recompute_se
        self.n_jobs = n_jobs if n_jobs is not None else config.n_jobs

        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        # Fitted state
        self.nuisance_models_: dict[str, SuperLearner] = {}
        self.pibar_: Optional[float] = None
        self.n_observations_: Optional[int] = None
        self.psi0_init_: Optional[float] = None
        self.psi1_: Optional[float] = None
        self.initial_se_: dict[str, float] = {}
        self.augmented_dataset_: Optional[pd.DataFrame] = None
        self.targeting_: Optional[TargetingResult] = None

    def fit(self, data: IDIEData) -> IDIEExposedEstimator:
        """Fit the estimator; warns at the caller if targeting did not converge.

        Args:
            data: Input data with variable roles

        Returns:
            self: The fitted estimator instance
        """
        super().fit(data)
        self._warn_if_not_converged(stacklevel=4)
        return self

    def _warn_if_not_converged(self, stacklevel: int) -> None:
        # stacklevel counts this method and the public entry point that calls it
        if self.targeting_ is not None and not self.targeting_.converged:
            warn_not_converged(self.max_iterations, stacklevel=stacklevel)

    def _validate_inputs(self, data: IDIEData) -> pd.DataFrame:
        return validate_idie_data(data)

    def _make_super_learner(self, library: LearnerLibrary) -> SuperLearner:
        return SuperLearner(
            base_learners=library,
            config=SuperLearnerConfig(
                cv_folds=self.cv_folds,
                stratified=self.config.stratified_folds,
                n_jobs=self.n_jobs,
                parallel_backend=self.config.parallel_backend,
            ),
            random_state=self.random_state,
        )

    def _fit_nuisance_models(self, frame: pd.DataFrame) -> dict[str, SuperLearner]:
        """Fit the exposure, mediator and outcome models once."""
        assert self.data is not None
        specs = {
            EXPOSURE_MODEL: (self.exposure_library, list(self.data.confounders_a), EXPOSURE),
            MEDIATOR_MODEL: (
                self.mediator_library,
                [*self.data.confounders_z, EXPOSURE],
                MEDIATOR,
            ),
            OUTCOME_MODEL: (
                self.outcome_library,
                [*self.data.confounders_y, EXPOSURE, MEDIATOR],
                OUTCOME,
            ),
        }

        models = {}
        for name, (library, features, target) in specs.items():
            try:
                models[name] = self._make_super_learner(library).fit(
                    frame[features], frame[target]
                )
            except EstimationError as e:
                raise EstimationError(f"Failed to fit {name} model: {e}") from e

            log = logger.info if self.verbose else logger.debug
            log(
                "%s model: selected %s from %s",
                name,
                models[name].selected_algorithm_name,
                list(models[name].cv_risks.index),
            )
        return models

    def _fit_implementation(self, frame: pd.DataFrame) -> None:
        """Fit nuisance models, compute initial estimates and run targeting."""
        assert self.data is not None
        n = len(frame)
        pibar = float(np.mean(frame[EXPOSURE] == 1))

        self.nuisance_models_ = self._fit_nuisance_models(frame)

        expanded = build_counterfactual_predictions(
            frame,
            self.nuisance_models_,
            list(self.data.confounders_a),
            list(self.data.confounders_z),
            list(self.data.confounders_y),
            probability_bound=self.probability_bound,
        )

        observed = observed_rows(expanded)
        psi0_init = psi0_plugin(observed, pibar)
        psi1 = psi1_empirical(observed)

        eic0 = eic_psi0(observed, pibar, psi0_init)
        eic1 = eic_psi1(observed, pibar, psi1)
        expanded.loc[observed.index, "eic0"] = eic0
        expanded.loc[observed.index, "eic1"] = eic1
        expanded.loc[observed.index, "eic"] = eic0 - eic1

        self.initial_se_ = {
            "se0": influence_se(eic0, n),
            "se1": influence_se(eic1, n),
            "se_diff": influence_se(eic0 - eic1, n),
        }

        updater = TargetedUpdater(
            pibar=pibar,
            n_observations=n,
            se0=self.initial_se_["se0"],
            max_iterations=self.max_iterations,
            probability_bound=self.probability_bound,
        )
        self.targeting_ = updater.run(
            expanded.drop(columns=["eic0", "eic1", "eic"]), warn_on_exhaustion=False
        )

        targeted = self.targeting_.frame
        observed_targeted = observed_rows(targeted)
        eic0_targeted = eic_psi0(observed_targeted, pibar, self.targeting_.psi0)
        eic1_targeted = eic_psi1(observed_targeted, pibar, psi1)
        targeted.loc[observed_targeted.index, "eic0"] = eic0_targeted
        targeted.loc[observed_targeted.index, "eic1"] = eic1_targeted
        targeted.loc[observed_targeted.index, "eic"] = eic0_targeted - eic1_targeted

        self.n_observations_ = n
        self.pibar_ = pibar
        self.psi0_init_ = psi0_init
        self.psi1_ = psi1
        self.augmented_dataset_ = expanded

        log = logger.info if self.verbose else logger.debug
        log(
            "IDIE targeting finished (%s): psi0=%.6f psi1=%.6f",
            self.targeting_.state.value,
            self.targeting_.psi0,
            psi1,
        )

    def _distributions(self) -> pd.DataFrame:
        """Summaries of key predictions among exposed, observed-mediator rows."""
        assert self.augmented_dataset_ is not None
        observed = observed_rows(self.augmented_dataset_)
        exposed = observed.loc[observed[EXPOSURE] == 1]
        return pd.DataFrame.from_dict(
            {
                row: summarize_distribution(exposed[column])
                for row, column in DISTRIBUTION_COLUMNS.items()
            },
            orient="index",
        )

    def _estimate_implementation(self) -> IDIEEffect:
        """Assemble estimates, standard errors and model reports."""
        if (
            self.targeting_ is None
            or self.psi1_ is None
            or self.pibar_ is None
            or self.n_observations_ is None
        ):
            raise EstimationError("Estimator must be fitted before estimation")

        psi0 = self.targeting_.psi0
        psi1 = self.psi1_
        se = dict(self.initial_se_)

        assert self.augmented_dataset_ is not None
        observed_initial = observed_rows(self.augmented_dataset_)
        eic1 = observed_initial["eic1"].to_numpy()

        if self.recompute_se:
            observed_targeted = observed_rows(self.targeting_.frame)
            se["se0"] = influence_se(observed_targeted["eic0"], self.n_observations_)
            se["se_diff"] = influence_se(observed_targeted["eic"], self.n_observations_)

        return IDIEEffect(
            psi0=psi0,
            psi1=psi1,
            psi=psi0 - psi1,
            se0=se["se0"],
            se1=se["se1"],
            se_diff=se["se_diff"],
            confidence_level=self.config.confidence_level,
            cv_risk={name: model.cv_risks for name, model in self.nuisance_models_.items()},
            discrete_algorithm={
                name: model.selected_algorithm_name
                for name, model in self.nuisance_models_.items()
            },
            distributions=self._distributions(),
            augmented_dataset=self.augmented_dataset_.copy(),
            targeted_dataset=self.targeting_.frame.copy(),
            n_observations=self.n_observations_,
            n_exposed=int(np.sum(observed_initial[EXPOSURE] == 1)),
            pibar=self.pibar_,
            psi0_init=self.psi0_init_,
            converged=self.targeting_.converged,
            n_iterations=self.targeting_.n_iterations,
            tolerance=self.targeting_.tolerance,
            convergence_history=list(self.targeting_.history),
            solve_eic1=abs(float(np.mean(eic1))),
            recomputed_se=self.recompute_se,
        )


def estimate_idie_exposed(
    data: pd.DataFrame,
    exposure_name: str,
    mediator_name: str,
    outcome_name: str,
    confounders_a: list[str],
    confounders_z: list[str],
    confounders_y: list[str],
    learner_library_a: LearnerLibrary,
    learner_library_z: LearnerLibrary,
    learner_library_y: LearnerLibrary,
    max_iterations: int = 10,
    *,
    id_column: Optional[str] = None,
    recompute_se: Optional[bool] = None,
    cv_folds: Optional[int] = None,
    random_state: Optional[int] = None,
    n_jobs: Optional[int] = None,
    config: Optional[TMLEConfig] = None,
) -> IDIEEffect:
    """Estimate the IDIE among the exposed with TMLE.

    Args:
        data: Frame with a binary exposure, mediator, outcome and confounders
        exposure_name: Name of the binary exposure
        mediator_name: Name of the binary mediator, the target of the intervention
        outcome_name: Name of the binary outcome
        confounders_a: Confounders of the exposure model
        confounders_z: Confounders of the mediator model, without the exposure
        confounders_y: Confounders of the outcome model, without exposure and mediator
        learner_library_a: Candidate learners for the exposure model
        learner_library_z: Candidate learners for the mediator model
        learner_library_y: Candidate learners for the outcome model
        max_iterations: Maximum iterations of the targeting loop
        id_column: Optional column of unique observation ids
        recompute_se: Recompute se0/se_diff from the targeted fit
        cv_folds: Super Learner cross-validation folds
        random_state: Random seed for reproducibility
        n_jobs: Parallel jobs for candidate-by-fold fits
        config: Settings object; read from the environment when None

    Returns:
        IDIEEffect with psi0, psi1, psi, their standard errors and diagnostics

    Example:
        >>> from tmle_exposed.data import generate_idie_data
        >>> d = generate_idie_data(n=5000, random_state=1)
        >>> res = estimate_idie_exposed(
        ...     d, "exposure", "mediator", "outcome",
        ...     ["sex", "age"], ["sex", "age", "disease"], ["sex", "age", "disease"],
        ...     ["glm", "glm_interaction"], ["glm", "glm_interaction"],
        ...     ["glm", "glm_interaction"], random_state=1,
        ... )  # doctest: +SKIP
    """
    idie_data = IDIEData(
        data=data,
        exposure=exposure_name,
        mediator=mediator_name,
        outcome=outcome_name,
        confounders_a=list(confounders_a),
        confounders_z=list(confounders_z),
        confounders_y=list(confounders_y),
        id_column=id_column,
    )
    estimator = IDIEExposedEstimator(
        exposure_library=learner_library_a,
        mediator_library=learner_library_z,
        outcome_library=learner_library_y,
        max_iterations=max_iterations,
        cv_folds=cv_folds,
        recompute_se=recompute_se,
        n_jobs=n_jobs,
        random_state=random_state,
        config=config,
    )
    # Fit through the base class so the convergence warning names our caller
    BaseEstimator.fit(estimator, idie_data)
    estimator._warn_if_not_converged(stacklevel=4)
    return estimator.estimate()
