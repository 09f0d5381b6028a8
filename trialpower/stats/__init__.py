"""Statistical model fitting for trialpower."""

from .models import LM, LM_LOG, LMER, LMER_LOG, AnalysisModel, AnalysisResult, analyze_batch, fit_experiment

__all__ = [
    "AnalysisModel",
    "AnalysisResult",
    "LM",
    "LM_LOG",
    "LMER",
    "LMER_LOG",
    "analyze_batch",
    "fit_experiment",
]
