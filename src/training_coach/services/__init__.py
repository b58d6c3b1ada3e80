"""Services for the training coach."""

from .training_plan import TrainingContext, TrainingPlanService, TrainingRecommendation

__all__ = [
    "TrainingContext",
    "TrainingPlanService",
    "TrainingRecommendation",
]
