"""
Classifier Response Schemas

Structured output model for the semantic relevance classifier.
Strict types: a string "true" is not a boolean verdict, and a missing field
is a structural failure, not a default.
"""
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr


class ClassifierVerdict(BaseModel):
    """
    Validated response from the semantic classifier.

    Used by SemanticClassifier.classify() and consumed by the
    RelevanceCoordinator.
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    relevant: StrictBool = Field(description="True if the change matters for the watch goal")
    reason: StrictStr = Field(description="Brief explanation of the verdict")
    summary: StrictStr = Field(description="Terse bullet summary of the change")
