"""Type definitions for the spifa package."""

from typing import Literal

# Model variant tags: trait covariance structure x trait mean structure
ModelType = Literal["eifa", "eifa_pred", "cifa", "cifa_pred", "spifa", "spifa_pred"]

# Handling of missing responses in the augmentation and conditional updates
MissingPolicy = Literal["impute", "skip"]

# Handling of loadings tied by the restriction matrix
TiePolicy = Literal["joint", "average"]

MODEL_TYPES: tuple[str, ...] = (
    "eifa",
    "eifa_pred",
    "cifa",
    "cifa_pred",
    "spifa",
    "spifa_pred",
)
