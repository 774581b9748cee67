"""Domain models for nutritional quality and intake assessments."""

from dataclasses import dataclass, field
from enum import StrEnum


class QualityCategory(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    SUFFICIENT = "sufficient"
    POOR = "poor"


@dataclass(frozen=True)
class QualityScore:
    """Nutritional quality of a per-100g profile, out of 100 points."""

    score: float
    percentage: int
    category: QualityCategory
    factors: list[str] = field(default_factory=list)
    max_score: int = 100


@dataclass(frozen=True)
class NutrientReference:
    """Daily reference for one nutrient: a recommended amount or an upper limit."""

    nutrient: str
    unit: str
    recommended: float | None = None
    maximum: float | None = None


@dataclass(frozen=True)
class Deficiency:
    nutrient: str
    current: float
    recommended: float
    deficit: float
    percentage: float
    severity: str


@dataclass(frozen=True)
class Excess:
    nutrient: str
    current: float
    maximum: float
    excess: float
    percentage: float


@dataclass(frozen=True)
class NutrientAnalysis:
    """Nutrients well below their reference and nutrients above their limit."""

    deficiencies: list[Deficiency] = field(default_factory=list)
    excesses: list[Excess] = field(default_factory=list)
