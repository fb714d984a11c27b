"""Data models for the extraction pipeline."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class ExtractionMethod(str, Enum):
    """Stage whose recipe was ultimately selected."""

    WEB_SCRAPING = "web_scraping"
    VIDEO_AI = "video_ai"


@dataclass(frozen=True)
class ScrapedPage:
    """Everything the page fetcher collected from one post. Immutable."""

    raw_text: str
    source_url: str
    screenshot: bytes = b""
    page_title: str = ""
    comments: tuple[str, ...] = ()


@dataclass
class Recipe:
    """Candidate recipe produced by the structuring service."""

    title: str
    source_url: str
    ingredients: list[str] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)
    servings: str | None = None
    prep_time: str | None = None
    cook_time: str | None = None
    tips: list[str] = field(default_factory=list)
    image_url: str | None = None
    id: str | None = None  # Assigned only when persisted

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "ingredients": list(self.ingredients),
            "steps": list(self.steps),
            "servings": self.servings,
            "prep_time": self.prep_time,
            "cook_time": self.cook_time,
            "tips": list(self.tips),
            "source_url": self.source_url,
            "image_url": self.image_url,
        }


@dataclass(frozen=True)
class CompletenessVerdict:
    """Whether a candidate is usable without further fallback."""

    complete: bool
    reason: str | None = None


@dataclass(frozen=True)
class UsageMetrics:
    """Token usage and estimated cost of one (or several, summed) backend calls."""

    prompt_tokens: int = 0
    candidates_tokens: int = 0
    total_tokens: int = 0
    cost_eur: Decimal = Decimal("0")

    def __post_init__(self):
        if min(self.prompt_tokens, self.candidates_tokens, self.total_tokens) < 0:
            raise ValueError("Token counts must be non-negative")
        if self.cost_eur < 0:
            raise ValueError("Cost must be non-negative")

    def __add__(self, other: "UsageMetrics") -> "UsageMetrics":
        if not isinstance(other, UsageMetrics):
            return NotImplemented
        return UsageMetrics(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            candidates_tokens=self.candidates_tokens + other.candidates_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cost_eur=self.cost_eur + other.cost_eur,
        )

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "candidates_tokens": self.candidates_tokens,
            "total_tokens": self.total_tokens,
            "cost_eur": float(self.cost_eur),
        }


@dataclass(frozen=True)
class PageStructuringResult:
    """Output of structuring a scraped page."""

    recipe: Recipe
    is_incomplete: bool
    usage: UsageMetrics | None = None


@dataclass(frozen=True)
class VideoStructuringResult:
    """Output of structuring a downloaded video."""

    recipe: Recipe
    usage: UsageMetrics | None = None


@dataclass(frozen=True)
class ProgressUpdate:
    """Coarse progress of one pipeline run."""

    stage: str
    message: str
    percentage: int

    def to_dict(self) -> dict:
        return {"stage": self.stage, "message": self.message, "percentage": self.percentage}


@dataclass
class PipelineOptions:
    """Caller-supplied flags for one extraction request."""

    force_method: ExtractionMethod | None = None
    save: bool = False
    tag_ids: list[str] = field(default_factory=list)
    folder_id: str | None = None


@dataclass
class PipelineResult:
    """Terminal artifact of a successful pipeline run."""

    recipe: Recipe
    method: ExtractionMethod
    usage: UsageMetrics
    progress: ProgressUpdate | None = None
    saved: bool = False
