"""High-level exports for the pagesignals workflows."""

from .aggregate import FrequencyMap, RankedEntry, aggregate, aggregate_by_category, normalize_label, top_n
from .analysis import AnalysisResult, AnalysisTask, Category, analyze
from .dispatcher import PipelineError, TaskDispatcher, dispatch
from .page_fetch import FetchConfig, FetchError, PageContent, PageFetcher
from .pipeline import DEFAULT_POLICY, BatchReport, CategoryReport, SignalsPolicy, run_pipeline

__all__ = [
    "DEFAULT_POLICY",
    "AnalysisResult",
    "AnalysisTask",
    "BatchReport",
    "Category",
    "CategoryReport",
    "FetchConfig",
    "FetchError",
    "FrequencyMap",
    "PageContent",
    "PageFetcher",
    "PipelineError",
    "RankedEntry",
    "SignalsPolicy",
    "TaskDispatcher",
    "aggregate",
    "aggregate_by_category",
    "analyze",
    "dispatch",
    "normalize_label",
    "run_pipeline",
    "top_n",
]
