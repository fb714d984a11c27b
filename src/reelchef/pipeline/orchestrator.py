"""
Hybrid extraction pipeline.

One request moves through named states:

    QUEUED -> SCRAPING -> STRUCTURING_WEB -> EVALUATING -> DONE
                                                |
                                                v (incomplete or web failure)
              DOWNLOADING -> STRUCTURING_VIDEO -> SELECTING -> DONE | FAILED

Stage errors are recorded on the run, never raised from a handler. Which
error reaches the caller is decided in one place (`_fail`): the web-path
error when both paths failed, the forced stage's error otherwise.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import PipelineExhausted, PipelineTimeout, ValidationError
from ..security import validate_target_url
from .admission import AdmissionQueue
from .completeness import evaluate, has_steps
from .models import (
    CompletenessVerdict,
    ExtractionMethod,
    PipelineOptions,
    PipelineResult,
    ProgressUpdate,
    Recipe,
    ScrapedPage,
)
from .normalizer import is_empty_recipe
from .usage import UsageTracker

if TYPE_CHECKING:
    from ..db.store import RecipeStore
    from .page_fetcher import PageFetcher
    from .structuring import StructuringService
    from .video_fetcher import VideoFetcher

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], None]

# stage -> (message, percentage)
PROGRESS_STAGES: dict[str, tuple[str, int]] = {
    "scraping": ("Fetching post content...", 10),
    "ai_analysis": ("Analyzing content...", 40),
    "video_download": ("Downloading video...", 50),
    "video_analysis": ("Analyzing video...", 70),
    "ai_extraction": ("Selecting the best recipe...", 80),
    "finalization": ("Finalizing recipe...", 90),
}


class PipelineState(str, Enum):
    QUEUED = "queued"
    SCRAPING = "scraping"
    STRUCTURING_WEB = "structuring_web"
    EVALUATING = "evaluating"
    DOWNLOADING = "downloading"
    STRUCTURING_VIDEO = "structuring_video"
    SELECTING = "selecting"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = (PipelineState.DONE, PipelineState.FAILED)


@dataclass
class PipelineRun:
    """Mutable state of one request. Owned by a single pipeline run."""

    url: str
    options: PipelineOptions
    state: PipelineState = PipelineState.QUEUED
    history: list[PipelineState] = field(default_factory=list)

    page: ScrapedPage | None = None
    web_candidate: Recipe | None = None
    web_self_reported_incomplete: bool = False
    web_verdict: CompletenessVerdict | None = None
    web_error: Exception | None = None

    video_path: Path | None = None
    video_candidate: Recipe | None = None
    video_error: Exception | None = None

    recipe: Recipe | None = None
    method: ExtractionMethod | None = None
    error: Exception | None = None

    usage: UsageTracker = field(default_factory=UsageTracker)
    progress: ProgressUpdate | None = None
    on_progress: ProgressCallback | None = None

    @property
    def web_only(self) -> bool:
        return self.options.force_method == ExtractionMethod.WEB_SCRAPING

    @property
    def video_only(self) -> bool:
        return self.options.force_method == ExtractionMethod.VIDEO_AI


def _delete_file(path: Path | None) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
        logger.info(f"Deleted local video {path.name}")
    except OSError as e:
        logger.warning(f"Could not delete {path}: {e}")


class RecipePipeline:
    """
    Runs the web path, judges completeness and falls back to the video path.

    Collaborators are injected so tests can swap in stubs:
        pipeline = RecipePipeline(page_fetcher, video_fetcher, StubStructuring())
        result = await pipeline.run(url)
    """

    def __init__(
        self,
        page_fetcher: "PageFetcher",
        video_fetcher: "VideoFetcher",
        structuring: "StructuringService",
        store: "RecipeStore | None" = None,
    ):
        self.page_fetcher = page_fetcher
        self.video_fetcher = video_fetcher
        self.structuring = structuring
        self.store = store

        self._handlers: dict[PipelineState, Callable[[PipelineRun], Awaitable[PipelineState]]] = {
            PipelineState.QUEUED: self._start,
            PipelineState.SCRAPING: self._scrape,
            PipelineState.STRUCTURING_WEB: self._structure_web,
            PipelineState.EVALUATING: self._evaluate,
            PipelineState.DOWNLOADING: self._download,
            PipelineState.STRUCTURING_VIDEO: self._structure_video,
            PipelineState.SELECTING: self._select,
        }

    async def run(
        self,
        url: str,
        options: PipelineOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """
        Extract a recipe from a post URL.

        Raises:
            PipelineExhausted: both paths failed (message carries the web error)
            ReelChefError: the forced path's own error when force_method is set
        """
        run = PipelineRun(url=url, options=options or PipelineOptions(), on_progress=on_progress)
        logger.info(f"Pipeline started for {url} (force_method={run.options.force_method})")

        try:
            while run.state not in TERMINAL_STATES:
                next_state = await self._handlers[run.state](run)
                self._transition(run, next_state)
        finally:
            _delete_file(run.video_path)
            run.video_path = None

        if run.state == PipelineState.FAILED:
            logger.error(f"Pipeline failed for {url}: {run.error}")
            raise run.error

        self._report(run, "finalization")
        saved = await self._persist(run)

        usage = run.usage.total
        summary = run.usage.summary()
        logger.info(
            f"Pipeline done for {url}: method={run.method.value}, "
            f"{len(run.recipe.steps)} steps, {usage.total_tokens} tokens over {summary['total_calls']} calls, "
            f"{usage.cost_eur:.6f} EUR (by stage: {summary['by_stage']})"
        )
        return PipelineResult(
            recipe=run.recipe,
            method=run.method,
            usage=usage,
            progress=run.progress,
            saved=saved,
        )

    # -------------------------------------------------------------------------
    # State handlers: each returns the next state
    # -------------------------------------------------------------------------

    async def _start(self, run: PipelineRun) -> PipelineState:
        if run.video_only:
            return PipelineState.DOWNLOADING
        return PipelineState.SCRAPING

    async def _scrape(self, run: PipelineRun) -> PipelineState:
        self._report(run, "scraping")
        try:
            run.page = await self.page_fetcher.fetch_page(run.url)
        except Exception as e:
            return self._web_failed(run, e, "page fetch")

        logger.info(f"Scraped {len(run.page.raw_text)} chars, {len(run.page.comments)} comments from {run.url}")
        return PipelineState.STRUCTURING_WEB

    async def _structure_web(self, run: PipelineRun) -> PipelineState:
        self._report(run, "ai_analysis")
        try:
            result = await self.structuring.structure_from_page(run.page)
        except Exception as e:
            return self._web_failed(run, e, "page structuring")

        run.usage.add(result.usage, stage="web")
        run.web_candidate = result.recipe
        run.web_self_reported_incomplete = result.is_incomplete
        return PipelineState.EVALUATING

    async def _evaluate(self, run: PipelineRun) -> PipelineState:
        verdict = evaluate(run.web_candidate, run.web_self_reported_incomplete)
        run.web_verdict = verdict

        if verdict.complete:
            logger.info(f"Web recipe is complete for {run.url}")
            return self._finish(run, run.web_candidate, ExtractionMethod.WEB_SCRAPING)

        if run.web_only:
            logger.warning(f"Web recipe incomplete ({verdict.reason}); video fallback disabled by force_method")
            return self._finish(run, run.web_candidate, ExtractionMethod.WEB_SCRAPING)

        logger.warning(f"Web recipe incomplete for {run.url}: {verdict.reason}. Switching to video analysis")
        return PipelineState.DOWNLOADING

    async def _download(self, run: PipelineRun) -> PipelineState:
        self._report(run, "video_download")
        try:
            run.video_path = await self.video_fetcher.download_video(run.url)
        except Exception as e:
            return self._video_failed(run, e, "video download")
        return PipelineState.STRUCTURING_VIDEO

    async def _structure_video(self, run: PipelineRun) -> PipelineState:
        self._report(run, "video_analysis")
        try:
            result = await self.structuring.structure_from_video(run.video_path, run.url)
        except Exception as e:
            return self._video_failed(run, e, "video structuring")
        finally:
            _delete_file(run.video_path)
            run.video_path = None

        run.usage.add(result.usage, stage="video")
        if is_empty_recipe(result.recipe):
            logger.warning(f"Video analysis returned no recipe for {run.url}")
        else:
            run.video_candidate = result.recipe
        return PipelineState.SELECTING

    async def _select(self, run: PipelineRun) -> PipelineState:
        """Keep the better of the two candidates: non-empty steps win, else web."""
        self._report(run, "ai_extraction")

        if has_steps(run.video_candidate):
            logger.info(f"Using video analysis result for {run.url}")
            return self._finish(run, run.video_candidate, ExtractionMethod.VIDEO_AI)

        if run.web_candidate is not None:
            logger.warning(
                f"Video path gave no steps for {run.url}"
                f"{f' ({run.video_error})' if run.video_error else ''}; keeping incomplete web recipe"
            )
            return self._finish(run, run.web_candidate, ExtractionMethod.WEB_SCRAPING)

        if run.video_candidate is not None:
            logger.warning("Web path failed and video recipe has no steps; using it as best effort")
            return self._finish(run, run.video_candidate, ExtractionMethod.VIDEO_AI)

        return self._fail(run)

    # -------------------------------------------------------------------------
    # Transitions and outcomes
    # -------------------------------------------------------------------------

    def _web_failed(self, run: PipelineRun, error: Exception, stage: str) -> PipelineState:
        run.web_error = error
        if run.web_only:
            logger.warning(f"{stage} failed for {run.url}: {error}")
            return self._fail(run)
        logger.warning(f"{stage} failed for {run.url}, trying video analysis: {error}")
        return PipelineState.DOWNLOADING

    def _video_failed(self, run: PipelineRun, error: Exception, stage: str) -> PipelineState:
        run.video_error = error
        logger.warning(f"{stage} failed for {run.url}: {error}")
        return PipelineState.SELECTING

    def _finish(self, run: PipelineRun, recipe: Recipe, method: ExtractionMethod) -> PipelineState:
        run.recipe = recipe
        run.method = method
        return PipelineState.DONE

    def _fail(self, run: PipelineRun) -> PipelineState:
        if run.web_only and run.web_error is not None:
            run.error = run.web_error
        elif run.video_only and run.video_error is not None:
            run.error = run.video_error
        else:
            run.error = PipelineExhausted(run.web_error, run.video_error)
        return PipelineState.FAILED

    def _transition(self, run: PipelineRun, next_state: PipelineState) -> None:
        run.history.append(run.state)
        logger.info(f"{run.url}: {run.state.value} -> {next_state.value}")
        run.state = next_state

    def _report(self, run: PipelineRun, stage: str) -> None:
        message, percentage = PROGRESS_STAGES[stage]
        run.progress = ProgressUpdate(stage=stage, message=message, percentage=percentage)
        logger.debug(f"Progress {run.url}: {stage} {percentage}%")
        if run.on_progress is not None:
            run.on_progress(run.progress)

    async def _persist(self, run: PipelineRun) -> bool:
        """Save the selected recipe when asked. A store failure never fails the extraction."""
        if not run.options.save:
            return False
        if self.store is None:
            logger.warning("save requested but no recipe store is configured")
            return False

        try:
            recipe_id = await asyncio.to_thread(
                self.store.save,
                run.recipe,
                run.options.tag_ids,
                run.options.folder_id,
            )
        except Exception as e:
            logger.error(f"Failed to save recipe from {run.url}: {e}")
            return False

        run.recipe.id = recipe_id
        logger.info(f"Saved recipe {recipe_id} from {run.url}")
        return True


class RecipeExtractionService:
    """
    Request boundary around the pipeline: validation, admission and timeout.

    One instance is shared by every request of the process; it holds the
    only cross-request state (the admission queue).
    """

    def __init__(
        self,
        pipeline: RecipePipeline,
        queue: AdmissionQueue,
        timeout_seconds: float = 180.0,
    ):
        self.pipeline = pipeline
        self.queue = queue
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings, store: "RecipeStore | None" = None) -> "RecipeExtractionService":
        from .credentials import CredentialStore
        from .page_fetcher import PageFetcher
        from .structuring import GeminiStructuringService
        from .video_fetcher import VideoFetcher

        credentials = CredentialStore.from_settings(settings)
        pipeline = RecipePipeline(
            page_fetcher=PageFetcher.from_settings(settings, credentials),
            video_fetcher=VideoFetcher.from_settings(settings, credentials),
            structuring=GeminiStructuringService.from_settings(settings),
            store=store,
        )
        return cls(
            pipeline=pipeline,
            queue=AdmissionQueue(settings.max_concurrent_pipelines),
            timeout_seconds=settings.request_timeout_seconds,
        )

    async def extract(
        self,
        url: str,
        options: PipelineOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """
        Validate, wait for a slot, then run the pipeline under the request timeout.

        Raises:
            ValidationError: unsafe URL, or save requested without a store
            PipelineTimeout: the whole request (queueing included) ran too long
            PipelineExhausted: no extraction path produced a recipe
        """
        url = validate_target_url(url)
        options = options or PipelineOptions()
        if options.save and self.pipeline.store is None:
            raise ValidationError("Saving requires a configured recipe store")

        logger.info(f"Request queued for {url} ({self.queue.running} running, {self.queue.waiting} waiting)")

        async def admitted() -> PipelineResult:
            async with self.queue.admit():
                logger.info(f"Processing started for {url}")
                return await self.pipeline.run(url, options, on_progress)

        try:
            return await asyncio.wait_for(admitted(), timeout=self.timeout_seconds)
        except TimeoutError:
            logger.error(f"Request for {url} timed out after {self.timeout_seconds:.0f}s")
            raise PipelineTimeout(url, self.timeout_seconds) from None
