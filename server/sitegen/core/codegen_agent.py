# sitegen/core/codegen_agent.py
"""
Code Generation Agent
- Exposes:
    async def run_generation_job(event, ...) -> Optional[Dict[str, Any]]
- Runs one website generation as a sequence of named, individually retried steps:
    build-prompt -> detect-theme -> invoke-model -> parse-response
    -> validate-and-normalize -> lint-and-repair -> publish-completion
- Cancellation is checked between steps and before every model repair call.
- Progress strings go to the status reporter; the final payload is published once.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sitegen.core.errors import (
    CancellationSignal,
    ProjectShapeError,
    StepFailed,
    StructuralParseFailure,
    SyntaxFailure,
)
from sitegen.core.job_status import LocalStatusReporter
from sitegen.core.llm_client import call_text_generation
from sitegen.core.prompts import (
    JSON_ONLY_SYSTEM_PROMPT,
    SITE_THEMES,
    SYSTEM_PROMPT,
    THEME_SYSTEM_PROMPT,
    build_json_repair_prompt,
    build_lint_repair_prompt,
    build_shape_repair_prompt,
    build_theme_prompt,
    build_user_prompt,
)
from sitegen.core.response_parser import parse_project_response
from sitegen.core.scaffold import normalize_scaffold, validate_project_structure, with_default_dependencies
from sitegen.core.syntax import collect_syntax_issues, validate_syntax_or_raise
from sitegen.core.ux_checks import collect_layout_issues
from sitegen.core.validator import LintOutcome, get_default_linter, lint_and_repair
from sitegen.core.workflow import StepRunner, StepStore
from sitegen.models import CompletionPayload, GeneratedFile, GenerateEvent, LintIssue, ParsedResponse
from sitegen.utils.config import (
    AGENT_TEMPERATURES,
    AI_DETECT_THEME,
    AI_MODEL,
    JSON_REPAIR_ATTEMPTS,
    LINT_REPAIR_ATTEMPTS,
    STEP_BACKOFF_S,
    STEP_RETRIES,
    STRUCTURE_REPAIR_ATTEMPTS,
    SYNTAX_REPAIR_ATTEMPTS,
    UX_REPAIR_ATTEMPTS,
)

logger = logging.getLogger(__name__)

GenerateText = Callable[..., Awaitable[str]]


class GenerationJob:
    """State shared by the steps of one job. Step methods only read their arguments and this config."""

    def __init__(self, event: GenerateEvent, runner: StepRunner, reporter, generate_text: GenerateText, linter):
        self.event = event
        self.job_id = event.projectId
        self.runner = runner
        self.reporter = reporter
        self.generate_text = generate_text
        self.linter = linter

    async def progress(self, message: str) -> None:
        await self.reporter.progress(self.job_id, message)

    async def _call_model(self, system_prompt: str, user_prompt: str, agent: str, **kwargs) -> str:
        return await self.generate_text(
            system_prompt,
            user_prompt,
            temperature=AGENT_TEMPERATURES[agent],
            tag=f"{agent}_{self.job_id}",
            debug=self.event.debug,
            **kwargs,
        )

    # ----------------------------
    # Steps
    # ----------------------------
    async def build_prompt(self, prompt: str) -> str:
        return build_user_prompt(prompt)

    async def detect_theme(self, prompt: str) -> str:
        if not AI_DETECT_THEME:
            return "generic"
        try:
            text = await self._call_model(THEME_SYSTEM_PROMPT, build_theme_prompt(prompt), "theme", max_output_tokens=10)
        except Exception as e:
            logger.warning("[Theme] AI detection failed, using generic: %s", e)
            return "generic"
        theme = text.strip().lower()
        if theme not in SITE_THEMES:
            logger.warning("[Theme] Invalid theme returned: %r", theme)
            return "generic"
        logger.info("[Theme] AI detected: %s", theme)
        return theme

    async def invoke_model(self, user_prompt: str) -> str:
        return await self._call_model(SYSTEM_PROMPT, user_prompt, "codegen")

    async def parse_response(self, raw_text: str) -> ParsedResponse:
        """
        Recover the project from the reply. When recovery fails the model is asked
        to rewrite its own output as strict JSON, at most JSON_REPAIR_ATTEMPTS times.
        """
        working = raw_text
        last_err: Optional[StructuralParseFailure] = None
        for attempt in range(1, JSON_REPAIR_ATTEMPTS + 2):
            try:
                return parse_project_response(working)
            except StructuralParseFailure as e:
                last_err = e
                logger.error("[Parse] Attempt %d failed: %s", attempt, e)
            if attempt > JSON_REPAIR_ATTEMPTS:
                break
            await self.runner.checkpoint()
            logger.warning("[Parse] Attempting AI JSON repair pass %d...", attempt)
            working = await self._call_model(JSON_ONLY_SYSTEM_PROMPT, build_json_repair_prompt(working), "repair")

        logger.info("Raw response first 1000 chars: %s", raw_text[:1000])
        raise StructuralParseFailure(
            f"Unable to parse and normalize AI response: {last_err}",
            excerpt=getattr(last_err, "excerpt", ""),
        )

    async def validate_and_normalize(self, parsed: ParsedResponse) -> ParsedResponse:
        project = self._apply_scaffold(parsed)
        project = await self._repair_structure(project)
        project = await self._repair_syntax(project)
        project = await self._repair_layout(project)
        validate_syntax_or_raise(project.files)
        return project

    async def lint_and_repair(self, project: ParsedResponse) -> LintOutcome:
        return await lint_and_repair(
            list(project.files),
            dict(project.dependencies),
            repair_fn=self.repair_from_issues,
            linter=self.linter,
            checkpoint=self.runner.checkpoint,
            on_progress=self.progress,
            max_attempts=LINT_REPAIR_ATTEMPTS,
        )

    async def publish_completion(self, payload: Dict[str, Any]) -> bool:
        return await self.reporter.complete(self.job_id, payload)

    # ----------------------------
    # Repairs
    # ----------------------------
    def _apply_scaffold(self, parsed: ParsedResponse) -> ParsedResponse:
        deps = with_default_dependencies(parsed.dependencies)
        return ParsedResponse(files=normalize_scaffold(list(parsed.files), deps), dependencies=deps)

    async def repair_from_issues(self, files: List[GeneratedFile], dependencies: Dict[str, str],
                                 issues: List[LintIssue]) -> ParsedResponse:
        prompt = build_lint_repair_prompt(self.event.prompt, files, dependencies, issues)
        text = await self._call_model(SYSTEM_PROMPT, prompt, "repair")
        return self._apply_scaffold(parse_project_response(text))

    async def _repair_structure(self, project: ParsedResponse) -> ParsedResponse:
        for attempt in range(1, STRUCTURE_REPAIR_ATTEMPTS + 2):
            try:
                validate_project_structure(project.files)
                return project
            except ProjectShapeError as e:
                if attempt > STRUCTURE_REPAIR_ATTEMPTS:
                    raise
                logger.warning("[ShapeRepair] Attempt %d failed: %s", attempt, e)
                await self.runner.checkpoint()
                prompt = build_shape_repair_prompt(self.event.prompt, str(e), project.files, project.dependencies)
                text = await self._call_model(JSON_ONLY_SYSTEM_PROMPT, prompt, "repair")
                project = self._apply_scaffold(parse_project_response(text))
        return project

    async def _repair_syntax(self, project: ParsedResponse) -> ParsedResponse:
        for attempt in range(1, SYNTAX_REPAIR_ATTEMPTS + 2):
            issues = collect_syntax_issues(project.files)
            if not issues:
                return project
            if attempt > SYNTAX_REPAIR_ATTEMPTS:
                raise SyntaxFailure(issues[0])
            logger.warning("[SyntaxRepair] Attempt %d - %d syntax issue(s).", attempt, len(issues))
            await self.runner.checkpoint()
            await self.progress(
                f"[4/7] Resolving {len(issues)} syntax issue(s) (pass {attempt}/{SYNTAX_REPAIR_ATTEMPTS})..."
            )
            project = await self.repair_from_issues(project.files, project.dependencies, issues)
        return project

    async def _repair_layout(self, project: ParsedResponse) -> ParsedResponse:
        # layout issues never fail the job
        for attempt in range(1, UX_REPAIR_ATTEMPTS + 2):
            issues = collect_layout_issues(project.files)
            if not issues:
                return project
            if attempt > UX_REPAIR_ATTEMPTS:
                logger.warning("[UXRepair] Max attempts reached. Skipping remaining UX issues: %s",
                               issues[0].describe())
                return project
            logger.warning("[UXRepair] Attempt %d - %d UX issue(s).", attempt, len(issues))
            await self.runner.checkpoint()
            candidate = await self.repair_from_issues(project.files, project.dependencies, issues)
            if collect_syntax_issues(candidate.files):
                logger.warning("[UXRepair] Repair introduced syntax errors; keeping previous files")
                return project
            project = candidate
        return project


# ----------------------------
# Main: run one job
# ----------------------------
async def run_generation_job(event: GenerateEvent,
                             *,
                             reporter=None,
                             generate_text: Optional[GenerateText] = None,
                             linter=None,
                             step_store: Optional[StepStore] = None,
                             retries: int = STEP_RETRIES,
                             backoff_s: float = STEP_BACKOFF_S) -> Optional[Dict[str, Any]]:
    """
    Run the whole pipeline for `event`. Returns the completion payload, or None
    when the job was cancelled. Terminal failures are reported through the
    reporter and re-raised. Saved step outputs survive a failure so that running
    the same event again resumes at the failed step.
    """
    reporter = reporter or LocalStatusReporter()
    generate_text = generate_text or call_text_generation
    job_id = event.projectId
    runner = StepRunner(job_id, reporter, store=step_store, retries=retries, backoff_s=backoff_s)

    try:
        await runner.checkpoint()
        if linter is None:
            linter = await get_default_linter()
        job = GenerationJob(event, runner, reporter, generate_text, linter)

        await job.progress("[1/7] Analyzing requirements and planning project structure...")
        user_prompt = await runner.run("build-prompt", job.build_prompt, event.prompt)
        theme = await runner.run("detect-theme", job.detect_theme, event.prompt)
        await runner.checkpoint()

        await job.progress("[2/7] Generating your website code with AI (usually 20-50s)...")
        raw_text = await runner.run("invoke-model", job.invoke_model, user_prompt)
        await runner.checkpoint()

        await job.progress("[3/7] Parsing AI output and preparing project files...")
        parsed = await runner.run("parse-response", job.parse_response, raw_text)
        await runner.checkpoint()

        project = await runner.run("validate-and-normalize", job.validate_and_normalize, parsed)
        await runner.checkpoint()

        outcome = await runner.run("lint-and-repair", job.lint_and_repair, project)
        await runner.checkpoint()

        await job.progress("[6/7] Finalizing generated files and saving results...")
        payload = CompletionPayload(
            files=outcome.files,
            dependencies=outcome.dependencies,
            lint_report=outcome.report,
            model=AI_MODEL,
            original_prompt=event.prompt,
            detected_theme=theme,
        ).model_dump(by_alias=True)
        await job.progress("[7/7] Generation complete.")
        await runner.run("publish-completion", job.publish_completion, payload)
    except CancellationSignal:
        logger.info("Generation cancelled: %s", job_id)
        runner.finish()
        return None
    except Exception as e:
        cause = e.cause if isinstance(e, StepFailed) and e.cause is not None else e
        logger.error("Generation failed for %s: %s", job_id, cause)
        await reporter.fail(job_id, str(cause))
        raise

    runner.finish()
    logger.info("Generation finished for %s: %d files, lint %s",
                job_id, len(outcome.files), outcome.report.model_dump())
    return payload
