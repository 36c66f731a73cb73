import pytest

from conftest import PAGE_TSX, FakeModel, page_with_markers, project_reply, site_files
from sitegen.core.codegen_agent import run_generation_job
from sitegen.core.errors import LintFailure, StepFailed
from sitegen.core.prompts import JSON_ONLY_SYSTEM_PROMPT, SYSTEM_PROMPT
from sitegen.core.workflow import StepStore
from sitegen.models import GenerateEvent
from sitegen.utils.config import LINT_REPAIR_ATTEMPTS, PROGRESS_TTL_S

pytestmark = pytest.mark.anyio

BROKEN_PAGE = "export default function Home() { return <main className=\"px-4 md:px-8\">; }\n"


@pytest.fixture
def event():
    return GenerateEvent(prompt="A website for my family pasta restaurant", userId="user-1", projectId="job-1")


@pytest.fixture
def run(reporter, linter, step_store):
    async def _run(event, model, retries=1):
        return await run_generation_job(event, reporter=reporter, generate_text=model, linter=linter,
                                        step_store=step_store, retries=retries, backoff_s=0)
    return _run


async def test_generates_and_publishes(event, run, registry, step_store):
    model = FakeModel([project_reply()], theme="food")

    payload = await run(event, model)

    files = {f["path"]: f["content"] for f in payload["files"]}
    assert {"app/layout.tsx", "app/page.tsx", "app/loading.tsx", "app/globals.css", "package.json"} <= set(files)
    assert "overflow-x: hidden" in files["app/globals.css"]
    assert payload["dependencies"]["clsx"] == "^2.1.0"
    assert payload["dependencies"]["next"]
    assert payload["lintReport"] == {"passed": True, "errors": 0, "warnings": 0}
    assert payload["originalPrompt"] == event.prompt
    assert payload["detectedTheme"] == "food"
    assert payload["model"]

    status, body = registry.poll("job-1")
    assert (status, body) == (200, payload)
    assert registry.snapshot("job-1").progress_log == [
        "[1/7] Analyzing requirements and planning project structure...",
        "[2/7] Generating your website code with AI (usually 20-50s)...",
        "[3/7] Parsing AI output and preparing project files...",
        "[5/7] Running lint and quality checks on all files...",
        "[6/7] Finalizing generated files and saving results...",
        "[7/7] Generation complete.",
    ]
    assert len(model.generation_calls) == 1
    assert model.generation_calls[0]["system_prompt"] == SYSTEM_PROMPT
    assert event.prompt in model.generation_calls[0]["user_prompt"]
    assert step_store.steps_for("job-1") == []


async def test_unknown_theme_falls_back_to_generic(event, run):
    payload = await run(event, FakeModel([project_reply()], theme="spaceships"))
    assert payload["detectedTheme"] == "generic"


async def test_lint_errors_are_repaired(event, run, registry):
    model = FakeModel([
        project_reply(site_files(page_with_markers(errors=3))),
        project_reply(site_files(page_with_markers(errors=1))),
        project_reply(site_files()),
    ])

    payload = await run(event, model)

    assert payload["lintReport"]["passed"] is True
    files = {f["path"]: f["content"] for f in payload["files"]}
    assert files["app/page.tsx"] == PAGE_TSX
    repair_prompts = [c["user_prompt"] for c in model.generation_calls[1:]]
    assert len(repair_prompts) == 2
    assert all("Fix these exact issues:" in p for p in repair_prompts)
    progress = registry.snapshot("job-1").progress_log
    assert "[5/7] Fixing 3 code issue(s) (pass 1/2)..." in progress
    assert "[5/7] Fixing 1 code issue(s) (pass 2/2)..." in progress


async def test_malformed_reply_goes_through_json_repair(event, run):
    model = FakeModel(["Sure! Here is your website, enjoy.", project_reply()])

    payload = await run(event, model)

    assert payload["lintReport"]["passed"]
    assert model.generation_calls[1]["system_prompt"] == JSON_ONLY_SYSTEM_PROMPT
    assert "Sure! Here is your website" in model.generation_calls[1]["user_prompt"]


async def test_syntax_errors_are_repaired(event, run, registry):
    model = FakeModel([project_reply(site_files(BROKEN_PAGE)), project_reply()])

    payload = await run(event, model)

    files = {f["path"]: f["content"] for f in payload["files"]}
    assert files["app/page.tsx"] == PAGE_TSX
    assert "[4/7] Resolving 1 syntax issue(s) (pass 1/2)..." in registry.snapshot("job-1").progress_log


async def test_failed_model_call_is_retried(event, run):
    model = FakeModel([RuntimeError("503 model overloaded"), project_reply()])
    payload = await run(event, model, retries=2)
    assert payload["lintReport"]["passed"]


async def test_terminal_failure_is_reported(event, run, registry):
    model = FakeModel(["garbage", "still garbage", "more garbage"])

    with pytest.raises(StepFailed) as exc:
        await run(event, model)

    assert exc.value.step == "parse-response"
    status, body = registry.poll("job-1")
    assert status == 202
    assert body["completed"] is False
    assert body["error"].startswith("Unable to parse and normalize AI response")


async def test_rerun_resumes_at_failed_step(event, run, registry, step_store):
    with pytest.raises(StepFailed):
        await run(event, FakeModel(["garbage", "still garbage", "more garbage"]))
    assert set(step_store.steps_for("job-1")) == {"build-prompt", "detect-theme", "invoke-model"}

    model = FakeModel([project_reply()])
    payload = await run(event, model)

    # the saved "garbage" reply is parsed again and repaired; nothing earlier re-runs
    assert len(model.calls) == 1
    assert model.calls[0]["system_prompt"] == JSON_ONLY_SYSTEM_PROMPT
    assert registry.poll("job-1") == (200, payload)


async def test_cancelled_before_start(event, run, registry):
    registry.request_cancellation("job-1")
    model = FakeModel([project_reply()])

    assert await run(event, model) is None
    assert model.calls == []
    assert registry.poll("job-1") == (200, {"cancelled": True})
    assert registry.poll("job-1") == (202, {"completed": False})


async def test_cancelled_while_model_is_running(event, run, registry, step_store):
    model = FakeModel([project_reply()])

    async def cancel_during_generation(system_prompt, user_prompt, **kwargs):
        reply = await model(system_prompt, user_prompt, **kwargs)
        if system_prompt == SYSTEM_PROMPT:
            registry.request_cancellation("job-1")
        return reply

    assert await run(event, cancel_during_generation) is None
    assert registry.poll("job-1") == (200, {"cancelled": True})
    assert registry.snapshot("job-1").completion is None
    assert step_store.steps_for("job-1") == []


async def test_unfixable_syntax_fails_before_lint(event, run, registry, linter):
    broken = project_reply(site_files(BROKEN_PAGE))
    model = FakeModel([broken, broken, broken])

    with pytest.raises(StepFailed) as exc:
        await run(event, model)

    assert exc.value.step == "validate-and-normalize"
    assert linter.linted == []
    error = registry.poll("job-1")[1]["error"]
    assert error.startswith("Generated code contains syntax errors. First issue: app/page.tsx:")


async def test_lint_repairs_stay_bounded_with_default_step_retries(event, reporter, linter, step_store, registry):
    stubborn = project_reply(site_files(page_with_markers(errors=1)))
    model = FakeModel([stubborn] * 10)

    with pytest.raises(StepFailed) as exc:
        await run_generation_job(event, reporter=reporter, generate_text=model, linter=linter,
                                 step_store=step_store, backoff_s=0)

    assert exc.value.step == "lint-and-repair"
    assert isinstance(exc.value.cause, LintFailure)
    # one generation call plus the bounded repairs, never repeated by the step retry
    assert len(model.generation_calls) == 1 + LINT_REPAIR_ATTEMPTS
    assert registry.poll("job-1")[1]["error"].startswith("Lint errors remain after repair")


async def test_saved_steps_of_failed_job_expire(event, reporter, linter, registry, clock):
    store = StepStore(clock=clock)
    with pytest.raises(StepFailed):
        await run_generation_job(event, reporter=reporter, generate_text=FakeModel(["garbage"] * 3),
                                 linter=linter, step_store=store, retries=1, backoff_s=0)
    assert "invoke-model" in store.steps_for("job-1")

    clock.advance(PROGRESS_TTL_S + 1)
    assert store.steps_for("job-1") == []

    model = FakeModel([project_reply()])
    payload = await run_generation_job(event, reporter=reporter, generate_text=model, linter=linter,
                                       step_store=store, retries=1, backoff_s=0)
    assert payload["lintReport"]["passed"]
    assert model.generation_calls[0]["system_prompt"] == SYSTEM_PROMPT
