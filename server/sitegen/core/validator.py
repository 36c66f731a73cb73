# sitegen/core/validator.py
import asyncio
import json
import logging
import shutil
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sitegen.core.errors import LintFailure, LintToolError
from sitegen.core.syntax import validate_syntax_or_raise
from sitegen.models import GeneratedFile, LintIssue, LintReport, ParsedResponse
from sitegen.utils.config import (
    ESLINT_CONFIG_PATH,
    LINT_BATCH_SIZE,
    LINT_REPAIR_ATTEMPTS,
    VALIDATOR_TIMEOUT,
)
from sitegen.utils.file_helpers import is_code_file

logger = logging.getLogger(__name__)

# errors block completion, warnings are only counted
LINT_RULES: Dict[str, Any] = {
    "no-unused-vars": "error",
    "no-undef": "error",
    "no-console": "warn",
    "no-empty": "error",
    "eqeqeq": "error",
    "no-var": "error",
    "prefer-const": "error",
    "semi": ["error", "always"],
}

RepairFn = Callable[[List[GeneratedFile], Dict[str, str], List[LintIssue]], Awaitable[ParsedResponse]]
Checkpoint = Callable[[], Awaitable[None]]
ProgressFn = Callable[[str], Awaitable[None]]


@dataclass
class FileLintResult:
    errors: int = 0
    warnings: int = 0
    issues: List[LintIssue] = field(default_factory=list)


@dataclass
class LintOutcome:
    files: List[GeneratedFile]
    dependencies: Dict[str, str]
    report: LintReport
    issues: List[LintIssue]
    repairs: int = 0


# ----------------------------
# Local validators
# ----------------------------
async def _run_cmd(cmd: List[str], stdin_text: Optional[str] = None,
                   timeout: int = VALIDATOR_TIMEOUT) -> Tuple[int, str, str]:
    """
    Run a command and return (returncode, stdout, stderr).
    """
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await asyncio.wait_for(
            proc.communicate(stdin_text.encode("utf-8") if stdin_text is not None else None),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return 124, "", f"validator timeout after {timeout}s"
    return proc.returncode, out.decode("utf-8", errors="replace"), err.decode("utf-8", errors="replace")


def _parse_eslint_output(path: str, stdout: str) -> FileLintResult:
    """
    Convert `eslint --format json` output for a single stdin file.
    Only error-severity messages become issues.
    """
    try:
        results = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise LintToolError(f"unreadable eslint output for {path}: {e}") from e
    if not isinstance(results, list) or not results:
        raise LintToolError(f"empty eslint output for {path}")

    entry = results[0]
    issues = [
        LintIssue(
            path=path,
            line=m.get("line") or 1,
            column=m.get("column") or 1,
            rule=m.get("ruleId"),
            message=m.get("message", ""),
        )
        for m in entry.get("messages", [])
        if m.get("severity") == 2
    ]
    return FileLintResult(
        errors=int(entry.get("errorCount", len(issues))),
        warnings=int(entry.get("warningCount", 0)),
        issues=issues,
    )


class ESLintLinter:
    """Runs eslint through npx, one process per file, source passed on stdin."""

    skipped = False

    def __init__(self, config_path: Optional[str] = ESLINT_CONFIG_PATH, timeout: int = VALIDATOR_TIMEOUT):
        self.config_path = config_path
        self.timeout = timeout

    def build_command(self, path: str) -> List[str]:
        cmd = ["npx", "--no-install", "eslint", "--stdin", "--stdin-filename", path, "--format", "json"]
        if self.config_path:
            cmd += ["--config", self.config_path]
        else:
            cmd.append("--no-config-lookup")
            for rule, level in LINT_RULES.items():
                cmd += ["--rule", json.dumps({rule: level})]
        return cmd

    async def is_available(self) -> bool:
        if not shutil.which("npx"):
            return False
        code, _, _ = await _run_cmd(["npx", "--no-install", "eslint", "--version"], timeout=self.timeout)
        return code == 0

    async def lint(self, file: GeneratedFile) -> FileLintResult:
        code, out, err = await _run_cmd(self.build_command(file.path), stdin_text=file.content, timeout=self.timeout)
        # eslint exits 1 when it found errors, 2 on a crash
        if code not in (0, 1):
            raise LintToolError(f"eslint exited with {code}: {(err or out).strip()[:500]}")
        return _parse_eslint_output(file.path, out)


class SkippedLinter:
    """Stand-in used when eslint is not installed; every file passes."""

    skipped = True

    async def lint(self, file: GeneratedFile) -> FileLintResult:
        return FileLintResult()


async def get_default_linter():
    linter = ESLintLinter()
    if await linter.is_available():
        return linter
    logger.warning("eslint not found; skipping lint checks")
    return SkippedLinter()


# ----------------------------
# Public: lint_all_files
# ----------------------------
async def _lint_one(linter, file: GeneratedFile) -> FileLintResult:
    try:
        logger.debug("Linting %s...", file.path)
        return await linter.lint(file)
    except Exception as e:
        logger.error("Failed to lint %s: %s", file.path, e)
        return FileLintResult(
            errors=1,
            issues=[LintIssue(path=file.path, line=1, column=1, rule=None,
                              message=f"Lint execution failed: {e}")],
        )


async def lint_all_files(files: List[GeneratedFile], linter,
                         batch_size: int = LINT_BATCH_SIZE) -> Tuple[List[GeneratedFile], LintReport, List[LintIssue]]:
    """
    Lint every source file, `batch_size` files at a time. A batch is awaited
    completely before the next one starts. Non-code files are returned untouched.
    """
    code_files = [f for f in files if is_code_file(f.path)]
    errors = 0
    warnings = 0
    issues: List[LintIssue] = []

    for i in range(0, len(code_files), batch_size):
        batch = code_files[i:i + batch_size]
        results = await asyncio.gather(*(_lint_one(linter, f) for f in batch))
        for r in results:
            errors += r.errors
            warnings += r.warnings
            issues.extend(r.issues)

    report = LintReport(passed=errors == 0, errors=errors, warnings=warnings)
    return list(files), report, issues


# ----------------------------
# Public: lint_and_repair
# ----------------------------
async def lint_and_repair(files: List[GeneratedFile],
                          dependencies: Dict[str, str],
                          *,
                          repair_fn: RepairFn,
                          linter,
                          checkpoint: Optional[Checkpoint] = None,
                          on_progress: Optional[ProgressFn] = None,
                          max_attempts: int = LINT_REPAIR_ATTEMPTS,
                          batch_size: int = LINT_BATCH_SIZE) -> LintOutcome:
    """
    Lint, and while errors remain ask the model for a full corrected file set,
    at most `max_attempts` times. Each repaired set must pass the syntax
    validator before it is linted again (SyntaxFailure propagates).

    Raises LintFailure with the first remaining issue when the bound is hit.
    """
    if on_progress:
        await on_progress("[5/7] Running lint and quality checks on all files...")
    files, report, issues = await lint_all_files(files, linter, batch_size)
    repairs = 0

    while report.errors > 0:
        if repairs >= max_attempts:
            first = issues[0] if issues else LintIssue(path="<unknown>", message="lint errors remain")
            logger.error("Lint repair exhausted after %d attempt(s): %s", repairs, first.describe())
            raise LintFailure(first, remaining=report.errors)

        if checkpoint:
            await checkpoint()
        repairs += 1
        logger.warning("[LintRepair] Attempt %d - %d error(s).", repairs, report.errors)
        if on_progress:
            await on_progress(f"[5/7] Fixing {report.errors} code issue(s) (pass {repairs}/{max_attempts})...")

        repaired = await repair_fn(files, dependencies, issues)
        files = list(repaired.files)
        dependencies = dict(repaired.dependencies)
        validate_syntax_or_raise(files)
        files, report, issues = await lint_all_files(files, linter, batch_size)

    logger.info("Lint passed after %d repair(s) (%d warning(s))", repairs, report.warnings)
    return LintOutcome(files=files, dependencies=dependencies, report=report, issues=issues, repairs=repairs)
