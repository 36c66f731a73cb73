"""Test configuration: import path, async backend and pipeline fakes."""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
APP_DIR = ROOT / "server"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import asyncio  # noqa: E402
import json  # noqa: E402
from typing import Dict, List  # noqa: E402

import pytest  # noqa: E402

from sitegen.core.job_status import InMemoryTTLStore, JobStatusRegistry, LocalStatusReporter  # noqa: E402
from sitegen.core.prompts import THEME_SYSTEM_PROMPT  # noqa: E402
from sitegen.core.validator import FileLintResult  # noqa: E402
from sitegen.core.workflow import StepStore  # noqa: E402
from sitegen.models import GeneratedFile, LintIssue  # noqa: E402

LINT_ERROR_MARKER = "// lint-error"
LINT_WARNING_MARKER = "// lint-warning"

LAYOUT_TSX = """import "./globals.css";
import Navbar from "../components/Navbar";

export default function RootLayout({ children }: { children: React.ReactNode }) {
  return (
    <html lang="en">
      <body>
        <Navbar />
        {children}
      </body>
    </html>
  );
}
"""

NAVBAR_TSX = """"use client";
import { useState } from "react";

export default function Navbar() {
  const [isMenuOpen, setIsMenuOpen] = useState(false);
  return (
    <nav className="sticky top-0 z-50 bg-white">
      <div className="hidden md:flex gap-4">
        <a href="#about">About</a>
      </div>
      <button aria-label="Toggle menu" aria-expanded={isMenuOpen} onClick={() => setIsMenuOpen(!isMenuOpen)} className="md:hidden">
        Menu
      </button>
    </nav>
  );
}
"""

PAGE_TSX = """export default function Home() {
  return (
    <main className="px-4 md:px-8">
      <h1 className="text-3xl lg:text-5xl">Fresh pasta, made daily</h1>
    </main>
  );
}
"""

GLOBALS_CSS = """@tailwind base;
@tailwind components;
@tailwind utilities;
"""


def site_files(page: str = PAGE_TSX) -> List[Dict[str, str]]:
    return [
        {"path": "app/layout.tsx", "content": LAYOUT_TSX},
        {"path": "app/page.tsx", "content": page},
        {"path": "components/Navbar.tsx", "content": NAVBAR_TSX},
        {"path": "app/globals.css", "content": GLOBALS_CSS},
    ]


def project_reply(files=None, dependencies=None) -> str:
    return json.dumps({"files": files if files is not None else site_files(),
                       "dependencies": dependencies or {"clsx": "^2.1.0"}})


def page_with_markers(errors: int = 0, warnings: int = 0) -> str:
    lines = [LINT_ERROR_MARKER] * errors + [LINT_WARNING_MARKER] * warnings
    return "\n".join(lines + [PAGE_TSX])


class FakeModel:
    """Stands in for the Gemini call. Theme requests get `theme`, everything else pops a reply."""

    def __init__(self, replies=None, theme: str = "food"):
        self.replies = list(replies or [])
        self.theme = theme
        self.calls: List[Dict] = []

    @property
    def generation_calls(self):
        return [c for c in self.calls if c["system_prompt"] != THEME_SYSTEM_PROMPT]

    async def __call__(self, system_prompt, user_prompt, **kwargs):
        self.calls.append({"system_prompt": system_prompt, "user_prompt": user_prompt, **kwargs})
        if system_prompt == THEME_SYSTEM_PROMPT:
            return self.theme
        if not self.replies:
            raise AssertionError("unexpected model call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class MarkerLinter:
    """Counts marker comments as lint errors/warnings; tracks concurrent invocations."""

    skipped = False

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.linted: List[str] = []

    async def lint(self, file: GeneratedFile) -> FileLintResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.linted.append(file.path)
            issues = [
                LintIssue(path=file.path, line=n, column=1, rule="no-undef", message="'x' is not defined.")
                for n, line in enumerate(file.content.splitlines(), start=1)
                if line.strip() == LINT_ERROR_MARKER
            ]
            warnings = sum(1 for line in file.content.splitlines() if line.strip() == LINT_WARNING_MARKER)
            return FileLintResult(errors=len(issues), warnings=warnings, issues=issues)
        finally:
            self.in_flight -= 1


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return JobStatusRegistry(store=InMemoryTTLStore(clock=clock))


@pytest.fixture
def reporter(registry):
    return LocalStatusReporter(registry)


@pytest.fixture
def step_store():
    return StepStore()


@pytest.fixture
def linter():
    return MarkerLinter()
