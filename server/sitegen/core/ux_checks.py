# sitegen/core/ux_checks.py
"""
Layout heuristics for generated sites. Issues use the LintIssue shape so they
can be fed to the repair prompt, but they never fail a job.
"""
import re
from typing import List

from sitegen.models import GeneratedFile, LintIssue
from sitegen.utils.file_helpers import is_code_file

NAV_RULES = (
    "ux/navigation-required",
    "ux/mobile-navbar",
    "ux/navbar-stacking",
    "ux/responsive-breakpoints",
    "ux/mobile-overflow-guard",
)

_NAV_RE = re.compile(r"<nav[\s>]", re.IGNORECASE)
_RESPONSIVE_VISIBILITY_RE = re.compile(r"\b(?:sm|md|lg|xl|2xl):(?:hidden|block|flex|grid)\b")
_MENU_STATE_RE = re.compile(r"\b(?:aria-expanded|isMenuOpen|menuOpen|setIsMenuOpen|setMenuOpen|toggleMenu)\b")
_MENU_BUTTON_RE = re.compile(r"<button[\s\S]*?(?:menu|nav|open|close|aria-label)", re.IGNORECASE)
_PINNED_RE = re.compile(
    r"\b(?:sticky|fixed)\b[\s\S]{0,120}\btop-0\b|\btop-0\b[\s\S]{0,120}\b(?:sticky|fixed)\b", re.IGNORECASE
)
_LAYER_RE = re.compile(r"\bz-(?:[4-9]\d|[1-9]\d{2,})\b|\bz-\[\d+\]|zIndex\s*:\s*(?:[4-9]\d|[1-9]\d{2,})")
_BREAKPOINT_RE = re.compile(r"\b(?:sm|md|lg|xl|2xl):")
_OVERFLOW_RE = re.compile(r"overflow-x\s*:\s*hidden", re.IGNORECASE)


def _issue(path: str, rule: str, message: str) -> LintIssue:
    return LintIssue(path=path, line=1, column=1, rule=rule, message=message)


def collect_layout_issues(files: List[GeneratedFile]) -> List[LintIssue]:
    sources = [f for f in files if is_code_file(f.path)]
    issues: List[LintIssue] = []

    nav_files = [f for f in sources if _NAV_RE.search(f.content)]
    if not nav_files:
        issues.append(_issue(
            "app/page.tsx", "ux/navigation-required",
            "Missing navigation section. Add a responsive navbar with desktop links and mobile menu toggle.",
        ))
    else:
        nav_path = nav_files[0].path
        mobile_ready = (
            any(_RESPONSIVE_VISIBILITY_RE.search(f.content) for f in nav_files)
            and any(_MENU_STATE_RE.search(f.content) for f in nav_files)
            and any(_MENU_BUTTON_RE.search(f.content) for f in nav_files)
        )
        if not mobile_ready:
            issues.append(_issue(
                nav_path, "ux/mobile-navbar",
                "Navbar is not fully mobile-ready. Add hamburger button, menu open/close state, "
                "responsive visibility classes, and accessibility attributes.",
            ))
        pinned = any(_PINNED_RE.search(f.content) for f in nav_files)
        layered = any(_LAYER_RE.search(f.content) for f in nav_files)
        if not (pinned and layered):
            issues.append(_issue(
                nav_path, "ux/navbar-stacking",
                "Navbar/header must stay pinned at the top and above content. "
                "Use sticky/fixed + top-0 and a high z-index.",
            ))

    if not any(_BREAKPOINT_RE.search(f.content) for f in sources):
        issues.append(_issue(
            "app/page.tsx", "ux/responsive-breakpoints",
            "No responsive breakpoint classes detected. Add mobile-first responsive classes for key sections.",
        ))

    globals_css = next((f for f in files if f.path == "app/globals.css"), None)
    if globals_css is not None and not _OVERFLOW_RE.search(globals_css.content):
        issues.append(_issue(
            "app/globals.css", "ux/mobile-overflow-guard",
            "Add mobile overflow guard (html, body { max-width: 100%; overflow-x: hidden; }) "
            "to prevent horizontal scrolling.",
        ))

    return issues


def has_navigation_issue(issues: List[LintIssue]) -> bool:
    return any((i.rule or "") in NAV_RULES for i in issues)
