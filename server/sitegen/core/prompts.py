# sitegen/core/prompts.py
"""
Prompts used by the generation pipeline.

Goals:
- Force a single JSON document {files, dependencies} the backend can parse.
- Keep repair prompts narrow: the exact issues, the full current file set, and
  an instruction to return the COMPLETE project again.
"""

import json
from typing import Dict, List, Optional

from sitegen.core.ux_checks import has_navigation_issue
from sitegen.models import GeneratedFile, LintIssue
from sitegen.utils.config import REPAIR_ISSUE_LIMIT

SITE_THEMES = ("food", "fashion", "interior", "automotive", "people", "generic")

SYSTEM_PROMPT = (
    "You are an expert Next.js developer and visual designer generating complete websites.\n"
    "OUTPUT RULES:\n"
    " - Return EXACTLY one valid JSON object and nothing else. No markdown fences, no commentary.\n"
    " - Shape: {\"files\": [{\"path\": \"app/page.tsx\", \"content\": \"...\"}], \"dependencies\": {\"pkg\": \"^1.0.0\"}}\n"
    " - 'files' paths are relative (no leading '/', no '..'). Content is the full file as a string.\n"
    " - 'dependencies' maps npm package names to version ranges.\n"
    " - Escape newlines and quotes inside JSON strings properly.\n"
    " - Do not include lockfiles, node_modules or build output.\n"
)

JSON_ONLY_SYSTEM_PROMPT = "Return strict JSON only. Do not include markdown fences."


def build_user_prompt(prompt: str) -> str:
    return (
        "Build a production-ready, visually premium Next.js website for this request:\n"
        f"{prompt}\n\n"
        "STRICT IMPLEMENTATION RULES:\n"
        "- Keep output compatible with Next.js App Router + TypeScript.\n"
        "- Use Tailwind utility classes for styling.\n"
        "- Return a complete, runnable project with app/layout.tsx, app/page.tsx, app/loading.tsx, and app/globals.css.\n"
        "- In app/globals.css, if any @layer base/components/utilities is present, include matching @tailwind directives.\n"
        "- Do not use @apply in generated CSS; use utility classes directly in markup.\n"
        "- If code contains a guard like \"must be used within XProvider\", ensure app/layout.tsx wraps {children} with XProvider.\n"
        "- Do NOT add login/sign-up UI unless the request explicitly asks for user accounts.\n"
        "- All returned code must parse without TypeScript/JavaScript syntax errors.\n"
        "- Image alt text must describe the specific subject of this website, not generic stock photos.\n"
        "- Navbar must be fully functional with a mobile menu toggle and accessibility attributes.\n"
        "- Ensure mobile-first responsiveness and no horizontal scrolling.\n"
        "- Keep the header pinned at the top while scrolling, layered above content with a high z-index.\n\n"
        "DESIGN DIRECTION:\n"
        "- Clear visual direction with intentional typography scale and spacing rhythm.\n"
        "- Cohesive section flow: hero, value props, social proof, CTA, and footer.\n"
        "- Reusable components, not one giant page file.\n"
    )


THEME_SYSTEM_PROMPT = (
    "You are a website theme classifier. Analyze the user's website request and determine its PRIMARY visual theme.\n\n"
    "THEMES:\n"
    "- food: Restaurants, cafes, recipes, culinary, food delivery, catering\n"
    "- fashion: Clothing, apparel, boutiques, jewelry, fashion brands\n"
    "- interior: Furniture, home decor, architecture, interior design\n"
    "- automotive: Cars, dealerships, auto services, vehicle sales\n"
    "- people: Fitness, health, wellness, professional services, personal trainers, consultants\n"
    "- generic: Tech, blogs, SaaS, e-commerce, business sites, anything else\n\n"
    "Return ONLY one word (the theme name). No explanation."
)


def build_theme_prompt(prompt: str) -> str:
    return f"User request: \"{prompt}\"\n\nTheme:"


def build_json_repair_prompt(raw_text: str) -> str:
    return (
        "You are a JSON repair utility.\n\n"
        "TASK:\n"
        "- Convert the following malformed output into STRICT valid JSON.\n"
        "- Preserve intended data and structure as much as possible.\n"
        "- Output JSON only. No markdown. No commentary.\n"
        "- Required top-level shape:\n"
        "{\n  \"files\": [{ \"path\": \"string\", \"content\": \"string\" }],\n  \"dependencies\": { \"pkg\": \"version\" }\n}\n\n"
        f"MALFORMED INPUT:\n{raw_text}"
    )


def _files_payload(files: List[GeneratedFile]) -> str:
    return json.dumps([{"path": f.path, "content": f.content} for f in files], ensure_ascii=False)


def build_shape_repair_prompt(original_prompt: str, error: str,
                              files: List[GeneratedFile], dependencies: Dict[str, str]) -> str:
    current = json.dumps(
        {"files": [{"path": f.path, "content": f.content} for f in files], "dependencies": dependencies},
        ensure_ascii=False,
    )
    return (
        "You returned JSON that does not match the required project shape.\n\n"
        f"Original request:\n{original_prompt}\n\n"
        f"Validation error:\n{error}\n\n"
        f"Current response JSON:\n{current}\n\n"
        "Fix requirements:\n"
        "- Return strict JSON only (no markdown).\n"
        "- Shape must be: {\"files\": [{\"path\": \"app/page.tsx\", \"content\": \"...\"}], \"dependencies\": {\"pkg\": \"version\"}}\n"
        "- files must be non-empty and use safe relative paths (no absolute paths, no .. segments).\n"
        "- Include app/layout.tsx, app/page.tsx, app/loading.tsx and app/globals.css.\n"
        "- Do not include lockfiles.\n"
    )


def select_repair_issues(issues: List[LintIssue], limit: int = REPAIR_ISSUE_LIMIT) -> List[LintIssue]:
    """First `limit` issues in report order, exact duplicates removed."""
    seen = set()
    out: List[LintIssue] = []
    for i in issues:
        key = (i.path, i.line, i.column, i.rule, i.message)
        if key in seen:
            continue
        seen.add(key)
        out.append(i)
        if len(out) >= limit:
            break
    return out


def build_lint_repair_prompt(original_prompt: str,
                             files: List[GeneratedFile],
                             dependencies: Dict[str, str],
                             issues: List[LintIssue],
                             limit: Optional[int] = None) -> str:
    selected = select_repair_issues(issues, limit or REPAIR_ISSUE_LIMIT)
    issue_list = "\n".join(f"- {i.describe()}" for i in selected)
    prompt = (
        "You produced a project that failed lint/parse checks.\n\n"
        f"Original request:\n{original_prompt}\n\n"
        f"Fix these exact issues:\n{issue_list}\n\n"
        f"Current project files (JSON):\n{_files_payload(files)}\n\n"
        f"Current dependencies:\n{json.dumps(dependencies, ensure_ascii=False)}\n\n"
        "Requirements:\n"
        "- Fix only what is needed to resolve the reported errors.\n"
        "- Keep app behavior/design unchanged unless required by the fix.\n"
        "- Return COMPLETE valid JSON in the required shape with full files + dependencies.\n"
        "- Do not include markdown or explanations.\n"
    )
    if has_navigation_issue(selected):
        prompt += (
            "- Navigation quality constraints:\n"
            "  - Header/navbar must stay visible and pinned at top on mobile (sticky/fixed + top-0 + high z-index).\n"
            "  - Mobile menu must open/close cleanly, above page content, with a readable background.\n"
            "  - Prevent horizontal overflow on small screens.\n"
        )
    return prompt
