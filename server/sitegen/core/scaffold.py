# sitegen/core/scaffold.py
"""
Deterministic fix-ups applied to every generated file set.

- baseline files (package.json, tailwind config, globals.css, loading screen)
- globals.css: @tailwind directives for declared layers, no @apply, overflow guard
- provider guards: wrap {children} in app/layout.tsx with required providers
- Clerk: deprecated authMiddleware -> clerkMiddleware, awaited auth() on the server

Every rewrite is idempotent: running normalize_scaffold twice gives the same files.
"""
import json
import logging
import re
from typing import Dict, List

from sitegen.core.errors import ProjectShapeError
from sitegen.models import GeneratedFile
from sitegen.utils.file_helpers import is_code_file

logger = logging.getLogger(__name__)

REQUIRED_FILES = ("app/layout.tsx", "app/page.tsx", "app/loading.tsx", "app/globals.css")

DEFAULT_DEPENDENCIES: Dict[str, str] = {
    "next": "^15.0.0",
    "react": "^19.0.0",
    "react-dom": "^19.0.0",
    "framer-motion": "^11.11.17",
    "lucide-react": "^0.468.0",
    "react-scroll-parallax": "^3.4.5",
    "@radix-ui/react-slot": "^1.0.2",
    "class-variance-authority": "^0.7.0",
    "clsx": "^2.0.0",
    "tailwind-merge": "^2.2.0",
}

DEV_DEPENDENCIES: Dict[str, str] = {
    "@types/node": "^20",
    "@types/react": "^19",
    "@types/react-dom": "^19",
    "typescript": "^5",
    "tailwindcss": "^4",
    "@tailwindcss/postcss": "^4",
}

OVERFLOW_GUARD = """html, body {
  max-width: 100%;
  overflow-x: hidden;
}"""

TAILWIND_CONFIG = """import type { Config } from "tailwindcss";

const config: Config = {
  darkMode: ["class"],
  content: [
    "./pages/**/*.{ts,tsx}",
    "./components/**/*.{ts,tsx}",
    "./app/**/*.{ts,tsx}",
  ],
  theme: {
    extend: {
      colors: {
        border: "hsl(var(--border))",
        background: "hsl(var(--background))",
        foreground: "hsl(var(--foreground))",
      },
    },
  },
  plugins: [],
};

export default config;
"""

DEFAULT_GLOBALS_CSS = """@tailwind base;
@tailwind components;
@tailwind utilities;

@layer base {
  :root {
    --background: 0 0% 100%;
    --foreground: 222.2 84% 4.9%;
  }
  .dark {
    --background: 222.2 84% 4.9%;
    --foreground: 210 40% 98%;
  }
}

""" + OVERFLOW_GUARD + "\n"

DEFAULT_LOADING = """export default function Loading() {
  return (
    <div className="min-h-screen flex items-center justify-center bg-background">
      <div className="relative w-16 h-16">
        <div className="absolute inset-0 border-4 border-blue-500/10 rounded-full"></div>
        <div className="absolute inset-0 border-4 border-transparent border-t-blue-500 border-r-violet-500 rounded-full animate-spin"></div>
      </div>
      <p className="ml-4 text-sm text-foreground/60">Loading...</p>
    </div>
  );
}
"""

MODERN_CLERK_MIDDLEWARE = """import { clerkMiddleware } from "@clerk/nextjs/server";

export default clerkMiddleware();

export const config = {
  matcher: [
    "/((?!_next|[^?]*\\\\.(?:html?|css|js(?!on)|jpe?g|webp|png|gif|svg|ttf|woff2?|ico|csv|docx?|xlsx?|zip|webmanifest)).*)",
    "/(api|trpc)(.*)",
  ],
};
"""

MIDDLEWARE_PATHS = {"middleware.ts", "middleware.js", "src/middleware.ts", "src/middleware.js"}

_APPLY_LINE_RE = re.compile(r"^\s*@apply\s+[^;]+;\s*$\n?", re.MULTILINE)
_OVERFLOW_RE = re.compile(r"overflow-x\s*:\s*hidden", re.IGNORECASE)
_PROVIDER_EXPORT_RE = re.compile(r"export\s+(?:const|function)\s+([A-Za-z0-9_]+Provider)\b")
_PROVIDER_GUARD_RE = re.compile(r"must be used within\s+([A-Za-z0-9_]+Provider)\b", re.IGNORECASE)
_IMPORT_LINE_RE = re.compile(r"^import[^\n]*$", re.MULTILINE)
_CODE_EXT_RE = re.compile(r"\.(tsx|ts|jsx|js)$")
_SERVER_FILE_RE = re.compile(
    r"(^|/)(app/.*/page|app/.*/layout|app/.*/loading|app/.*/error|app/.*/not-found"
    r"|app/.*/template|app/.*/default|app/.*/route|middleware)\.(ts|tsx|js|jsx)$"
)
_TOP_LEVEL_APP_FILE_RE = re.compile(
    r"^app/(page|layout|loading|error|not-found|template|default|route)\.(ts|tsx|js|jsx)$"
)


def with_default_dependencies(dependencies: Dict[str, str]) -> Dict[str, str]:
    merged = dict(DEFAULT_DEPENDENCIES)
    merged.update(dependencies or {})
    return merged


# ----------------------------
# globals.css
# ----------------------------
def ensure_overflow_guard(css: str) -> str:
    if _OVERFLOW_RE.search(css):
        return css
    return css.strip() + "\n\n" + OVERFLOW_GUARD + "\n"


def ensure_tailwind_layer_directives(css: str) -> str:
    missing = []
    for layer in ("base", "components", "utilities"):
        has_layer = re.search(r"@layer\s+%s\b" % layer, css)
        has_directive = re.search(r"@tailwind\s+%s\s*;" % layer, css)
        if has_layer and not has_directive:
            missing.append(f"@tailwind {layer};")
    if missing:
        css = "\n".join(missing) + "\n\n" + css
    # tailwind fails the build on unknown @apply tokens, inline utilities are used instead
    css = _APPLY_LINE_RE.sub("", css)
    return ensure_overflow_guard(css)


# ----------------------------
# Baseline files
# ----------------------------
def _package_json(dependencies: Dict[str, str]) -> str:
    manifest = {
        "name": "generated-nextjs-app",
        "version": "0.1.0",
        "private": True,
        "scripts": {
            "dev": "next dev",
            "build": "next build",
            "start": "next start",
            "lint": "next lint",
        },
        "dependencies": dependencies,
        "devDependencies": DEV_DEPENDENCIES,
    }
    return json.dumps(manifest, indent=2)


def ensure_required_files(files: List[GeneratedFile], dependencies: Dict[str, str]) -> List[GeneratedFile]:
    out = list(files)
    existing = {f.path for f in out}

    if "package.json" not in existing:
        out.append(GeneratedFile(path="package.json", content=_package_json(dependencies)))
    if "tailwind.config.ts" not in existing:
        out.append(GeneratedFile(path="tailwind.config.ts", content=TAILWIND_CONFIG))
    if "app/globals.css" not in existing:
        out.append(GeneratedFile(path="app/globals.css", content=DEFAULT_GLOBALS_CSS))
    else:
        out = [
            GeneratedFile(path=f.path, content=ensure_tailwind_layer_directives(f.content))
            if f.path == "app/globals.css" else f
            for f in out
        ]
    if "app/loading.tsx" not in existing:
        out.append(GeneratedFile(path="app/loading.tsx", content=DEFAULT_LOADING))

    added = [f.path for f in out if f.path not in existing]
    if added:
        logger.info("Scaffold added missing files: %s", added)
    return out


# ----------------------------
# Provider guards
# ----------------------------
def _module_path(path: str) -> str:
    return "@/" + _CODE_EXT_RE.sub("", path)


def _ensure_import(content: str, provider: str, provider_path: str) -> str:
    already = re.search(
        r"import\s+\{[^}]*\b%s\b[^}]*\}\s+from\s+['\"][^'\"]+['\"];?" % re.escape(provider), content
    )
    if already:
        return content
    import_line = f'import {{ {provider} }} from "{_module_path(provider_path)}";'
    imports = list(_IMPORT_LINE_RE.finditer(content))
    if not imports:
        return import_line + "\n" + content
    at = imports[-1].end()
    return content[:at] + "\n" + import_line + content[at:]


def apply_provider_guards(files: List[GeneratedFile]) -> List[GeneratedFile]:
    layout = next((f for f in files if f.path == "app/layout.tsx"), None)
    if layout is None:
        return files

    provider_paths: Dict[str, str] = {}
    required: List[str] = []
    for f in files:
        if not is_code_file(f.path):
            continue
        for m in _PROVIDER_EXPORT_RE.finditer(f.content):
            provider_paths[m.group(1)] = f.path
        for m in _PROVIDER_GUARD_RE.finditer(f.content):
            if m.group(1) not in required:
                required.append(m.group(1))
    if not required:
        return files

    content = layout.content
    missing: List[str] = []
    for provider in required:
        if re.search(r"<%s\b" % re.escape(provider), content):
            continue
        provider_path = provider_paths.get(provider)
        if not provider_path:
            continue
        content = _ensure_import(content, provider, provider_path)
        missing.append(provider)

    if not missing or "{children}" not in content:
        return files

    wrapped = "{children}"
    for provider in reversed(missing):
        wrapped = f"<{provider}>{wrapped}</{provider}>"
    content = content.replace("{children}", wrapped, 1)
    logger.info("Wrapped layout children with providers: %s", missing)
    return [GeneratedFile(path=f.path, content=content) if f is layout else f for f in files]


# ----------------------------
# Clerk auth
# ----------------------------
def normalize_clerk_middleware(files: List[GeneratedFile]) -> List[GeneratedFile]:
    out = []
    for f in files:
        if f.path not in MIDDLEWARE_PATHS:
            out.append(f)
            continue
        content = f.content
        if "authMiddleware" in content and "@clerk/nextjs" in content:
            logger.info("Replacing deprecated authMiddleware in %s", f.path)
            content = MODERN_CLERK_MIDDLEWARE
        elif "clerkMiddleware" in content and "auth().protect()" in content:
            content = content.replace("auth().protect()", "await auth.protect()")
            content = re.sub(r"clerkMiddleware\(\s*\(([^)]*)\)\s*=>", r"clerkMiddleware(async (\1) =>", content)
        out.append(f if content == f.content else GeneratedFile(path=f.path, content=content))
    return out


def _is_server_file(path: str) -> bool:
    return bool(_SERVER_FILE_RE.search(path) or _TOP_LEVEL_APP_FILE_RE.match(path))


def normalize_clerk_server_auth(files: List[GeneratedFile]) -> List[GeneratedFile]:
    out = []
    for f in files:
        if not is_code_file(f.path) or not _is_server_file(f.path):
            out.append(f)
            continue
        content = f.content
        if re.search(r"\bauth\s*\(", content):
            content = re.sub(r"from\s+[\"']@clerk/nextjs[\"']", 'from "@clerk/nextjs/server"', content)
            content = re.sub(
                r"\b(const|let|var)\s+(\{[^}]*\})\s*=\s*auth\(\s*\)\s*;",
                r"\1 \2 = await auth();",
                content,
            )
        out.append(f if content == f.content else GeneratedFile(path=f.path, content=content))
    return out


# ----------------------------
# Entry points
# ----------------------------
def normalize_scaffold(files: List[GeneratedFile], dependencies: Dict[str, str]) -> List[GeneratedFile]:
    files = ensure_required_files(files, dependencies)
    files = normalize_clerk_middleware(files)
    files = normalize_clerk_server_auth(files)
    return apply_provider_guards(files)


def validate_project_structure(files: List[GeneratedFile]) -> None:
    existing = {f.path for f in files}
    missing = [p for p in REQUIRED_FILES if p not in existing]
    if missing:
        raise ProjectShapeError(f"Generated project is missing required files: {', '.join(missing)}")
