import re
from typing import Optional

CODE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")

LOCKFILES = {"package-lock.json", "pnpm-lock.yaml", "yarn.lock", "bun.lockb", "bun.lock"}
BLOCKED_PREFIXES = ("node_modules/", ".next/")

_DRIVE_RE = re.compile(r"^[a-zA-Z]:/")


def is_code_file(path: str) -> bool:
    return path.lower().endswith(CODE_EXTENSIONS)


# --- Helper: safe path normalize & reject traversal/abs paths ---
def normalize_file_path(p: str) -> Optional[str]:
    """
    Turn a model-emitted path into a project-relative forward-slash path.
    Returns None for anything that must not be written into the project:
    absolute or drive paths, traversal, control characters, build output,
    vendored modules and lockfiles.
    """
    if not isinstance(p, str):
        return None
    p = p.strip().replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    if not p:
        return None
    if p.startswith("/") or _DRIVE_RE.match(p):
        return None
    if "\0" in p or "\n" in p or "\r" in p:
        return None
    if ".." in p.split("/"):
        return None
    if p.startswith(BLOCKED_PREFIXES):
        return None
    if p.rsplit("/", 1)[-1] in LOCKFILES:
        return None
    return p
