# sitegen/core/response_parser.py
"""
Recover a project document from the model's free-text reply.

The model is told to answer with bare JSON but regularly wraps it in a
markdown fence, leaves trailing commas, puts raw newlines inside string
values, double-encodes the whole document or over-escapes quotes. Each
recovery stage below is a plain ``str -> str`` function; ``parse_structured_document``
applies them cumulatively to every candidate text and accepts the first
candidate that decodes to a JSON object.
"""
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sitegen.core.errors import ProjectShapeError, StructuralParseFailure
from sitegen.models import GeneratedFile, ParsedResponse
from sitegen.utils.config import MAX_FILE_CONTENT_LENGTH, MAX_FILE_COUNT
from sitegen.utils.file_helpers import normalize_file_path

logger = logging.getLogger(__name__)

ERROR_WINDOW = 120
EDGE_PREVIEW = 500


# ----------------------------
# Cascade stages
# ----------------------------
def strip_code_fence(text: str) -> str:
    """Remove a leading ```/```json fence line and the closing fence, if present."""
    t = text.strip()
    if not t.startswith("```"):
        return t
    newline = t.find("\n")
    if newline == -1:
        return t.strip("`").strip()
    body = t[newline + 1:]
    body = body.rstrip()
    if body.endswith("```"):
        body = body[:-3]
    return body.strip()


def extract_brace_block(text: str) -> str:
    """Substring from the first '{' to the last '}' (whole text when there is none)."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return text
    return text[start:end + 1]


def unwrap_double_encoded(text: str) -> Optional[str]:
    """
    If the text is a JSON string literal, return the string it encodes.
    Returns None when the text is not a quoted literal or does not decode to a string.
    """
    t = text.strip()
    if len(t) < 2 or not (t.startswith('"') and t.endswith('"')):
        return None
    try:
        inner = json.loads(t)
    except json.JSONDecodeError:
        return None
    return inner if isinstance(inner, str) else None


def strip_trailing_commas(text: str) -> str:
    """Drop commas that are directly followed (modulo whitespace) by '}' or ']' outside strings."""
    out: List[str] = []
    in_string = False
    escaping = False
    n = len(text)
    for i, ch in enumerate(text):
        if in_string:
            out.append(ch)
            if escaping:
                escaping = False
            elif ch == "\\":
                escaping = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            continue
        if ch == ",":
            j = i + 1
            while j < n and text[j] in " \t\r\n":
                j += 1
            if j < n and text[j] in "}]":
                continue
        out.append(ch)
    return "".join(out)


def escape_control_chars_in_strings(text: str) -> str:
    """Re-escape raw control characters that appear inside string literals."""
    out: List[str] = []
    in_string = False
    escaping = False
    for ch in text:
        if not in_string:
            out.append(ch)
            if ch == '"':
                in_string = True
            continue
        if escaping:
            out.append(ch)
            escaping = False
            continue
        if ch == "\\":
            out.append(ch)
            escaping = True
            continue
        if ch == '"':
            out.append(ch)
            in_string = False
            continue
        if ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        elif ord(ch) < 0x20:
            out.append("\\u%04x" % ord(ch))
        else:
            out.append(ch)
    return "".join(out)


def normalize_escapes_outside_strings(text: str) -> str:
    """
    Undo over-escaping outside string literals.

    ``\\n``, ``\\r`` and ``\\t`` between tokens become a space. An escaped quote
    outside a string becomes a plain quote that opens a string; such a string is
    closed again by the next escaped quote.
    """
    out: List[str] = []
    in_string = False
    opened_by_escape = False
    escaping = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < n else ""
        if not in_string:
            if ch == "\\" and nxt in ("n", "r", "t"):
                out.append(" ")
                i += 2
                continue
            if ch == "\\" and nxt == '"':
                out.append('"')
                in_string = True
                opened_by_escape = True
                i += 2
                continue
            out.append(ch)
            if ch == '"':
                in_string = True
                opened_by_escape = False
            i += 1
            continue

        if escaping:
            out.append(ch)
            escaping = False
            i += 1
            continue
        if ch == "\\":
            if opened_by_escape and nxt == '"':
                out.append('"')
                in_string = False
                i += 2
                continue
            out.append(ch)
            escaping = True
            i += 1
            continue
        if ch == '"':
            in_string = False
        out.append(ch)
        i += 1
    return "".join(out)


REPAIR_STAGES: List[Tuple[str, Callable[[str], str]]] = [
    ("trailing-commas", strip_trailing_commas),
    ("control-chars", escape_control_chars_in_strings),
    ("escaped-tokens", normalize_escapes_outside_strings),
]


# ----------------------------
# Cascade driver
# ----------------------------
def _try_decode(candidate: str) -> Tuple[Optional[Dict[str, Any]], Optional[json.JSONDecodeError]]:
    err: Optional[json.JSONDecodeError] = None
    try:
        value = json.loads(candidate)
        if isinstance(value, dict):
            return value, None
    except json.JSONDecodeError as e:
        err = e

    unwrapped = unwrap_double_encoded(candidate)
    if unwrapped is not None:
        try:
            inner = json.loads(unwrapped)
        except json.JSONDecodeError:
            inner = None
        if isinstance(inner, dict):
            return inner, None

    if err is None:
        err = json.JSONDecodeError("Expected a JSON object", candidate, 0)
    return None, err


def _error_excerpt(text: str, pos: int) -> str:
    start = max(0, pos - ERROR_WINDOW)
    end = min(len(text), pos + ERROR_WINDOW)
    return text[start:end]


def parse_structured_document(text: str) -> Dict[str, Any]:
    """
    Run the recovery cascade over ``text`` and return the decoded object.
    Raises StructuralParseFailure with a windowed excerpt when every stage fails.
    """
    if not isinstance(text, str):
        raise StructuralParseFailure("Model reply is not text")

    stripped = strip_code_fence(text)
    candidates: List[str] = []
    for c in (stripped, extract_brace_block(stripped)):
        if c not in candidates:
            candidates.append(c)

    last_err: Optional[json.JSONDecodeError] = None
    last_text = stripped
    for i, c in enumerate(candidates):
        doc, err = _try_decode(c)
        if doc is not None:
            if i > 0:
                logger.debug("Parsed model reply from brace-delimited block")
            return doc
        last_err, last_text = err, c

    logger.warning("Initial JSON parse failed, attempting repairs...")
    working = list(candidates)
    for stage_name, stage in REPAIR_STAGES:
        for i, c in enumerate(working):
            fixed = stage(c)
            working[i] = fixed
            doc, err = _try_decode(fixed)
            if doc is not None:
                logger.info("Recovered model reply with stage '%s'", stage_name)
                return doc
            last_err, last_text = err, fixed

    pos = last_err.pos if last_err is not None else 0
    excerpt = _error_excerpt(last_text, pos)
    logger.error("JSON parse error near: %s", excerpt)
    logger.error("Failed to parse AI response as JSON: %s", last_err)
    logger.error("First %d chars: %s", EDGE_PREVIEW, last_text[:EDGE_PREVIEW])
    logger.error("Last %d chars: %s", EDGE_PREVIEW, last_text[-EDGE_PREVIEW:])
    raise StructuralParseFailure(f"Failed to parse AI response: {last_err}", excerpt=excerpt)


# ----------------------------
# Project shape
# ----------------------------
def _coerce_content(content: Any) -> Optional[str]:
    if isinstance(content, str):
        return content
    # package.json and friends are sometimes emitted as nested objects
    if isinstance(content, (dict, list)):
        return json.dumps(content, indent=2)
    return None


def _normalize_dependencies(raw: Any) -> Dict[str, str]:
    deps: Dict[str, str] = {}
    if isinstance(raw, dict):
        for name, version in raw.items():
            if not isinstance(name, str) or not name.strip():
                continue
            if not isinstance(version, str) or not version.strip():
                continue
            deps[name.strip()] = version.strip()
    elif isinstance(raw, list):
        # names only
        for name in raw:
            if isinstance(name, str) and name.strip():
                deps[name.strip()] = "latest"
    return deps


def normalize_parsed_project(doc: Any) -> ParsedResponse:
    """
    Validate the decoded document and turn it into a ParsedResponse.

    Unsafe or unusable file entries are dropped; duplicate paths keep the last
    content at the position of the first occurrence.
    """
    if not isinstance(doc, dict):
        raise ProjectShapeError("AI response root must be a JSON object")
    raw_files = doc.get("files")
    if not isinstance(raw_files, list):
        raise ProjectShapeError("AI response is missing a files array")

    by_path: Dict[str, str] = {}
    duplicates: List[str] = []
    for entry in raw_files:
        if not isinstance(entry, dict):
            continue
        path = normalize_file_path(entry.get("path"))
        content = _coerce_content(entry.get("content"))
        if path is None or content is None:
            logger.debug("Dropping unusable file entry: %r", entry.get("path"))
            continue
        if content.startswith("\ufeff"):
            content = content[1:]
        if len(content) > MAX_FILE_CONTENT_LENGTH:
            raise ProjectShapeError(
                f"File {path} exceeds {MAX_FILE_CONTENT_LENGTH} characters ({len(content)})"
            )
        if path in by_path:
            duplicates.append(path)
        by_path[path] = content

    if duplicates:
        logger.warning("AI response contained duplicate paths, keeping last: %s", sorted(set(duplicates)))
    if len(by_path) > MAX_FILE_COUNT:
        raise ProjectShapeError(f"AI response has too many files ({len(by_path)} > {MAX_FILE_COUNT})")
    if not by_path:
        raise ProjectShapeError("AI response did not include any usable files")

    files = [GeneratedFile(path=p, content=c) for p, c in by_path.items()]
    return ParsedResponse(files=files, dependencies=_normalize_dependencies(doc.get("dependencies")))


def parse_project_response(text: str) -> ParsedResponse:
    return normalize_parsed_project(parse_structured_document(text))
