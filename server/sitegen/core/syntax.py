# sitegen/core/syntax.py
"""
Syntax-only validation of generated source files with tree-sitter.

.ts uses the TypeScript grammar, .tsx the TSX grammar and .js/.jsx the
JavaScript grammar (which includes JSX). Only the first error per file is
reported; nothing is auto-fixed here.
"""
import logging
from functools import lru_cache
from typing import List, Optional

import tree_sitter_javascript as tsjs
import tree_sitter_typescript as tsts
from tree_sitter import Language, Node, Parser

from sitegen.core.errors import SyntaxFailure
from sitegen.models import GeneratedFile, LintIssue
from sitegen.utils.file_helpers import is_code_file

logger = logging.getLogger(__name__)

PARSE_RULE = "typescript/parse"


@lru_cache(maxsize=None)
def _parser_for(kind: str) -> Parser:
    if kind == "ts":
        lang = Language(tsts.language_typescript())
    elif kind == "tsx":
        lang = Language(tsts.language_tsx())
    else:
        lang = Language(tsjs.language())
    return Parser(lang)


def _kind_for(path: str) -> str:
    lower = path.lower()
    if lower.endswith(".tsx"):
        return "tsx"
    if lower.endswith(".ts"):
        return "ts"
    return "js"


def _first_error_node(root: Node) -> Optional[Node]:
    # depth-first in document order, only descending into subtrees that contain errors
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_error or node.is_missing:
            return node
        if node.has_error:
            stack.extend(reversed(node.children))
    return None


def _describe(node: Node, source: bytes) -> str:
    if node.is_missing:
        return f"Missing '{node.type}'"
    snippet = source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")
    snippet = snippet.strip().splitlines()[0] if snippet.strip() else ""
    if len(snippet) > 40:
        snippet = snippet[:40] + "..."
    return f"Unexpected token '{snippet}'" if snippet else "Unexpected end of input"


def check_file_syntax(file: GeneratedFile) -> Optional[LintIssue]:
    source = file.content.encode("utf-8")
    tree = _parser_for(_kind_for(file.path)).parse(source)
    if not tree.root_node.has_error:
        return None
    node = _first_error_node(tree.root_node) or tree.root_node
    row, col = node.start_point
    return LintIssue(
        path=file.path,
        line=row + 1,
        column=col + 1,
        rule=PARSE_RULE,
        message=_describe(node, source),
    )


def collect_syntax_issues(files: List[GeneratedFile]) -> List[LintIssue]:
    """One issue per source file that fails to parse, in file order."""
    issues = []
    for f in files:
        if not is_code_file(f.path):
            continue
        issue = check_file_syntax(f)
        if issue is not None:
            issues.append(issue)
    if issues:
        logger.debug("Syntax issues: %s", [i.describe() for i in issues])
    return issues


def validate_syntax_or_raise(files: List[GeneratedFile]) -> None:
    issues = collect_syntax_issues(files)
    if issues:
        raise SyntaxFailure(issues[0])
