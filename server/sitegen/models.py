from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class GeneratedFile(BaseModel):
    path: str
    content: str


class ParsedResponse(BaseModel):
    """One model reply after recovery and normalization. Replaced wholesale on repair."""
    model_config = ConfigDict(frozen=True)

    files: List[GeneratedFile]
    dependencies: Dict[str, str] = {}

    def file_map(self) -> Dict[str, str]:
        return {f.path: f.content for f in self.files}


class LintIssue(BaseModel):
    path: str
    line: int = 1
    column: int = 1
    rule: Optional[str] = None
    message: str

    def describe(self) -> str:
        return f"{self.path}:{self.line}:{self.column} [{self.rule or 'parse'}] {self.message}"


class LintReport(BaseModel):
    passed: bool
    errors: int = 0
    warnings: int = 0


class CompletionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    files: List[GeneratedFile]
    dependencies: Dict[str, str]
    lint_report: LintReport = Field(alias="lintReport")
    model: str
    original_prompt: Optional[str] = Field(None, alias="originalPrompt")
    detected_theme: Optional[str] = Field(None, alias="detectedTheme")


class GenerateEvent(BaseModel):
    prompt: str
    userId: str
    projectId: str
    debug: bool = False


class StatusUpdate(BaseModel):
    jobId: Optional[str] = None
    event: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    progress: Optional[str] = None
    cancel: Optional[bool] = None
    error: Optional[str] = None
