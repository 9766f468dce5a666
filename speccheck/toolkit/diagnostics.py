import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel

from speccheck.base.errors import ErrorCode, SpeccheckError
from speccheck.toolkit.registry import TOOLS, find_binary

logger = logging.getLogger(__name__)


class DiagnosticIssue(BaseModel):
    tool_name: str
    issue_type: str = "missing_binary"
    message: str
    install_hint: Optional[str] = None


def get_install_hint(tool_name: str) -> str:
    """Generate a helpful install hint for a missing tool."""
    spec = TOOLS.get(tool_name)
    if not spec or not spec.get("package"):
        return f"Please install '{tool_name}' manually."
    return f"yum install {spec['package']}"


def check_missing_tools(
    required_tools: Optional[List[str]] = None,
    extra_paths: Iterable[str] = (),
) -> List[DiagnosticIssue]:
    """
    Check for missing binaries and return actionable diagnostics.
    If required_tools is None, checks every tool marked as required.
    """
    paths = tuple(extra_paths)
    if required_tools is None:
        required_tools = [name for name, tool in TOOLS.items() if tool.get("required")]

    issues = []
    for name in required_tools:
        if not find_binary(name, paths):
            issues.append(DiagnosticIssue(
                tool_name=name,
                message=f"'{name}' command is required, but not installed. Exiting.",
                install_hint=get_install_hint(name),
            ))
    return issues


def require_tools(required_tools: Optional[List[str]] = None, extra_paths: Iterable[str] = ()) -> None:
    """Raise on the first missing required tool."""
    issues = check_missing_tools(required_tools, extra_paths)
    if issues:
        issue = issues[0]
        logger.debug("Missing required tools: %s", [i.tool_name for i in issues])
        raise SpeccheckError(
            ErrorCode.TOOL_NOT_INSTALLED,
            issue.message,
            details={"tool": issue.tool_name, "install_hint": issue.install_hint},
        )
