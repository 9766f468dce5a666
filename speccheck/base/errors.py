"""Structured error taxonomy for speccheck."""
#
# PURPOSE:
# Only failures that stop a run before reconciliation are errors: a missing
# required tool, an unsupported platform, missing privileges, bad
# configuration. Gaps in individual fact sources are never errors; the
# reconciler absorbs them.
#
# ERROR CODE FORMAT:
# - TOOL_XXX: Required inspection tool errors
# - PLATFORM_XXX: Kernel / architecture outside the supported range
# - AUTH_XXX: Privilege errors
# - CONFIG_XXX: Configuration errors
#
# USAGE:
#   from speccheck.base.errors import SpeccheckError, ErrorCode
#
#   raise SpeccheckError(
#       ErrorCode.TOOL_NOT_INSTALLED,
#       "'rpm' command is required, but not installed. Exiting.",
#       details={"tool": "rpm"}
#   )
#
import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    # Tool Errors
    TOOL_NOT_INSTALLED = "TOOL_001"

    # Platform Errors
    PLATFORM_KERNEL_UNSUPPORTED = "PLATFORM_001"
    PLATFORM_ARCH_UNSUPPORTED = "PLATFORM_002"
    PLATFORM_STATUS_FILES_REQUIRED = "PLATFORM_003"

    # Auth Errors
    AUTH_PRIVILEGES_REQUIRED = "AUTH_001"

    # Config Errors
    CONFIG_INVALID = "CONFIG_001"


class SpeccheckError(Exception):
    """
    Base exception class for speccheck with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "TOOL_001")
        message: Single-line, user-facing message
        details: Optional dictionary with additional context
        exit_status: Process exit status for the CLI
    """

    # Every hard failure exits with 1; result codes 0-15 are reserved for verdicts
    EXIT_STATUS_MAP: Dict[ErrorCode, int] = {
        ErrorCode.TOOL_NOT_INSTALLED: 1,
        ErrorCode.PLATFORM_KERNEL_UNSUPPORTED: 1,
        ErrorCode.PLATFORM_ARCH_UNSUPPORTED: 1,
        ErrorCode.PLATFORM_STATUS_FILES_REQUIRED: 1,
        ErrorCode.AUTH_PRIVILEGES_REQUIRED: 1,
        ErrorCode.CONFIG_INVALID: 1,
    }

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        exit_status: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.exit_status = exit_status or self.EXIT_STATUS_MAP.get(code, 1)

        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for JSON serialization.

        Returns:
            Dictionary with code, message, details, and exit_status
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "exit_status": self.exit_status,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


__all__ = ["ErrorCode", "SpeccheckError"]
