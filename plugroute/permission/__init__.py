"""Access guard for tool invocations.

Checks every tool a model tries to use against the selected definition's
declared allowlist.
"""

from .guard import (
    AuthorizationResult,
    ForbiddenToolError,
    authorize,
    check_tool_permission,
)

__all__ = [
    "AuthorizationResult",
    "ForbiddenToolError",
    "authorize",
    "check_tool_permission",
]
