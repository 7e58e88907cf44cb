"""Error response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
so agents can recover without human intervention.
"""

import mcp.types as types


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (validation_error, invariant_violation,
            feature_disabled, unknown_tool, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("validation_error", "todos must be an array", "Pass the full list.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def build_text_response(text: str) -> types.CallToolResult:
    """Wrap plain text in a successful CallToolResult."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)]
    )
