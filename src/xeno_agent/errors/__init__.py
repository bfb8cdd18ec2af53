"""Structured error handling for Xeno Agent.

This module provides consistent error codes and response formats
across the voice session stack.
"""

from xeno_agent.errors.codes import ErrorCode
from xeno_agent.errors.responses import ConfigurationError, ErrorResponse, XenoError

__all__ = ["ConfigurationError", "ErrorCode", "ErrorResponse", "XenoError"]
