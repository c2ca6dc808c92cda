"""
unitscope - MCP Server

Exposes the introspection queries to an editor agent via the Model Context
Protocol:

  1. list_functions - function declarations with their locations
  2. locate_symbol  - definition and use sites of a variable name
  3. list_macros    - macros of the file as reconstructed #define lines

Every tool parses the file afresh; nothing is cached between calls.
"""

from mcp.server.fastmcp import FastMCP
import logging
import os
import sys

# Ensure the unitscope package is importable
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from unitscope.errors import UnitscopeError
from unitscope.frontend import FrontendConfig, load_translation_unit
from unitscope.macros import extract_macros
from unitscope.report import render_lines
from unitscope.symbols import locate_symbol as _locate_symbol
from unitscope.walker import STRATEGIES, function_reports

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════
#  Server Setup
# ═══════════════════════════════════════════════════════════════════════

mcp = FastMCP("unitscope")


def _split(value: str):
    return [part.strip() for part in value.split(",") if part.strip()]


def _config(include_dirs: str, defines: str, detailed: bool = False) -> FrontendConfig:
    """Build a FrontendConfig from the comma-separated tool arguments."""
    return FrontendConfig(
        include_paths=_split(include_dirs),
        extra_flags=["-D" + d for d in _split(defines)],
        enable_detailed_preprocessing=detailed,
    )


def _check_file(file_path: str):
    if not os.path.isfile(file_path):
        return f"Error: Source file not found at {file_path}"
    return None


# ═══════════════════════════════════════════════════════════════════════
#  Tools
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_functions(file_path: str, strategy: str = "recursive",
                   include_dirs: str = "", defines: str = "") -> str:
    """
    Lists every function declaration of a C/C++ file as ``NAME at FILE:LINE:COL``.

    Args:
        file_path:    Path of the source file.
        strategy:     "recursive" (all functions, default), "visitor" (same
                      result through the visitor traversal) or "top-level"
                      (file-scope declarations only).
        include_dirs: Comma-separated include directories.
                      Example: "include,lib/third_party"
        defines:      Comma-separated macro definitions (NAME=VALUE or NAME).
                      Example: "PLATFORM_X=1,DEBUG"
    """
    if strategy not in STRATEGIES:
        return f"Error: Unknown strategy '{strategy}'. Use one of: {', '.join(STRATEGIES)}"
    error = _check_file(file_path)
    if error:
        return error
    try:
        unit = load_translation_unit(file_path, _config(include_dirs, defines))
        lines = render_lines(function_reports(unit.root, strategy))
    except UnitscopeError as e:
        logger.error("list_functions failed for %s: %s", file_path, e)
        return f"Error: {e}"
    if not lines:
        return f"No functions found in {file_path}"
    return "\n".join(lines)


@mcp.tool()
def locate_symbol(file_path: str, symbol: str,
                  include_dirs: str = "", defines: str = "") -> str:
    """
    Lists the definitions and uses of a variable name, in source order.

    Matching is by exact name: shadowed variables of the same name are all
    reported.

    Args:
        file_path:    Path of the source file.
        symbol:       Name to look up (case-sensitive).
        include_dirs: Comma-separated include directories.
        defines:      Comma-separated macro definitions (NAME=VALUE or NAME).
    """
    error = _check_file(file_path)
    if error:
        return error
    try:
        unit = load_translation_unit(file_path, _config(include_dirs, defines))
        lines = render_lines(_locate_symbol(unit.root, symbol))
    except UnitscopeError as e:
        logger.error("locate_symbol failed for %s: %s", file_path, e)
        return f"Error: {e}"
    if not lines:
        return f"No definitions or uses of '{symbol}' in {file_path}"
    return "\n".join(lines)


@mcp.tool()
def list_macros(file_path: str, include_dirs: str = "", defines: str = "") -> str:
    """
    Lists the macros defined while preprocessing a file, as #define lines.

    Macros from included headers are listed too; a macro that is redefined
    appears once per definition with the body it had there.

    Args:
        file_path:    Path of the source file.
        include_dirs: Comma-separated include directories.
        defines:      Comma-separated macro definitions (NAME=VALUE or NAME).
    """
    error = _check_file(file_path)
    if error:
        return error
    try:
        unit = load_translation_unit(file_path, _config(include_dirs, defines, detailed=True))
        lines = render_lines(extract_macros(unit.preprocessing_record))
    except UnitscopeError as e:
        logger.error("list_macros failed for %s: %s", file_path, e)
        return f"Error: {e}"
    if not lines:
        return f"No macros defined in {file_path}"
    return "\n".join(lines)


if __name__ == "__main__":
    # Debug: Print loaded tools to stderr (visible in MCP logs)
    try:
        if hasattr(mcp, "_tool_manager") and hasattr(mcp._tool_manager, "_tools"):
            tools = mcp._tool_manager._tools.keys()
            print(f"DEBUG: unitscope starting with {len(tools)} tools: {list(tools)}", file=sys.stderr)
        else:
            print("DEBUG: unitscope starting (cannot inspect tools)", file=sys.stderr)
    except Exception as e:
        print(f"DEBUG: Error inspecting tools: {e}", file=sys.stderr)

    mcp.run()
