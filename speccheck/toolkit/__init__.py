# ============================================================================
# speccheck/toolkit/__init__.py
# External command layer
# ============================================================================
#
# The only place speccheck spawns processes. Everything above this layer gets
# either a ToolResult or None, never an exception from a missing binary or a
# hung command.
#
# - registry.py: catalogue of the system tools we call and binary lookup
# - runner.py: bounded, retry-free execution
# - diagnostics.py: hard prerequisite checks (required tools)
#
