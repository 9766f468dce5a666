"""Report rendering: colored text for terminals, JSON for machines."""
from speccheck.reporting.document import build_report, render_json, system_summary
from speccheck.reporting.text import Palette, TextRenderer

__all__ = ["Palette", "TextRenderer", "build_report", "render_json", "system_summary"]
