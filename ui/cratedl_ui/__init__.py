"""crate-dl UI package.

Rich terminal UI components for crate-dl:
- ProgressDisplay: live per-specifier progress fed by pipeline events
- ResultsTable: per-specifier outcome table
- SummaryPanel: batch summary with failures and hints
"""

from cratedl_ui.panels import SummaryPanel
from cratedl_ui.progress import ProgressDisplay, progress_display
from cratedl_ui.tables import ResultsTable

__all__ = [
    "ProgressDisplay",
    "ResultsTable",
    "SummaryPanel",
    "progress_display",
]
