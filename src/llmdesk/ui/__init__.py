"""UI-side job handling for the assistant surface.

The Qt panel lives in :mod:`llmdesk.ui.assistant_panel` and is imported
lazily so the job bridge stays usable without PySide6.
"""

from .job_bridge import AssistantJob, AssistantRegistry, AssistantSession, AssistantView, ResultSlot

__all__ = ["AssistantJob", "AssistantRegistry", "AssistantSession", "AssistantView", "ResultSlot"]
