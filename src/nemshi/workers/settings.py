"""arq worker settings module.

Import path for arq CLI: arq nemshi.workers.settings.WorkerSettings
"""

from __future__ import annotations

from nemshi.workers.trigger_worker import WorkerSettings

__all__ = ["WorkerSettings"]
