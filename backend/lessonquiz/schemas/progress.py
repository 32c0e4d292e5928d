from __future__ import annotations

import uuid
from datetime import datetime

from lessonquiz.schemas.base import WireModel


class EnrollmentProgress(WireModel):
    module_id: uuid.UUID
    user_id: uuid.UUID
    best_score: float | None = None
    passed: bool = False
    attempt_count: int = 0
    last_attempt_id: uuid.UUID | None = None
    is_completed: bool = False
    progress: int = 0
    completed_at: datetime | None = None
