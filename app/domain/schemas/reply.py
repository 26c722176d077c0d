from pydantic import BaseModel
from typing import List, Optional

from app.domain.models import AlertRule, Candidate, DeploymentPlan, Position, SessionStage


class Reply(BaseModel):
    text: str
    stage: SessionStage
    follow_up: Optional[str] = None
    plan: Optional[DeploymentPlan] = None
    positions: List[Position] = []
    candidates: List[Candidate] = []
    alert: Optional[AlertRule] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
