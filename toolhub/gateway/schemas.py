"""
Response schemas for the gateway.

Operation responses are plain dicts built by PipelineOutcome; only the
health report has a fixed shape worth modelling.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ServiceHealth(BaseModel):
    """One check's result: storage, cleanup or an operation family."""
    name: str
    healthy: bool
    latency_ms: Optional[float] = None
    message: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)


class HealthStatus(BaseModel):
    """Body of GET /health?detailed=true."""
    healthy: bool
    timestamp: datetime
    services: List[ServiceHealth]
    version: str = "1.0.0"

    @property
    def status(self) -> str:
        return "healthy" if self.healthy else "degraded"

    def summary(self) -> Dict[str, Any]:
        """Compact liveness body: one word per service."""
        return {
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
            "services": {
                s.name: "operational" if s.healthy else "unavailable"
                for s in self.services
            },
        }
