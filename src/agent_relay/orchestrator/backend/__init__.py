"""Process supervision for headless agent CLIs."""

from agent_relay.orchestrator.backend.base import ProcessOutcome, ProcessRunRequest
from agent_relay.orchestrator.backend.supervisor import ProcessSupervisor, SupervisedProcess

__all__ = [
    "ProcessOutcome",
    "ProcessRunRequest",
    "ProcessSupervisor",
    "SupervisedProcess",
]
