"""
Deployment State Management and Tracking
Records each deployment's phases, the resources they produced, and the task
definition that was live before it so the service can be rolled back.
"""
import json
import logging
import time
from typing import Dict, Any, Optional
from pathlib import Path
from dataclasses import dataclass, asdict, field
from enum import Enum

logger = logging.getLogger(__name__)


class DeploymentPhase(Enum):
    """Deployment phases in order."""
    IMAGE = "image"
    NETWORK = "network"
    CLUSTER = "cluster"
    TASK_DEFINITION = "task_definition"
    SERVICE = "service"
    VERIFY = "verify"


class DeploymentStatus(Enum):
    """Deployment status for each phase."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ROLLED_BACK = "rolled_back"


@dataclass
class PhaseState:
    """State of a single deployment phase."""
    phase: str
    status: str
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    duration_seconds: Optional[float] = None
    resources: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None


@dataclass
class DeploymentState:
    """Complete deployment state tracking."""
    deployment_id: str
    mode: str
    started_at: float
    phases: Dict[str, PhaseState] = field(default_factory=dict)
    current_phase: Optional[str] = None
    status: str = "in_progress"
    completed_at: Optional[float] = None
    total_duration: Optional[float] = None
    image_uri: Optional[str] = None
    task_definition_arn: Optional[str] = None
    previous_task_definition_arn: Optional[str] = None


class DeploymentStateManager:
    """Manages deployment state tracking in a JSON file."""

    def __init__(self, state_file: str = ".deployment_state.json"):
        self.state_file = Path(state_file)
        self.state: Optional[DeploymentState] = None

    def start_deployment(self, deployment_id: str, mode: str) -> DeploymentState:
        """Start tracking a new deployment."""
        self.state = DeploymentState(
            deployment_id=deployment_id,
            mode=mode,
            started_at=time.time(),
        )

        for phase in DeploymentPhase:
            self.state.phases[phase.value] = PhaseState(
                phase=phase.value,
                status=DeploymentStatus.PENDING.value
            )

        self._save_state()
        logger.info(f"Started deployment tracking: {deployment_id} ({mode})")
        return self.state

    def start_phase(self, phase: DeploymentPhase) -> None:
        """Mark a phase as started."""
        phase_state = self._phase(phase)
        phase_state.status = DeploymentStatus.IN_PROGRESS.value
        phase_state.started_at = time.time()

        self.state.current_phase = phase.value
        self._save_state()

        logger.info(f"Phase started: {phase.value}")

    def complete_phase(self, phase: DeploymentPhase, resources: Dict[str, Any] = None) -> None:
        """Mark a phase as completed with resource tracking."""
        phase_state = self._phase(phase)
        phase_state.status = DeploymentStatus.COMPLETED.value
        phase_state.completed_at = time.time()

        if phase_state.started_at:
            phase_state.duration_seconds = phase_state.completed_at - phase_state.started_at

        if resources:
            phase_state.resources.update(resources)

        self._save_state()

        duration_str = f" in {phase_state.duration_seconds:.1f}s" if phase_state.duration_seconds else ""
        logger.info(f"Phase completed: {phase.value}{duration_str}")

    def skip_phase(self, phase: DeploymentPhase, reason: str) -> None:
        phase_state = self._phase(phase)
        phase_state.status = DeploymentStatus.SKIPPED.value
        phase_state.error_message = reason
        self._save_state()
        logger.info(f"Phase skipped: {phase.value} ({reason})")

    def fail_phase(self, phase: DeploymentPhase, error_message: str) -> None:
        """Mark a phase, and the deployment, as failed."""
        phase_state = self._phase(phase)
        phase_state.status = DeploymentStatus.FAILED.value
        phase_state.error_message = error_message
        phase_state.completed_at = time.time()

        if phase_state.started_at:
            phase_state.duration_seconds = phase_state.completed_at - phase_state.started_at

        self.state.status = "failed"
        self.state.completed_at = time.time()
        self.state.total_duration = self.state.completed_at - self.state.started_at

        self._save_state()

        logger.error(f"Phase failed: {phase.value} - {error_message}")

    def record_release(self, image_uri: Optional[str] = None, task_definition_arn: Optional[str] = None,
                       previous_task_definition_arn: Optional[str] = None) -> None:
        """Remember what is being deployed and what it replaces."""
        if not self.state:
            raise ValueError("No active deployment")
        if image_uri:
            self.state.image_uri = image_uri
        if task_definition_arn:
            self.state.task_definition_arn = task_definition_arn
        if previous_task_definition_arn:
            self.state.previous_task_definition_arn = previous_task_definition_arn
        self._save_state()

    def complete_deployment(self) -> None:
        """Mark the entire deployment as completed."""
        if not self.state:
            raise ValueError("No active deployment")

        self.state.status = "completed"
        self.state.completed_at = time.time()
        self.state.total_duration = self.state.completed_at - self.state.started_at
        self.state.current_phase = None

        self._save_state()

        logger.info(f"Deployment completed: {self.state.deployment_id} in {self.state.total_duration:.1f}s")

    def mark_rolled_back(self) -> None:
        """Mark completed phases as rolled back."""
        if not self.state:
            return

        for phase_state in self.state.phases.values():
            if phase_state.status == DeploymentStatus.COMPLETED.value:
                phase_state.status = DeploymentStatus.ROLLED_BACK.value

        self.state.status = "rolled_back"
        self._save_state()

    def load_state(self) -> Optional[DeploymentState]:
        """Load deployment state from file."""
        if not self.state_file.exists():
            return None

        try:
            with open(self.state_file, 'r') as f:
                data = json.load(f)

            data['phases'] = {
                phase_name: PhaseState(**phase_data)
                for phase_name, phase_data in data.get('phases', {}).items()
            }
            self.state = DeploymentState(**data)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning(f"Failed to load deployment state from {self.state_file}: {e}")
            return None

        logger.info(f"Loaded deployment state: {self.state.deployment_id}")
        return self.state

    def cleanup_state_file(self) -> None:
        """Remove deployment state file."""
        if self.state_file.exists():
            self.state_file.unlink()
            logger.info(f"Cleaned up state file: {self.state_file}")

    def get_status_summary(self) -> Dict[str, Any]:
        """Get deployment status summary."""
        if not self.state:
            return {"status": "no_deployment"}

        completed_phases = sum(1 for phase in self.state.phases.values()
                               if phase.status == DeploymentStatus.COMPLETED.value)
        total_phases = len(self.state.phases)

        return {
            "deployment_id": self.state.deployment_id,
            "mode": self.state.mode,
            "status": self.state.status,
            "current_phase": self.state.current_phase,
            "progress": f"{completed_phases}/{total_phases}",
            "duration": self.state.total_duration,
            "started_at": self.state.started_at,
            "image_uri": self.state.image_uri,
            "task_definition_arn": self.state.task_definition_arn,
            "previous_task_definition_arn": self.state.previous_task_definition_arn,
            "phases": {
                name: {
                    "status": phase.status,
                    "duration": phase.duration_seconds,
                    "error": phase.error_message
                } for name, phase in self.state.phases.items()
            }
        }

    def _phase(self, phase: DeploymentPhase) -> PhaseState:
        if not self.state:
            raise ValueError("No active deployment")
        return self.state.phases[phase.value]

    def _save_state(self) -> None:
        """Save deployment state to file."""
        if not self.state:
            return

        with open(self.state_file, 'w') as f:
            json.dump(asdict(self.state), f, indent=2)


def create_deployment_id(mode: str) -> str:
    """Create unique deployment ID."""
    timestamp = int(time.time())
    return f"{mode}-{timestamp}"
