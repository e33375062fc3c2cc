"""Remedial action manager.

High and critical findings spawn exactly one remedial action when they are
recorded. Resolving the finding closes every open action that references it.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..models import ActionPriority, ActionStatus, AuditFinding, RemedialAction, RiskLevel
from ..storage.codec import decode_action, encode
from ..storage.repository import RecordKind, Repository
from .config import DEFAULT_CONFIG
from .errors import RepositoryError

logger = logging.getLogger(__name__)

REMEDIATION_RISK_LEVELS = frozenset({RiskLevel.HIGH, RiskLevel.CRITICAL})


def requires_remediation(risk_level: RiskLevel) -> bool:
    return risk_level in REMEDIATION_RISK_LEVELS


class RemedialActionManager:
    def __init__(
        self,
        repository: Repository,
        config: Optional[dict] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        settings = (config or DEFAULT_CONFIG).get("remediation", {})
        defaults = DEFAULT_CONFIG["remediation"]
        self.due_days = int(settings.get("due_days", defaults["due_days"]))
        self.priority = ActionPriority(settings.get("priority", defaults["priority"]))
        self.title = settings.get("title", defaults["title"])
        self.description = settings.get("description", defaults["description"])
        self.clock = clock
        self._actions: dict[str, RemedialAction] = {}
        self._lock = threading.Lock()

    def load(self) -> None:
        actions = [decode_action(r) for r in self.repository.query(RecordKind.REMEDIAL_ACTION)]
        with self._lock:
            for action in actions:
                self._actions[action.id] = action

    @staticmethod
    def action_id_for(finding_id: str) -> str:
        """Stable action id, so a finding never owns more than one action record."""
        return f"{finding_id}-remediation"

    def spawn(self, finding_id: str, report_id: str, created_by: str) -> RemedialAction:
        """Create and persist an open action for a finding."""
        now = self.clock()
        action = RemedialAction(
            id=self.action_id_for(finding_id),
            finding_id=finding_id,
            report_id=report_id,
            title=self.title,
            description=self.description,
            priority=self.priority,
            assigned_to=created_by,
            due_date=now + timedelta(days=self.due_days),
            status=ActionStatus.OPEN,
            created_by=created_by,
            created_at=now,
        )
        self.repository.save(RecordKind.REMEDIAL_ACTION, action.id, encode(action))
        with self._lock:
            self._actions[action.id] = action
        logger.info("Spawned remedial action %s for finding %s", action.id, finding_id)
        return action.model_copy()

    def spawn_if_required(self, finding: AuditFinding, report_id: str) -> Optional[RemedialAction]:
        if not requires_remediation(finding.risk_level):
            return None
        return self.spawn(finding.id, report_id, finding.identified_by)

    def withdraw(self, action: RemedialAction) -> None:
        """Cancel an action whose finding was never recorded.

        Best effort: a failed save is logged and the action stays cancelled
        in the cache only.
        """
        cancelled = action.model_copy(update={"status": ActionStatus.CANCELLED})
        with self._lock:
            self._actions[cancelled.id] = cancelled
        try:
            self.repository.save(RecordKind.REMEDIAL_ACTION, cancelled.id, encode(cancelled))
        except RepositoryError as e:
            logger.warning("Could not withdraw remedial action %s: %s", action.id, e)

    def pending_for(self, finding_id: str) -> list[RemedialAction]:
        """Actions referencing ``finding_id`` that are neither completed nor cancelled."""
        with self._lock:
            return [
                a.model_copy() for a in self._actions.values()
                if a.finding_id == finding_id and a.status not in (ActionStatus.COMPLETED, ActionStatus.CANCELLED)
            ]

    def close_all_for(self, finding_id: str, closed_by: str) -> list[RemedialAction]:
        """Complete every pending action referencing ``finding_id``.

        All or nothing: if any save fails, actions already saved are put back
        and the error propagates with the cache untouched.
        """
        now = self.clock()
        pending = self.pending_for(finding_id)

        closed: list[RemedialAction] = []
        try:
            for action in pending:
                done = action.model_copy(update={
                    "status": ActionStatus.COMPLETED,
                    "completed_by": closed_by,
                    "completed_at": now,
                })
                self.repository.save(RecordKind.REMEDIAL_ACTION, done.id, encode(done))
                closed.append(done)
        except RepositoryError:
            self.restore(pending[:len(closed)])
            raise

        with self._lock:
            for action in closed:
                self._actions[action.id] = action
        if closed:
            logger.info("Closed %d remedial action(s) for finding %s", len(closed), finding_id)
        return [a.model_copy() for a in closed]

    def restore(self, actions: list[RemedialAction]) -> None:
        """Write earlier snapshots of ``actions`` back to the store and cache."""
        for action in actions:
            with self._lock:
                self._actions[action.id] = action
            try:
                self.repository.save(RecordKind.REMEDIAL_ACTION, action.id, encode(action))
            except RepositoryError as e:
                logger.warning("Could not restore remedial action %s: %s", action.id, e)

    def actions_for(self, finding_id: str) -> list[RemedialAction]:
        with self._lock:
            return [a.model_copy() for a in self._actions.values() if a.finding_id == finding_id]

    def list_actions(self, status: Optional[ActionStatus] = None) -> list[RemedialAction]:
        with self._lock:
            actions = [a.model_copy() for a in self._actions.values()]
        if status is not None:
            actions = [a for a in actions if a.status == status]
        return actions
