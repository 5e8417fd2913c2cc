"""
Side effects produced by a committed transition.

Effects run strictly after the issue write, in the order the transition
listed them, one attempt each. A failing effect is logged and recorded in
its outcome; it never undoes the write and never stops later effects.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import now_utc
from .errors import NotFound
from .models import Issue
from .store import IssueStore

logger = logging.getLogger(__name__)


class EffectKind(str, Enum):
    MIRROR_POST = "mirror_post"
    WORKER_LOAD = "worker_load"
    DISCLOSURE_POST = "disclosure_post"
    NOTIFY_CITIZEN = "notify_citizen"

class Effect(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    kind: EffectKind
    target: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

class EffectOutcome(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    kind: EffectKind
    target: Optional[str] = None
    ok: bool
    result: Optional[Any] = None
    error: Optional[str] = None

class TransitionResult(BaseModel):
    issue: Issue
    effects: List[EffectOutcome] = Field(default_factory=list)

    @property
    def failed_effects(self) -> List[EffectOutcome]:
        return [e for e in self.effects if not e.ok]

# ---------------------------------------------------------------------------
# Effect constructors
# ---------------------------------------------------------------------------
def mirror_post(post_id: str, status: str) -> Effect:
    return Effect(kind=EffectKind.MIRROR_POST, target=post_id, payload={"status": status})

def worker_load(worker_id: str, delta: int) -> Effect:
    return Effect(kind=EffectKind.WORKER_LOAD, target=worker_id, payload={"delta": delta})

def disclosure_post(record: dict) -> Effect:
    return Effect(kind=EffectKind.DISCLOSURE_POST, target=record.get("issue_id"), payload=record)

def notify_citizen(original_post_id: str, record: dict) -> Effect:
    return Effect(kind=EffectKind.NOTIFY_CITIZEN, target=original_post_id, payload=record)


class EffectDispatcher:

    def __init__(self, store: IssueStore):
        self.store = store
        self._handlers = {
            EffectKind.MIRROR_POST.value: self._mirror_post,
            EffectKind.WORKER_LOAD.value: self._worker_load,
            EffectKind.DISCLOSURE_POST.value: self._disclosure_post,
            EffectKind.NOTIFY_CITIZEN.value: self._notify_citizen,
        }

    def dispatch(self, issue: Issue, effects: List[Effect]) -> List[EffectOutcome]:
        outcomes = []
        for effect in effects:
            try:
                result = self._handlers[effect.kind](effect)
                outcomes.append(EffectOutcome(kind=effect.kind, target=effect.target, ok=True, result=result))
            except Exception as e:
                logger.error("Effect %s for issue %s (target %s) failed: %s",
                             effect.kind, issue.id, effect.target, e)
                outcomes.append(EffectOutcome(kind=effect.kind, target=effect.target, ok=False, error=str(e)))
        return outcomes

    def _mirror_post(self, effect: Effect):
        self.store.update_post(effect.target, {"status": effect.payload["status"], "updated_at": now_utc()})
        return effect.payload["status"]

    def _worker_load(self, effect: Effect):
        self.store.adjust_worker_load(effect.target, effect.payload["delta"])
        return effect.payload["delta"]

    def _disclosure_post(self, effect: Effect):
        record = dict(effect.payload)
        record.setdefault("created_at", now_utc())
        post_id = self.store.create_post(record)
        logger.info("Disclosure post %s published for issue %s", post_id, record.get("issue_id"))
        return post_id

    def _notify_citizen(self, effect: Effect):
        post = self.store.get_post(effect.target)
        user_id = post.get("user_id")
        if not user_id:
            raise NotFound(f"post {effect.target} has no owning citizen", post_id=effect.target)
        record = dict(effect.payload)
        record.update({"user_id": user_id, "post_id": effect.target, "read": False})
        record.setdefault("created_at", now_utc())
        return self.store.create_notification(record)
