from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from backend.skeleton_adapter import BodyObservation, JointFrame, JointType, TrackingState
from cv_backend.rep_counter import RepetitionStateMachine

logger = logging.getLogger(__name__)

EntityFactory = Callable[[int], Any]
EntityReleaser = Callable[[int, Any], None]


def _default_entity(tracking_id: int) -> str:
    return f"Body:{tracking_id}"


def _ignore_release(tracking_id: int, entity: Any) -> None:
    return None


@dataclass
class TrackedBody:
    tracking_id: int
    entity: Any
    frame: Optional[JointFrame] = None
    repetitions: Optional[RepetitionStateMachine] = None


class SelectionStrategy(ABC):
    """Chooses which tracked observations a consumer analyzes this tick."""

    @abstractmethod
    def select(self, tracked: Sequence[BodyObservation], limit: int) -> List[BodyObservation]: ...


class FirstTrackedSelection(SelectionStrategy):
    """
    Native sensor order, first come first served.

    The sensor may reorder its body slots between ticks, so with several people
    in view the selected body can change from one tick to the next.
    """

    def select(self, tracked: Sequence[BodyObservation], limit: int) -> List[BodyObservation]:
        return list(tracked[:limit])


class ClosestBodySelection(SelectionStrategy):
    """Smallest spine-base depth first; ties keep sensor order.

    A body whose spine base is not tracked sorts last.
    """

    def select(self, tracked: Sequence[BodyObservation], limit: int) -> List[BodyObservation]:
        def depth(observation: BodyObservation) -> float:
            frame = observation.frame
            if frame is None or frame.tracking_state(JointType.SPINE_BASE) == TrackingState.NOT_TRACKED:
                return float("inf")
            return float(frame.position(JointType.SPINE_BASE)[2])

        return sorted(tracked, key=depth)[:limit]


SELECTION_STRATEGIES: Dict[str, Callable[[], SelectionStrategy]] = {
    "first": FirstTrackedSelection,
    "closest": ClosestBodySelection,
}


def selection_strategy_from_name(name: str) -> SelectionStrategy:
    key = name.strip().lower()
    if key not in SELECTION_STRATEGIES:
        raise KeyError(f"Unknown body selection strategy: {name}")
    return SELECTION_STRATEGIES[key]()


@dataclass
class ReconcileResult:
    created: Tuple[int, ...] = ()
    removed: Tuple[int, ...] = ()
    selected: List[TrackedBody] = field(default_factory=list)


class TrackedBodyRegistry:
    def __init__(
        self,
        create_entity: Optional[EntityFactory] = None,
        release_entity: Optional[EntityReleaser] = None,
        selection: Optional[SelectionStrategy] = None,
        max_bodies: int = 1,
    ) -> None:
        if max_bodies < 1:
            raise ValueError("max_bodies must be at least 1")
        self.create_entity = create_entity or _default_entity
        self.release_entity = release_entity or _ignore_release
        self.selection = selection or FirstTrackedSelection()
        self.max_bodies = max_bodies
        self._bodies: Dict[int, TrackedBody] = {}

    def __contains__(self, tracking_id: object) -> bool:
        return tracking_id in self._bodies

    def __len__(self) -> int:
        return len(self._bodies)

    def get(self, tracking_id: int) -> Optional[TrackedBody]:
        return self._bodies.get(tracking_id)

    def known_ids(self) -> List[int]:
        return list(self._bodies.keys())

    def reconcile(self, observations: Iterable[BodyObservation]) -> ReconcileResult:
        """
        Bring the registry in line with one tick of sensor observations.

        Untracked observations are ignored entirely. Known bodies missing from
        the tracked set are released immediately, new tracked bodies get an
        entity, and the selection strategy picks the bodies to analyze.
        """
        tracked: List[BodyObservation] = []
        seen: set[int] = set()
        for observation in observations:
            if observation is None or not observation.is_tracked or observation.frame is None:
                continue
            if observation.tracking_id in seen:
                continue
            seen.add(observation.tracking_id)
            tracked.append(observation)

        removed: List[int] = []
        for tracking_id in list(self._bodies.keys()):
            if tracking_id not in seen:
                body = self._bodies.pop(tracking_id)
                self.release_entity(tracking_id, body.entity)
                removed.append(tracking_id)
                logger.info("Body %d lost, entity released", tracking_id)

        created: List[int] = []
        for observation in tracked:
            body = self._bodies.get(observation.tracking_id)
            if body is None:
                body = TrackedBody(
                    tracking_id=observation.tracking_id,
                    entity=self.create_entity(observation.tracking_id),
                )
                self._bodies[observation.tracking_id] = body
                created.append(observation.tracking_id)
                logger.info("Body %d tracked, entity created", observation.tracking_id)
            body.frame = observation.frame

        chosen = self.selection.select(tracked, self.max_bodies)
        selected = [self._bodies[observation.tracking_id] for observation in chosen]
        return ReconcileResult(created=tuple(created), removed=tuple(removed), selected=selected)

    def clear(self) -> None:
        for tracking_id, body in list(self._bodies.items()):
            self.release_entity(tracking_id, body.entity)
        self._bodies.clear()
