"""Round lifecycle scheduler.

Drives one game through a cyclic three-phase state machine::

    preparing --(0s)--> running --(0s)--> results --(0s)--> preparing ...

Terminology:
  - **tick**: one call to ``RoundScheduler.tick``, normally once per
    wall-clock second from a ``Clock``.
  - **round**: one full preparing → running → results cycle. ``round_id``
    starts at 1 and increments exactly once per cycle, on leaving results.

The scheduler owns wall-clock phase timing only. It performs no I/O and never
suspends; reactions to a transition (debits, resolution, reporting) belong to
the session that registered the callbacks.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from roundhouse.models.round import Phase, PhaseTransition, RoundSnapshot, RoundTimings

logger = logging.getLogger(__name__)

TransitionCallback = Callable[[PhaseTransition], None]

_NEXT_PHASE: dict[Phase, Phase] = {
    "preparing": "running",
    "running": "results",
    "results": "preparing",
}


class RoundScheduler:
    """Phase state machine advanced by ``tick``.

    Callbacks are invoked synchronously from inside ``tick``:

    - ``on_round_start``: exactly once on preparing → running.
    - ``on_round_end``: exactly once on results → preparing, with the
      ``round_id`` of the round that just ended.
    - ``on_phase_change``: on every transition, after the specific callback.
    """

    def __init__(
        self,
        timings: RoundTimings,
        on_round_start: TransitionCallback | None = None,
        on_round_end: TransitionCallback | None = None,
        on_phase_change: TransitionCallback | None = None,
    ) -> None:
        self._timings = timings
        self._on_round_start = on_round_start
        self._on_round_end = on_round_end
        self._on_phase_change = on_phase_change
        self._round_id = 1
        self._phase: Phase = "preparing"
        self._time_remaining = timings.preparation_time
        self._total_time = timings.preparation_time

    @property
    def timings(self) -> RoundTimings:
        return self._timings

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def time_remaining(self) -> int:
        return self._time_remaining

    @property
    def total_time(self) -> int:
        return self._total_time

    @property
    def round_id(self) -> int:
        return self._round_id

    def snapshot(self) -> RoundSnapshot:
        return RoundSnapshot(
            round_id=self._round_id,
            phase=self._phase,
            time_remaining=self._time_remaining,
            total_time=self._total_time,
        )

    def tick(self) -> PhaseTransition | None:
        """Advance one second. Returns the transition performed, if any.

        A tick that finds ``time_remaining == 0`` transitions without
        decrementing. Otherwise the tick decrements first, then transitions
        if the countdown just reached zero.
        """
        if self._time_remaining == 0:
            return self._transition()
        self._time_remaining -= 1
        if self._time_remaining == 0:
            return self._transition()
        return None

    def _transition(self) -> PhaseTransition:
        previous = self._phase
        round_id = self._round_id
        following = _NEXT_PHASE[previous]
        duration = self._timings.duration(following)

        if previous == "results":
            self._round_id += 1
        self._phase = following
        self._time_remaining = duration
        self._total_time = duration

        transition = PhaseTransition(
            round_id=round_id,
            from_phase=previous,
            to_phase=following,
            duration=duration,
        )
        logger.debug(
            "phase_transition round=%d %s->%s duration=%ds",
            transition.round_id,
            previous,
            following,
            duration,
        )

        if previous == "preparing" and self._on_round_start is not None:
            self._on_round_start(transition)
        elif previous == "results" and self._on_round_end is not None:
            self._on_round_end(transition)
        if self._on_phase_change is not None:
            self._on_phase_change(transition)
        return transition
