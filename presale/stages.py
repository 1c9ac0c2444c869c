"""
Stage lifecycle.

Stages are created once from a fixed schedule. Only stage 0 is activated
automatically; every later stage opens when the treasury concludes the one
before it. Time alone never advances the sale.
"""

from typing import Optional

from .errors import PresaleErrors, ValidationRejectedError
from .models import STAGE_DURATION, PresaleState, Stage


# (price, next stage price, minimum contribution), unit-of-account smallest units
DEFAULT_STAGE_SCHEDULE: tuple[tuple[int, int, int], ...] = (
    (4000, 6000, 100000000),
    (6000, 8000, 100000000),
    (8000, 10000, 200000000),
    (10000, 15000, 200000000),
    (15000, 17500, 250000000),
    (17500, 18000, 250000000),
    (18000, 20000, 300000000),
    (20000, 20000, 300000000),
)


class StageSchedule:
    def __init__(self, state: PresaleState):
        self.state = state

    @property
    def stages(self) -> list[Stage]:
        return self.state.stages

    @property
    def last_index(self) -> int:
        return len(self.stages) - 1

    def get(self, index: int) -> Stage:
        if index < 0 or index >= len(self.stages):
            raise ValidationRejectedError(PresaleErrors.INVALID_STAGE)
        return self.stages[index]

    def initialize(self, schedule=DEFAULT_STAGE_SCHEDULE) -> list[Stage]:
        if self.state.stages_initialized:
            raise ValidationRejectedError(PresaleErrors.STAGES_INITIALIZED)
        created = [
            Stage(price=price, next_price=next_price, min_contribution=min_contribution)
            for price, next_price, min_contribution in schedule
        ]
        self.state.stages = created
        self.state.stages_initialized = True
        return created

    def activate_first_stage(self, now: int) -> Stage:
        first = self.get(0)
        if first.start_time != 0:
            raise ValidationRejectedError(PresaleErrors.FIRST_STAGE_STARTED)
        first.start_time = now
        first.end_time = now + STAGE_DURATION
        return first

    def conclude_stage(self, index: int, now: int) -> Stage:
        """Close ``index`` and open the stage after it; returns the opened stage."""
        stage = self.get(index)
        if index == self.last_index:
            raise ValidationRejectedError(PresaleErrors.NO_NEXT_STAGE)

        stage.end_time = now
        stage.sold_out = True

        following = self.stages[index + 1]
        following.start_time = now + 1
        following.end_time = now + STAGE_DURATION
        return following

    def extend_stage(self, index: int, new_end_time: int, now: int, strict: bool = False) -> Stage:
        stage = self.get(index)
        if strict and (new_end_time <= now or new_end_time <= stage.start_time):
            raise ValidationRejectedError(PresaleErrors.INVALID_END_TIME)
        stage.end_time = new_end_time
        return stage

    def find_current_stage_index(self, now: int) -> Optional[int]:
        for index, stage in enumerate(self.stages):
            if stage.contains(now):
                return index
        return None

    def require_purchasable(self, index: int, now: int) -> Stage:
        stage = self.get(index)
        if stage.start_time == 0 or stage.start_time > now:
            raise ValidationRejectedError(PresaleErrors.STAGE_NOT_ACTIVE)
        if stage.sold_out:
            raise ValidationRejectedError(PresaleErrors.SOLD_OUT)
        if now > stage.end_time:
            raise ValidationRejectedError(PresaleErrors.STAGE_NOT_ACTIVE)
        return stage

    def last_stage_open(self, now: int) -> bool:
        """True while the final stage has started and not yet ended."""
        if not self.stages:
            return False
        last = self.stages[-1]
        return last.start_time != 0 and now <= last.end_time
