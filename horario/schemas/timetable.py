from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


class Weekday(str, Enum):
    monday = "SEGUNDA"
    tuesday = "TERCA"
    wednesday = "QUARTA"
    thursday = "QUINTA"
    friday = "SEXTA"
    saturday = "SABADO"


WEEKDAYS: tuple[Weekday, ...] = tuple(Weekday)

WEEKDAY_LABELS: dict[Weekday, str] = {
    Weekday.monday: "Segunda",
    Weekday.tuesday: "Terça",
    Weekday.wednesday: "Quarta",
    Weekday.thursday: "Quinta",
    Weekday.friday: "Sexta",
    Weekday.saturday: "Sábado",
}

LABEL_WEEKDAYS: dict[str, Weekday] = {label: day for day, label in WEEKDAY_LABELS.items()}


class Shift(str, Enum):
    morning = "manha"
    afternoon = "tarde"
    evening = "noite"


def normalise_time(value: str) -> str:
    value = value.strip()
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    return value[:5]


def parse_time_to_minutes(value: str) -> int:
    hours, minutes = normalise_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """Half-open overlap test: ranges that only touch at an endpoint do not overlap."""
    return a.start_minutes < b.end_minutes and b.start_minutes < a.end_minutes


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return normalise_time(value)

    @model_validator(mode="after")
    def validate_order(self) -> "TimeRange":
        if self.start_minutes >= self.end_minutes:
            raise ValueError("start must be earlier than end")
        return self

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def overlaps(self, other: TimeRange) -> bool:
        return overlaps(self, other)

    def contains(self, other: TimeRange) -> bool:
        return self.start_minutes <= other.start_minutes and other.end_minutes <= self.end_minutes

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


class SlotWindow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: str = Field(alias="inicio")
    end: str = Field(alias="fim")

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return normalise_time(value)

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


class ClassSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str
    shift: Shift
    index: int = Field(ge=0)

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


class ScheduleSlotCatalog(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    morning: list[SlotWindow] = Field(default_factory=list, alias="aulasTurnoManha")
    afternoon: list[SlotWindow] = Field(default_factory=list, alias="aulasTurnoTarde")
    evening: list[SlotWindow] = Field(default_factory=list, alias="aulasTurnoNoite")

    @field_validator("morning", "afternoon", "evening", mode="before")
    @classmethod
    def none_as_empty(cls, value):
        return [] if value is None else value

    @model_validator(mode="after")
    def validate_shift_ordering(self) -> "ScheduleSlotCatalog":
        for shift, windows in self.windows_by_shift().items():
            ranges = [window.time_range for window in windows]
            for previous, current in zip(ranges, ranges[1:]):
                if current.start_minutes < previous.end_minutes:
                    raise ValueError(
                        f"Slots in the {shift.value} shift must be ordered and non-overlapping "
                        f"({previous} then {current})"
                    )
        return self

    def windows_by_shift(self) -> dict[Shift, list[SlotWindow]]:
        return {
            Shift.morning: self.morning,
            Shift.afternoon: self.afternoon,
            Shift.evening: self.evening,
        }

    def class_slots(self) -> list[ClassSlot]:
        """Flatten the catalog into one indexed list, morning first."""
        slots: list[ClassSlot] = []
        for shift, windows in self.windows_by_shift().items():
            for window in windows:
                slots.append(ClassSlot(start=window.start, end=window.end, shift=shift, index=len(slots)))
        return slots

    def find_slot(self, time_range: TimeRange, *, allow_sub_range: bool = False) -> ClassSlot | None:
        for slot in self.class_slots():
            if slot.start == time_range.start and slot.end == time_range.end:
                return slot
            if allow_sub_range and slot.time_range.contains(time_range):
                return slot
        return None
