"""
Exam Room Models - exam definitions, session enums and submission payloads
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ============== Enums ==============

class SessionPhase(str, Enum):
    CONSENT = "consent"
    ACTIVE = "active"
    TERMINATED = "terminated"
    COMPLETED = "completed"


_MOBILE_UA = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)


class DeviceClass(str, Enum):
    MOBILE = "mobile"
    DESKTOP = "desktop"

    @classmethod
    def from_user_agent(cls, user_agent: Optional[str]) -> "DeviceClass":
        """Classify a browser user agent string"""
        if user_agent and _MOBILE_UA.search(user_agent):
            return cls.MOBILE
        return cls.DESKTOP


class ViolationType(str, Enum):
    FULLSCREEN_EXIT = "fullscreen_exit"
    TAB_SWITCH = "tab_switch"
    APP_SWITCH = "app_switch"
    RESTRICTED_KEY = "restricted_key"


class SubmitReason(str, Enum):
    MANUAL = "manual"
    TIME_UP = "time_up"
    EXPELLED = "expelled"


class QuestionStatus(str, Enum):
    CURRENT = "current"
    REVIEW = "review"
    ANSWERED = "answered"
    VISITED = "visited"
    NOT_VISITED = "not-visited"


class CaptureAngle(str, Enum):
    FRONT = "front"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"


DEFAULT_ANGLES = (CaptureAngle.FRONT, CaptureAngle.LEFT, CaptureAngle.RIGHT, CaptureAngle.UP)


# ============== Exam Definition ==============

class QuestionKey(NamedTuple):
    """Composite (subject, question) address of one question"""
    subject_index: int
    question_index: int

    def __str__(self) -> str:
        return f"{self.subject_index}-{self.question_index}"

    @classmethod
    def parse(cls, value: str) -> "QuestionKey":
        """Parse the "s-q" wire form"""
        try:
            subject, question = value.split("-")
            return cls(int(subject), int(question))
        except ValueError:
            raise ValueError(f"Invalid question key: {value!r}")


class Question(BaseModel):
    """A single multiple-choice question"""
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1, description="Question text")
    options: List[str] = Field(..., description="Answer options in display order")
    marks: float = Field(1.0, ge=0, description="Marks awarded for a correct answer")

    @field_validator("options")
    @classmethod
    def validate_options_length(cls, v: List[str]) -> List[str]:
        if len(v) < 2:
            raise ValueError("A question needs at least 2 options")
        return v


class Subject(BaseModel):
    """An ordered group of questions"""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    questions: List[Question] = Field(..., min_length=1)


class ExamDefinition(BaseModel):
    """
    Immutable exam definition supplied by the exam source.

    The exam room never mutates or re-fetches it during a session.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Exam identifier")
    title: str = Field(..., min_length=1)
    code: str = Field("", description="Exam code shown to candidates")
    duration: int = Field(..., gt=0, description="Duration in minutes")
    subjects: List[Subject] = Field(..., min_length=1)

    @property
    def question_count(self) -> int:
        return sum(len(subject.questions) for subject in self.subjects)

    @property
    def duration_seconds(self) -> int:
        return self.duration * 60

    def contains(self, key: QuestionKey) -> bool:
        s, q = key
        return 0 <= s < len(self.subjects) and 0 <= q < len(self.subjects[s].questions)

    def question(self, key: QuestionKey) -> Question:
        if not self.contains(key):
            raise IndexError(f"Question {key} is outside the exam")
        return self.subjects[key.subject_index].questions[key.question_index]

    def keys(self) -> Iterator[QuestionKey]:
        for s, subject in enumerate(self.subjects):
            for q in range(len(subject.questions)):
                yield QuestionKey(s, q)


# ============== Audit / Capture Records ==============

@dataclass(frozen=True)
class ViolationEvent:
    """One entry of the append-only violation audit trail"""
    type: ViolationType
    device_class: DeviceClass
    timestamp: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.type.value,
            "device_class": self.device_class.value,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ImageArtifact:
    """An encoded frame captured for one required angle"""
    data: bytes
    angle: CaptureAngle
    captured_at: float

    @property
    def filename(self) -> str:
        return f"{self.angle.value}.jpg"


@dataclass
class CaptureSession:
    """Progress of a guided multi-angle capture"""
    required_angles: List[CaptureAngle] = field(default_factory=lambda: list(DEFAULT_ANGLES))
    captured: Dict[CaptureAngle, ImageArtifact] = field(default_factory=dict)
    current_index: int = 0
    cancelled: bool = False

    @property
    def current_angle(self) -> Optional[CaptureAngle]:
        if self.current_index >= len(self.required_angles):
            return None
        return self.required_angles[self.current_index]

    @property
    def is_complete(self) -> bool:
        return all(angle in self.captured for angle in self.required_angles)

    @property
    def missing_angles(self) -> List[CaptureAngle]:
        return [a for a in self.required_angles if a not in self.captured]


# ============== Submission Payload ==============

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuestionStats(_CamelModel):
    total_questions: int
    attempted: int
    skipped: int
    marked_for_review: int


class ViolationSummary(_CamelModel):
    fullscreen_exit: int = 0
    tab_switch: int = 0
    app_switch: int = 0
    restricted_key: int = 0
    total: int = 0


class SubmissionPayload(_CamelModel):
    """
    The single payload produced per session and handed to the grading collaborator.

    Serialize with ``model_dump(by_alias=True, mode="json")`` for the wire.
    """
    exam_id: str
    session_id: str
    answers: Dict[str, int]
    answered_count: int
    time_spent: int
    time_allocated: int
    time_remaining: int
    reason: SubmitReason
    device_class: DeviceClass
    timestamp: datetime
    question_stats: QuestionStats
    violations: ViolationSummary
