"""
Exam Room API - FastAPI endpoints for proctored exam sessions

Endpoints:
- POST /api/exam-room/exams - Register an exam definition
- POST /api/exam-room/sessions - Create a session (consent phase)
- POST /api/exam-room/sessions/{session_id}/start - Accept the rules and start
- POST /api/exam-room/sessions/{session_id}/answer - Select an option
- POST /api/exam-room/sessions/{session_id}/review - Toggle mark for review
- POST /api/exam-room/sessions/{session_id}/navigate - Move between questions
- POST /api/exam-room/sessions/{session_id}/signal - Replay an environment event
- POST /api/exam-room/sessions/{session_id}/submit - Manual submission
- GET /api/exam-room/sessions/{session_id} - Session status
- POST /api/exam-room/capture - Start a guided identity capture
- POST /api/exam-room/capture/{capture_id}/frame - Push a webcam frame
- GET /api/exam-room/capture/{capture_id} - Capture status
- POST /api/exam-room/capture/{capture_id}/cancel - Cancel a capture
- POST /api/exam-room/capture/{capture_id}/submit - Upload captured images
- GET /api/exam-room/health - Service health
"""

import base64
import binascii
import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from ..config import settings
from .capture import Camera, CameraBroker, CaptureSequencer, OpenCVCamera, PushCamera
from .clients import (
    ExamSource,
    GradingClient,
    HttpGradingClient,
    HttpIdentityVerifier,
    IdentityVerifier,
    InMemoryExamSource,
    RecordingGradingClient
)
from .detectors import DlibLandmarkDetector
from .detectors.face_detector import LandmarkDetector
from .errors import (
    CameraError,
    DetectorLoadError,
    ExamRoomError,
    NavigationError,
    SessionStateError,
    VerificationError
)
from .integrity import KeyAction, SignalKind
from .models import CaptureAngle, DeviceClass, ExamDefinition, QuestionKey, SessionPhase
from .scheduling import AsyncioScheduler, Scheduler
from .session import ExamSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/exam-room", tags=["Exam Room"])

# In-memory storage (sessions live as long as the process)
_sessions: Dict[str, ExamSession] = {}
_captures: Dict[str, CaptureSequencer] = {}
_exam_source = InMemoryExamSource()
_camera_broker = CameraBroker()
_detector = DlibLandmarkDetector()
_demo_grading_client = RecordingGradingClient()


# ============== Dependencies ==============

async def get_scheduler() -> Scheduler:
    # Resolved inside the event loop that will run the timers
    return AsyncioScheduler()


def get_exam_source() -> ExamSource:
    return _exam_source


def get_grading_client() -> GradingClient:
    if settings.GRADING_API_URL:
        return HttpGradingClient()
    return _demo_grading_client


def get_detector() -> LandmarkDetector:
    return _detector


def get_camera_broker() -> CameraBroker:
    return _camera_broker


def get_local_camera() -> Camera:
    return OpenCVCamera()


def get_identity_verifier() -> IdentityVerifier:
    return HttpIdentityVerifier()


# ============== Request/Response Models ==============

class RegisterExamResponse(BaseModel):
    exam_id: str
    question_count: int


class CreateSessionRequest(BaseModel):
    """Request to create an exam session"""
    exam_id: Optional[str] = Field(None, description="ID of a registered exam")
    exam: Optional[ExamDefinition] = Field(None, description="Inline exam definition")
    device_class: Optional[DeviceClass] = Field(None, description="Overrides user agent detection")
    session_id: Optional[str] = None


class CreateSessionResponse(BaseModel):
    session_id: str
    exam_id: str
    device_class: DeviceClass
    phase: str
    duration_minutes: int
    question_count: int


class StartSessionRequest(BaseModel):
    consent: bool = Field(..., description="Candidate accepted the exam rules")


class AnswerRequest(BaseModel):
    """Select an option for the current question, or an explicit one"""
    option_index: int = Field(..., ge=0)
    subject_index: Optional[int] = Field(None, ge=0)
    question_index: Optional[int] = Field(None, ge=0)


class ReviewRequest(BaseModel):
    subject_index: Optional[int] = Field(None, ge=0)
    question_index: Optional[int] = Field(None, ge=0)


class NavigateRequest(BaseModel):
    action: Literal["next", "prev", "goto"]
    subject_index: Optional[int] = None
    question_index: Optional[int] = None


class SignalRequest(BaseModel):
    """An environment event observed by the client"""
    kind: SignalKind
    key: Optional[str] = None
    ctrl: bool = False
    alt: bool = False
    meta: bool = False


class SignalResponse(BaseModel):
    violation: Optional[str] = None
    key_action: Optional[KeyAction] = None
    monitor_state: str
    phase: str
    seconds_until_termination: Optional[float] = None


class SubmitResponse(BaseModel):
    submitted: bool
    phase: str
    delivered: Optional[bool] = None
    payload: Optional[Dict[str, Any]] = None


class SessionStatusResponse(BaseModel):
    """Current session status"""
    session_id: str
    exam_id: str
    phase: str
    device_class: str
    time_left: int
    time_display: str
    time_warning: bool
    current: Dict[str, int]
    answers: Dict[str, int]
    palette: List[List[str]]
    summary: Dict[str, int]
    monitor_state: str
    seconds_until_termination: Optional[float] = None
    violations: Dict[str, int]
    violation_log: List[Dict[str, Any]]
    submitted: bool
    delivered: Optional[bool] = None


class StartCaptureRequest(BaseModel):
    client_id: str = Field(..., min_length=1, description="Owner of the camera stream")
    angles: Optional[List[CaptureAngle]] = Field(None, description="Defaults to front, left, right, up")
    source: Literal["push", "local"] = Field(
        "push", description="push: frames arrive over HTTP; local: the server webcam (CAMERA_INDEX)"
    )


class FrameRequest(BaseModel):
    frame_base64: str = Field(..., description="Base64 encoded JPEG frame")


class CaptureStatusResponse(BaseModel):
    capture_id: str
    state: str
    current_angle: Optional[str] = None
    captured: List[str]
    missing: List[str]
    good_samples: int
    required_samples: int
    face_detected: bool
    pose: Optional[Dict[str, float]] = None
    guidance: str
    error: Optional[str] = None


class CaptureSubmitResponse(BaseModel):
    submitted: bool
    images: int


class HealthResponse(BaseModel):
    status: str
    active_sessions: int
    active_captures: int
    detector_loaded: bool


# ============== Helpers ==============

def _get_session(session_id: str) -> ExamSession:
    session = _sessions.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _get_capture(capture_id: str) -> CaptureSequencer:
    sequencer = _captures.get(capture_id)
    if not sequencer:
        raise HTTPException(status_code=404, detail="Capture not found")
    return sequencer


def _http_error(e: ExamRoomError) -> HTTPException:
    if isinstance(e, SessionStateError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, NavigationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (CameraError, DetectorLoadError)):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, VerificationError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _optional_key(subject_index: Optional[int], question_index: Optional[int]) -> Optional[QuestionKey]:
    if subject_index is None and question_index is None:
        return None
    if subject_index is None or question_index is None:
        raise HTTPException(status_code=400, detail="subject_index and question_index go together")
    return QuestionKey(subject_index, question_index)


def _replay(session: ExamSession, request: SignalRequest) -> Optional[KeyAction]:
    """Replay a client event into the session's environment"""
    env = session.environment
    if request.kind == SignalKind.KEY_DOWN:
        if not request.key:
            raise HTTPException(status_code=400, detail="key is required for key_down")
        return env.press_key(request.key, ctrl=request.ctrl, alt=request.alt, meta=request.meta)

    replay = {
        SignalKind.FULLSCREEN_EXITED: env.lose_fullscreen,
        SignalKind.FULLSCREEN_ENTERED: env.restore_fullscreen,
        SignalKind.PAGE_HIDDEN: env.hide_page,
        SignalKind.PAGE_VISIBLE: env.show_page,
        SignalKind.RETURNED_TO_EXAM: env.return_to_exam,
    }
    replay[request.kind]()
    return None


# ============== Exam Session Endpoints ==============

@router.post("/exams", response_model=RegisterExamResponse)
async def register_exam(exam: ExamDefinition, source: ExamSource = Depends(get_exam_source)):
    """Register an exam definition so sessions can refer to it by ID"""
    if not isinstance(source, InMemoryExamSource):
        raise HTTPException(status_code=409, detail="Exam source is read-only")
    source.add(exam)
    logger.info(f"Registered exam {exam.id} ({exam.question_count} questions)")
    return RegisterExamResponse(exam_id=exam.id, question_count=exam.question_count)


@router.post("/sessions", response_model=CreateSessionResponse)
async def create_session(
    request: CreateSessionRequest,
    user_agent: Optional[str] = Header(None),
    scheduler: Scheduler = Depends(get_scheduler),
    source: ExamSource = Depends(get_exam_source),
    grading_client: GradingClient = Depends(get_grading_client)
):
    """
    Create a new exam session in the consent phase.

    The device class comes from the request, or is detected from the
    User-Agent header when omitted.
    """
    if request.exam is not None:
        exam = request.exam
    elif request.exam_id:
        try:
            exam = source.get_exam(request.exam_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Exam not found")
    else:
        raise HTTPException(status_code=400, detail="Either exam or exam_id is required")

    if request.session_id and request.session_id in _sessions:
        raise HTTPException(status_code=409, detail="Session already exists")

    device_class = request.device_class or DeviceClass.from_user_agent(user_agent)
    session = ExamSession(
        exam=exam,
        device_class=device_class,
        grading_client=grading_client,
        scheduler=scheduler,
        session_id=request.session_id
    )
    _sessions[session.id] = session

    logger.info(f"Created exam session: {session.id} ({device_class.value})")

    return CreateSessionResponse(
        session_id=session.id,
        exam_id=exam.id,
        device_class=device_class,
        phase=session.phase.value,
        duration_minutes=exam.duration,
        question_count=exam.question_count
    )


@router.post("/sessions/{session_id}/start", response_model=SessionStatusResponse)
async def start_session(session_id: str, request: StartSessionRequest):
    session = _get_session(session_id)
    try:
        session.start(consent=request.consent)
    except ExamRoomError as e:
        raise _http_error(e)
    return SessionStatusResponse(**session.snapshot())


@router.post("/sessions/{session_id}/answer", response_model=SessionStatusResponse)
async def select_answer(session_id: str, request: AnswerRequest):
    session = _get_session(session_id)
    key = _optional_key(request.subject_index, request.question_index)
    try:
        session.select_answer(request.option_index, key=key)
    except ExamRoomError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SessionStatusResponse(**session.snapshot())


@router.post("/sessions/{session_id}/review", response_model=SessionStatusResponse)
async def toggle_review(session_id: str, request: Optional[ReviewRequest] = None):
    session = _get_session(session_id)
    key = _optional_key(request.subject_index, request.question_index) if request else None
    try:
        session.toggle_review(key=key)
    except ExamRoomError as e:
        raise _http_error(e)
    return SessionStatusResponse(**session.snapshot())


@router.post("/sessions/{session_id}/navigate", response_model=SessionStatusResponse)
async def navigate(session_id: str, request: NavigateRequest):
    """
    Move between questions.

    next/prev at the boundaries leave the pointer unchanged; goto outside
    the exam is rejected.
    """
    session = _get_session(session_id)
    try:
        if request.action == "next":
            session.next_question()
        elif request.action == "prev":
            session.previous_question()
        else:
            if request.subject_index is None or request.question_index is None:
                raise HTTPException(status_code=400, detail="goto needs subject_index and question_index")
            session.go_to(request.subject_index, request.question_index)
    except ExamRoomError as e:
        raise _http_error(e)
    return SessionStatusResponse(**session.snapshot())


@router.post("/sessions/{session_id}/signal", response_model=SignalResponse)
async def record_signal(session_id: str, request: SignalRequest):
    """
    Replay an environment event (fullscreen change, visibility change,
    key press, return to exam) observed by the client.
    """
    session = _get_session(session_id)
    if not session.is_active:
        raise HTTPException(status_code=409, detail="Session is not active")

    before = len(session.monitor.events)
    key_action = _replay(session, request)
    events = session.monitor.events
    violation = events[-1].type.value if len(events) > before else None

    return SignalResponse(
        violation=violation,
        key_action=key_action,
        monitor_state=session.monitor.state.value,
        phase=session.phase.value,
        seconds_until_termination=session.monitor.seconds_until_termination()
    )


@router.post("/sessions/{session_id}/submit", response_model=SubmitResponse)
async def submit_session(session_id: str):
    """
    Submit the exam.

    Submission is idempotent: a session that already finalized (manual,
    time up or expelled) reports submitted=false and keeps its payload.
    The response waits for the grading hand-off so it can report delivery.
    """
    session = _get_session(session_id)
    if session.phase == SessionPhase.CONSENT:
        raise HTTPException(status_code=409, detail="Session has not started")

    payload = session.submit()
    await session.submission.wait_for_delivery()
    stored = session.payload
    return SubmitResponse(
        submitted=payload is not None,
        phase=session.phase.value,
        delivered=session.submission.delivered,
        payload=stored.model_dump(by_alias=True, mode="json") if stored else None
    )


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(session_id: str):
    session = _get_session(session_id)
    return SessionStatusResponse(**session.snapshot())


# ============== Identity Capture Endpoints ==============

@router.post("/capture", response_model=CaptureStatusResponse)
async def start_capture(
    request: StartCaptureRequest,
    scheduler: Scheduler = Depends(get_scheduler),
    detector: LandmarkDetector = Depends(get_detector),
    broker: CameraBroker = Depends(get_camera_broker),
    local_camera: Camera = Depends(get_local_camera)
):
    """
    Start a guided multi-angle capture.

    With the push source the client keeps its own webcam stream and pushes
    frames to /capture/{capture_id}/frame; the local source reads the
    server's webcam. The capture releases the camera when it completes,
    fails, times out without frames or is cancelled.
    """
    camera = local_camera if request.source == "local" else PushCamera()
    sequencer = CaptureSequencer(
        scheduler,
        camera,
        detector,
        client_id=request.client_id,
        broker=broker,
        required_angles=request.angles
    )
    try:
        sequencer.start()
    except ExamRoomError as e:
        raise _http_error(e)

    # Finished captures of this client are replaced by the new one
    for stale_id in [
        cid for cid, other in _captures.items()
        if other.client_id == request.client_id and not other.is_active
    ]:
        del _captures[stale_id]

    _captures[sequencer.id] = sequencer
    return CaptureStatusResponse(**sequencer.status())


@router.post("/capture/{capture_id}/frame", response_model=CaptureStatusResponse)
async def push_frame(capture_id: str, request: FrameRequest):
    sequencer = _get_capture(capture_id)
    if not isinstance(sequencer.camera, PushCamera):
        raise HTTPException(status_code=409, detail="Capture reads a local camera")
    if not sequencer.is_active:
        raise HTTPException(status_code=409, detail=f"Capture is {sequencer.state.value}")

    try:
        frame_bytes = base64.b64decode(request.frame_base64, validate=True)
        sequencer.camera.push_jpeg(frame_bytes)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Invalid frame data")
    except CameraError as e:
        raise _http_error(e)

    return CaptureStatusResponse(**sequencer.status())


@router.get("/capture/{capture_id}", response_model=CaptureStatusResponse)
async def get_capture_status(capture_id: str):
    sequencer = _get_capture(capture_id)
    return CaptureStatusResponse(**sequencer.status())


@router.post("/capture/{capture_id}/cancel", response_model=CaptureStatusResponse)
async def cancel_capture(capture_id: str):
    sequencer = _get_capture(capture_id)
    sequencer.cancel()
    return CaptureStatusResponse(**sequencer.status())


@router.post("/capture/{capture_id}/submit", response_model=CaptureSubmitResponse)
async def submit_capture(capture_id: str, verifier: IdentityVerifier = Depends(get_identity_verifier)):
    """Upload the captured angle images to identity verification"""
    sequencer = _get_capture(capture_id)
    try:
        submitted = sequencer.submit(verifier)
    except ExamRoomError as e:
        raise _http_error(e)
    return CaptureSubmitResponse(submitted=submitted, images=len(sequencer.captured))


@router.get("/health", response_model=HealthResponse)
async def health(detector: LandmarkDetector = Depends(get_detector)):
    return HealthResponse(
        status="healthy",
        active_sessions=sum(1 for s in _sessions.values() if s.is_active),
        active_captures=sum(1 for c in _captures.values() if c.is_active),
        detector_loaded=detector.is_loaded
    )
