"""
Exam room exceptions
"""


class ExamRoomError(Exception):
    """Base class for all exam room errors"""


class SessionStateError(ExamRoomError):
    """Operation is not allowed in the session's current phase"""


class NavigationError(ExamRoomError):
    """A question pointer or QuestionKey is out of bounds"""


class CameraError(ExamRoomError):
    """
    Camera unavailable, permission denied or stream failure.

    Recoverable: the caller may retry acquisition. Never terminates an
    exam session that is already running.
    """


class DetectorLoadError(ExamRoomError):
    """Landmark detector could not be loaded; capture cannot start until a retry succeeds"""


class SubmissionError(ExamRoomError):
    """Submission payload could not be delivered to the grading collaborator"""


class VerificationError(ExamRoomError):
    """Captured images could not be delivered to the identity-verification collaborator"""
