class VidstudyError(Exception):
    """Base class for errors raised by the core."""


class StorageError(VidstudyError):
    """A document could not be written."""


class SessionNotFoundError(VidstudyError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Video session not found: {session_id}")
        self.session_id = session_id


class DuplicateVideoError(VidstudyError):
    def __init__(self, video_id: str) -> None:
        super().__init__(f"A session already exists for video {video_id}")
        self.video_id = video_id


class QuizStateError(VidstudyError):
    """An operation is not valid in the quiz attempt's current phase."""


class ChatSessionNotFoundError(VidstudyError):
    def __init__(self, chat_id: str) -> None:
        super().__init__(f"Chat session not found: {chat_id}")
        self.chat_id = chat_id
