"""
Conversation state management for triage sessions.
Defines the per-user session record and the repository interface the dialog
engine reads and writes; the default repository keeps sessions in process memory.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)


@dataclass
class AnswerRecord:
    """Question text at time of visit and the resolved answer label."""
    question: str
    answer: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TriageSession:
    """One user's in-progress conversation state."""
    session_id: str
    current_node: str
    answers: Dict[str, AnswerRecord] = field(default_factory=dict)
    chosen_specialty: Optional[str] = None
    selected_city: Optional[str] = None
    email: Optional[str] = None
    completed: bool = False
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def record_answer(self, node_id: str, question: str, answer: str) -> None:
        """Store an answer; revisiting a node overwrites but keeps first-visit order."""
        self.answers[node_id] = AnswerRecord(question=question, answer=answer)

    def transcript(self) -> str:
        """Q&A text of all answers in visitation order."""
        return "".join(
            f"Q: {record.question}\nA: {record.answer}\n\n"
            for record in self.answers.values()
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['answers'] = {node_id: record.to_dict() for node_id, record in self.answers.items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TriageSession':
        session_data = data.copy()
        session_data['answers'] = {
            node_id: AnswerRecord(**record)
            for node_id, record in (data.get('answers') or {}).items()
        }
        return cls(**session_data)


class SessionRepository(ABC):
    """Storage interface for triage sessions."""

    @abstractmethod
    async def create_session(self, current_node: str, session_id: Optional[str] = None) -> TriageSession:
        """Create and store a new session seeded at ``current_node``."""

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[TriageSession]:
        """Return the session or None when unknown."""

    @abstractmethod
    async def update_session(self, session: TriageSession) -> None:
        """Persist a mutated session."""


class InMemorySessionRepository(SessionRepository):
    """Process-wide session map. Sessions are never pruned."""

    def __init__(self):
        self._sessions: Dict[str, TriageSession] = {}

    async def create_session(self, current_node: str, session_id: Optional[str] = None) -> TriageSession:
        session = TriageSession(
            session_id=session_id or str(uuid.uuid4()),
            current_node=current_node
        )
        self._sessions[session.session_id] = session
        logger.info(f"Created triage session: {session.session_id}")
        return session

    async def get_session(self, session_id: str) -> Optional[TriageSession]:
        return self._sessions.get(session_id)

    async def update_session(self, session: TriageSession) -> None:
        session.updated_at = time.time()
        self._sessions[session.session_id] = session

    async def get_active_sessions(self) -> List[str]:
        """Session ids that have not reached the terminal node."""
        return [session_id for session_id, session in self._sessions.items() if not session.completed]

    def __len__(self) -> int:
        return len(self._sessions)
