"""
Dialog flow engine for the triage conversation.
Interprets the flow graph one user turn at a time: resolves the current node,
applies its transition rule, records answers and triggers classification,
summarization and email delivery at the node types that call for them.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Set
from urllib.parse import quote

from .flow_graph import (
    EndNode,
    FlowGraph,
    FlowNode,
    FunctionNode,
    MultipleChoiceNode,
    OpenEndedNode,
    YesNoNode,
    load_flow_directory,
)
from .state_manager import InMemorySessionRepository, SessionRepository, TriageSession
from .templating import render
from triage.decision_engine.symptom_classifier import (
    CATEGORY_START_NODES,
    DEFAULT_CATEGORY,
    SymptomClassifier,
    symptom_classifier,
)
from triage.llm.llm_service import SUMMARY_FAILED, ConversationSummary, LLMService, llm_service
from triage.notifications.email_sender import EmailSender, email_sender, format_summary_body
from app.core.config import settings

logger = logging.getLogger(__name__)


# User-facing fixed replies
STRUCTURAL_ERROR_REPLY = "抱歉，我無法處理您的請求，請稍後再試。"
FEATURE_UNAVAILABLE_REPLY = "該功能無法使用。"
INVALID_AGE_REPLY = "請輸入有效的年齡（0~120）"
YES_NO_REPROMPT = "請回答是或否。"
INVALID_OPTION_REPLY = "無效的選項，請選擇有效的選項。"
UNSUPPORTED_NODE_REPLY = "感謝使用！"
DEFAULT_GREETING = "您好！"

YES_TOKENS = frozenset({"yes", "y", "是", "1"})
NO_TOKENS = frozenset({"no", "n", "否", "2"})

CLASSIFY_SYMPTOM_HANDLER = "classifySymptomHandler"

MIN_AGE = 0
MAX_AGE = 120

_LEADING_INT = re.compile(r"^[+-]?\d+")

# Characters encodeURIComponent leaves unescaped besides alphanumerics and "-_.~"
_URI_COMPONENT_SAFE = "!*'()"


@dataclass
class TurnOutcome:
    """Result of one transition, before it is applied to the session."""
    next_node_id: str
    reply: str
    answer_label: Optional[str] = None
    # False for re-prompts: the input is rejected and no answer is recorded
    accepted: bool = True
    specialty: Optional[str] = None
    selected_city: Optional[str] = None
    email: Optional[str] = None
    send_summary: bool = False
    # Structural degradation: the fixed message opens the final reply
    aborted: bool = False


@dataclass
class TurnResult:
    """What a caller gets back for one user turn."""
    session_id: str
    node_id: str
    reply: str
    answer_label: Optional[str] = None
    completed: bool = False


@dataclass
class SessionStart:
    session_id: str
    greeting: str


def parse_age(text: str) -> Optional[int]:
    """Parse a leading integer; None when the text does not start with one."""
    match = _LEADING_INT.match(text.strip())
    if not match:
        return None
    return int(match.group(0))


class DialogFlowEngine:
    """Main dialog flow engine for triage conversations."""

    def __init__(
        self,
        graph: FlowGraph,
        sessions: Optional[SessionRepository] = None,
        classifier: Optional[SymptomClassifier] = None,
        summarizer: Optional[LLMService] = None,
        notifier: Optional[EmailSender] = None,
        entry_node_id: str = None,
        terminal_node_id: str = None,
        email_node_id: str = None,
        age_node_id: str = None,
        clinic_node_ids: Optional[List[str]] = None,
        auto_advance_open_ended: Optional[bool] = None,
        info_base_url: str = None
    ):
        self.graph = graph
        self.sessions = sessions or InMemorySessionRepository()
        self.classifier = classifier or symptom_classifier
        self.summarizer = summarizer or llm_service
        self.notifier = notifier or email_sender

        self.entry_node_id = entry_node_id or settings.ENTRY_NODE_ID
        self.terminal_node_id = terminal_node_id or settings.TERMINAL_NODE_ID
        self.email_node_id = email_node_id or settings.EMAIL_NODE_ID
        self.age_node_id = age_node_id or settings.AGE_NODE_ID
        self.clinic_node_ids = set(clinic_node_ids if clinic_node_ids is not None else settings.clinic_node_ids)
        self.auto_advance_open_ended = (
            settings.OPEN_ENDED_AUTO_ADVANCE if auto_advance_open_ended is None else auto_advance_open_ended
        )
        self.info_base_url = info_base_url or settings.INFO_BASE_URL

        self._pending_notifications: Set[asyncio.Task] = set()

    # Session lifecycle

    async def start_session(self) -> SessionStart:
        """Allocate a new session at the entry node and return its greeting."""
        session = await self.sessions.create_session(self.entry_node_id)
        entry_node = self.graph.get(self.entry_node_id)
        greeting = entry_node.question if entry_node and entry_node.question else DEFAULT_GREETING
        return SessionStart(session_id=session.session_id, greeting=greeting)

    async def process_user_input(self, session_id: str, user_input: str) -> TurnResult:
        """Run one user turn for a session, creating the session if it is unknown."""
        session = await self.sessions.get_session(session_id)
        if session is None:
            session = await self.sessions.create_session(self.entry_node_id, session_id=session_id)

        raw_message = (user_input or "").strip()
        turn_node_id = session.current_node
        turn_node = self.graph.get(turn_node_id)

        try:
            outcome = await self.compute_transition(turn_node_id, raw_message)
        except Exception as e:
            logger.error(f"Error computing transition at node {turn_node_id}: {e}", exc_info=True)
            outcome = TurnOutcome(self.terminal_node_id, STRUCTURAL_ERROR_REPLY, accepted=False, aborted=True)

        if outcome.send_summary and outcome.email:
            await self._schedule_summary_email(session, outcome.email)

        self._apply_outcome(session, turn_node, outcome, raw_message)

        reply = outcome.reply
        if outcome.next_node_id == self.terminal_node_id:
            reply = await self._compose_final_reply(session, outcome)
            session.completed = True

        await self.sessions.update_session(session)

        return TurnResult(
            session_id=session.session_id,
            node_id=outcome.next_node_id,
            reply=reply,
            answer_label=outcome.answer_label,
            completed=session.completed
        )

    # Transition computation

    async def compute_transition(self, node_id: str, raw_message: str) -> TurnOutcome:
        """Compute next node and reply for ``raw_message`` at ``node_id``.

        Session state is not touched here; the returned outcome carries every
        update the turn implies.
        """
        node = self.graph.get(node_id)
        if node is None:
            logger.warning(f"Node {node_id!r} not found, ending conversation")
            return TurnOutcome(self.terminal_node_id, STRUCTURAL_ERROR_REPLY, accepted=False, aborted=True)

        logger.debug(f"Dispatching node {node_id} ({type(node).__name__})")

        reply = render(node.question, {"symptom": raw_message})
        if node.specialty:
            reply += self._info_link(specialty=node.specialty)

        outcome = await self._dispatch(node, raw_message, reply)

        if outcome.next_node_id != self.terminal_node_id and outcome.next_node_id not in self.graph:
            logger.warning(f"Node {node_id} leads to missing node {outcome.next_node_id!r}, ending conversation")
            outcome = replace(
                outcome,
                next_node_id=self.terminal_node_id,
                reply=STRUCTURAL_ERROR_REPLY,
                aborted=True
            )

        if node.specialty and outcome.specialty is None:
            outcome.specialty = node.specialty

        return outcome

    async def _dispatch(self, node: FlowNode, raw_message: str, reply: str) -> TurnOutcome:
        if isinstance(node, EndNode):
            return TurnOutcome(self.terminal_node_id, reply)
        if isinstance(node, FunctionNode):
            return await self._handle_function(node, raw_message)
        if isinstance(node, OpenEndedNode):
            return await self._handle_open_ended(node, raw_message, reply)
        if isinstance(node, YesNoNode):
            return self._handle_yes_no(node, raw_message)
        if isinstance(node, MultipleChoiceNode):
            return self._handle_multiple_choice(node, raw_message)

        logger.warning(f"Unsupported node type at {node.id}, ending conversation")
        return TurnOutcome(self.terminal_node_id, UNSUPPORTED_NODE_REPLY, aborted=True)

    async def _handle_function(self, node: FunctionNode, raw_message: str) -> TurnOutcome:
        if node.handler != CLASSIFY_SYMPTOM_HANDLER:
            logger.warning(f"Unknown handler {node.handler!r} at node {node.id}")
            return TurnOutcome(self.terminal_node_id, FEATURE_UNAVAILABLE_REPLY, aborted=True)

        try:
            category = await self.classifier.classify(raw_message)
        except Exception as e:
            logger.error(f"Symptom classifier failed, using default category: {e}")
            category = DEFAULT_CATEGORY

        next_node_id = CATEGORY_START_NODES.get(category, CATEGORY_START_NODES[DEFAULT_CATEGORY])
        return TurnOutcome(next_node_id, self._question_of(next_node_id, raw_message))

    async def _handle_open_ended(self, node: OpenEndedNode, raw_message: str, reply: str) -> TurnOutcome:
        if node.id == self.email_node_id:
            next_node_id = node.next or self.terminal_node_id
            return TurnOutcome(
                next_node_id,
                self._question_of(next_node_id, raw_message),
                email=raw_message,
                send_summary=True
            )

        if node.id == self.age_node_id:
            age = parse_age(raw_message)
            if age is None or not MIN_AGE <= age <= MAX_AGE:
                return TurnOutcome(node.id, INVALID_AGE_REPLY, accepted=False)
            next_node_id = node.next or self.terminal_node_id
            return TurnOutcome(next_node_id, self._question_of(next_node_id, raw_message))

        if node.id == self.entry_node_id:
            if not raw_message:
                return TurnOutcome(node.id, reply, accepted=False)
            next_node_id = node.next or self.terminal_node_id
            if next_node_id == node.id:
                logger.warning(f"Entry node {node.id} points to itself")
                return TurnOutcome(self.terminal_node_id, STRUCTURAL_ERROR_REPLY, accepted=False, aborted=True)
            # Carry the first utterance forward so it is not discarded
            forwarded = await self.compute_transition(next_node_id, raw_message)
            forwarded.accepted = True
            return forwarded

        if self.auto_advance_open_ended and node.next:
            return TurnOutcome(node.next, self._question_of(node.next, raw_message))

        return TurnOutcome(node.id, reply)

    def _handle_yes_no(self, node: YesNoNode, raw_message: str) -> TurnOutcome:
        token = raw_message.lower()
        if token in YES_TOKENS:
            next_node_id = node.next_if_yes or self.terminal_node_id
        elif token in NO_TOKENS:
            next_node_id = node.next_if_no or self.terminal_node_id
        else:
            return TurnOutcome(node.id, YES_NO_REPROMPT, accepted=False)

        return TurnOutcome(next_node_id, self._question_of(next_node_id, raw_message))

    def _handle_multiple_choice(self, node: MultipleChoiceNode, raw_message: str) -> TurnOutcome:
        token = raw_message.lower()
        if token not in node.options:
            return TurnOutcome(node.id, INVALID_OPTION_REPLY, accepted=False)

        label = node.option_labels.get(token) or raw_message
        next_node_id = node.next.get(token) or self.terminal_node_id
        return TurnOutcome(
            next_node_id,
            self._question_of(next_node_id, raw_message),
            answer_label=label,
            selected_city=label if node.id in self.clinic_node_ids else None
        )

    def _question_of(self, node_id: str, raw_message: str) -> str:
        """Rendered question of a destination node; empty when it does not exist."""
        node = self.graph.get(node_id)
        if node is None:
            return ""
        return render(node.question, {"symptom": raw_message})

    # Effects

    def _apply_outcome(
        self,
        session: TriageSession,
        turn_node: Optional[FlowNode],
        outcome: TurnOutcome,
        raw_message: str
    ) -> None:
        if outcome.specialty:
            session.chosen_specialty = outcome.specialty
        if outcome.selected_city:
            session.selected_city = outcome.selected_city
        if outcome.email:
            session.email = outcome.email

        if outcome.accepted and turn_node is not None:
            answer = outcome.answer_label if outcome.answer_label is not None else raw_message
            session.record_answer(turn_node.id, turn_node.question, answer)

        session.current_node = outcome.next_node_id

    async def _summarize(self, transcript: str) -> ConversationSummary:
        try:
            return await self.summarizer.summarize_conversation(transcript)
        except Exception as e:
            logger.error(f"Summarizer failed: {e}")
            return ConversationSummary.placeholder(SUMMARY_FAILED)

    async def _schedule_summary_email(self, session: TriageSession, address: str) -> None:
        """Summarize the transcript so far and send it without blocking the reply."""
        summary = await self._summarize(session.transcript())
        body = format_summary_body(summary.to_dict())

        task = asyncio.create_task(self._send_summary_email(session.session_id, address, body))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def _send_summary_email(self, session_id: str, address: str, body: str) -> bool:
        try:
            delivered = await self.notifier.send(address, body)
        except Exception as e:
            logger.error(f"Summary email for session {session_id} failed: {e}")
            return False

        if not delivered:
            logger.warning(f"Summary email for session {session_id} was not delivered")
        return bool(delivered)

    async def wait_for_notifications(self) -> None:
        """Wait for in-flight email deliveries to finish."""
        if self._pending_notifications:
            await asyncio.gather(*self._pending_notifications, return_exceptions=True)

    async def _compose_final_reply(self, session: TriageSession, outcome: TurnOutcome) -> str:
        end_node = self.graph.get(self.terminal_node_id)
        if outcome.aborted or end_node is None or not end_node.question:
            opening = outcome.reply
        else:
            opening = end_node.question

        summary = await self._summarize(session.transcript())
        final_reply = (
            f"{opening}\n\n"
            f"【中文總結】{summary.chinese_summary}\n\n"
            f"【Summary Note】{summary.admission_note}"
        )

        info_url = self._info_url(specialty=session.chosen_specialty, city=session.selected_city)
        if info_url:
            final_reply += f"\n\n【更多資訊】請參考: {info_url}"

        return final_reply

    def _info_url(self, specialty: Optional[str] = None, city: Optional[str] = None) -> Optional[str]:
        params = []
        if specialty:
            params.append(f"specialty={quote(specialty, safe=_URI_COMPONENT_SAFE)}")
        if city:
            params.append(f"city={quote(city, safe=_URI_COMPONENT_SAFE)}")
        if not params:
            return None
        return f"{self.info_base_url}?{'&'.join(params)}"

    def _info_link(self, specialty: str) -> str:
        return f"\n\n【更多資訊】請參考: {self._info_url(specialty=specialty)}"

    # Introspection

    async def get_flow_status(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Get status of a session's flow execution."""
        session = await self.sessions.get_session(session_id)
        if session is None:
            return None
        return session.to_dict()

    async def health_check(self) -> Dict[str, Any]:
        """Perform health check of dialog flow engine."""
        active_sessions = None
        if isinstance(self.sessions, InMemorySessionRepository):
            active_sessions = len(await self.sessions.get_active_sessions())

        return {
            "healthy": len(self.graph) > 0 and self.entry_node_id in self.graph,
            "loaded_nodes": len(self.graph),
            "entry_node": self.entry_node_id,
            "active_sessions": active_sessions,
            "pending_notifications": len(self._pending_notifications),
            "timestamp": datetime.utcnow().isoformat()
        }


def create_dialog_engine(flows_path: str = None, **kwargs) -> DialogFlowEngine:
    """Build an engine over the flow files in ``flows_path``."""
    graph = load_flow_directory(flows_path or settings.CONVERSATION_FLOWS_PATH)

    dangling = graph.dangling_references(kwargs.get("terminal_node_id") or settings.TERMINAL_NODE_ID)
    for node_id, target in dangling:
        logger.warning(f"Node {node_id} references missing node {target}")

    return DialogFlowEngine(graph, **kwargs)
