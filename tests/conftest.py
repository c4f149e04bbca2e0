import copy

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from app.main import app
from app.api.v1.chatbot import get_dialog_engine
from triage.conversation.dialog_flow import DialogFlowEngine
from triage.conversation.flow_graph import FlowGraph
from triage.conversation.state_manager import InMemorySessionRepository
from triage.decision_engine.symptom_classifier import SymptomCategory
from triage.llm.llm_service import ConversationSummary


SAMPLE_FLOW = {
    "nodes": {
        "greeting": {
            "type": "open-ended",
            "question": "您好！請描述您的症狀。",
            "next": "classify_symptom"
        },
        "classify_symptom": {
            "type": "function",
            "handler": "classifySymptomHandler"
        },
        "abdomen_start": {
            "type": "open-ended",
            "question": "您提到{{SYMPTOM}}，請問持續多久了？",
            "next": "abdomen_fever"
        },
        "abdomen_fever": {
            "type": "yes_no",
            "question": "有沒有發燒？",
            "nextIfYes": "gi_referral",
            "nextIfNo": "get_age"
        },
        "gi_referral": {
            "type": "open-ended",
            "question": "建議您至腸胃科就診。",
            "next": "get_age",
            "meta": {"specialty": "腸胃科"}
        },
        "joint_start": {
            "type": "open-ended",
            "question": "關節痛多久了？",
            "next": "get_age"
        },
        "get_age": {
            "type": "open-ended",
            "question": "請問您的年齡？",
            "next": "find_clinic_north"
        },
        "find_clinic_north": {
            "type": "multiple_choice",
            "question": "請選擇城市：1) 台北市 2) 新北市",
            "options": ["1", "2"],
            "optionLabels": {"1": "台北市", "2": "新北市"},
            "next": {"1": "ask_email", "2": "ask_email"}
        },
        "ask_email": {
            "type": "yes_no",
            "question": "需要寄送摘要嗎？",
            "nextIfYes": "get_email",
            "nextIfNo": "end"
        },
        "get_email": {
            "type": "open-ended",
            "question": "請輸入電子郵件：",
            "next": "end"
        },
        "end": {
            "type": "end",
            "question": "感謝您的回答。"
        }
    }
}


@pytest.fixture
def sample_flow():
    """A small flow covering every node type."""
    return copy.deepcopy(SAMPLE_FLOW)


@pytest.fixture
def flow_graph(sample_flow):
    return FlowGraph.load([sample_flow])


@pytest.fixture
def mock_classifier():
    """Classifier that always answers abdominal pain."""
    classifier = MagicMock()
    classifier.classify = AsyncMock(return_value=SymptomCategory.ABDOMINAL_PAIN)
    return classifier


@pytest.fixture
def mock_summarizer():
    summarizer = MagicMock()
    summarizer.summarize_conversation = AsyncMock(
        return_value=ConversationSummary(chinese_summary="中文摘要", admission_note="Admission note")
    )
    return summarizer


@pytest.fixture
def mock_notifier():
    notifier = MagicMock()
    notifier.send = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def session_repository():
    return InMemorySessionRepository()


@pytest.fixture
def dialog_engine(flow_graph, session_repository, mock_classifier, mock_summarizer, mock_notifier):
    """Engine over the sample flow with all external calls mocked."""
    return DialogFlowEngine(
        flow_graph,
        sessions=session_repository,
        classifier=mock_classifier,
        summarizer=mock_summarizer,
        notifier=mock_notifier,
        entry_node_id="greeting",
        terminal_node_id="end",
        email_node_id="get_email",
        age_node_id="get_age",
        clinic_node_ids=["find_clinic_north"],
        auto_advance_open_ended=True,
        info_base_url="https://example.com/info"
    )


@pytest.fixture
def client(dialog_engine):
    """Create test client backed by the mocked engine."""
    app.dependency_overrides[get_dialog_engine] = lambda: dialog_engine

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
