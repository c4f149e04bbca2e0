"""
Chatbot API endpoints for the triage conversation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from triage.conversation.dialog_flow import DialogFlowEngine, create_dialog_engine
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()

MISSING_USER_ID_REPLY = "No user_id provided"
INTERNAL_ERROR_REPLY = "Internal server error."

_dialog_engine: Optional[DialogFlowEngine] = None


def init_dialog_engine(flows_path: Optional[str] = None) -> DialogFlowEngine:
    """Build the process-wide engine from the configured flow directory."""
    global _dialog_engine
    _dialog_engine = create_dialog_engine(flows_path)
    return _dialog_engine


def get_dialog_engine() -> DialogFlowEngine:
    """Dependency returning the shared engine, building it on first use."""
    if _dialog_engine is None:
        return init_dialog_engine()
    return _dialog_engine


# Request/Response Models
class ChatbotStartResponse(BaseModel):
    """Response model for a new conversation."""
    user_id: str
    greeting: str


class ChatbotMessageRequest(BaseModel):
    """Request model for one user turn."""
    user_id: Optional[str] = Field(None, description="Session id returned by /chatbot/start")
    message: Optional[str] = Field("", description="The user's reply")


class ChatbotMessageResponse(BaseModel):
    """Response model for one user turn."""
    response: str


# API Endpoints
@router.get("/chatbot/start", response_model=ChatbotStartResponse)
async def start_conversation(engine: DialogFlowEngine = Depends(get_dialog_engine)):
    """Open a new conversation at the entry node."""
    started = await engine.start_session()
    logger.info(f"Conversation started: {started.session_id}", extra={"session_id": started.session_id})
    return ChatbotStartResponse(user_id=started.session_id, greeting=started.greeting)


@router.post("/chatbot", response_model=ChatbotMessageResponse)
async def chat(
    request: ChatbotMessageRequest,
    http_request: Request,
    engine: DialogFlowEngine = Depends(get_dialog_engine)
):
    """Advance a conversation by one user message."""
    request_id = getattr(http_request.state, 'request_id', None)

    if not request.user_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"response": MISSING_USER_ID_REPLY}
        )

    try:
        result = await engine.process_user_input(request.user_id, request.message or "")
    except Exception as e:
        logger.error(
            f"Error processing message: {e}",
            exc_info=True,
            extra={"request_id": request_id, "session_id": request.user_id}
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"response": INTERNAL_ERROR_REPLY}
        )

    logger.info(
        f"Turn processed, now at node {result.node_id}",
        extra={"request_id": request_id, "session_id": result.session_id}
    )
    return ChatbotMessageResponse(response=result.reply)
