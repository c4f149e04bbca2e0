"""
Conversation management module for the triage chatbot.
Contains the flow graph store, session state and dialog flow engine.
"""

from .flow_graph import (
    FlowGraph,
    FlowLoadError,
    FlowNode,
    FlowNodeType,
    OpenEndedNode,
    YesNoNode,
    MultipleChoiceNode,
    FunctionNode,
    EndNode,
    UnsupportedNode,
    load_flow_file,
    load_flow_directory
)
from .state_manager import (
    AnswerRecord,
    TriageSession,
    SessionRepository,
    InMemorySessionRepository
)
from .templating import render
from .dialog_flow import (
    DialogFlowEngine,
    TurnOutcome,
    TurnResult,
    SessionStart,
    create_dialog_engine
)

__all__ = [
    'FlowGraph',
    'FlowLoadError',
    'FlowNode',
    'FlowNodeType',
    'OpenEndedNode',
    'YesNoNode',
    'MultipleChoiceNode',
    'FunctionNode',
    'EndNode',
    'UnsupportedNode',
    'load_flow_file',
    'load_flow_directory',
    'AnswerRecord',
    'TriageSession',
    'SessionRepository',
    'InMemorySessionRepository',
    'render',
    'DialogFlowEngine',
    'TurnOutcome',
    'TurnResult',
    'SessionStart',
    'create_dialog_engine'
]
