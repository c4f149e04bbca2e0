"""
Flow graph store for the triage conversation.
Loads one or more node collections (JSON or YAML) and merges them into a
single read-only graph addressed by node id.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)


FLOW_FILE_SUFFIXES = (".json", ".yaml", ".yml")


class FlowLoadError(Exception):
    """Raised when a flow file cannot be read or parsed."""
    pass


class FlowNodeType(Enum):
    """Types of flow nodes."""
    OPEN_ENDED = "open-ended"
    YES_NO = "yes_no"
    MULTIPLE_CHOICE = "multiple_choice"
    FUNCTION = "function"
    END = "end"


@dataclass(frozen=True)
class FlowNode:
    """A node in the conversation flow."""
    id: str
    question: str = ""
    specialty: Optional[str] = None


@dataclass(frozen=True)
class OpenEndedNode(FlowNode):
    """Free-text question; special ids carry extra behavior in the engine."""
    next: Optional[str] = None


@dataclass(frozen=True)
class YesNoNode(FlowNode):
    next_if_yes: Optional[str] = None
    next_if_no: Optional[str] = None


@dataclass(frozen=True)
class MultipleChoiceNode(FlowNode):
    options: Tuple[str, ...] = ()
    option_labels: Mapping[str, str] = field(default_factory=dict)
    next: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FunctionNode(FlowNode):
    """Delegates the transition to a registered handler."""
    handler: Optional[str] = None


@dataclass(frozen=True)
class EndNode(FlowNode):
    """Terminal node."""
    pass


@dataclass(frozen=True)
class UnsupportedNode(FlowNode):
    """Node whose type is not understood; kept so traversal can end gracefully."""
    raw_type: Optional[str] = None


def parse_node(node_id: str, node_data: Dict[str, Any]) -> FlowNode:
    """Parse a single flow node from its raw dictionary form."""
    meta = node_data.get('meta') or {}
    common = {
        'id': node_id,
        'question': node_data.get('question') or "",
        'specialty': meta.get('specialty') if isinstance(meta, dict) else None,
    }

    raw_type = node_data.get('type')
    try:
        node_type = FlowNodeType(raw_type)
    except ValueError:
        logger.warning(f"Node {node_id} has unsupported type {raw_type!r}")
        return UnsupportedNode(raw_type=raw_type, **common)

    if node_type == FlowNodeType.OPEN_ENDED:
        return OpenEndedNode(next=node_data.get('next'), **common)

    if node_type == FlowNodeType.YES_NO:
        return YesNoNode(
            next_if_yes=node_data.get('nextIfYes'),
            next_if_no=node_data.get('nextIfNo'),
            **common
        )

    if node_type == FlowNodeType.MULTIPLE_CHOICE:
        next_map = node_data.get('next')
        return MultipleChoiceNode(
            options=tuple(str(option) for option in node_data.get('options') or ()),
            option_labels=MappingProxyType(dict(node_data.get('optionLabels') or {})),
            next=MappingProxyType(dict(next_map) if isinstance(next_map, dict) else {}),
            **common
        )

    if node_type == FlowNodeType.FUNCTION:
        return FunctionNode(handler=node_data.get('handler'), **common)

    return EndNode(**common)


class FlowGraph:
    """Immutable mapping from node id to node, built by merging node collections."""

    def __init__(self, nodes: Optional[Dict[str, FlowNode]] = None):
        self._nodes: Mapping[str, FlowNode] = MappingProxyType(dict(nodes or {}))

    @classmethod
    def load(cls, sources: Iterable[Dict[str, Any]]) -> 'FlowGraph':
        """Merge node collections in order; later collections win on duplicate ids."""
        merged: Dict[str, FlowNode] = {}

        for index, source in enumerate(sources):
            raw_nodes = source.get('nodes') if isinstance(source, dict) else None
            if not raw_nodes:
                logger.warning(f"Flow source #{index} has no nodes, skipping")
                continue

            for node_id, node_data in raw_nodes.items():
                if node_id in merged:
                    logger.warning(f"Node {node_id} overridden by flow source #{index}")
                merged[node_id] = parse_node(node_id, node_data or {})

        logger.info(f"Merged flow has {len(merged)} nodes")
        return cls(merged)

    def get(self, node_id: Optional[str]) -> Optional[FlowNode]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def node_ids(self) -> List[str]:
        return list(self._nodes.keys())

    def dangling_references(self, terminal_id: str = "end") -> List[Tuple[str, str]]:
        """List (node_id, target) pairs whose target does not exist.

        Diagnostic only: broken links are tolerated at runtime.
        """
        dangling = []
        for node_id, node in self._nodes.items():
            for target in _targets_of(node):
                if target != terminal_id and target not in self._nodes:
                    dangling.append((node_id, target))
        return dangling


def _targets_of(node: FlowNode) -> List[str]:
    if isinstance(node, OpenEndedNode):
        targets = [node.next]
    elif isinstance(node, YesNoNode):
        targets = [node.next_if_yes, node.next_if_no]
    elif isinstance(node, MultipleChoiceNode):
        targets = list(node.next.values())
    else:
        targets = []
    return [target for target in targets if target]


def load_flow_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """Load one node collection from a JSON or YAML file."""
    path = Path(file_path)
    try:
        with open(path, 'r', encoding='utf-8') as file:
            if path.suffix == ".json":
                data = json.load(file)
            else:
                data = yaml.safe_load(file)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        logger.error(f"Error loading flow from {path}: {e}")
        raise FlowLoadError(f"Cannot load flow file {path}: {e}") from e

    if not isinstance(data, dict):
        raise FlowLoadError(f"Flow file {path} does not contain a mapping")

    return data


def load_flow_directory(directory: Union[str, Path]) -> FlowGraph:
    """Load and merge every flow file in a directory, in sorted filename order."""
    flow_directory = Path(directory)
    if not flow_directory.is_dir():
        raise FlowLoadError(f"Flows directory {flow_directory} does not exist")

    flow_files = sorted(
        path for path in flow_directory.iterdir()
        if path.is_file() and path.suffix in FLOW_FILE_SUFFIXES
    )
    sources = []
    for flow_file in flow_files:
        sources.append(load_flow_file(flow_file))
        logger.info(f"Loaded flow file: {flow_file.name}")

    return FlowGraph.load(sources)
