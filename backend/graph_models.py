import logging
import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# React Flow component names that say nothing about the semantic node type
EDITOR_COMPONENT_TYPES = {"custom", "default"}


def _coerce_id(value):
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _coerce_text(value):
    if value is None or isinstance(value, str):
        return value
    return str(value)


class Position(BaseModel):
    x: float
    y: float

    @classmethod
    def parse(cls, value) -> Optional["Position"]:
        """Return a Position for a usable {x, y} mapping, otherwise None"""
        if isinstance(value, Position):
            return value
        if not isinstance(value, dict):
            return None
        x, y = value.get("x"), value.get("y")
        for coord in (x, y):
            if isinstance(coord, bool) or not isinstance(coord, (int, float)):
                return None
            if not math.isfinite(coord):
                return None
        return cls(x=x, y=y)


class NodeData(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = Field(default=None, description="Semantic node type e.g. 'http_request', 'if_else'")
    label: Optional[str] = Field(default=None, description="Display label of the node")
    category: Optional[str] = Field(default=None, description="Catalog category e.g. 'triggers', 'logic'")
    icon: Optional[str] = Field(default=None, description="Icon identifier from the node catalog")
    config: Dict[str, Any] = Field(default_factory=dict, description="Configuration parameters for the node")

    @field_validator("type", "label", "category", "icon", mode="before")
    @classmethod
    def _text_fields(cls, value):
        return _coerce_text(value)

    @field_validator("config", mode="before")
    @classmethod
    def _config_mapping(cls, value):
        return value if isinstance(value, dict) else {}


class WorkflowNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = Field(default=None, description="Unique string ID of the node")
    type: Optional[str] = Field(default=None, description="React Flow node type (usually 'custom')")
    data: NodeData = Field(default_factory=NodeData)
    position: Optional[Position] = Field(default=None, description="Visual position, filled in by the layout engine")

    @model_validator(mode="before")
    @classmethod
    def _lenient(cls, value):
        if not isinstance(value, dict):
            return value
        value = dict(value)
        value["id"] = _coerce_id(value.get("id"))
        value["type"] = _coerce_text(value.get("type"))
        data = value.get("data")
        data = dict(data) if isinstance(data, dict) else {}
        # Flat generator output keeps label/config on the node itself
        for key in ("label", "category", "icon", "config"):
            if key not in data and key in value:
                data[key] = value.pop(key)
        value["data"] = data
        value["position"] = Position.parse(value.get("position"))
        return value

    @property
    def declared_type(self) -> Optional[str]:
        if self.data.type:
            return self.data.type
        if self.type and self.type not in EDITOR_COMPONENT_TYPES:
            return self.type
        return None

    @property
    def label(self) -> str:
        return self.data.label or ""


class WorkflowEdge(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(default=None, description="Unique string ID of the edge")
    source: Optional[str] = Field(default=None, description="Source Node ID")
    target: Optional[str] = Field(default=None, description="Target Node ID")
    sourceHandle: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("sourceHandle", "sourceOutput"),
        description="Output port on the source node (e.g., 'output', 'true', 'false')",
    )
    targetHandle: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("targetHandle", "targetInput"),
        description="Input port on the target node (e.g., 'input', 'userInput')",
    )
    type: Optional[str] = Field(default="default", description="React Flow edge type")

    @field_validator("id", "source", "target", mode="before")
    @classmethod
    def _ids(cls, value):
        return _coerce_id(value)

    @field_validator("sourceHandle", "targetHandle", "type", mode="before")
    @classmethod
    def _handles(cls, value):
        value = _coerce_text(value)
        return value if value else None

    def key(self) -> str:
        return f"{self.source}::{self.target}::{self.sourceHandle or ''}::{self.targetHandle or ''}"


class WorkflowGraph(BaseModel):
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    explanation: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "WorkflowGraph":
        """Build a graph from an untrusted payload, skipping entries that are not objects"""
        raw_nodes = raw.get("nodes")
        raw_edges = raw.get("edges")
        if raw_edges is None:
            # Generator output uses "connections" with from/to keys
            raw_edges = []
            for conn in raw.get("connections") or []:
                if isinstance(conn, dict):
                    conn = {key: value for key, value in conn.items() if key not in ("from", "to")} | {
                        "source": conn.get("from"),
                        "target": conn.get("to"),
                    }
                raw_edges.append(conn)
        raw_nodes = raw_nodes if isinstance(raw_nodes, list) else []
        raw_edges = raw_edges if isinstance(raw_edges, list) else []

        nodes = []
        for entry in raw_nodes:
            if not isinstance(entry, dict):
                logger.warning("Skipping node entry that is not an object: %r", entry)
                continue
            nodes.append(WorkflowNode.model_validate(entry))

        edges = []
        for entry in raw_edges:
            if not isinstance(entry, dict):
                logger.warning("Skipping edge entry that is not an object: %r", entry)
                continue
            edges.append(WorkflowEdge.model_validate(entry))

        explanation = raw.get("explanation")
        return cls(nodes=nodes, edges=edges, explanation=explanation if isinstance(explanation, str) else None)


class RepairNote(BaseModel):
    stage: str = Field(description="Pipeline stage that produced the note")
    severity: Literal["info", "warning", "error"] = "info"
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
