from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field


class NodeTypeDefinition(BaseModel):
    type: str = Field(description="Canonical node type name")
    label: str = Field(description="Default display label")
    icon: str = Field(default="Box", description="Icon identifier used by the editor")
    category: str = Field(description="Library category e.g. 'triggers', 'ai', 'logic'")
    defaultConfig: Dict[str, Any] = Field(default_factory=dict)


class NodeCatalog:
    """Read-only lookup of the node types the editor and executor support"""

    def __init__(self, definitions: Iterable[NodeTypeDefinition]):
        self._definitions: Dict[str, NodeTypeDefinition] = {}
        for definition in definitions:
            self._definitions.setdefault(definition.type, definition)

    def __contains__(self, node_type) -> bool:
        return node_type in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def get(self, node_type: Optional[str]) -> Optional[NodeTypeDefinition]:
        if node_type is None:
            return None
        return self._definitions.get(node_type)

    @property
    def types(self) -> List[str]:
        return list(self._definitions)

    @classmethod
    def from_dicts(cls, entries: Iterable[Dict[str, Any]]) -> "NodeCatalog":
        return cls(NodeTypeDefinition.model_validate(entry) for entry in entries)


DEFAULT_NODE_TYPES = [
    # Triggers
    {"type": "manual_trigger", "label": "Manual Trigger", "icon": "Play", "category": "triggers"},
    {"type": "webhook", "label": "Webhook", "icon": "Webhook", "category": "triggers",
     "defaultConfig": {"method": "POST"}},
    {"type": "schedule", "label": "Schedule", "icon": "Clock", "category": "triggers",
     "defaultConfig": {"cron": "0 9 * * *"}},
    {"type": "interval", "label": "Interval", "icon": "Timer", "category": "triggers",
     "defaultConfig": {"intervalMinutes": 15}},
    {"type": "form", "label": "Form Trigger", "icon": "FileText", "category": "triggers",
     "defaultConfig": {"fields": []}},
    {"type": "chat_trigger", "label": "Chat Trigger", "icon": "MessageCircle", "category": "triggers"},
    {"type": "error_trigger", "label": "Error Trigger", "icon": "AlertTriangle", "category": "triggers"},
    {"type": "workflow_trigger", "label": "Workflow Trigger", "icon": "GitBranch", "category": "triggers"},
    # AI
    {"type": "ollama", "label": "Ollama", "icon": "Cpu", "category": "ai",
     "defaultConfig": {"model": "llama3"}},
    {"type": "openai_gpt", "label": "OpenAI GPT", "icon": "Sparkles", "category": "ai",
     "defaultConfig": {"model": "gpt-4o-mini"}},
    {"type": "anthropic_claude", "label": "Anthropic Claude", "icon": "Sparkles", "category": "ai"},
    {"type": "google_gemini", "label": "Google Gemini", "icon": "Sparkles", "category": "ai"},
    {"type": "text_summarizer", "label": "Text Summarizer", "icon": "AlignLeft", "category": "ai"},
    {"type": "ai_service", "label": "AI Service", "icon": "Brain", "category": "ai"},
    {"type": "ai_agent", "label": "AI Agent", "icon": "Bot", "category": "ai"},
    # Communication
    {"type": "google_gmail", "label": "Gmail", "icon": "Mail", "category": "google",
     "defaultConfig": {"operation": "send"}},
    {"type": "email", "label": "Send Email", "icon": "Mail", "category": "communication"},
    {"type": "slack_message", "label": "Slack Message", "icon": "MessageSquare", "category": "communication"},
    # Data
    {"type": "google_sheets", "label": "Google Sheets", "icon": "Sheet", "category": "google",
     "defaultConfig": {"operation": "read"}},
    {"type": "http_request", "label": "HTTP Request", "icon": "Globe", "category": "http_api",
     "defaultConfig": {"method": "GET", "url": ""}},
    {"type": "json_parser", "label": "JSON Parser", "icon": "Braces", "category": "data"},
    {"type": "text_formatter", "label": "Text Formatter", "icon": "Type", "category": "data"},
    {"type": "set_variable", "label": "Set Variable", "icon": "Variable", "category": "data"},
    {"type": "merge", "label": "Merge", "icon": "Merge", "category": "logic"},
    # Logic
    {"type": "if_else", "label": "If/Else", "icon": "GitBranch", "category": "logic",
     "defaultConfig": {"conditions": []}},
    {"type": "switch", "label": "Switch", "icon": "Shuffle", "category": "logic",
     "defaultConfig": {"cases": []}},
    {"type": "loop", "label": "Loop", "icon": "Repeat", "category": "logic"},
    {"type": "wait", "label": "Wait", "icon": "Hourglass", "category": "logic"},
    {"type": "stop_and_error", "label": "Stop and Error", "icon": "OctagonX", "category": "logic"},
    # Output
    {"type": "log_output", "label": "Log Output", "icon": "ScrollText", "category": "output",
     "defaultConfig": {"level": "info", "message": ""}},
]

DEFAULT_CATALOG = NodeCatalog.from_dicts(DEFAULT_NODE_TYPES)
