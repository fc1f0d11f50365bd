import json
import logging
import os
import re
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

RULES_ENV_VAR = "WORKFLOW_REPAIR_RULES"

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def matches_keyword(text: Optional[str], keywords: Iterable[str]) -> bool:
    """Short keywords (<= 3 chars) must match a whole token, longer ones any substring"""
    if not text:
        return False
    normalized = text.lower()
    tokens = set(_TOKEN_SPLIT.split(normalized))
    for keyword in keywords:
        keyword = keyword.lower()
        if len(keyword) <= 3:
            if keyword in tokens:
                return True
        elif keyword in normalized:
            return True
    return False


class TypeFamily(BaseModel):
    name: str
    keywords: List[str] = Field(description="Fragments that put a type name or label in this family")
    candidates: List[str] = Field(description="Known types to try, highest priority first")


class LayoutSettings(BaseModel):
    node_width: float = 280
    node_height: float = 150
    horizontal_spacing: float = 350
    vertical_spacing: float = 220
    top_offset: float = 100
    collision_padding: float = 50
    split_sink_offset: float = 80


class RepairRules(BaseModel):
    # --- Type resolution ---
    aliases: Dict[str, str] = Field(default_factory=lambda: {
        # AI
        "ai": "ai_service",
        "openai": "ai_service",
        "llm": "ai_service",
        "ai_node": "ai_service",
        "summarize": "text_summarizer",
        "summary": "text_summarizer",
        "summarizer": "text_summarizer",
        # Email
        "gmail": "google_gmail",
        "google_mail": "google_gmail",
        "mail": "email",
        "send_email": "email",
        # Google services
        "sheets": "google_sheets",
        "gsheets": "google_sheets",
        "spreadsheet": "google_sheets",
        # HTTP & API
        "http": "http_request",
        "api": "http_request",
        "request": "http_request",
        "fetch": "http_request",
        "api_call": "http_request",
        # Logic & flow
        "if": "if_else",
        "conditional": "if_else",
        "condition": "if_else",
        "loop": "loop",
        "for": "loop",
        "foreach": "loop",
        "iterate": "loop",
        # Triggers
        "manual": "manual_trigger",
        "on_demand": "manual_trigger",
        "trigger": "manual_trigger",
        "cron": "schedule",
        "scheduled": "schedule",
        "timer": "schedule",
        # Output
        "log": "log_output",
        "logger": "log_output",
    })
    type_families: List[TypeFamily] = Field(default_factory=lambda: [
        TypeFamily(
            name="ai",
            keywords=["ai", "llm", "gpt", "chatgpt", "claude", "gemini", "openai", "summar"],
            candidates=["ollama", "openai_gpt", "anthropic_claude", "google_gemini", "text_summarizer", "ai_service"],
        ),
        TypeFamily(name="email", keywords=["email", "mail", "gmail"], candidates=["google_gmail", "email"]),
        TypeFamily(name="http", keywords=["http", "api", "request", "fetch"], candidates=["http_request"]),
        TypeFamily(name="spreadsheet", keywords=["sheet", "spreadsheet"], candidates=["google_sheets"]),
        TypeFamily(name="conditional", keywords=["if", "condition", "else", "branch"], candidates=["if_else"]),
    ])
    generic_fallback_type: str = "http_request"

    # --- Node roles ---
    trigger_categories: List[str] = Field(default_factory=lambda: ["trigger", "triggers"])
    trigger_types: List[str] = Field(default_factory=lambda: [
        "manual_trigger", "webhook", "webhook_trigger_response", "schedule", "chat_trigger", "error_trigger",
        "interval", "workflow_trigger", "http_trigger", "form_trigger", "form",
    ])
    form_trigger_types: List[str] = Field(default_factory=lambda: ["form", "form_trigger"])
    conditional_types: List[str] = Field(default_factory=lambda: ["if_else"])
    switch_types: List[str] = Field(default_factory=lambda: ["switch"])
    merge_types: List[str] = Field(default_factory=lambda: ["merge"])
    # First port listed is the primary input
    agent_ports: Dict[str, List[str]] = Field(default_factory=lambda: {
        "ai_agent": ["userInput", "chat_model", "memory", "tool"],
    })

    # --- Handles ---
    default_source_handle: str = "output"
    default_target_handle: str = "input"
    switch_default_handle: str = "default"
    source_handle_synonyms: Dict[str, str] = Field(default_factory=lambda: {
        "data": "output",
        "message": "output",
        "output": "output",
        "result": "output",
        "response": "output",
        "formdata": "output",
        "body": "output",
        "triggertime": "output",
        "inputdata": "output",
        "rows": "output",
        "parsed": "output",
        "formatted": "output",
        "output_true": "true",
        "output_false": "false",
        "yes": "true",
        "no": "false",
    })
    target_handle_synonyms: Dict[str, str] = Field(default_factory=lambda: {
        "data": "input",
        "input": "input",
        "message": "input",
        "text": "input",
        "body": "input",
        "content": "input",
        "values": "input",
        "json": "input",
        "template": "input",
        "userinput": "userInput",
        "user_input": "userInput",
        "chatmodel": "chat_model",
        "chat_model": "chat_model",
        "memory": "memory",
        "tool": "tool",
    })

    # --- Branch polarity ---
    false_keywords: List[str] = Field(default_factory=lambda: ["false", "not", "invalid", "reject"])
    true_keywords: List[str] = Field(default_factory=lambda: ["true", "valid", "approve", "accept"])

    # --- Log sink ---
    log_sink_type: str = "log_output"
    failure_terminal_type: str = "stop_and_error"
    success_sink_label: str = "Log Output (Success)"
    failure_sink_label: str = "Log Output (Failure)"
    success_sink_message: str = "Success path completed."
    failure_sink_message: str = "Failure path completed (workflow stopped)."

    layout: LayoutSettings = Field(default_factory=LayoutSettings)


def load_rules(path: Optional[str] = None) -> RepairRules:
    """Default rules, with top-level keys replaced from a JSON override file if one is configured"""
    path = path or os.environ.get(RULES_ENV_VAR)
    if not path:
        return RepairRules()

    with open(path, "r", encoding="utf-8") as f:
        overrides = json.load(f)

    logger.info("Loaded workflow repair rule overrides from %s: %s", path, ", ".join(sorted(overrides)))
    return RepairRules.model_validate({**RepairRules().model_dump(), **overrides})


DEFAULT_RULES = RepairRules()
