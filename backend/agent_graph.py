import json
import logging
import operator
import os
from functools import lru_cache
from typing import Annotated, List, TypedDict

from langchain_aws import ChatBedrock
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.prompts import ChatPromptTemplate
from langgraph.graph import END, StateGraph
from tenacity import retry, stop_after_attempt, wait_exponential

from node_catalog import DEFAULT_CATALOG
from repair_errors import DuplicateIdentifierError, WorkflowRepairError
from workflow_repair import repair_workflow

logger = logging.getLogger(__name__)


# --- State Application ---
class AgentState(TypedDict):
    messages: Annotated[List[BaseMessage], operator.add]
    results: dict


# --- LLM Setup ---
@lru_cache(maxsize=1)
def get_llm():
    """Bedrock chat model, created on first use so imports stay offline"""
    return ChatBedrock(
        model_id=os.environ.get("BEDROCK_MODEL_ID", "apac.amazon.nova-lite-v1:0"),
        model_kwargs={
            "temperature": 0.4,
            "top_p": 0.9,
        },
        max_tokens=8192,
        region_name=os.environ.get("AWS_DEFAULT_REGION", "ap-south-1"),
    )


# --- Planner Agent ---
planner_system_prompt = """You are a Workflow Architect. Design an automation workflow as a single JSON object.

### MANDATORY JSON STRUCTURE
{{
  "explanation": "One or two sentences describing what the workflow does",
  "nodes": [
    {{"id": "node-1", "data": {{"type": "form", "label": "Contact Form", "config": {{}}}}}},
    {{"id": "node-2", "data": {{"type": "if_else", "label": "Is Lead Valid?", "config": {{"conditions": [{{"expression": "{{{{email}}}} contains '@'"}}]}}}}}},
    {{"id": "node-3", "data": {{"type": "google_sheets", "label": "Save Valid Lead", "config": {{}}}}}},
    {{"id": "node-4", "data": {{"type": "stop_and_error", "label": "Reject Invalid Lead", "config": {{}}}}}},
    {{"id": "node-5", "data": {{"type": "log_output", "label": "Log Output", "config": {{}}}}}}
  ],
  "edges": [
    {{"source": "node-1", "target": "node-2"}},
    {{"source": "node-2", "sourceHandle": "true", "target": "node-3"}},
    {{"source": "node-2", "sourceHandle": "false", "target": "node-4"}}
  ]
}}

### AVAILABLE NODE TYPES
{node_types}

### RULES
1. Exactly one trigger node, and it is the first node.
2. If/Else nodes have exactly two outgoing edges, sourceHandle "true" and "false".
3. A log_output node is fed only by the last step of each path, never by the trigger.
4. Use only the node types listed above.
5. No text outside JSON.
"""


def extract_json(content: str) -> str:
    """Strip markdown fences the model sometimes wraps around its answer"""
    if "```json" in content:
        return content.split("```json")[1].split("```")[0].strip()
    if "```" in content:
        return content.split("```")[1].split("```")[0].strip()
    return content.strip()


def unwrap_workflow(graph_data: dict) -> dict:
    """Accept the export format ({workflows: [{workflow_data}]}) as well as a bare graph"""
    workflows = graph_data.get("workflows")
    if isinstance(workflows, list) and workflows and isinstance(workflows[0], dict):
        workflow_data = workflows[0].get("workflow_data") or {}
        return {**workflow_data, "explanation": graph_data.get("explanation") or workflows[0].get("description")}
    return graph_data


def planner_node(state: AgentState):
    request = state["messages"][-1].content

    prompt = ChatPromptTemplate.from_messages([
        ("system", planner_system_prompt),
        ("user", "{input}")
    ])
    chain = prompt | get_llm()
    node_types = ", ".join(DEFAULT_CATALOG.types)

    # Retry logic with exponential backoff
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True
    )
    def invoke_llm_with_retry():
        return chain.invoke({"input": request, "node_types": node_types})

    try:
        response = invoke_llm_with_retry()
        content = extract_json(response.content)

        try:
            graph_data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("JSON Parse Error: %s", e)
            return {
                "results": {"error": "json_parse_error"},
                "messages": [AIMessage(content=f"Failed to parse the generated workflow as JSON: {e}")]
            }
        if not isinstance(graph_data, dict):
            return {
                "results": {"error": "json_structure_error"},
                "messages": [AIMessage(content="The generated workflow is not a JSON object.")]
            }

        # --- AUTO-FIX: repair the generated graph before the editor sees it ---
        try:
            graph = repair_workflow(unwrap_workflow(graph_data), with_notes=True)
        except DuplicateIdentifierError as e:
            logger.error("Repair integrity failure: nodes=%s edges=%s", e.node_ids, e.edge_ids)
            return {
                "results": {"error": "integrity_error", "node_ids": e.node_ids, "edge_ids": e.edge_ids},
                "messages": [AIMessage(content="The generated workflow could not be applied.")]
            }
        except WorkflowRepairError as e:
            logger.error("Repair failed: %s", e)
            return {
                "results": {"error": "repair_error"},
                "messages": [AIMessage(content=f"The generated workflow could not be applied: {e}")]
            }

        return {
            "results": {"graph": graph},
            "messages": [AIMessage(content=f"Workflow generated with {len(graph['nodes'])} nodes.")]
        }
    except Exception as e:
        logger.exception("Planner Error: %s", e)
        return {
            "messages": [AIMessage(content=f"Error generating workflow: {e}")],
            "results": {"error": "planner_error"}
        }


# --- Graph Construction ---
workflow = StateGraph(AgentState)
workflow.add_node("planner", planner_node)
workflow.set_entry_point("planner")
workflow.add_edge("planner", END)

app_graph = workflow.compile()
