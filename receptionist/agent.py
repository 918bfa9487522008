"""LangGraph tool-calling agent for requests without a parseable date/time.

Architecture:
  A two-node ``StateGraph``:

    1. **model**  — invokes the chat model (tools bound) on the transcript
    2. **tools**  — executes the requested tool calls against the booking
                    coordinator and appends one tool message per call

  Routing:
    model → (tool calls?)      → tools → model (loop)
          → (no tool calls?)   → END
          → (model error?)     → END
    tools → (outcome reported or iteration ceiling reached?) → END

  The run ends structurally when the model calls ``reportOutcome``.  If the
  model instead stops with plain text, the text is classified by keywords;
  that path is logged because prose is an unreliable status signal.  A hard
  ceiling of ``MAX_AGENT_ITERATIONS`` model calls bounds latency and cost.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from receptionist.config import (
    ANTHROPIC_API_KEY,
    MAX_AGENT_ITERATIONS,
    MODEL_NAME,
    MODEL_TIMEOUT_SECONDS,
)
from receptionist.models import (
    AlternativesOffered,
    AppointmentRequest,
    Booked,
    BookingOutcome,
    Failed,
    FailureReason,
    NoAlternativesFound,
    SlotAvailable,
)
from receptionist.prompts import get_system_prompt, get_user_prompt
from receptionist.scheduling.booking import BookingCoordinator
from receptionist.services.metrics import metrics
from receptionist.tools.booking import REPORT_OUTCOME, ToolSession, build_booking_tools

logger = logging.getLogger(__name__)

MAX_ITERATIONS_MESSAGE = "Unable to complete appointment booking. Please try again."
MODEL_DOWN_MESSAGE = (
    "I'm sorry, I'm having trouble processing your appointment right now. "
    "Please try again in a moment."
)
UNRESOLVED_MESSAGE = "I wasn't able to complete the booking. Could you confirm the date and time you'd like?"


class AgentState(TypedDict):
    """State flowing through the graph.

    ``iterations`` counts model calls; ``error`` is set when the model call
    itself failed and ends the run.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    iterations: int
    error: str | None


def build_chat_model() -> ChatAnthropic:
    """Build the Anthropic chat model used in production."""
    return ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.0,
        max_tokens=1024,
        timeout=MODEL_TIMEOUT_SECONDS,
        max_retries=1,
    )


def _pending_calls(message: AnyMessage) -> list[dict[str, Any]]:
    """Tool calls on *message*, including ones whose arguments failed to parse."""
    if not isinstance(message, AIMessage):
        return []
    return list(message.tool_calls or []) + list(message.invalid_tool_calls or [])


def _message_text(message: AIMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    return " ".join(
        block.get("text", "") if isinstance(block, dict) else str(block)
        for block in content
        if isinstance(block, str) or block.get("type") == "text"
    )


def classify_text(text: str) -> str:
    """Keyword fallback used only when the model never called ``reportOutcome``."""
    lowered = text.lower()
    if "has been booked" in lowered:
        return "booked"
    if "unavailable" in lowered or "these times are" in lowered:
        return "alternatives_offered"
    if "is available" in lowered:
        return "available"
    return "failed"


class ToolCallAgent:
    """Bounded model ⇄ tools loop for natural-language scheduling."""

    def __init__(
        self,
        model: BaseChatModel,
        coordinator: BookingCoordinator,
        *,
        max_iterations: int = MAX_AGENT_ITERATIONS,
    ):
        self._model = model
        self._coordinator = coordinator
        self._max_iterations = max_iterations

    # ── Graph construction ───────────────────────────────────────────

    def _build_graph(self, tools: list[BaseTool], session: ToolSession):
        llm_with_tools = self._model.bind_tools(tools)
        tools_by_name = {t.name: t for t in tools}
        max_iterations = self._max_iterations

        def model_node(state: AgentState) -> dict:
            t0 = time.perf_counter()
            try:
                response = llm_with_tools.invoke(state["messages"])
            except Exception as exc:
                elapsed = (time.perf_counter() - t0) * 1000
                metrics.record_failure(
                    "anthropic", "agent_turn", error_type=type(exc).__name__, latency_ms=elapsed,
                )
                logger.error("Model call failed on iteration %d: %s", state["iterations"] + 1, exc)
                return {"error": f"{type(exc).__name__}: {exc}"}

            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_success("anthropic", "agent_turn", latency_ms=elapsed)
            logger.debug("Model turn %d answered in %.0fms", state["iterations"] + 1, elapsed)
            return {"messages": [response], "iterations": state["iterations"] + 1}

        def tools_node(state: AgentState) -> dict:
            last = state["messages"][-1]
            results: list[ToolMessage] = []
            for call in last.tool_calls:
                results.append(self._execute(call, tools_by_name))
            for call in last.invalid_tool_calls:
                results.append(
                    ToolMessage(
                        content=f"Error: could not parse arguments for {call.get('name')}: {call.get('error')}",
                        tool_call_id=call.get("id") or "invalid",
                        name=call.get("name") or "unknown",
                        status="error",
                    )
                )
            return {"messages": results}

        def after_model(state: AgentState) -> str:
            if state.get("error"):
                return END
            calls = _pending_calls(state["messages"][-1])
            if not calls:
                return END
            if state["iterations"] >= max_iterations and not any(
                c.get("name") == REPORT_OUTCOME for c in calls
            ):
                return END
            return "tools"

        def after_tools(state: AgentState) -> str:
            if session.reported or state["iterations"] >= max_iterations:
                return END
            return "model"

        graph = StateGraph(AgentState)
        graph.add_node("model", model_node)
        graph.add_node("tools", tools_node)
        graph.set_entry_point("model")
        graph.add_conditional_edges("model", after_model, {"tools": "tools", END: END})
        graph.add_conditional_edges("tools", after_tools, {"model": "model", END: END})
        return graph.compile()

    @staticmethod
    def _execute(call: dict[str, Any], tools_by_name: dict[str, BaseTool]) -> ToolMessage:
        name = call.get("name", "")
        call_id = call.get("id") or name
        selected = tools_by_name.get(name)
        if selected is None:
            content, status = f"Unknown tool: {name}", "error"
        else:
            try:
                content, status = str(selected.invoke(call.get("args") or {})), "success"
            except Exception as exc:
                logger.warning("Tool %s failed: %s", name, exc)
                content, status = f"Error executing {name}: {exc}", "error"
        return ToolMessage(content=content, tool_call_id=call_id, name=name, status=status)

    # ── Running ──────────────────────────────────────────────────────

    def run(self, request: AppointmentRequest) -> BookingOutcome:
        session = ToolSession(request=request)
        graph = self._build_graph(build_booking_tools(self._coordinator, session), session)

        initial: AgentState = {
            "messages": [
                SystemMessage(content=get_system_prompt(self._coordinator.hours, self._coordinator.now())),
                HumanMessage(content=get_user_prompt(request)),
            ],
            "iterations": 0,
            "error": None,
        }
        final = graph.invoke(
            initial, config={"recursion_limit": 2 * self._max_iterations + 5},
        )
        outcome = self._conclude(final, session)
        logger.info(
            "Agent finished for %s after %d model call(s): %s",
            request.caller_name, final["iterations"], type(outcome).__name__,
        )
        return outcome

    def _conclude(self, final: dict, session: ToolSession) -> BookingOutcome:
        if final.get("error"):
            return Failed(FailureReason.EXTERNAL_SERVICE, MODEL_DOWN_MESSAGE, detail=final["error"])
        if session.reported:
            return self._from_status(session.reported_status, session.reported_message, session)

        last = final["messages"][-1]
        if _pending_calls(last) or not isinstance(last, AIMessage):
            logger.warning("Agent hit the %d-iteration ceiling", self._max_iterations)
            return Failed(FailureReason.MAX_ITERATIONS_EXCEEDED, MAX_ITERATIONS_MESSAGE)

        text = _message_text(last)
        status = classify_text(text)
        logger.warning("Agent ended without reportOutcome; classified text as %s", status)
        return self._from_status(status, text, session)

    @staticmethod
    def _from_status(status: str | None, message: str, session: ToolSession) -> BookingOutcome:
        """Map a reported status onto an outcome backed by what the tools actually did."""
        message = message.strip()
        if status == "booked":
            if session.booked is None:
                logger.warning("Model claimed a booking that no tool made")
                return Failed(FailureReason.UNRESOLVED, UNRESOLVED_MESSAGE)
            booked = session.booked
            return Booked(
                appointment_id=booked.appointment_id,
                external_event_id=booked.external_event_id,
                window=booked.window,
                message=message or booked.message,
            )
        if status == "available":
            if session.available is None:
                logger.warning("Model claimed availability that no check confirmed")
                return Failed(FailureReason.UNRESOLVED, UNRESOLVED_MESSAGE)
            return SlotAvailable(window=session.available, message=message)
        if status == "alternatives_offered" and session.offered:
            return AlternativesOffered(windows=session.offered, message=message)
        if status in ("alternatives_offered", "no_alternatives"):
            return NoAlternativesFound(message=message or UNRESOLVED_MESSAGE)
        return Failed(FailureReason.UNRESOLVED, message or UNRESOLVED_MESSAGE)
