import logging
from typing import Any, Callable, Dict, List, Optional

from infra.llm import ChatRequest, LlmConfig, LlmError, call_llm_chat
from shared.errors import PlanError
from shared.text import truncate

from mpilot.contracts import Plan
from mpilot.domains.decide.parsing import ReplyParser
from mpilot.domains.decide.prompts import (
    build_initial_prompt,
    build_next_step_prompt,
    build_system_prompt,
)


logger = logging.getLogger("mpilot.decide")

ChatCall = Callable[[LlmConfig, ChatRequest], str]


class LlmPlanner:
    """Planner backed by an OpenAI-compatible chat model."""

    def __init__(
        self,
        llm_config: LlmConfig,
        call: ChatCall = call_llm_chat,
        default_wait_after_ms: int = 500,
        default_backoff_ms: int = 500,
        system_prompt: Optional[str] = None,
    ):
        self.llm_config = llm_config
        self._call = call
        self._parser = ReplyParser(default_wait_after_ms, default_backoff_ms)
        self._system_prompt = system_prompt

    def _ask(self, prompt: str, screenshot: Optional[str]) -> Plan:
        request = ChatRequest(
            system_prompt=self._system_prompt or build_system_prompt(),
            prompt=prompt,
            image_b64=screenshot,
        )
        try:
            reply = self._call(self.llm_config, request)
        except LlmError as exc:
            raise PlanError("planner request failed: {}".format(exc)) from exc
        logger.debug("planner reply: %s", truncate(reply, 500))
        return self._parser.parse(reply)

    def request_initial_plan(
        self,
        goal: str,
        device_info: Dict[str, Any],
        ui_summary: str,
        window_state: Optional[Dict[str, Any]],
        screenshot: Optional[str],
    ) -> Plan:
        prompt = build_initial_prompt(goal, device_info, ui_summary, window_state)
        return self._ask(prompt, screenshot)

    def request_next_step(
        self,
        goal: str,
        device_info: Dict[str, Any],
        history: List[Dict[str, Any]],
        repetition_hints: List[str],
        window_state: Optional[Dict[str, Any]],
        screenshot: Optional[str],
        ui_elements: str,
    ) -> Plan:
        prompt = build_next_step_prompt(
            goal, device_info, history, repetition_hints, window_state, ui_elements
        )
        return self._ask(prompt, screenshot)
