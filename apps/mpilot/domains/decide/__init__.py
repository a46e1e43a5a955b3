from mpilot.domains.decide.parsing import ReplyParser, extract_answer, parse_action_call
from mpilot.domains.decide.planner import LlmPlanner

__all__ = ["LlmPlanner", "ReplyParser", "extract_answer", "parse_action_call"]
