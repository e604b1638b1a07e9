"""Behavioural evaluation suite run against the live model and tools."""

import asyncio
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from rich.console import Console

from saiman.models.llm import ToolCall
from saiman.models.messages import Message, cuid
from saiman.services.agent import AgentLoop

DEFAULT_NUM_RESULTS = 5

EvalCheck = Callable[["EvalContext"], tuple[bool, str]]


@dataclass
class EvalContext:
    """A question, the agent's final answer and the tool calls it made."""

    question: str
    response: str
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def response_length(self) -> int:
        return len(self.response)

    @property
    def search_calls(self) -> list[ToolCall]:
        return [call for call in self.tool_calls if call.name == "web_search"]

    @property
    def reddit_search_calls(self) -> list[ToolCall]:
        return [call for call in self.tool_calls if call.name == "reddit_search"]

    @property
    def total_search_count(self) -> int:
        return len(self.search_calls)

    def _search_values(self, key: str, kind: type) -> list:
        values = (call.input_dict().get(key) for call in self.search_calls)
        return [value for value in values if isinstance(value, kind) and not isinstance(value, bool)]

    def search_types(self) -> list[str]:
        return self._search_values("search_type", str)

    def num_results(self) -> list[int]:
        return self._search_values("num_results", int)

    def livecrawl_modes(self) -> list[str]:
        return self._search_values("livecrawl", str)

    def search_queries(self) -> list[str]:
        return [query.lower() for query in self._search_values("query", str)]

    def has_deep_search(self) -> bool:
        return "deep" in self.search_types()

    def has_fresh_content(self) -> bool:
        modes = self.livecrawl_modes()
        return "preferred" in modes or "always" in modes

    def max_num_results(self) -> int:
        return max(self.num_results(), default=DEFAULT_NUM_RESULTS)

    def stats(self) -> str:
        parts: list[str] = []
        if self.total_search_count:
            parts.append(f"searches: {self.total_search_count}")
            if self.search_types():
                parts.append(f"types: [{', '.join(self.search_types())}]")
            if self.max_num_results() != DEFAULT_NUM_RESULTS:
                parts.append(f"max_results: {self.max_num_results()}")
            if self.has_fresh_content():
                parts.append("livecrawl: fresh")
        if self.reddit_search_calls:
            parts.append(f"reddit searches: {len(self.reddit_search_calls)}")
        parts.append(f"len: {self.response_length}")
        return ", ".join(parts)


@dataclass
class Eval:
    name: str
    question: str
    check: EvalCheck


@dataclass
class EvalResult:
    name: str
    passed: bool
    details: str
    stats: str


def _basic_math(ctx: EvalContext) -> tuple[bool, str]:
    if ctx.total_search_count > 0:
        return False, "Should not search for arithmetic"
    if "120" not in ctx.response:
        return False, "Wrong answer (expected 120)"
    if ctx.response_length > 200:
        return False, "Math answer should be very concise"
    return True, "OK"


def _well_known_fact(ctx: EvalContext) -> tuple[bool, str]:
    if ctx.total_search_count > 0:
        return False, "Should not search for well-known geography"
    if "paris" not in ctx.response.lower():
        return False, "Should say Paris"
    return True, "OK"


def _current_price(ctx: EvalContext) -> tuple[bool, str]:
    if ctx.total_search_count == 0:
        return False, "Should search for current price"
    if ctx.has_deep_search():
        return False, "Price lookup should not use deep search"
    if not ctx.has_fresh_content():
        return False, "Current price should use livecrawl: preferred or always"
    return True, "OK"


def _recent_news(ctx: EvalContext) -> tuple[bool, str]:
    if ctx.total_search_count == 0:
        return False, "Should search for current news"
    if not ctx.has_fresh_content():
        return False, "News queries should use livecrawl: preferred"
    return True, "OK"


def _recent_developments(ctx: EvalContext) -> tuple[bool, str]:
    if ctx.total_search_count == 0:
        return False, "Should search for recent release info"
    if not ctx.has_deep_search() and ctx.max_num_results() < 8:
        return False, "Research should use deep search or num_results >= 8"
    if ctx.response_length < 400:
        return False, f"Research response should be detailed (got {ctx.response_length} chars)"
    return True, "OK"


def _short_answer(ctx: EvalContext) -> tuple[bool, str]:
    if "2007" not in ctx.response:
        return False, "Should mention 2007"
    if ctx.response_length > 300:
        return False, "Simple factual question should get concise answer"
    return True, "OK"


def _detailed_explanation(ctx: EvalContext) -> tuple[bool, str]:
    if ctx.total_search_count > 0:
        return False, "Should not search for well-established ML concepts"
    if ctx.response_length < 400:
        return False, "Technical explanation should be detailed"
    lower = ctx.response.lower()
    if "gradient" not in lower or "loss" not in lower:
        return False, "Should explain core concepts (gradient, loss)"
    return True, "OK"


def _multi_perspective(ctx: EvalContext) -> tuple[bool, str]:
    if ctx.total_search_count == 0:
        return False, "Should search for current perspectives on remote work"
    if ctx.total_search_count < 2 and ctx.max_num_results() < 8:
        return False, "Balanced research should use multiple searches or many results"
    lower = ctx.response.lower()
    employer_side = any(word in lower for word in ("employer", "company", "business"))
    employee_side = any(word in lower for word in ("employee", "worker"))
    if not (employer_side and employee_side):
        return False, "Should cover both employer and employee perspectives"
    return True, "OK"


_FILLER_OPENERS = ("certainly", "great question", "i'd be happy", "sure!", "of course")


def _direct_answer(ctx: EvalContext) -> tuple[bool, str]:
    if not re.search(r"\d", ctx.response):
        return False, "Should provide a population number"
    lower = ctx.response.lower()
    for phrase in _FILLER_OPENERS:
        if lower.startswith(phrase):
            return False, f"Should not start with filler phrases like '{phrase}'"
    if ctx.response_length > 500:
        return False, f"Simple factual question should get concise answer (got {ctx.response_length} chars)"
    return True, "OK"


def _handles_uncertainty(ctx: EvalContext) -> tuple[bool, str]:
    lower = ctx.response.lower()
    acknowledges_tradeoffs = (
        any(word in lower for word in ("depends", "trade-off", "tradeoff", "use case"))
        or ("pros" in lower and "cons" in lower)
        or ("advantage" in lower and "disadvantage" in lower)
    )
    if not acknowledges_tradeoffs:
        return False, "Should acknowledge this is context-dependent, not declare a winner"
    return True, "OK"


def _prefers_forums(ctx: EvalContext) -> tuple[bool, str]:
    if ctx.total_search_count == 0 and not ctx.reddit_search_calls:
        return False, "Should search for product recommendations"
    if ctx.reddit_search_calls:
        return True, "OK"
    queries = ctx.search_queries()
    if not any(word in query for query in queries for word in ("reddit", "forum", "community")):
        return False, f"Product recommendations should search Reddit/forums (queries: {', '.join(queries)})"
    return True, "OK"


def _specific_data(ctx: EvalContext) -> tuple[bool, str]:
    if ctx.total_search_count == 0:
        return False, "Should search for current user statistics"
    has_specific_number = (
        "billion" in ctx.response
        or re.search(r"\d+\s*(million|m\b|M\b)", ctx.response) is not None
        or re.search(r"\d{3,}", ctx.response) is not None
    )
    if not has_specific_number:
        return False, "Should provide specific user count, not vague estimates"
    return True, "OK"


EVALS: tuple[Eval, ...] = (
    Eval("No Search: Basic Math", "What is 15 * 8?", _basic_math),
    Eval("No Search: Well-Known Fact", "What is the capital of France?", _well_known_fact),
    Eval("Simple Lookup: Current Price", "What is Bitcoin trading at right now?", _current_price),
    Eval("Current Events: Recent News", "What's the top tech news from this week?", _recent_news),
    Eval(
        "Research: Recent Developments",
        "What are the major new features and changes in the latest stable release of Node.js? "
        "Include version number and key highlights.",
        _recent_developments,
    ),
    Eval("Calibration: Short Answer", "What year was the first iPhone released?", _short_answer),
    Eval(
        "Calibration: Detailed Explanation",
        "Explain how gradient descent works in machine learning, including the intuition behind it.",
        _detailed_explanation,
    ),
    Eval(
        "Quality: Multi-Perspective Research",
        "What are the main arguments for and against remote work becoming permanent? "
        "I want perspectives from both employers and employees.",
        _multi_perspective,
    ),
    Eval("Quality: Direct Answer", "What is the population of Tokyo?", _direct_answer),
    Eval("Quality: Handles Uncertainty", "Is GraphQL better than REST?", _handles_uncertainty),
    Eval("Quality: Prefers User Forums", "What's a good budget mechanical keyboard for programming?", _prefers_forums),
    Eval("Quality: Specific Data", "How many monthly active users does TikTok have?", _specific_data),
)


async def ask_and_capture(loop: AgentLoop, question: str) -> EvalContext:
    """Run one question through a fresh loop and capture the answer and tool calls."""
    message = Message(conversation_id=cuid(), role="user", content=question)
    result = await loop.ask([message])
    if result is None:
        return EvalContext(question=question, response="")
    return EvalContext(question=question, response=result.text, tool_calls=result.tool_calls)


class EvalRunner:
    """Runs every eval concurrently, one agent loop each."""

    def __init__(
        self,
        loop_factory: Callable[[], AgentLoop],
        evals: tuple[Eval, ...] = EVALS,
        console: Console | None = None,
    ):
        self.loop_factory = loop_factory
        self.evals = evals
        self.console = console or Console()

    async def run_single(self, evaluation: Eval) -> EvalResult:
        ctx = await ask_and_capture(self.loop_factory(), evaluation.question)
        passed, details = evaluation.check(ctx)
        return EvalResult(name=evaluation.name, passed=passed, details=details, stats=ctx.stats())

    async def run_all(self) -> list[EvalResult]:
        start = time.monotonic()
        self.console.print("\n" + "=" * 60)
        self.console.print("  Running Evals")
        self.console.print("=" * 60 + "\n")

        results = await asyncio.gather(*(self.run_single(evaluation) for evaluation in self.evals))
        self.print_summary(list(results), time.monotonic() - start)
        return list(results)

    def print_summary(self, results: list[EvalResult], elapsed: float) -> None:
        self.console.print("\n" + "-" * 60)
        self.console.print("Results:")
        self.console.print("-" * 60)

        for result in sorted(results, key=lambda r: r.name):
            icon = "✅" if result.passed else "❌"
            self.console.print(f"{icon} {result.name}", markup=False)
            self.console.print(f"   ({result.stats})", markup=False)
            if not result.passed:
                self.console.print(f"   └─ {result.details}", markup=False)

        passed = sum(1 for result in results if result.passed)
        self.console.print("\n" + "=" * 60)
        self.console.print(f"  Summary: {passed}/{len(results)} passed in {elapsed:.1f}s")
        self.console.print("=" * 60)
