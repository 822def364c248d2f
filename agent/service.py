"""
CodeFixService: the surface the transport layer talks to.

One service instance owns one SimilarityIndex and one LLMRouter. Repair
sessions started from it share only read access to the index snapshot;
each session has its own graph state.

    service = CodeFixService()
    await service.index([SourceDocument("app.py", source)])
    async for line in service.repair_text(title, description, current_code):
        print(line, end="")
"""

import logging
from typing import Any, AsyncGenerator, Sequence

from agent.events import retrieval_event, step_event
from agent.graph import MAX_ATTEMPTS, run_repair, stream_repair
from agent.state import RepairState
from framework.streaming import render_text, stream_via_bus
from llm.context_builder import build_code_context
from llm.prompt_loader import render_template
from llm.router import LLMRouter
from retrieval.index import (
    DEFAULT_TOP_K,
    IndexNotBuiltError,
    SearchResult,
    SimilarityIndex,
    SourceDocument,
)
from sandbox.python_executor import SandboxExecutor

logger = logging.getLogger(__name__)

EXPLAINER_ROLE = "explainer"


class CodeFixService:

    def __init__(
        self,
        index: SimilarityIndex | None = None,
        router: LLMRouter | None = None,
        executor: SandboxExecutor | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        top_k: int = DEFAULT_TOP_K,
    ) -> None:
        self._index = index if index is not None else SimilarityIndex()
        self._router = router if router is not None else LLMRouter()
        self._executor = executor if executor is not None else SandboxExecutor()
        self._max_attempts = max_attempts
        self._top_k = top_k

    @property
    def similarity_index(self) -> SimilarityIndex:
        return self._index

    async def index(self, documents: Sequence[SourceDocument]) -> int:
        """Replace the index with embeddings of documents; return the record count."""
        return await self._index.rebuild(documents)

    async def query(self, text: str, top_k: int = DEFAULT_TOP_K) -> list[SearchResult]:
        """Rank indexed documents against text. Raises IndexNotBuiltError."""
        return await self._index.query(text, top_k=top_k)

    async def _gather_context(
        self,
        title: str,
        description: str,
        current_code: str,
    ) -> tuple[str, list[dict[str, Any]]]:
        """Return (code_context, events) with retrieved excerpts appended."""
        try:
            results = await self._index.query(f"{title}\n{description}", top_k=self._top_k)
        except IndexNotBuiltError:
            logger.warning("Repair started without an index; no excerpts retrieved")
            event = step_event("No code index available; continuing without retrieved context.")
            return build_code_context(current_code, []), [event.to_dict()]

        context = build_code_context(current_code, [r.content for r in results])
        return context, [retrieval_event([r.identifier for r in results]).to_dict()]

    async def _events(
        self,
        title: str,
        description: str,
        current_code: str,
    ) -> AsyncGenerator[dict[str, Any], None]:
        code_context, initial_events = await self._gather_context(title, description, current_code)
        async for event in stream_repair(
            title,
            description,
            code_context,
            max_attempts=self._max_attempts,
            router=self._router,
            executor=self._executor,
            initial_events=initial_events,
        ):
            yield event

    async def repair(
        self,
        title: str,
        description: str,
        current_code: str,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """
        Stream structured progress events for one repair session.

        The run executes in a background task: a consumer that stops reading
        does not cancel in-flight sandbox or model calls.
        """
        async for event in stream_via_bus(self._events(title, description, current_code)):
            yield event

    async def repair_text(
        self,
        title: str,
        description: str,
        current_code: str,
    ) -> AsyncGenerator[str, None]:
        """Same as repair(), rendered as plain-text progress lines."""
        async for line in render_text(self.repair(title, description, current_code)):
            yield line

    async def run(
        self,
        title: str,
        description: str,
        current_code: str,
    ) -> RepairState:
        """Run one repair session to completion and return the final state."""
        code_context, _ = await self._gather_context(title, description, current_code)
        return await run_repair(
            title,
            description,
            code_context,
            max_attempts=self._max_attempts,
            router=self._router,
            executor=self._executor,
        )

    async def explain(
        self,
        title: str,
        description: str,
        current_code: str,
        reasoning_effort: str | None = None,
    ) -> AsyncGenerator[str, None]:
        """Stream a narrated explanation of the fix, fragment by fragment."""
        code_context, _ = await self._gather_context(title, description, current_code)
        prompt = render_template(
            EXPLAINER_ROLE,
            "explain",
            {"title": title, "description": description, "code_context": code_context},
        )
        async for fragment in self._router.stream(
            EXPLAINER_ROLE,
            [{"role": "user", "content": prompt}],
            reasoning_effort=reasoning_effort,
        ):
            yield fragment
