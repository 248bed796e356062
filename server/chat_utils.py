import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Generator, Iterable, Iterator, List, Optional

from openai import OpenAIError

from errors import UpstreamError
from memory_utils import SessionStore
from search_utils import format_results, web_search


logger = logging.getLogger(__name__)

SEARCH_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "search",
        "description": "Given a query string, return web results.",
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "What to look up on the web"}
            },
            "required": ["query"],
        },
    },
}

SYSTEM_PROMPT = (
    """You are an assistant for the dataset provided in the user's message.
- Answer only from that dataset. Each line is one record with its ID, name, category and tasks.
- If the user needs current information from outside the dataset about a record, you may call the `search` tool.
- If a question has nothing to do with the dataset, reply that it is out of scope and say what you can help with.
- Keep answers short.
"""
)

SUMMARY_PROMPT = (
    "Summarize the web results below so they answer the user's question. "
    "Use at most two sentences."
)

INTERRUPTED_MARKER = "\n[error] The response was interrupted."
SEARCH_APOLOGY = "Sorry, I couldn't complete the web search right now."


class ChatState(Enum):
    STREAMING = "streaming"
    TOOL_PENDING = "tool_pending"


def build_messages(dataset_text: str, history: List[Dict[str, str]], message: str) -> List[Dict[str, str]]:
    dataset_block = dataset_text or "(the dataset is empty)"
    user_content = f"Dataset:\n{dataset_block}\n\nQuestion: {message}"
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        *({"role": t["role"], "content": t["content"]} for t in history),
        {"role": "user", "content": user_content},
    ]


def accumulate_tool_calls(pending: List[Dict[str, Any]], fragments: Iterable[Any]) -> None:
    """Merge streamed tool-call fragments into ``pending`` by their index."""
    for fragment in fragments:
        idx = getattr(fragment, "index", None) or 0
        while len(pending) <= idx:
            pending.append({"id": "", "type": "function", "function": {"name": "", "arguments": ""}})
        if getattr(fragment, "id", None):
            pending[idx]["id"] = fragment.id
        function = getattr(fragment, "function", None)
        if function is not None:
            if getattr(function, "name", None):
                pending[idx]["function"]["name"] = function.name
            if getattr(function, "arguments", None):
                pending[idx]["function"]["arguments"] += function.arguments


class ChatOrchestrator:
    """Streams one chat turn and records it in the session store.

    The turn starts in ``STREAMING`` and relays text as it arrives. The
    first tool-call fragment moves it to ``TOOL_PENDING``; once the provider
    stream ends every pending ``search`` call is executed, its summary is
    relayed, and the turn re-enters ``STREAMING`` to finish.
    """

    def __init__(
        self,
        client: Any,
        store: SessionStore,
        dataset_text: str,
        model: str = "gpt-4o-mini",
        search: Callable[..., List[Dict[str, str]]] = web_search,
        search_limit: int = 3,
        http_timeout: int = 15,
    ):
        self.client = client
        self.store = store
        self.dataset_text = dataset_text
        self.model = model
        self.search = search
        self.search_limit = search_limit
        self.http_timeout = http_timeout
        self.state = ChatState.STREAMING

    def stream(self, message: str, session_id: str) -> Generator[str, None, None]:
        history = self.store.get(session_id)
        messages = build_messages(self.dataset_text, history, message)

        completion = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            tools=[SEARCH_TOOL],
            tool_choice="auto",
            temperature=0.1,
            stream=True,
        )

        self.state = ChatState.STREAMING
        reply: List[str] = []
        pending: List[Dict[str, Any]] = []

        for chunk in completion:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta is None:
                continue
            if getattr(delta, "tool_calls", None):
                self.state = ChatState.TOOL_PENDING
                accumulate_tool_calls(pending, delta.tool_calls)
            text = getattr(delta, "content", None)
            if text:
                reply.append(text)
                yield text

        if self.state is ChatState.TOOL_PENDING:
            for call in pending:
                addition = self._run_tool_call(call, message)
                if not addition:
                    continue
                if reply:
                    addition = "\n\n" + addition
                reply.append(addition)
                yield addition
            self.state = ChatState.STREAMING

        self.store.append(
            session_id,
            {"role": "user", "content": message},
            {"role": "assistant", "content": "".join(reply)},
        )

    def _run_tool_call(self, call: Dict[str, Any], question: str) -> Optional[str]:
        name = call["function"]["name"]
        if name != "search":
            logger.warning("Skipping unknown tool call %r", name)
            return None

        try:
            args = json.loads(call["function"]["arguments"] or "{}")
        except json.JSONDecodeError:
            logger.warning("Skipping search call with unparseable arguments: %r", call["function"]["arguments"])
            return None
        query = args.get("query") if isinstance(args, dict) else None
        if not isinstance(query, str) or not query.strip():
            logger.warning("Skipping search call without a query: %r", args)
            return None

        try:
            results = self.search(query, limit=self.search_limit, timeout=self.http_timeout)
            if not results:
                return f'I couldn\'t find any web results for "{query}".'
            return self.summarize(question, query, results)
        except (UpstreamError, OpenAIError) as e:
            logger.warning("Search tool call failed for %r: %s", query, e)
            return SEARCH_APOLOGY

    def summarize(self, question: str, query: str, results: List[Dict[str, str]]) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SUMMARY_PROMPT},
                {
                    "role": "user",
                    "content": f"Question: {question}\nSearch query: {query}\n\nResults:\n{format_results(results)}",
                },
            ],
            temperature=0.1,
        )
        return (response.choices[0].message.content or "").strip()


def relay(fragments: Iterator[str]) -> Iterator[str]:
    """Pull the first fragment eagerly, then relay the rest.

    Errors raised before the first fragment propagate to the caller, which
    can still answer with a JSON error. Errors after that end the stream
    with ``INTERRUPTED_MARKER``.
    """
    try:
        first = next(fragments)
    except StopIteration:
        return iter(())

    def _rest() -> Generator[str, None, None]:
        yield first
        try:
            for fragment in fragments:
                yield fragment
        except Exception as e:  # response already started, can only mark it
            logger.error("Chat stream failed mid-response: %s", e, exc_info=True)
            yield INTERRUPTED_MARKER

    return _rest()
