"""Unit tests for the chat orchestrator: context building, tool round trips, fallbacks."""
from __future__ import annotations

import json
import unittest

from src.llm_core import ToolCallDelta, ToolCallRequest
from src.muse_agent import (
    ChatMessage,
    ChatOrchestrator,
    OrchestratorOptions,
    ToolCallAccumulator,
    TransportError,
    get_default_registry,
)
from src.muse_agent.config import APOLOGY_MESSAGE, TOOL_FOLLOWUP_FALLBACK

from tests.fakes import ScriptedProvider, text, tool_delta


def make_orchestrator(provider: ScriptedProvider) -> ChatOrchestrator:
    return ChatOrchestrator(get_default_registry(), OrchestratorOptions(llm_provider=provider))


def history_of(count: int) -> list[ChatMessage]:
    return [
        ChatMessage.create("user" if i % 2 == 0 else "assistant", f"message {i}")
        for i in range(count)
    ]


class TestToolCallAccumulator(unittest.TestCase):
    def test_fragments_concatenate_by_index(self) -> None:
        acc = ToolCallAccumulator()
        acc.add(ToolCallDelta(index=0, id="call_1", name="seo_score", arguments='{"a":1'))
        acc.add(ToolCallDelta(index=0, arguments=',"b":2}'))
        calls = acc.calls()
        self.assertEqual(len(calls), 1)
        self.assertEqual(calls[0].id, "call_1")
        self.assertEqual(calls[0].name, "seo_score")
        self.assertEqual(json.loads(calls[0].arguments), {"a": 1, "b": 2})

    def test_calls_are_ordered_by_index(self) -> None:
        acc = ToolCallAccumulator()
        acc.add(ToolCallDelta(index=1, id="b", name="word_count"))
        acc.add(ToolCallDelta(index=0, id="a", name="seo_score"))
        self.assertEqual([c.id for c in acc.calls()], ["a", "b"])

    def test_fallback_ids_are_unique(self) -> None:
        acc = ToolCallAccumulator()
        acc.add(ToolCallDelta(index=0, name="word_count", arguments="{}"))
        acc.add(ToolCallDelta(index=1, name="word_count", arguments="{}"))
        ids = [c.id for c in acc.calls()]
        self.assertEqual(len(set(ids)), 2)
        self.assertTrue(all(i.startswith("call_") for i in ids))
        other = ToolCallAccumulator()
        other.add(ToolCallDelta(index=0, name="word_count"))
        self.assertNotIn(other.calls()[0].id, ids)


class TestConversationMessages(unittest.TestCase):
    def test_document_context_and_defaults(self) -> None:
        orchestrator = make_orchestrator(ScriptedProvider())
        messages = orchestrator.build_conversation_messages("hi", [], "", "")
        self.assertEqual(messages[0].role, "system")
        self.assertIn("Untitled", messages[0].content)
        self.assertIn("Empty Canvas", messages[0].content)
        messages = orchestrator.build_conversation_messages("hi", [], "Rain Poems", "It rained.")
        self.assertIn("Rain Poems", messages[0].content)
        self.assertIn("It rained.", messages[0].content)

    def test_history_is_windowed(self) -> None:
        orchestrator = make_orchestrator(ScriptedProvider())
        messages = orchestrator.build_conversation_messages("latest", history_of(14), "t", "c")
        self.assertEqual(len(messages), 12)
        self.assertEqual(messages[1].content, "message 4")
        self.assertEqual(messages[-1].content, "latest")


class TestProcess(unittest.IsolatedAsyncioTestCase):
    async def test_plain_reply(self) -> None:
        provider = ScriptedProvider(replies=[("Keep going.", [])])
        result = await make_orchestrator(provider).process("hi", [])
        self.assertEqual(result.content, "Keep going.")
        self.assertIsNone(result.tool_calls)
        names = [t["function"]["name"] for t in provider.chat_calls[0]["tools"]]
        self.assertEqual(sorted(names), ["seo_score", "word_count"])

    async def test_empty_reply_becomes_apology(self) -> None:
        result = await make_orchestrator(ScriptedProvider(replies=[("", [])])).process("hi", [])
        self.assertEqual(result.content, APOLOGY_MESSAGE)

    async def test_streamed_tool_round_trip(self) -> None:
        provider = ScriptedProvider(
            streams=[[
                text("Counting..."),
                tool_delta(0, id="call_wc", name="word_count", arguments='{"text": "one'),
                tool_delta(0, arguments=' two three"}'),
            ]],
            replies=[("Three words, a haiku's breath.", [])],
        )
        chunks: list[str] = []
        result = await make_orchestrator(provider).process(
            "how long?", history_of(5), "T", "C", on_chunk=chunks.append
        )
        self.assertEqual(chunks, ["Counting..."])
        self.assertEqual(result.content, "Three words, a haiku's breath.")
        self.assertEqual(len(result.tool_calls), 1)
        call = result.tool_calls[0]
        self.assertEqual(call.id, "call_wc")
        self.assertEqual(call.arguments, {"text": "one two three"})
        self.assertEqual(call.result["words"], 3)

        followup = provider.chat_calls[0]["messages"]
        self.assertEqual(
            [m.role for m in followup],
            ["system", "user", "assistant", "user", "user", "assistant", "tool"],
        )
        self.assertEqual(followup[4].content, "how long?")
        self.assertIsNone(followup[5].content)
        self.assertEqual(followup[5].tool_calls[0]["id"], "call_wc")
        self.assertEqual(followup[6].tool_call_id, "call_wc")
        self.assertEqual(json.loads(followup[6].content)["words"], 3)
        self.assertIsNone(provider.chat_calls[0]["tools"])

    async def test_stream_without_tools_returns_streamed_text(self) -> None:
        provider = ScriptedProvider(streams=[[text("Ink "), text("flows.")]])
        received: list[str] = []

        async def on_chunk(chunk: str) -> None:
            received.append(chunk)

        result = await make_orchestrator(provider).process("hi", [], on_chunk=on_chunk)
        self.assertEqual(received, ["Ink ", "flows."])
        self.assertEqual(result.content, "Ink flows.")
        self.assertEqual(provider.chat_calls, [])

    async def test_stream_failure_raises_transport_error(self) -> None:
        provider = ScriptedProvider(streams=[[text("a"), ConnectionError("reset")]])
        with self.assertLogs("src.muse_agent.orchestrator", level="ERROR"):
            with self.assertRaises(TransportError):
                await make_orchestrator(provider).process("hi", [], on_chunk=lambda c: None)

    async def test_empty_followup_uses_fallback(self) -> None:
        provider = ScriptedProvider(
            replies=[
                ("", [ToolCallRequest(id="c1", name="word_count", arguments='{"text": "a b"}')]),
                ("", []),
            ]
        )
        result = await make_orchestrator(provider).process("count", [])
        self.assertEqual(result.content, TOOL_FOLLOWUP_FALLBACK)
        self.assertEqual(result.tool_calls[0].result["words"], 2)


class TestToolExecution(unittest.IsolatedAsyncioTestCase):
    async def test_failures_are_isolated_per_call(self) -> None:
        orchestrator = make_orchestrator(ScriptedProvider())
        with self.assertLogs("src.muse_agent.orchestrator", level="WARNING"):
            results = await orchestrator.execute_tool_calls([
                ToolCallRequest(id="1", name="missing_tool", arguments="{}"),
                ToolCallRequest(id="2", name="word_count", arguments="not json"),
                ToolCallRequest(id="3", name="word_count", arguments='{"text": 5}'),
                ToolCallRequest(id="4", name="word_count", arguments='{"text": "fine"}'),
            ])
        self.assertEqual([r.id for r in results], ["1", "2", "3", "4"])
        self.assertEqual(
            results[0].result,
            {"error": "Failed to execute missing_tool: Unknown tool: missing_tool"},
        )
        self.assertTrue(results[1].result["error"].startswith("Failed to execute word_count:"))
        self.assertEqual(results[2].arguments, {"text": 5})
        self.assertIn("text must be a string", results[2].result["error"])
        self.assertEqual(results[3].result["words"], 1)

    async def test_empty_arguments_parse_as_empty_object(self) -> None:
        orchestrator = make_orchestrator(ScriptedProvider())
        results = await orchestrator.execute_tool_calls([
            ToolCallRequest(id="1", name="seo_score", arguments=""),
        ])
        self.assertEqual(results[0].arguments, {})
        self.assertIn("error", results[0].result)


if __name__ == "__main__":
    unittest.main()
