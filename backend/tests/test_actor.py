"""Unit tests for conversation actors: turns, streaming, document persistence."""
from __future__ import annotations

import asyncio
import unittest

from src.muse_agent import (
    ChatOrchestrator,
    ConversationActor,
    ConversationHub,
    InMemoryStorage,
    OrchestratorOptions,
    ToolRegistry,
    TransportError,
    ValidationError,
)
from src.muse_agent.config import DOC_CONTENT_KEY, DOC_TITLE_KEY, STREAM_ERROR_MESSAGE

from tests.fakes import RecordingStore, ScriptedProvider, text


def make_actor(
    provider: ScriptedProvider,
    store: RecordingStore | None = None,
    persist_delay: float = 0.02,
) -> ConversationActor:
    orchestrator = ChatOrchestrator(
        ToolRegistry(),
        OrchestratorOptions(model="openai:test-model", llm_provider=provider),
    )
    return ConversationActor("s1", store or RecordingStore(), orchestrator, persist_delay=persist_delay)


class TestChatTurns(unittest.IsolatedAsyncioTestCase):
    async def test_non_streaming_turn_appends_both_messages(self) -> None:
        provider = ScriptedProvider(replies=[("Hello, writer.", [])])
        actor = make_actor(provider)
        reply = await actor.send_message("  Hi  ")
        self.assertEqual(reply.content, "Hello, writer.")
        state = actor.get_state()
        self.assertEqual([m.role for m in state.messages], ["user", "assistant"])
        self.assertEqual(state.messages[0].content, "Hi")
        self.assertFalse(state.is_processing)

    async def test_empty_message_is_rejected_without_side_effects(self) -> None:
        actor = make_actor(ScriptedProvider())
        for blank in ("", "   "):
            with self.assertRaises(ValidationError):
                await actor.send_message(blank)
        state = actor.get_state()
        self.assertEqual(state.messages, [])
        self.assertFalse(state.is_processing)

    async def test_history_excludes_the_new_user_message(self) -> None:
        provider = ScriptedProvider(replies=[("first", []), ("second", [])])
        actor = make_actor(provider)
        await actor.send_message("one")
        await actor.send_message("two")
        sent = provider.chat_calls[-1]["messages"]
        self.assertEqual([m.role for m in sent], ["system", "user", "assistant", "user"])
        self.assertEqual(sent[-1].content, "two")

    async def test_model_override_switches_conversation_model(self) -> None:
        provider = ScriptedProvider(replies=[("ok", [])])
        actor = make_actor(provider)
        await actor.send_message("hi", model="gemini:gemini-2.5-flash")
        self.assertEqual(actor.get_state().model, "gemini:gemini-2.5-flash")
        self.assertEqual(provider.chat_calls[0]["model"], "gemini:gemini-2.5-flash")

    async def test_completion_failure_surfaces_processing_error(self) -> None:
        provider = ScriptedProvider()
        provider.chat_error = RuntimeError("upstream down")
        actor = make_actor(provider)
        with self.assertLogs("src.muse_agent", level="ERROR"):
            with self.assertRaises(TransportError):
                await actor.send_message("hi")
        state = actor.get_state()
        self.assertFalse(state.is_processing)
        self.assertEqual([m.role for m in state.messages], ["user"])

    async def test_turns_are_serialized(self) -> None:
        provider = ScriptedProvider(replies=[("reply one", []), ("reply two", [])])
        provider.gate = asyncio.Event()
        actor = make_actor(provider)

        first = asyncio.create_task(actor.send_message("one"))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(actor.send_message("two"))
        await asyncio.sleep(0.01)
        # The second turn waits for the lock before touching state.
        self.assertEqual([m.content for m in actor.get_state().messages], ["one"])
        self.assertTrue(actor.get_state().is_processing)

        provider.gate.set()
        await asyncio.gather(first, second)
        self.assertEqual(
            [m.content for m in actor.get_state().messages],
            ["one", "reply one", "two", "reply two"],
        )

    async def test_clear_keeps_document_and_model(self) -> None:
        provider = ScriptedProvider(replies=[("ok", [])])
        actor = make_actor(provider)
        await actor.set_document(title="Title", content="Body")
        await actor.set_model("openai:other")
        await actor.send_message("hi")
        state = await actor.clear_messages()
        self.assertEqual(state.messages, [])
        self.assertEqual((state.title, state.content, state.model), ("Title", "Body", "openai:other"))
        await actor.wait_idle()

    async def test_get_state_returns_a_copy(self) -> None:
        actor = make_actor(ScriptedProvider(replies=[("ok", [])]))
        await actor.send_message("hi")
        snapshot = actor.get_state()
        snapshot.messages.clear()
        self.assertEqual(len(actor.get_state().messages), 2)


class TestStreamingTurns(unittest.IsolatedAsyncioTestCase):
    async def test_stream_delivers_chunks_and_records_reply(self) -> None:
        provider = ScriptedProvider(streams=[[text("Hel"), text("lo")]])
        actor = make_actor(provider)
        channel = await actor.send_message("hi", stream=True)
        self.assertEqual(await channel.read_all(), "Hello")
        await actor.wait_idle()
        state = actor.get_state()
        self.assertEqual(state.messages[-1].content, "Hello")
        self.assertEqual(state.streaming_message, "")
        self.assertFalse(state.is_processing)

    async def test_flags_while_streaming(self) -> None:
        provider = ScriptedProvider(streams=[[text("Hel"), text("lo")]])
        provider.gate = asyncio.Event()
        actor = make_actor(provider)
        channel = await actor.send_message("hi", stream=True)
        self.assertEqual(await channel.__anext__(), "Hel")
        state = actor.get_state()
        self.assertTrue(state.is_processing)
        self.assertEqual(state.streaming_message, "Hel")
        provider.gate.set()
        self.assertEqual(await channel.read_all(), "lo")
        await actor.wait_idle()
        self.assertFalse(actor.get_state().is_processing)

    async def test_stream_failure_writes_error_and_clears_flags(self) -> None:
        provider = ScriptedProvider(streams=[[text("Par"), RuntimeError("connection reset")]])
        actor = make_actor(provider)
        with self.assertLogs("src.muse_agent", level="ERROR"):
            channel = await actor.send_message("hi", stream=True)
            self.assertEqual(await channel.read_all(), "Par" + STREAM_ERROR_MESSAGE)
            await actor.wait_idle()
        state = actor.get_state()
        self.assertEqual([m.role for m in state.messages], ["user"])
        self.assertFalse(state.is_processing)
        self.assertEqual(state.streaming_message, "")

    async def test_turn_completes_without_a_reader(self) -> None:
        provider = ScriptedProvider(streams=[[text("unread")]])
        actor = make_actor(provider)
        channel = await actor.send_message("hi", stream=True)
        await actor.wait_idle()
        self.assertTrue(channel.closed)
        self.assertEqual(actor.get_state().messages[-1].content, "unread")


class TestDocumentPersistence(unittest.IsolatedAsyncioTestCase):
    async def test_rapid_edits_coalesce_into_one_write(self) -> None:
        store = RecordingStore()
        actor = make_actor(ScriptedProvider(), store)
        for i in range(5):
            await actor.set_document(content=f"draft {i}")
        await actor.wait_idle()
        self.assertEqual([k for k, _ in store.puts].count(DOC_CONTENT_KEY), 1)
        self.assertEqual(await store.get(DOC_CONTENT_KEY), "draft 4")

    async def test_separate_fields_converge(self) -> None:
        store = RecordingStore()
        actor = make_actor(ScriptedProvider(), store)
        await actor.set_document(title="A title")
        await actor.set_document(content="A body")
        await actor.wait_idle()
        self.assertEqual(await store.get(DOC_TITLE_KEY), "A title")
        self.assertEqual(await store.get(DOC_CONTENT_KEY), "A body")

    async def test_edits_after_quiet_period_each_persist(self) -> None:
        store = RecordingStore()
        actor = make_actor(ScriptedProvider(), store)
        await actor.set_document(title="one")
        await actor.wait_idle()
        await actor.set_document(title="two")
        await actor.wait_idle()
        self.assertEqual([v for k, v in store.puts if k == DOC_TITLE_KEY], ["one", "two"])

    async def test_document_is_visible_before_it_is_persisted(self) -> None:
        store = RecordingStore()
        actor = make_actor(ScriptedProvider(), store, persist_delay=10)
        doc = await actor.set_document(title="Now")
        self.assertEqual(doc.title, "Now")
        self.assertEqual(actor.get_document().title, "Now")
        self.assertEqual(store.puts, [])

    async def test_start_loads_persisted_document(self) -> None:
        store = RecordingStore({DOC_TITLE_KEY: "Saved", DOC_CONTENT_KEY: "Body"})
        actor = make_actor(ScriptedProvider(), store)
        await actor.start()
        self.assertEqual(actor.get_document().title, "Saved")
        self.assertEqual(actor.get_document().content, "Body")

    async def test_write_failure_is_logged(self) -> None:
        store = RecordingStore()
        store.fail_puts = True
        actor = make_actor(ScriptedProvider(), store)
        with self.assertLogs("src.muse_agent.actor", level="ERROR"):
            await actor.set_document(title="x")
            await actor.wait_idle()
        self.assertEqual(actor.get_document().title, "x")


class TestConversationHub(unittest.IsolatedAsyncioTestCase):
    def make_hub(self, storage: InMemoryStorage) -> ConversationHub:
        orchestrator = ChatOrchestrator(ToolRegistry(), OrchestratorOptions(llm_provider=ScriptedProvider()))
        return ConversationHub(storage, orchestrator, persist_delay=0.01)

    async def test_one_actor_per_session(self) -> None:
        hub = self.make_hub(InMemoryStorage())
        actors = await asyncio.gather(*(hub.get("s1") for _ in range(3)))
        self.assertTrue(all(a is actors[0] for a in actors))
        self.assertIsNot(await hub.get("s2"), actors[0])

    async def test_document_survives_a_new_hub(self) -> None:
        storage = InMemoryStorage()
        hub = self.make_hub(storage)
        await (await hub.get("s1")).set_document(title="Kept")
        await hub.close()
        reopened = await self.make_hub(storage).get("s1")
        self.assertEqual(reopened.get_document().title, "Kept")

    async def test_discard_drops_stored_document(self) -> None:
        storage = InMemoryStorage()
        hub = self.make_hub(storage)
        await (await hub.get("s1")).set_document(title="Gone")
        await hub.discard("s1")
        fresh = await hub.get("s1")
        self.assertEqual(fresh.get_document().title, "")

    async def test_edit_through_a_discarded_actor_is_not_stored(self) -> None:
        storage = InMemoryStorage()
        hub = self.make_hub(storage)
        stale = await hub.get("s1")
        await stale.set_document(title="Before delete")
        await hub.discard("s1")
        await stale.set_document(title="edited after delete")
        await stale.wait_idle()
        self.assertEqual(await storage.partition("conversation:s1").list(), {})
        fresh = await hub.get("s1")
        self.assertIsNot(fresh, stale)
        self.assertEqual(fresh.get_document().title, "")

    async def test_checkout_releases_an_idle_actor(self) -> None:
        hub = self.make_hub(InMemoryStorage())
        async with hub.checkout("unknown") as actor:
            self.assertEqual(actor.get_state().messages, [])
            self.assertIn("unknown", hub)
        self.assertNotIn("unknown", hub)

    async def test_checkout_keeps_an_actor_with_history(self) -> None:
        hub = self.make_hub(InMemoryStorage())
        async with hub.checkout("s1") as actor:
            await actor.send_message("hello")
        self.assertIn("s1", hub)
        self.assertIs(await hub.get("s1"), actor)

    async def test_checkout_keeps_an_actor_until_its_last_user_leaves(self) -> None:
        hub = self.make_hub(InMemoryStorage())
        async with hub.checkout("s1") as outer:
            async with hub.checkout("s1") as inner:
                self.assertIs(inner, outer)
            self.assertIn("s1", hub)
        self.assertNotIn("s1", hub)

    async def test_pending_document_write_keeps_the_actor(self) -> None:
        storage = InMemoryStorage()
        hub = self.make_hub(storage)
        async with hub.checkout("s1") as actor:
            await actor.set_document(title="Draft")
        self.assertIn("s1", hub)
        await actor.wait_idle()
        async with hub.checkout("s1") as again:
            self.assertIs(again, actor)
        self.assertNotIn("s1", hub)
        self.assertEqual((await hub.get("s1")).get_document().title, "Draft")


if __name__ == "__main__":
    unittest.main()
