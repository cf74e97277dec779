"""Shared test fixtures: in-memory stand-ins for Firestore, auth and Gemini."""

import itertools
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatbot.exceptions import StoreWriteError
from chatbot.models import ChatMessage, Session, TrainingPair
from chatbot.services.firestore import normalize_question
from chatbot.services.pipeline import MessagePipeline
from chatbot.services.transcript import TranscriptView
from chatbot.settings import Settings


class FakeIdentity:
    def __init__(self, identity="user-1"):
        self._identity = identity
        self.session = Session()
        self.sign_in_calls = 0

    def sign_in(self):
        self.sign_in_calls += 1
        self.session = Session(identity=self._identity, ready=True)
        return self.session


class FakeConversationStore:
    """Append-only log; pushes every change to subscribers like on_snapshot does."""

    def __init__(self):
        self.messages = []
        self.handlers = []
        self.fail_for_sender = None
        # while paused, writes land but no snapshot is pushed
        self.paused = False
        self._ids = itertools.count(1)

    def append(self, uid, sender, text):
        if sender == self.fail_for_sender:
            raise StoreWriteError("write rejected")
        msg = ChatMessage(id=f"m{next(self._ids)}", sender=sender, text=text)
        self.messages.append(msg)
        if not self.paused:
            self.push(self.messages)
        return msg

    def push(self, messages):
        for handler in list(self.handlers):
            handler(list(messages))

    def subscribe(self, uid, handler):
        self.handlers.append(handler)
        handler(list(self.messages))
        return lambda: self.handlers.remove(handler)

    def bot_texts(self):
        return [m.text for m in self.messages if m.sender == "bot"]


class FakeKnowledgeStore:
    def __init__(self):
        self.pairs = {}
        self.list_error = None

    def upsert(self, uid, question, answer):
        key = normalize_question(question)
        self.pairs[key] = TrainingPair(key=key, question=question, answer=answer)
        return self.pairs[key]

    def list_pairs(self, uid):
        if self.list_error:
            raise self.list_error
        return list(self.pairs.values())


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(app_id="test-app", gemini_api_key="key")


@pytest.fixture
def conversation():
    return FakeConversationStore()


@pytest.fixture
def knowledge():
    return FakeKnowledgeStore()


@pytest.fixture
def llm():
    fake = MagicMock()
    fake.generate = AsyncMock(return_value="hello")
    return fake


@pytest.fixture
def pipeline(settings, conversation, knowledge, llm):
    return MessagePipeline(
        settings=settings,
        identity=FakeIdentity(),
        conversation=conversation,
        knowledge=knowledge,
        llm=llm,
        view=TranscriptView(),
    )
