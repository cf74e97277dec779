"""Message pipeline: command dispatch + model turn + write-back.

Every submission first records the user's text in the chat history, then
either handles an in-band command (``/teach``, ``/clear``) or asks the model
for a reply. Exactly one bot message is written per handled submission and
no failure escapes to the caller.
"""

from __future__ import annotations

import logging
from typing import Optional, Set, Tuple

import anyio

from ..exceptions import PipelineBusyError
from ..models import ChatMessage, PipelineState, Session, SubmitOutcome
from ..settings import Settings
from .firestore import ConversationStore, KnowledgeStore, Unsubscribe
from .identity import SessionIdentityProvider
from .llm_service import LLMService
from .prompt import build_turns
from .transcript import TranscriptView

logger = logging.getLogger(__name__)

TEACH_PREFIX = "/teach "
CLEAR_PREFIX = "/clear"

TEACH_ACK = "Acknowledged. I've noted that for future reference."
TEACH_USAGE = 'Invalid /teach command. Use: /teach "question" "answer"'
CLEARED = "Chat history cleared."
GENERIC_ERROR = "Oops! Something went wrong. Please try again."
REPHRASE = "I'm not sure how to respond to that. Can you rephrase?"
CONNECTION_TROUBLE = "I'm sorry, I'm having trouble connecting right now. Please try again later."


def parse_teach_args(rest: str) -> Optional[Tuple[str, str]]:
    """Split ``"question" "answer"`` into its two parts.

    The separator is the literal ``" "``, so neither part can contain it.
    Quote characters are dropped from both parts.
    """
    parts = rest.split('" "')
    if len(parts) != 2:
        return None
    question, answer = (part.replace('"', "") for part in parts)
    if not question:
        return None
    return question, answer


class MessagePipeline:
    """Handles one submission at a time for the signed-in session."""

    def __init__(
        self,
        settings: Settings,
        identity: SessionIdentityProvider,
        conversation: ConversationStore,
        knowledge: KnowledgeStore,
        llm: LLMService,
        view: Optional[TranscriptView] = None,
    ) -> None:
        self.settings = settings
        self.identity = identity
        self.conversation = conversation
        self.knowledge = knowledge
        self.llm = llm
        self.view = view if view is not None else TranscriptView()
        self.state = PipelineState.IDLE
        self._unsubscribe: Optional[Unsubscribe] = None
        # ids written since the last /clear; snapshots may deliver them late
        self._written_ids: Set[str] = set()

    @property
    def session(self) -> Session:
        return self.identity.session

    # ─────────────────────────── lifecycle ───────────────────────────
    async def start(self) -> Session:
        """Sign in and bind the transcript view to the live chat history."""
        session = await anyio.to_thread.run_sync(self.identity.sign_in)
        if session.identity and self._unsubscribe is None:
            try:
                self._unsubscribe = self.conversation.subscribe(
                    session.identity, self.view.apply_snapshot
                )
            except Exception as exc:
                logger.error("Error subscribing to chat history: %s", exc, exc_info=True)
        return session

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ─────────────────────────── submission ───────────────────────────
    async def submit(self, raw_input: str) -> Optional[SubmitOutcome]:
        """Process one user message.

        Returns None (and writes nothing) for blank input or when there is no
        signed-in identity. Raises PipelineBusyError if called while another
        submission is still being processed.
        """
        text = (raw_input or "").strip()
        uid = self.session.identity
        if not text or not uid:
            return None

        if self.state is not PipelineState.IDLE:
            raise PipelineBusyError(f"Pipeline is {self.state.value}")
        self.state = PipelineState.SENDING

        try:
            return await self._dispatch(uid, text)
        except Exception as exc:
            logger.error("Error sending message or processing command: %s", exc, exc_info=True)
            await self._reply_quietly(uid, GENERIC_ERROR)
            return SubmitOutcome.ERRORED
        finally:
            self.state = PipelineState.IDLE

    async def _dispatch(self, uid: str, text: str) -> SubmitOutcome:
        user_message = await self._append(uid, "user", text)

        if text.startswith(TEACH_PREFIX):
            self.state = PipelineState.TEACHING
            return await self._teach(uid, text[len(TEACH_PREFIX):])

        if text.startswith(CLEAR_PREFIX):
            self.state = PipelineState.CLEARING
            # local view only; the store keeps everything
            self.view.clear(also_hide=self._written_ids)
            self._written_ids = set()
            await self._append(uid, "bot", CLEARED)
            return SubmitOutcome.CLEAR_HANDLED

        self.state = PipelineState.INFERRING
        return await self.infer(text, skip_id=user_message.id)

    async def _teach(self, uid: str, rest: str) -> SubmitOutcome:
        parsed = parse_teach_args(rest)
        if parsed is None:
            await self._append(uid, "bot", TEACH_USAGE)
            return SubmitOutcome.TEACH_REJECTED

        question, answer = parsed
        await anyio.to_thread.run_sync(self.knowledge.upsert, uid, question, answer)
        await self._append(uid, "bot", TEACH_ACK)
        return SubmitOutcome.TEACH_HANDLED

    # ─────────────────────────── model turn ───────────────────────────
    async def infer(self, user_message: str, skip_id: Optional[str] = None) -> SubmitOutcome:
        """Ask the model for a reply and write exactly one bot message.

        *skip_id* is the id of the stored user message that triggered this
        turn; it is left out of the history because the final instruction
        turn already carries its text.
        """
        uid = self.session.identity
        outcome = SubmitOutcome.INFERENCE_FAILED
        try:
            pairs = await anyio.to_thread.run_sync(self.knowledge.list_pairs, uid)
            history = [m for m in self.view.messages if m.id is None or m.id != skip_id]
            # bounds the whole call, including SDK-side retries
            with anyio.fail_after(self.settings.inference_timeout_seconds):
                reply = await self.llm.generate(build_turns(history, pairs, user_message))
            if reply is None:
                reply = REPHRASE
            else:
                outcome = SubmitOutcome.INFERENCE_SUCCEEDED
        except Exception as exc:
            logger.error("Error getting bot response from LLM: %s", exc, exc_info=True)
            reply = CONNECTION_TROUBLE

        await self._append(uid, "bot", reply)
        return outcome

    # ─────────────────────────── store helpers ───────────────────────────
    async def _append(self, uid: str, sender: str, text: str) -> ChatMessage:
        message = await anyio.to_thread.run_sync(self.conversation.append, uid, sender, text)
        if message.id:
            self._written_ids.add(message.id)
        return message

    async def _reply_quietly(self, uid: str, text: str) -> None:
        try:
            await self._append(uid, "bot", text)
        except Exception as exc:
            logger.error("Could not write error reply: %s", exc, exc_info=True)
