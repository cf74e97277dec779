import logging
from typing import Callable, List

from google.api_core.exceptions import GoogleAPIError
from google.cloud import firestore
from google.cloud.firestore import SERVER_TIMESTAMP

from ..exceptions import StoreReadError, StoreWriteError
from ..models import ChatMessage, TrainingPair

logger = logging.getLogger(__name__)

_ROOT_COLLECTION = "artifacts"
_USERS_COLLECTION = "users"
_HISTORY_COLLECTION = "chat_history"
_TRAINING_COLLECTION = "training_data"

Unsubscribe = Callable[[], None]


def normalize_question(question: str) -> str:
    """Lookup key for a taught question."""
    return question.lower()


def _user_collection(db: firestore.Client, app_id: str, uid: str, name: str):
    return db.collection(_ROOT_COLLECTION, app_id, _USERS_COLLECTION, uid, name)


class ConversationStore:
    """Ordered chat log per (app, user) in Firestore."""

    def __init__(self, db: firestore.Client, app_id: str) -> None:
        self.db = db
        self.app_id = app_id
        logger.info("ConversationStore initialized for app '%s'", app_id)

    def _messages(self, uid: str):
        return _user_collection(self.db, self.app_id, uid, _HISTORY_COLLECTION)

    @staticmethod
    def _to_message(doc) -> ChatMessage:
        data = doc.to_dict() or {}
        return ChatMessage(
            id=doc.id,
            text=data.get("text", ""),
            sender="user" if data.get("sender") == "user" else "bot",
            timestamp=data.get("timestamp"),
        )

    # --------------------------------------------------------------------- #
    # Writes
    # --------------------------------------------------------------------- #
    def append(self, uid: str, sender: str, text: str) -> ChatMessage:
        """Adds a message with a server-assigned timestamp and returns it with its id."""
        payload = {
            "sender": sender,
            "text": text,
            "timestamp": SERVER_TIMESTAMP,
        }
        try:
            _, message_ref = self._messages(uid).add(payload)
        except GoogleAPIError as exc:
            logger.error("Failed to append %s message for %s: %s", sender, uid, exc)
            raise StoreWriteError(f"Could not save {sender} message") from exc

        return ChatMessage(id=message_ref.id, sender=sender, text=text)

    # --------------------------------------------------------------------- #
    # Live reads
    # --------------------------------------------------------------------- #
    def subscribe(self, uid: str, handler: Callable[[List[ChatMessage]], None]) -> Unsubscribe:
        """Calls *handler* with the full ordered log on every change.

        The handler runs on the Firestore listener thread. Errors while
        converting or handling a snapshot are logged and the view goes stale
        until the next snapshot arrives.
        """
        query = self._messages(uid).order_by("timestamp")

        def _on_snapshot(docs, changes, read_time):
            try:
                messages = [self._to_message(doc) for doc in docs]
                handler(messages)
            except Exception as exc:
                logger.error("Error handling chat history snapshot: %s", exc, exc_info=True)

        watch = query.on_snapshot(_on_snapshot)
        logger.info("Subscribed to chat history of %s", uid)
        return watch.unsubscribe


class KnowledgeStore:
    """Taught question/answer pairs per (app, user), keyed by normalized question."""

    def __init__(self, db: firestore.Client, app_id: str) -> None:
        self.db = db
        self.app_id = app_id

    def _pairs(self, uid: str):
        return _user_collection(self.db, self.app_id, uid, _TRAINING_COLLECTION)

    def upsert(self, uid: str, question: str, answer: str) -> TrainingPair:
        key = normalize_question(question)
        try:
            self._pairs(uid).document(key).set(
                {
                    "question": question,
                    "answer": answer,
                    "timestamp": SERVER_TIMESTAMP,
                },
                merge=True,
            )
        except (GoogleAPIError, ValueError) as exc:
            # ValueError: key is not a valid document id (e.g. contains "/")
            logger.error("Failed to save training pair '%s': %s", key, exc)
            raise StoreWriteError("Could not save training pair") from exc

        logger.info("Saved training pair '%s' for %s", key, uid)
        return TrainingPair(key=key, question=question, answer=answer)

    def list_pairs(self, uid: str) -> List[TrainingPair]:
        """All pairs in whatever order Firestore returns them."""
        try:
            docs = self._pairs(uid).stream()
            pairs = []
            for doc in docs:
                data = doc.to_dict() or {}
                pairs.append(
                    TrainingPair(
                        key=doc.id,
                        question=data.get("question", ""),
                        answer=data.get("answer", ""),
                        timestamp=data.get("timestamp"),
                    )
                )
            return pairs
        except GoogleAPIError as exc:
            logger.error("Failed to read training data for %s: %s", uid, exc)
            raise StoreReadError("Could not read training data") from exc
