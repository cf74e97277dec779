import logging
from functools import lru_cache

from fastapi import Request
from google.cloud import firestore

from ..services.firestore import ConversationStore, KnowledgeStore
from ..services.identity import SessionIdentityProvider
from ..services.llm_service import LLMService
from ..services.pipeline import MessagePipeline
from ..settings import settings


@lru_cache()
def get_firestore_client() -> firestore.Client:
    logging.info("Initializing Firestore client...")
    return firestore.Client(project=settings.firestore_project)


@lru_cache()
def get_pipeline() -> MessagePipeline:
    """Builds the process-wide pipeline with its stores and clients."""
    logging.info("Initializing MessagePipeline...")
    db = get_firestore_client()
    return MessagePipeline(
        settings=settings,
        identity=SessionIdentityProvider(
            api_key=settings.firebase_api_key,
            initial_auth_token=settings.initial_auth_token,
            timeout=settings.auth_timeout_seconds,
        ),
        conversation=ConversationStore(db, settings.app_id),
        knowledge=KnowledgeStore(db, settings.app_id),
        llm=LLMService(settings),
    )


def current_pipeline(request: Request) -> MessagePipeline:
    return request.app.state.pipeline
