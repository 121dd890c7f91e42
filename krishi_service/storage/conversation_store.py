"""
Conversation Store
==================

Persistence for conversations, advisories and per-turn query logs.

Two backends share one interface:
- RedisConversationStore: JSON documents in Redis (production)
- InMemoryConversationStore: process-local dicts (development / tests)

`create_store()` pings Redis and falls back to memory when it is not
reachable. Both backends hand out fresh objects on every load, so an
engine working on a loaded conversation never changes the stored copy
until it calls `save`.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, List, Optional

import redis

from ..config import EngineSettings
from ..errors import ConversationExistsError
from ..models import Advisory, Conversation, utc_now

logger = logging.getLogger(__name__)



class ConversationStore(ABC):
    """Storage interface used by the diagnostic engine."""

    name = "base"

    @abstractmethod
    def load(self, session_id: str) -> Optional[Conversation]:
        pass

    @abstractmethod
    def load_by_id(self, conversation_id: str) -> Optional[Conversation]:
        pass

    @abstractmethod
    def create(self, conversation: Conversation) -> Conversation:
        """Store a brand-new conversation. Raises ConversationExistsError on a duplicate session."""
        pass

    @abstractmethod
    def save(self, conversation: Conversation) -> None:
        pass

    @abstractmethod
    def create_advisory(self, advisory: Advisory) -> Advisory:
        """Append an advisory record, assigning it an id."""
        pass

    @abstractmethod
    def get_advisory(self, conversation_id: str) -> Optional[Advisory]:
        pass

    @abstractmethod
    def record_query(self, entry: Dict[str, Any]) -> None:
        """Append a query analytics entry."""
        pass

    @abstractmethod
    def get_queries(self, conversation_id: str) -> List[Dict[str, Any]]:
        pass


def new_conversation(
    session_id: str,
    language: str = "en",
    crop_id: Optional[str] = None,
    growth_stage: Optional[str] = None,
    location: Optional[str] = None,
) -> Conversation:
    """A fresh, not-yet-stored conversation."""
    return Conversation(
        id=str(uuid.uuid4()),
        session_id=session_id,
        language=language,
        crop_id=crop_id,
        growth_stage=growth_stage,
        location=location,
    )


class InMemoryConversationStore(ConversationStore):
    name = "memory"

    def __init__(self):
        self.conversations: Dict[str, Dict[str, Any]] = {}   # session_id -> document
        self.session_index: Dict[str, str] = {}               # conversation id -> session_id
        self.advisories: Dict[str, Dict[str, Any]] = {}       # conversation id -> document
        self.queries: Dict[str, List[Dict[str, Any]]] = {}

    def load(self, session_id: str) -> Optional[Conversation]:
        data = self.conversations.get(session_id)
        return Conversation.from_dict(data) if data else None

    def load_by_id(self, conversation_id: str) -> Optional[Conversation]:
        session_id = self.session_index.get(conversation_id)
        return self.load(session_id) if session_id else None

    def create(self, conversation: Conversation) -> Conversation:
        if conversation.session_id in self.conversations:
            raise ConversationExistsError(
                f"Conversation for session '{conversation.session_id}' already exists",
                session_id=conversation.session_id,
                operation="create_conversation",
            )
        self.conversations[conversation.session_id] = conversation.to_dict()
        self.session_index[conversation.id] = conversation.session_id
        logger.info(f"Created conversation {conversation.id} for session {conversation.session_id}")
        return conversation

    def save(self, conversation: Conversation) -> None:
        conversation.updated_at = utc_now()
        self.conversations[conversation.session_id] = conversation.to_dict()
        self.session_index[conversation.id] = conversation.session_id

    def create_advisory(self, advisory: Advisory) -> Advisory:
        stored = replace(advisory, id=advisory.id or str(uuid.uuid4()))
        self.advisories[stored.conversation_id] = stored.to_dict()
        return stored

    def get_advisory(self, conversation_id: str) -> Optional[Advisory]:
        data = self.advisories.get(conversation_id)
        return Advisory.from_dict(data) if data else None

    def record_query(self, entry: Dict[str, Any]) -> None:
        self.queries.setdefault(entry["conversation_id"], []).append(dict(entry))

    def get_queries(self, conversation_id: str) -> List[Dict[str, Any]]:
        return [dict(e) for e in self.queries.get(conversation_id, [])]


class RedisConversationStore(ConversationStore):
    """
    Redis layout:
        conversation:{session_id}   JSON conversation document
        conversation_id:{id}        session_id lookup
        advisory:{conversation_id}  JSON advisory document
        queries:{conversation_id}   list of JSON query log entries
    """

    name = "redis"

    def __init__(self, client):
        self.client = client

    def _get_json(self, key: str) -> Optional[Dict[str, Any]]:
        data = self.client.get(key)
        return json.loads(data) if data else None

    def load(self, session_id: str) -> Optional[Conversation]:
        data = self._get_json(f"conversation:{session_id}")
        return Conversation.from_dict(data) if data else None

    def load_by_id(self, conversation_id: str) -> Optional[Conversation]:
        session_id = self.client.get(f"conversation_id:{conversation_id}")
        return self.load(session_id) if session_id else None

    def create(self, conversation: Conversation) -> Conversation:
        document = json.dumps(conversation.to_dict(), ensure_ascii=False)
        if not self.client.set(f"conversation:{conversation.session_id}", document, nx=True):
            raise ConversationExistsError(
                f"Conversation for session '{conversation.session_id}' already exists",
                session_id=conversation.session_id,
                operation="create_conversation",
            )
        self.client.set(f"conversation_id:{conversation.id}", conversation.session_id)
        logger.info(f"Created conversation {conversation.id} for session {conversation.session_id}")
        return conversation

    def save(self, conversation: Conversation) -> None:
        conversation.updated_at = utc_now()
        document = json.dumps(conversation.to_dict(), ensure_ascii=False)
        self.client.set(f"conversation:{conversation.session_id}", document)
        self.client.set(f"conversation_id:{conversation.id}", conversation.session_id)

    def create_advisory(self, advisory: Advisory) -> Advisory:
        stored = replace(advisory, id=advisory.id or str(uuid.uuid4()))
        self.client.set(
            f"advisory:{stored.conversation_id}",
            json.dumps(stored.to_dict(), ensure_ascii=False),
        )
        return stored

    def get_advisory(self, conversation_id: str) -> Optional[Advisory]:
        data = self._get_json(f"advisory:{conversation_id}")
        return Advisory.from_dict(data) if data else None

    def record_query(self, entry: Dict[str, Any]) -> None:
        self.client.rpush(f"queries:{entry['conversation_id']}", json.dumps(entry, ensure_ascii=False))

    def get_queries(self, conversation_id: str) -> List[Dict[str, Any]]:
        return [json.loads(e) for e in self.client.lrange(f"queries:{conversation_id}", 0, -1)]


def create_store(settings: EngineSettings) -> ConversationStore:
    """Redis when reachable, otherwise the in-memory store."""
    try:
        client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            decode_responses=True,
        )
        client.ping()
        logger.info(f"Using Redis conversation store at {settings.redis_host}:{settings.redis_port}")
        return RedisConversationStore(client)
    except redis.exceptions.RedisError as e:
        logger.warning(f"Redis not available ({e}), using in-memory conversation store")
        return InMemoryConversationStore()
