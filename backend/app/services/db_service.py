# /app/services/db_service.py

import logging
from datetime import datetime
from typing import List, Optional, Dict, Any, Iterable

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from app.config.settings import settings
from app.utils.metrics import database_operations_counter

logger = logging.getLogger(__name__)

# Constants
DEFAULT_QUERY_LIMIT = 500
CONVERSATION_HISTORY_MAX = 1000


class DatabaseService:
    """
    Persists what the flow bot sees and records: users, every inbound and
    outbound message, and the per-user answers captured by the flow.

    Three collections:
    - users: one document per phone number
    - conversations: one document per message, both directions
    - user_data: the latest intent and answers per phone number
    """

    def __init__(self, mongo_uri: str):
        try:
            self.client = AsyncIOMotorClient(
                mongo_uri,
                maxPoolSize=settings.max_pool_size,
                minPoolSize=settings.min_pool_size,
                tls=settings.mongo_ssl,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000
            )
            self.db = self.client.get_default_database("smartfix")
            logger.info("MongoDB client initialized successfully.")
        except Exception as e:
            logger.error(f"Error initializing MongoDB client: {e}")
            raise

    def _track(self, operation: str, status: str):
        database_operations_counter.labels(operation=operation, status=status).inc()

    async def create_indexes(self):
        """Creates the indexes the queries below rely on."""
        try:
            await self.db.users.create_index("phone_number", unique=True)
            await self.db.users.create_index([("last_interaction", DESCENDING)])
            await self.db.conversations.create_index([("user_phone", ASCENDING), ("created_at", ASCENDING)])
            await self.db.user_data.create_index("user_phone", unique=True)
            await self.db.user_data.create_index("intent")
            self._track("create_indexes", "success")
            logger.info("Database indexes ensured.")
        except Exception as e:
            self._track("create_indexes", "error")
            logger.error(f"Failed to create indexes: {e}", exc_info=True)
            raise

    # ==================== Writes ====================

    async def save_user(self, phone_number: str, name: Optional[str] = None) -> None:
        """Inserts the user on first contact and bumps last_interaction afterwards."""
        now = datetime.utcnow()
        update: Dict[str, Any] = {
            "$set": {"last_interaction": now},
            "$setOnInsert": {"phone_number": phone_number, "created_at": now},
        }
        if name:
            update["$set"]["name"] = name
        else:
            update["$setOnInsert"]["name"] = None
        try:
            await self.db.users.update_one({"phone_number": phone_number}, update, upsert=True)
            self._track("save_user", "success")
        except Exception:
            self._track("save_user", "error")
            raise

    async def save_message(self, user_phone: str, direction: str, message_text: Optional[str],
                           step_id: Optional[str] = None, message_type: str = "text") -> None:
        """Appends one message to the conversation log."""
        doc = {
            "user_phone": user_phone,
            "direction": direction,
            "message_type": message_type,
            "message_text": message_text,
            "step_id": step_id,
            "created_at": datetime.utcnow(),
        }
        try:
            await self.db.conversations.insert_one(doc)
            self._track("save_message", "success")
        except Exception:
            self._track("save_message", "error")
            raise

    async def save_user_data(self, user_phone: str, intent: Optional[str], answers: Dict[str, str],
                             current_step_id: Optional[str] = None) -> None:
        """
        Upserts the user's captured data. Only values that are present
        overwrite stored ones, so a reset session never erases a past request.
        """
        now = datetime.utcnow()
        fields: Dict[str, Any] = {"updated_at": now}
        if intent is not None:
            fields["intent"] = intent
        if current_step_id is not None:
            fields["current_step_id"] = current_step_id
        for key, value in (answers or {}).items():
            if value is not None:
                fields[f"answers.{key}"] = value
        try:
            await self.db.user_data.update_one(
                {"user_phone": user_phone},
                {"$set": fields, "$setOnInsert": {"user_phone": user_phone, "status": "pending", "created_at": now}},
                upsert=True
            )
            self._track("save_user_data", "success")
        except Exception:
            self._track("save_user_data", "error")
            raise

    # ==================== Reads ====================

    async def get_all_users(self, limit: int = DEFAULT_QUERY_LIMIT) -> List[Dict[str, Any]]:
        """Users joined with their captured data, most recent interaction first."""
        pipeline = [
            {"$sort": {"last_interaction": -1}},
            {"$limit": limit},
            {"$lookup": {
                "from": "user_data",
                "localField": "phone_number",
                "foreignField": "user_phone",
                "as": "data"
            }},
            {"$unwind": {"path": "$data", "preserveNullAndEmptyArrays": True}},
            {"$project": {
                "_id": 0,
                "phone_number": 1,
                "name": 1,
                "created_at": 1,
                "last_interaction": 1,
                "intent": "$data.intent",
                "answers": {"$ifNull": ["$data.answers", {}]},
                "status": "$data.status",
                "request_date": "$data.created_at"
            }}
        ]
        rows = await self.db.users.aggregate(pipeline).to_list(length=limit)
        self._track("get_all_users", "success")
        return rows

    async def get_user_conversation(self, user_phone: str) -> List[Dict[str, Any]]:
        """Messages exchanged with one user, oldest first."""
        cursor = self.db.conversations.find(
            {"user_phone": user_phone}, {"_id": 0}
        ).sort("created_at", ASCENDING)
        rows = await cursor.to_list(length=CONVERSATION_HISTORY_MAX)
        self._track("get_user_conversation", "success")
        return rows

    async def get_stats(self, intents: Iterable[str] = ()) -> Dict[str, Any]:
        """Totals for the admin API: users, messages and requests per intent."""
        total_users = await self.db.users.count_documents({})
        total_messages = await self.db.conversations.count_documents({})
        per_intent = {intent: 0 for intent in intents}
        async for row in self.db.user_data.aggregate([
            {"$match": {"intent": {"$ne": None}}},
            {"$group": {"_id": "$intent", "count": {"$sum": 1}}}
        ]):
            per_intent[row["_id"]] = row["count"]
        self._track("get_stats", "success")
        return {
            "total_users": total_users,
            "total_messages": total_messages,
            "requests_by_intent": per_intent,
        }


# Globally accessible instance
db_service = DatabaseService(settings.mongo_uri)
