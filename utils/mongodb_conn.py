import dotenv
import logging
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError
import os
from functools import lru_cache
dotenv.load_dotenv()

logger = logging.getLogger(__name__)


class MongodbConnection:
    mongo_client = None
    def __init__(self):
        self.connect_to_database()

    def close_mongo_client(self):
        if self.mongo_client is not None:
            self.mongo_client.close()

    def get_database(self, database_name=None):
        return self.mongo_client[database_name or os.getenv("MONGODB_DATABASE", "support_chat")]

    def connect_to_database(self):
        try:
            mongodb_uri = os.getenv("MONGODB_URI")
            if not mongodb_uri:
                # Build URI from the individual settings
                host = os.getenv("MONGODB_HOST", "localhost")
                port = int(os.getenv("MONGODB_PORT", 27017))
                database = os.getenv("MONGODB_DATABASE", "support_chat")
                username = os.getenv("MONGODB_USERNAME", "")
                password = os.getenv("MONGODB_PASSWORD", "")
                auth_source = os.getenv("MONGODB_AUTH_SOURCE", "admin")

                if username and password:
                    mongodb_uri = f"mongodb://{username}:{password}@{host}:{port}/{database}?authSource={auth_source}"
                else:
                    mongodb_uri = f"mongodb://{host}:{port}/{database}"
            self.mongo_client = AsyncIOMotorClient(
                mongodb_uri,
                serverSelectionTimeoutMS=int(os.getenv("MONGODB_TIMEOUT_MS", 5000)),
                tz_aware=True,
            )
            return True
        except (PyMongoError, ValueError) as e:
            logger.error(f"[MongoDB] Error creating client: {e}")
            return None

    async def check_connection(self) -> bool:
        if self.mongo_client is None:
            return False
        try:
            await self.mongo_client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"[MongoDB] Ping failed: {e}")
            return False


@lru_cache(maxsize=1)
def get_mongodb_connection() -> MongodbConnection:
    return MongodbConnection()
