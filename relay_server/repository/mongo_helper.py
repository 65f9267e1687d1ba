import logging

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from config import config

logger = logging.getLogger(__name__)


class MongoRepositorySingleton:
    _instance = None
    _db_instance = None

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Uses ``config.MONGO_URI`` and ``config.MONGO_DB_NAME`` (env vars
        MONGO_URI / MONGO_DB take precedence over the YAML files).
        """
        if cls._db_instance is not None:
            return cls._db_instance
        mongo_uri = config.MONGO_URI
        db_name = config.MONGO_DB_NAME
        logger.info("Connecting to MongoDB database '%s'", db_name)
        client = MongoClient(mongo_uri, tz_aware=False)
        cls._db_instance = client[db_name]
        return cls._db_instance

    @classmethod
    def get_collection(cls, collection_name, db=None):
        """Get a collection from the database, creating it if it does not exist."""
        if db is None:
            db = cls.get_db()
        try:
            if collection_name not in db.list_collection_names():
                db.create_collection(collection_name)
                logger.info("Created '%s' collection in DB.", collection_name)
        except PyMongoError as e:
            logger.warning("Error ensuring '%s' collection exists: %s", collection_name, e)
        return db[collection_name]

    @classmethod
    def get_instance(cls):
        return cls.__new__(cls)

    @classmethod
    def reset(cls, db=None):
        """Drop cached repositories; optionally pin a database (tests pass a mongomock db)."""
        cls._instance = None
        cls._db_instance = db

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._init_repositories()
            cls._instance = instance
        return cls._instance

    def _init_repositories(self):
        from relay_server.repository.message_repository import MessageRepository
        from relay_server.repository.notification_repository import NotificationRepository
        from relay_server.repository.presence_repository import PresenceRepository
        from relay_server.repository.project_repository import ProjectRepository
        from relay_server.repository.user_repository import UserRepository

        db = self.get_db()
        self.message = MessageRepository(db)
        self.user = UserRepository(db)
        self.project = ProjectRepository(db)
        self.presence = PresenceRepository(db)
        self.notification = NotificationRepository(db)
        logger.debug('Initialized messaging repositories')
        try:
            self._ensure_indexes()
        except PyMongoError:
            logger.exception('Failed to ensure DB indexes')

    def repositories(self):
        return [self.message, self.user, self.project, self.presence, self.notification]

    def _ensure_indexes(self):
        """Create recommended indexes used by query paths (idempotent)."""
        for repo in self.repositories():
            repo.ensure_indexes()
        logger.info('Ensured recommended DB indexes')
