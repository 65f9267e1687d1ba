from abc import ABC, abstractmethod


class BaseRepository(ABC):
    @abstractmethod
    def create(self, data):
        """Insert a new document into the collection."""
        pass

    @abstractmethod
    def find(self, query=None):
        """Find multiple documents matching the query."""
        pass

    @abstractmethod
    def find_one(self, query):
        """Find a single document matching the query."""
        pass

    @abstractmethod
    def update(self, query, update_fields):
        """Update documents matching the query with the given fields."""
        pass

    @abstractmethod
    def delete(self, query):
        """Delete documents matching the query."""
        pass


class CollectionRepository(BaseRepository):
    """BaseRepository backed by a single pymongo collection.

    Subclasses set ``collection_name`` and may override ``ensure_indexes``.
    """
    collection_name = None

    def __init__(self, db=None, collection_name=None):
        from relay_server.repository.mongo_helper import MongoRepositorySingleton
        if collection_name:
            self.collection_name = collection_name
        self.collection = MongoRepositorySingleton.get_collection(self.collection_name, db)

    def create(self, data):
        return self.collection.insert_one(data).inserted_id

    def find(self, query=None, projection=None, sort=None, skip=0, limit=0):
        cursor = self.collection.find(query or {}, projection)
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def find_one(self, query, projection=None):
        return self.collection.find_one(query, projection)

    def count(self, query=None):
        return self.collection.count_documents(query or {})

    def update(self, query, update_fields, multi=False):
        if multi:
            return self.collection.update_many(query, {'$set': update_fields}).modified_count
        return self.collection.update_one(query, {'$set': update_fields}).modified_count

    def delete(self, query, multi=False):
        if multi:
            return self.collection.delete_many(query).deleted_count
        return self.collection.delete_one(query).deleted_count

    def ensure_indexes(self):
        """Create the indexes this collection's query paths rely on (idempotent)."""
        return None
