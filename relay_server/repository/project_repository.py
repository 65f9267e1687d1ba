"""Project membership lookups.

A project lists its client in ``client`` and its coordinators in
``managers`` (older documents carry a single ``manager`` instead).
"""
from pymongo import ASCENDING

from relay_server.repository.base_repository import CollectionRepository


def _coordinator_clause(coordinator_id):
    return {'$or': [{'managers': coordinator_id}, {'manager': coordinator_id}]}


class ProjectRepository(CollectionRepository):
    collection_name = 'projects'

    def ensure_indexes(self):
        self.collection.create_index([('client', ASCENDING)], name='projects_client')
        self.collection.create_index([('managers', ASCENDING)], name='projects_managers')

    def get_by_id(self, project_id):
        return self.find_one({'_id': project_id})

    def shares_project(self, coordinator_id, client_id):
        """True when some project has ``client_id`` as client and ``coordinator_id`` as a coordinator."""
        query = {'client': client_id}
        query.update(_coordinator_clause(coordinator_id))
        return self.collection.find_one(query, {'_id': 1}) is not None

    @staticmethod
    def is_member(project, user_id):
        if not project:
            return False
        if project.get('client') == user_id:
            return True
        if user_id in (project.get('managers') or []):
            return True
        return project.get('manager') == user_id

    def clients_for_coordinator(self, coordinator_id):
        ids = []
        for project in self.find(_coordinator_clause(coordinator_id), {'client': 1}):
            client = project.get('client')
            if client is not None and client not in ids:
                ids.append(client)
        return ids

    def coordinators_for_client(self, client_id):
        ids = []
        for project in self.find({'client': client_id}, {'managers': 1, 'manager': 1}):
            candidates = list(project.get('managers') or [])
            if project.get('manager') is not None:
                candidates.append(project['manager'])
            for coordinator in candidates:
                if coordinator not in ids:
                    ids.append(coordinator)
        return ids

    def titles_by_ids(self, project_ids):
        if not project_ids:
            return {}
        docs = self.find({'_id': {'$in': list(project_ids)}}, {'title': 1})
        return {p['_id']: p.get('title') for p in docs}
