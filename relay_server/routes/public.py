import logging

from flask import Blueprint
from pymongo.errors import PyMongoError

from config import config
from relay_server.repository.mongo_helper import MongoRepositorySingleton
from relay_server.utils.helpers import respond_error, respond_success

logger = logging.getLogger(__name__)

public_bp = Blueprint('public', __name__, url_prefix='/api/public')


@public_bp.route('/health', methods=['GET'])
def health_check():
    """Simple health endpoint for load balancers and uptime checks.

    Returns 200 when the database answers, 503 otherwise, without exposing
    internal details.
    """
    try:
        MongoRepositorySingleton.get_db().list_collection_names()
    except PyMongoError as e:
        logger.warning("Health check DB error: %s", e)
        return respond_error({'status': 'degraded'}, status=503)
    return respond_success({'status': 'ok', 'db': 'reachable', 'version': config.APP_VERSION})
