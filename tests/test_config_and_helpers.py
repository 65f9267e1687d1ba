from datetime import datetime, timezone

from bson import ObjectId
from werkzeug.datastructures import MultiDict

from config import config
from relay_server.utils.helpers import build_pagination, normalize_doc, parse_bool, parse_page_args
from relay_server.utils.time_utils import start_of_month, start_of_week, to_iso


def test_testing_environment_is_loaded():
    assert config.IS_TESTING
    assert config.PRESENCE_ONLINE_SECONDS == 300
    assert config.MESSAGE_MAX_LENGTH == 2000
    assert config.MESSAGE_PAGE_LIMIT == 50
    assert config.MESSAGE_PAGE_MAX_LIMIT == 100


def test_environment_variables_override_yaml(monkeypatch):
    monkeypatch.setenv('PRESENCE_ONLINE_SECONDS', '120')
    monkeypatch.setenv('NOTIFICATIONS_ENABLED', 'false')
    assert config.PRESENCE_ONLINE_SECONDS == 120
    assert config.NOTIFICATIONS_ENABLED is False


def test_to_dict_hides_secrets():
    exported = config.to_dict()
    assert exported['security']['jwt_secret_set'] is True
    assert exported['database']['mongo_uri'] == '***'


def test_parse_page_args_clamps_limit():
    assert parse_page_args(MultiDict({'page': '2', 'limit': '500'})) == (2, 100, None)
    assert parse_page_args(MultiDict()) == (1, 50, None)

    page, limit, errors = parse_page_args(MultiDict({'page': '0', 'limit': 'x'}))
    assert page is None and limit is None
    assert set(errors) == {'page', 'limit'}


def test_build_pagination():
    assert build_pagination(2, 10, 25) == {
        'page': 2,
        'limit': 10,
        'totalCount': 25,
        'totalPages': 3,
        'hasNext': True,
        'hasPrev': True,
    }
    assert build_pagination(1, 10, 0)['totalPages'] == 0


def test_parse_bool():
    assert parse_bool('true') and parse_bool('1') and parse_bool('YES')
    assert not parse_bool('false')
    assert parse_bool(None, default=True)


def test_normalize_doc_and_iso_format():
    oid = ObjectId()
    doc = {'_id': oid, 'at': datetime(2024, 3, 6, 12, 0, 0, 123456), 'nested': [{'id': oid}]}
    assert normalize_doc(doc) == {
        '_id': str(oid),
        'at': '2024-03-06T12:00:00.123Z',
        'nested': [{'id': str(oid)}],
    }
    aware = datetime(2024, 3, 6, 14, 0, tzinfo=timezone.utc)
    assert to_iso(aware) == '2024-03-06T14:00:00.000Z'


def test_week_and_month_boundaries():
    wednesday = datetime(2024, 3, 6, 15, 30)
    assert start_of_week(wednesday) == datetime(2024, 3, 4)
    assert start_of_month(wednesday) == datetime(2024, 3, 1)
