import pytest
from werkzeug.test import Client

from edgecache.errors import InvalidParameterError, InvalidRequestError
from edgecache.memory import MemoryRepository
from edgecache.server import (
    RESULT_AUTHORIZED,
    RESULT_NOT_AUTHORIZED,
    CheckRequest,
    Server,
    ServerConfig,
    WarrantSpec,
    parse_check_request,
    parse_warrant,
)

VIEWER = {
    "objectType": "document",
    "objectId": "doc-1",
    "relation": "viewer",
    "subject": {"objectType": "user", "objectId": "alice"},
}
EDITOR = {
    "objectType": "document",
    "objectId": "doc-1",
    "relation": "editor",
    "subject": {"objectType": "user", "objectId": "alice"},
}


class FailingRepository(MemoryRepository):
    def get(self, key):
        raise RuntimeError("backend down")


@pytest.fixture
def repository():
    return MemoryRepository()


@pytest.fixture
def client(repository):
    return Client(Server(ServerConfig(repository=repository, port=0)))


def _grant(repository, data):
    repository.set(str(parse_warrant(data)), 1)


def test_warrant_spec_string():
    spec = WarrantSpec("document", "doc-1", "viewer", "user", "alice")
    assert str(spec) == "document:doc-1#viewer@user:alice"


def test_warrant_spec_string_with_subject_relation_and_policy():
    spec = WarrantSpec("document", "doc-1", "viewer", "group", "staff", "member", "x > 1")
    assert str(spec) == "document:doc-1#viewer@group:staff#member[x > 1]"


def test_parse_warrant_reads_fields():
    spec = parse_warrant(VIEWER)
    assert spec == WarrantSpec("document", "doc-1", "viewer", "user", "alice")


def test_parse_warrant_requires_subject():
    data = {k: v for k, v in VIEWER.items() if k != "subject"}
    with pytest.raises(InvalidParameterError):
        parse_warrant(data)


def test_parse_warrant_requires_relation():
    data = dict(VIEWER, relation="")
    with pytest.raises(InvalidParameterError):
        parse_warrant(data)


def test_parse_check_request():
    body = b'{"op": "anyOf", "warrants": [' + b"]}"
    with pytest.raises(InvalidParameterError):
        parse_check_request(body)
    import json

    request = parse_check_request(json.dumps({"op": "allOf", "warrants": [VIEWER, EDITOR]}))
    assert request == CheckRequest(
        op="allOf", warrants=(parse_warrant(VIEWER), parse_warrant(EDITOR))
    )


def test_parse_check_request_rejects_bad_json():
    with pytest.raises(InvalidRequestError):
        parse_check_request(b"{not json")


def test_parse_check_request_rejects_non_object():
    with pytest.raises(InvalidRequestError):
        parse_check_request(b"[1, 2]")


def test_health_ready(client):
    assert client.get("/health").status_code == 200


def test_health_not_ready(client, repository):
    repository.set_ready(False)
    assert client.get("/health").status_code == 500


def test_health_rejects_post(client):
    assert client.post("/health").status_code == 404


def test_check_rejects_get(client):
    assert client.get("/v2/check").status_code == 404


def test_unknown_path(client):
    response = client.get("/v2/other")
    assert response.status_code == 404
    assert response.get_data() == b"404 page not found\n"


def test_check_cache_not_ready(client, repository):
    repository.set_ready(False)
    response = client.post("/v2/check", json={"warrants": [VIEWER]})
    assert response.status_code == 503
    assert response.get_json()["code"] == "cache_not_ready"


def test_check_single_warrant_authorized(client, repository):
    _grant(repository, VIEWER)
    response = client.post("/v2/check", json={"warrants": [VIEWER]})
    assert response.status_code == 200
    assert response.get_json() == {"code": 200, "result": RESULT_AUTHORIZED}


def test_check_single_warrant_not_authorized(client):
    response = client.post("/v2/check", json={"warrants": [VIEWER]})
    assert response.status_code == 200
    assert response.get_json() == {"code": 403, "result": RESULT_NOT_AUTHORIZED}


def test_authorize_endpoint_matches_check(client, repository):
    _grant(repository, VIEWER)
    response = client.post("/v2/authorize", json={"warrants": [VIEWER]})
    assert response.get_json()["result"] == RESULT_AUTHORIZED


@pytest.mark.parametrize(
    "op, granted, expected",
    [
        ("anyOf", [VIEWER], RESULT_AUTHORIZED),
        ("anyOf", [], RESULT_NOT_AUTHORIZED),
        ("allOf", [VIEWER], RESULT_NOT_AUTHORIZED),
        ("allOf", [VIEWER, EDITOR], RESULT_AUTHORIZED),
    ],
)
def test_check_operators(client, repository, op, granted, expected):
    for data in granted:
        _grant(repository, data)
    response = client.post("/v2/check", json={"op": op, "warrants": [VIEWER, EDITOR]})
    assert response.get_json()["result"] == expected


def test_check_invalid_op(client):
    response = client.post("/v2/check", json={"op": "noneOf", "warrants": [VIEWER]})
    assert response.status_code == 400
    assert response.get_json()["code"] == "invalid_parameter"


def test_check_multiple_warrants_need_op(client):
    response = client.post("/v2/check", json={"warrants": [VIEWER, EDITOR]})
    assert response.status_code == 400
    assert response.get_json()["code"] == "invalid_parameter"


def test_check_invalid_body(client):
    response = client.post("/v2/check", data=b"{oops", content_type="application/json")
    assert response.status_code == 400
    assert response.get_json()["code"] == "invalid_request"


def test_check_repository_failure():
    client = Client(Server(ServerConfig(repository=FailingRepository())))
    response = client.post("/v2/check", json={"warrants": [VIEWER]})
    assert response.status_code == 500