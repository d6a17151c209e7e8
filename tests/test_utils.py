from uniai.types import Credential, JobRequest
from uniai.utils import create_message, drop_none, parse_json


def test_create_message():
    assert create_message("user", "Hello world") == {"role": "user", "content": "Hello world"}


def test_parse_json():
    assert parse_json('{"a": 1}') == {"a": 1}
    assert parse_json(b"[1]") == [1]
    assert parse_json("nope") is None
    assert parse_json("") is None


def test_drop_none():
    assert drop_none({"a": 1, "b": None, "c": 0}) == {"a": 1, "c": 0}


def test_credential_json_shape():
    credential = Credential("tok", 1700000000000)
    assert credential.to_json() == {"access_token": "tok", "expires_in": 1700000000000}
    assert Credential.from_json(credential.to_json()) == credential
    assert credential.is_fresh(1699999999999)
    assert not credential.is_fresh(1700000000000)


def test_job_request_from_size():
    job = JobRequest.from_size("sea", 1080, 1920)
    assert job.aspect_ratio == "9:16"
    assert job.negative_prompt is None
