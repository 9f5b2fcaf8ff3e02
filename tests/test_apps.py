"""Tests for application records and codebase snapshots."""

import pytest

from scanara import db
from scanara.apps import create_app, list_apps, get_owned_app, attach_codebase, get_codebase
from scanara.errors import ValidationError, NotFound, Forbidden


def test_create_app():
    app = create_app("u1", "  portal  ")
    assert app["name"] == "portal"
    assert app["userId"] == "u1"
    assert app["codebaseId"] is None
    assert app["latestAuditId"] is None


def test_create_app_requires_name():
    with pytest.raises(ValidationError):
        create_app("u1", "   ")


def test_list_apps_only_own():
    create_app("u1", "a")
    create_app("u2", "b")
    assert [a["name"] for a in list_apps("u1")] == ["a"]


def test_get_owned_app():
    app = create_app("u1", "a")
    assert get_owned_app(app["id"], "u1")["id"] == app["id"]
    with pytest.raises(Forbidden):
        get_owned_app(app["id"], "u2")
    with pytest.raises(NotFound):
        get_owned_app("missing", "u1")


def test_attach_codebase():
    app = create_app("u1", "portal")
    snapshot = attach_codebase(app["id"], "u1", [{"path": "a.py", "content": "x"},
                                                 {"path": "b.md"}])
    assert snapshot["repo"] == "portal"
    assert snapshot["files"] == [{"path": "a.py", "content": "x"}, {"path": "b.md", "content": ""}]
    assert db.get_doc("apps", app["id"])["codebaseId"] == snapshot["id"]
    assert get_codebase(snapshot["id"])["files"] == snapshot["files"]


def test_reimport_replaces_pointer_keeps_old_snapshot():
    app = create_app("u1", "portal")
    first = attach_codebase(app["id"], "u1", [{"path": "a.py", "content": "1"}])
    second = attach_codebase(app["id"], "u1", [{"path": "a.py", "content": "2"}], repo="org/portal")
    assert db.get_doc("apps", app["id"])["codebaseId"] == second["id"]
    assert get_codebase(first["id"])["files"][0]["content"] == "1"
    assert second["repo"] == "org/portal"


@pytest.mark.parametrize("files", [None, [], "a.py", [{"content": "x"}], [{"path": ""}],
                                   ["a.py"], [{"path": "a.py", "content": 3}]])
def test_attach_codebase_rejects_bad_files(files):
    app = create_app("u1", "portal")
    with pytest.raises(ValidationError):
        attach_codebase(app["id"], "u1", files)
    assert db.find_docs("codebases") == []


def test_attach_codebase_forbidden():
    app = create_app("u1", "portal")
    with pytest.raises(Forbidden):
        attach_codebase(app["id"], "u2", [{"path": "a.py", "content": ""}])
