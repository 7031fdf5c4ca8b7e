"""异常处理器测试

测试树形结构异常经 FastAPI 全局异常处理器转换后的响应格式。
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ytree.exceptions import (
    BusinessException,
    Err,
    ErrorCode,
    ResourceNotFoundException,
    register_exception_handlers,
)
from ytree.orm.tree import (
    CascadeIncompleteError,
    CyclicStructureError,
    MoveVetoedError,
    ScopeMismatchError,
)


@pytest.fixture
def client():
    app = FastAPI()
    register_exception_handlers(app)

    @app.post("/nodes/{node_id}/move")
    def move(node_id: int, parent_id: int):
        if parent_id == node_id:
            raise CyclicStructureError(node_id, parent_id)
        if parent_id == 100:
            raise ScopeMismatchError(scope_fields=["tenant_id"])
        if parent_id == 200:
            raise MoveVetoedError(node_id, "check_quota")
        if parent_id == 300:
            raise CascadeIncompleteError(node_id, [1], [2], 0)
        return {"ok": True}

    @app.get("/nodes/{node_id}")
    def get_node(node_id: int):
        raise ResourceNotFoundException("节点不存在", resource_id=node_id)

    @app.get("/boom")
    def boom():
        raise RuntimeError("unexpected")

    return TestClient(app, raise_server_exceptions=False)


class TestTreeErrorResponses:
    """树形异常响应测试"""

    def test_cyclic_structure(self, client):
        response = client.post("/nodes/3/move", params={"parent_id": 3})

        assert response.status_code == 422
        body = response.json()
        assert body["status"] == "error"
        assert body["error_code"] == ErrorCode.TREE_CYCLIC_STRUCTURE.value
        assert body["errors"] == {"parent_id": [body["message"]]}
        assert body["data"] == {}

    def test_scope_mismatch(self, client):
        response = client.post("/nodes/3/move", params={"parent_id": 100})

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == ErrorCode.TREE_SCOPE_MISMATCH.value
        assert "tenant_id" in body["message"]
        assert body["msg_details"] == [f"parent_id: {body['message']}"]

    def test_move_vetoed(self, client):
        response = client.post("/nodes/3/move", params={"parent_id": 200})

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == ErrorCode.TREE_MOVE_VETOED.value
        assert "check_quota" in body["message"]
        assert "errors" not in body

    def test_cascade_incomplete(self, client):
        response = client.post("/nodes/3/move", params={"parent_id": 300})

        assert response.status_code == 503
        assert response.json()["error_code"] == ErrorCode.TREE_CASCADE_INCOMPLETE.value

    def test_debug_info(self, client, monkeypatch):
        monkeypatch.setenv("DEBUG", "true")

        body = client.post("/nodes/3/move", params={"parent_id": 300}).json()

        assert body["debug_info"]["node_id"] == "3"
        assert body["debug_info"]["old_path"] == "[1]"

    def test_ok(self, client):
        assert client.post("/nodes/3/move", params={"parent_id": 1}).json() == {"ok": True}


class TestGeneralResponses:
    """通用异常响应测试"""

    def test_not_found(self, client):
        response = client.get("/nodes/9")

        assert response.status_code == 404
        assert response.json()["message"] == "节点不存在"

    def test_unhandled_exception(self, client):
        response = client.get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "服务器内部错误"
        assert body["error_code"] == "INTERNAL_SERVER_ERROR"


class TestExceptionClasses:
    """异常类测试"""

    def test_to_dict(self):
        err = CyclicStructureError(1, 2)
        data = err.to_dict()

        assert data["code"] == ErrorCode.TREE_CYCLIC_STRUCTURE
        assert data["status_code"] == 422
        assert data["extra"]["node_id"] == 1
        assert data["extra"]["parent_id"] == 2

    def test_err_helpers(self):
        assert Err.not_found().status_code == 404
        assert Err.conflict().status_code == 409
        assert Err.invalid().status_code == 422
        assert Err.unavailable().status_code == 503
        assert isinstance(Err.fail("x"), BusinessException)

    def test_repr(self):
        assert "MoveVetoedError" in repr(MoveVetoedError(1, "hook"))
