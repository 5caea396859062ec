# tests/test_crud_toolkit.py
"""Unit tests for the local Employees CRUD toolkit."""
import importlib
import importlib.util
import json
import os
from types import SimpleNamespace
from unittest.mock import patch, MagicMock

import pytest

_reference_dir = os.path.join(os.path.dirname(__file__), "..", "..", "reference")

spec = importlib.util.spec_from_file_location("crud_toolkit", os.path.join(_reference_dir, "crud_toolkit.py"))
toolkit = importlib.util.module_from_spec(spec)
spec.loader.exec_module(toolkit)


class RecordingHandler:
    def __init__(self, response):
        self.response = response
        self.events = []

    def __call__(self, event, context):
        self.events.append(event)
        return self.response


class TestBuildProxyEvent:
    def test_collection_event(self):
        event = toolkit.build_proxy_event("GET")

        assert event["httpMethod"] == "GET"
        assert event["resource"] == "/employees"
        assert event["pathParameters"] is None
        assert event["body"] is None

    def test_item_event_with_body(self):
        event = toolkit.build_proxy_event("POST", item_id="abc", body={"name": "Alice"})

        assert event["path"] == "/employees/abc"
        assert event["resource"] == "/employees/{id}"
        assert event["pathParameters"] == {"id": "abc"}
        assert json.loads(event["body"]) == {"name": "Alice"}

    def test_empty_string_body_is_none(self):
        assert toolkit.build_proxy_event("PUT", body="")["body"] is None


class TestLoadEvent:
    def test_yaml(self, tmp_path):
        path = tmp_path / "event.yaml"
        path.write_text("httpMethod: GET\npathParameters:\n  id: abc\n")
        assert toolkit.load_event(str(path)) == {"httpMethod": "GET", "pathParameters": {"id": "abc"}}

    def test_json(self, tmp_path):
        path = tmp_path / "event.json"
        path.write_text(json.dumps({"httpMethod": "DELETE"}))
        assert toolkit.load_event(str(path))["httpMethod"] == "DELETE"

    def test_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "event.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="mapping"):
            toolkit.load_event(str(path))


class TestLoadHandler:
    def test_exports_environment(self):
        mock_resource = MagicMock()
        with patch.dict(os.environ, {}, clear=False):
            with patch("boto3.resource", return_value=mock_resource):
                module = toolkit.load_handler(
                    table="Staff", primary_key="StaffId", endpoint_url="http://localhost:8000"
                )
            assert os.environ["AWS_ENDPOINT_URL_DYNAMODB"] == "http://localhost:8000"

        assert module.CONFIG.table_name == "Staff"
        assert module.CONFIG.primary_key == "StaffId"
        mock_resource.Table.assert_called_once_with("Staff")

    def test_missing_file(self, tmp_path):
        with patch.dict(os.environ, {}, clear=False):
            with pytest.raises(FileNotFoundError):
                toolkit.load_handler(tmp_path / "nope.py")


class TestGateway:
    def test_forwards_collection_request(self):
        handler = RecordingHandler({"statusCode": 200, "headers": {"Content-Type": "application/json"}, "body": "[]"})
        client = toolkit.create_gateway(handler).test_client()

        resp = client.get("/employees")

        assert resp.status_code == 200
        assert resp.get_json() == []
        assert handler.events[0]["httpMethod"] == "GET"
        assert handler.events[0]["pathParameters"] is None

    def test_forwards_item_and_body(self):
        handler = RecordingHandler({"statusCode": 204, "headers": {"Content-Type": "application/json"}, "body": ""})
        client = toolkit.create_gateway(handler).test_client()

        resp = client.post("/employees/abc", data=json.dumps({"title": "Engineer"}))

        assert resp.status_code == 204
        event = handler.events[0]
        assert event["pathParameters"] == {"id": "abc"}
        assert json.loads(event["body"]) == {"title": "Engineer"}

    def test_unsupported_method_reaches_handler(self):
        handler = RecordingHandler({"statusCode": 400, "headers": {"Content-Type": "text/plain"}, "body": "nope"})
        client = toolkit.create_gateway(handler).test_client()

        resp = client.patch("/employees/abc")

        assert resp.status_code == 400
        assert resp.get_data(as_text=True) == "nope"
        assert handler.events[0]["httpMethod"] == "PATCH"


class TestCli:
    def _stub(self, status):
        return SimpleNamespace(lambda_handler=RecordingHandler({"statusCode": status, "body": ""}))

    def test_invoke_prints_response(self, tmp_path, capsys):
        path = tmp_path / "event.json"
        path.write_text(json.dumps({"httpMethod": "GET"}))
        stub = self._stub(200)

        with patch.object(toolkit, "load_handler", return_value=stub) as mock_load:
            toolkit.cli(["invoke", str(path), "--table", "Staff"])

        assert mock_load.call_args.kwargs["table"] == "Staff"
        assert stub.lambda_handler.events == [{"httpMethod": "GET"}]
        assert json.loads(capsys.readouterr().out)["statusCode"] == 200

    def test_invoke_exits_on_server_error(self, tmp_path):
        path = tmp_path / "event.json"
        path.write_text(json.dumps({"httpMethod": "GET"}))

        with patch.object(toolkit, "load_handler", return_value=self._stub(500)):
            with pytest.raises(SystemExit) as exc:
                toolkit.cli(["invoke", str(path)])
        assert exc.value.code == 1

    def test_invoke_unreadable_event(self, tmp_path):
        with patch.object(toolkit, "load_handler", return_value=self._stub(200)):
            with pytest.raises(SystemExit) as exc:
                toolkit.cli(["invoke", str(tmp_path / "missing.json")])
        assert exc.value.code == 2

    @patch.object(toolkit, "run_gateway")
    def test_serve(self, mock_run):
        stub = self._stub(200)
        with patch.object(toolkit, "load_handler", return_value=stub):
            toolkit.cli(["serve", "--port", "9000"])
        mock_run.assert_called_once_with(stub, "127.0.0.1", 9000)
