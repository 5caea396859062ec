"""
Employees CRUD toolkit
======================
Developer helpers for the employees_api Lambda:
  1. Invoke the handler once with an API Gateway event read from JSON/YAML
  2. Serve the handler behind a local Flask app that emulates the
     API Gateway REST proxy integration (/employees, /employees/{id})

Dependencies (install via pip):
  boto3>=1.28.0
  flask>=3.0.0
  pyyaml>=6.0.0

Example usage:
  # Start DynamoDB Local, then serve the API against it
  python crud_toolkit.py serve --table Employees --primary-key EmployeeId \
       --endpoint-url http://localhost:8000

  # In another terminal
  curl -X PUT -H "Content-Type: application/json" \
       --data '{"name": "Alice"}' http://localhost:8080/employees
  curl http://localhost:8080/employees

  # Replay a captured gateway event
  python crud_toolkit.py invoke event.yaml --table Employees --primary-key EmployeeId

Notes:
  * The table must already exist with a string partition key named --primary-key.
  * --endpoint-url is exported as AWS_ENDPOINT_URL_DYNAMODB, which boto3 honours.
"""
from __future__ import annotations

import argparse
import importlib.util
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_HANDLER_PATH = (
    Path(__file__).resolve().parent.parent
    / "crud-aws-lab" / "app" / "lambdas" / "employees_api" / "handler.py"
)
RESOURCE = "/employees"


# ---------------------------
# Handler Loading
# ---------------------------

def load_handler(
    path: Path = DEFAULT_HANDLER_PATH,
    table: str = "Employees",
    primary_key: str = "EmployeeId",
    endpoint_url: Optional[str] = None,
    region: str = "us-east-1",
):
    """Export the Lambda environment, then import the handler module from its file."""
    os.environ["TABLE_NAME"] = table
    os.environ["PRIMARY_KEY"] = primary_key
    os.environ.setdefault("AWS_DEFAULT_REGION", region)
    if endpoint_url:
        os.environ["AWS_ENDPOINT_URL_DYNAMODB"] = endpoint_url

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Lambda handler not found: {path}")
    spec = importlib.util.spec_from_file_location("employees_handler", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


# ---------------------------
# Event Helpers
# ---------------------------

def build_proxy_event(
    method: str,
    item_id: Optional[str] = None,
    body: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Shape a request the way the REST API Lambda proxy integration delivers it."""
    if body is not None and not isinstance(body, str):
        body = json.dumps(body)
    resource = f"{RESOURCE}/{{id}}" if item_id else RESOURCE
    path = f"{RESOURCE}/{item_id}" if item_id else RESOURCE
    return {
        "resource": resource,
        "path": path,
        "httpMethod": method,
        "headers": headers or {},
        "queryStringParameters": None,
        "pathParameters": {"id": item_id} if item_id else None,
        "body": body or None,
        "isBase64Encoded": False,
        "requestContext": {
            "resourcePath": resource,
            "httpMethod": method,
            "path": path,
            "stage": "local",
        },
    }


def load_event(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        if path.endswith((".yaml", ".yml")):
            event = yaml.safe_load(f)
        else:
            event = json.load(f)
    if not isinstance(event, dict):
        raise ValueError(f"{path}: event must be a mapping")
    return event


# ---------------------------
# Local Gateway
# ---------------------------

def create_gateway(lambda_handler: Callable[[Dict[str, Any], Any], Dict[str, Any]]):
    from flask import Flask, Response, request

    app = Flask(__name__)
    methods = ["GET", "PUT", "POST", "DELETE", "PATCH"]

    @app.route(RESOURCE, methods=methods)
    @app.route(f"{RESOURCE}/<item_id>", methods=methods)
    def proxy(item_id=None):
        event = build_proxy_event(
            request.method,
            item_id=item_id,
            body=request.get_data(as_text=True),
            headers=dict(request.headers),
        )
        result = lambda_handler(event, None)
        return Response(
            result.get("body") or "",
            status=result["statusCode"],
            headers=result.get("headers") or {},
        )

    return app


def run_gateway(module, host: str, port: int):
    app = create_gateway(module.lambda_handler)
    print(f"[*] Employees API listening on http://{host}:{port}{RESOURCE}")
    app.run(host=host, port=port, threaded=True)


# ---------------------------
# CLI Interface
# ---------------------------

def _add_lambda_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--table", default="Employees", help="DynamoDB table (TABLE_NAME)")
    p.add_argument("--primary-key", default="EmployeeId", help="Partition key attribute (PRIMARY_KEY)")
    p.add_argument("--endpoint-url", default=None, help="DynamoDB endpoint, e.g. DynamoDB Local")
    p.add_argument("--region", default="us-east-1", help="AWS region if none is configured")
    p.add_argument("--handler", default=str(DEFAULT_HANDLER_PATH), help="Path to handler.py")


def cli(argv=None):
    parser = argparse.ArgumentParser(description="Employees CRUD toolkit CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    # invoke
    i = sub.add_parser("invoke", help="Invoke the handler with an event file (JSON/YAML)")
    i.add_argument("event", help="Path to API Gateway event file")
    _add_lambda_args(i)

    # serve
    s = sub.add_parser("serve", help="Run the handler behind a local API Gateway emulation")
    s.add_argument("--host", default="127.0.0.1", help="Bind address (default 127.0.0.1)")
    s.add_argument("--port", default=8080, type=int, help="Port (default 8080)")
    _add_lambda_args(s)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    module = load_handler(
        Path(args.handler),
        table=args.table,
        primary_key=args.primary_key,
        endpoint_url=args.endpoint_url,
        region=args.region,
    )

    if args.command == "invoke":
        try:
            event = load_event(args.event)
        except (OSError, ValueError, yaml.YAMLError) as e:
            print(f"[✗] Could not read event: {e}")
            sys.exit(2)
        result = module.lambda_handler(event, None)
        print(json.dumps(result, indent=2))
        if result["statusCode"] >= 500:
            sys.exit(1)

    elif args.command == "serve":
        run_gateway(module, args.host, args.port)


if __name__ == "__main__":
    cli()
