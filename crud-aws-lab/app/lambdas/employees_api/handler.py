# app/lambdas/employees_api/handler.py
import base64
import binascii
import json
import logging
import math
import os
import uuid
from dataclasses import dataclass
from decimal import Decimal, DecimalException

import boto3
from boto3.dynamodb.types import DYNAMODB_CONTEXT
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

RESERVED_RESPONSE = "Error: You're using AWS reserved keywords as attributes"
DYNAMODB_EXECUTION_ERROR = (
    "Error: Execution update, caused a Dynamodb error, "
    "please take a look at your CloudWatch Logs."
)

MISSING_METHOD = "invalid request, you are missing the http method"
MISSING_BODY = "invalid request, you are missing the parameter body"
NO_ARGUMENTS = "invalid request, no arguments provided"
MISSING_ID = "Error: You are missing the path parameter id"


class BadRequest(Exception):
    """The request cannot be served; the message is returned to the caller."""


@dataclass(frozen=True)
class HandlerConfig:
    table_name: str
    primary_key: str

    @classmethod
    def from_env(cls, environ=None):
        environ = os.environ if environ is None else environ
        config = cls(
            table_name=environ.get("TABLE_NAME", ""),
            primary_key=environ.get("PRIMARY_KEY", ""),
        )
        if not config.table_name or not config.primary_key:
            logger.warning(
                "TABLE_NAME=%r PRIMARY_KEY=%r: both must be set for store calls to succeed",
                config.table_name, config.primary_key,
            )
        return config


class DecimalEncoder(json.JSONEncoder):
    """DynamoDB hands numbers back as Decimal and number/string sets as set."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return int(obj) if obj % 1 == 0 else float(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


def to_json(data) -> str:
    return json.dumps(data, cls=DecimalEncoder)


# ---------------------------
# Request parsing
# ---------------------------

def _http_method(event):
    method = event.get("httpMethod")
    if not method:
        # HTTP API (payload v2) puts the method under requestContext
        method = ((event.get("requestContext") or {}).get("http") or {}).get("method")
    return method or ""


def _path_id(event):
    return (event.get("pathParameters") or {}).get("id") or ""


def _reject_constant(name):
    raise BadRequest(f"invalid request, {name} is not a valid number")


def _to_dynamo(value):
    """boto3 refuses float; carry numbers as Decimal all the way down."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise BadRequest("invalid request, numbers must be finite")
        value = Decimal(str(value))
    if isinstance(value, (int, Decimal)):
        try:
            # same context and traps boto3's TypeSerializer uses for N values
            DYNAMODB_CONTEXT.create_decimal(value)
        except DecimalException:
            raise BadRequest(f"invalid request, number {value} cannot be stored in DynamoDB")
        return value
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    return value


def read_item(event) -> dict:
    """Normalize the event body into a non-empty dict or raise BadRequest."""
    body = event.get("body")
    if body is None or body == "":
        raise BadRequest(MISSING_BODY)

    if isinstance(body, dict):
        item = _to_dynamo(body)
    elif isinstance(body, str):
        if event.get("isBase64Encoded"):
            try:
                body = base64.b64decode(body, validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError):
                raise BadRequest("invalid request, body is not valid base64")
        try:
            item = _to_dynamo(json.loads(body, parse_float=Decimal, parse_constant=_reject_constant))
        except ValueError:
            # JSONDecodeError, or an integer past the interpreter's digit limit
            raise BadRequest("invalid request, body is not valid JSON")
    else:
        raise BadRequest("invalid request, body must be a JSON object")

    if not isinstance(item, dict):
        raise BadRequest("invalid request, body must be a JSON object")
    if not item:
        raise BadRequest(NO_ARGUMENTS)
    return item


def build_update(item: dict):
    """SET clause over generated placeholders, so any attribute name is safe."""
    names, values, clauses = {}, {}, []
    for index, (field, value) in enumerate(item.items()):
        names[f"#f{index}"] = field
        values[f":v{index}"] = value
        clauses.append(f"#f{index} = :v{index}")
    return "SET " + ", ".join(clauses), names, values


# ---------------------------
# Error mapping
# ---------------------------

def serialize_error(exc) -> str:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        metadata = exc.response.get("ResponseMetadata", {})
        payload = {
            "name": error.get("Code", type(exc).__name__),
            "message": error.get("Message", str(exc)),
        }
        if "HTTPStatusCode" in metadata:
            payload["statusCode"] = metadata["HTTPStatusCode"]
        if "RequestId" in metadata:
            payload["requestId"] = metadata["RequestId"]
        return to_json(payload)
    return to_json({"name": type(exc).__name__, "message": str(exc)})


def classify_write_error(exc) -> str:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        if error.get("Code") == "ValidationException" and "reserved keyword" in error.get("Message", ""):
            return RESERVED_RESPONSE
    return DYNAMODB_EXECUTION_ERROR


def _response(status_code, body="", content_type="application/json"):
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": content_type},
        "body": body,
    }


def _text(status_code, message):
    return _response(status_code, message, content_type="text/plain")


# ---------------------------
# Store + dispatcher
# ---------------------------

class EmployeeStore:
    """One DynamoDB table keyed by a single string partition key."""

    def __init__(self, table, primary_key: str):
        self.table = table
        self.primary_key = primary_key

    def _key(self, item_id):
        return {self.primary_key: item_id}

    def get(self, item_id):
        return self.table.get_item(Key=self._key(item_id)).get("Item")

    def scan(self):
        # Single page only; LastEvaluatedKey is not followed.
        return self.table.scan().get("Items", [])

    def put(self, item):
        self.table.put_item(Item=item)

    def update(self, item_id, attribute_names, update_expression, attribute_values,
               return_values="UPDATED_NEW"):
        return self.table.update_item(
            Key=self._key(item_id),
            UpdateExpression=update_expression,
            ExpressionAttributeNames=attribute_names,
            ExpressionAttributeValues=attribute_values,
            ReturnValues=return_values,
        )

    def delete(self, item_id):
        self.table.delete_item(Key=self._key(item_id))


class RequestHandler:
    """Maps one API Gateway proxy event onto one store call."""

    def __init__(self, config: HandlerConfig, store: EmployeeStore, id_factory=uuid.uuid4):
        self.config = config
        self.store = store
        self.id_factory = id_factory

    def handle(self, event):
        event = event or {}
        method = _http_method(event)
        if not method:
            logger.warning("Rejected request without http method")
            return _text(400, MISSING_METHOD)

        item_id = _path_id(event)
        try:
            if method == "GET":
                return self.get_one(item_id) if item_id else self.get_all()
            if method == "POST":
                return self.update(item_id, event)
            if method == "PUT":
                return self.create(event)
            if method == "DELETE":
                return self.delete(item_id)
        except BadRequest as e:
            logger.warning("Rejected %s request: %s", method, e)
            return _text(400, str(e))

        logger.warning("Rejected unsupported method: %s", method)
        return _text(400, f"invalid request, unsupported http method {method}")

    def get_one(self, item_id):
        try:
            item = self.store.get(item_id)
        except (BotoCoreError, ClientError) as e:
            logger.error("get_item failed for %s: %s", item_id, e)
            return _response(500, serialize_error(e))
        if item is None:
            return _response(404)
        return _response(200, to_json(item))

    def get_all(self):
        try:
            items = self.store.scan()
        except (BotoCoreError, ClientError) as e:
            logger.error("scan failed: %s", e)
            return _response(500, serialize_error(e))
        return _response(200, to_json(items))

    def update(self, item_id, event):
        item = read_item(event)
        # a missing id is left to the store, which rejects the empty key
        if self.config.primary_key in item:
            raise BadRequest(f"Error: The {self.config.primary_key} attribute cannot be updated")

        expression, names, values = build_update(item)
        try:
            self.store.update(item_id, names, expression, values, "UPDATED_NEW")
        except (BotoCoreError, ClientError) as e:
            logger.error("update_item failed for %s: %s", item_id, e)
            return _text(500, classify_write_error(e))
        return _response(204)

    def create(self, event):
        item = read_item(event)
        item[self.config.primary_key] = str(self.id_factory())
        try:
            self.store.put(item)
        except (BotoCoreError, ClientError) as e:
            logger.error("put_item failed: %s", e)
            return _text(500, classify_write_error(e))
        logger.info("Created %s=%s", self.config.primary_key, item[self.config.primary_key])
        return _response(201)

    def delete(self, item_id):
        if not item_id:
            raise BadRequest(MISSING_ID)
        try:
            self.store.delete(item_id)
        except (BotoCoreError, ClientError) as e:
            logger.error("delete_item failed for %s: %s", item_id, e)
            return _response(500, serialize_error(e))
        return _response(200)


CONFIG = HandlerConfig.from_env()

dynamodb = boto3.resource("dynamodb")
table = dynamodb.Table(CONFIG.table_name)
request_handler = RequestHandler(CONFIG, EmployeeStore(table, CONFIG.primary_key))


def lambda_handler(event, context):
    """
    API Gateway proxy entry point for /employees and /employees/{id}.
    GET lists or fetches, PUT creates, POST updates, DELETE removes.
    """
    logger.info("Received event: %s", json.dumps(event, default=str))
    return request_handler.handle(event)
