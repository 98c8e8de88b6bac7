import json
import logging
from decimal import Decimal

from conftest import api_event, response_body

from utils.decorators import (extract_path_params, extract_query_params,
                              lambda_handler, validate_json_body)
from utils.logging import StructuredFormatter
from utils.responses import (HTTPStatus, create_response, error_response,
                             success_response)


class TestLambdaHandler:
    def test_unhandled_exception_becomes_500(self):
        @lambda_handler()
        def handler(event, context):
            raise RuntimeError("boom")

        response = handler(api_event(method="GET"), None)

        assert response["statusCode"] == 500
        assert response_body(response) == {"success": False, "error": "Internal server error"}

    def test_invalid_return_value_becomes_500(self):
        @lambda_handler()
        def handler(event, context):
            return "ok"

        assert handler(api_event(method="GET"), None)["statusCode"] == 500


class TestRequestParsing:
    def test_body_must_be_an_object(self):
        @validate_json_body()
        def handler(event, context):
            return success_response()

        response = handler(api_event([1, 2]), None)

        assert response["statusCode"] == 400
        assert response_body(response)["error"] == "Request body must be a JSON object"

    def test_empty_strings_count_as_missing(self):
        @validate_json_body(required_fields=["text"])
        def handler(event, context):
            return success_response()

        response = handler(api_event({"text": ""}), None)

        assert response_body(response)["details"] == {"missing_fields": ["text"]}

    def test_path_params(self):
        @extract_path_params("user_id")
        def handler(event, context):
            return success_response(data=event["path_params"])

        assert response_body(handler(api_event(path={"user_id": "u1"}), None))["user_id"] == "u1"
        assert handler(api_event(), None)["statusCode"] == 400

    def test_query_defaults(self):
        @extract_query_params("group_id", limit="10")
        def handler(event, context):
            return success_response(data=event["query_params"])

        body = response_body(handler(api_event(query={"group_id": "g1"}), None))

        assert body["group_id"] == "g1"
        assert body["limit"] == "10"


class TestResponses:
    def test_success_merges_dict_payload(self):
        body = response_body(success_response({"expense": {"id": 1}}, "done", HTTPStatus.CREATED))

        assert body == {"success": True, "message": "done", "expense": {"id": 1}}

    def test_decimals_from_dynamodb(self):
        response = create_response(200, {"cents": Decimal("2000"), "rate": Decimal("0.5")})

        assert response_body(response) == {"cents": 2000, "rate": 0.5}

    def test_error_details(self):
        response = error_response("bad", 400, "VALIDATION_ERROR", {"field": "x"})

        assert response["statusCode"] == 400
        assert response_body(response)["details"] == {"field": "x"}
        assert response["headers"]["Content-Type"] == "application/json"


def test_structured_formatter_includes_extra_fields():
    record = logging.LogRecord("kasy", logging.INFO, __file__, 1, "hello %s", ("there",), None)
    record.request_id = "abc"

    entry = json.loads(StructuredFormatter().format(record))

    assert entry["message"] == "hello there"
    assert entry["level"] == "INFO"
    assert entry["request_id"] == "abc"


def test_escaped_validation_error_becomes_400():
    from models.expense import ExpenseCreate

    @lambda_handler()
    def handler(event, context):
        ExpenseCreate(group_id="g1")
        return success_response()

    response = handler(api_event(method="POST"), None)

    assert response["statusCode"] == 400
    assert response_body(response)["error_code"] == "VALIDATION_ERROR"
