import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from django.db.models import ProtectedError, RestrictedError
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class BadRequest(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Bad request"
    default_code = "bad_request"


class Conflict(exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "A record with this value already exists"
    default_code = "conflict"


def _flatten_errors(detail, prefix=""):
    """Turn DRF's nested error structure into a list of {field, message}."""
    details = []
    if isinstance(detail, dict):
        for field, value in detail.items():
            name = f"{prefix}.{field}" if prefix else str(field)
            if field == "non_field_errors" and not prefix:
                name = ""
            details.extend(_flatten_errors(value, name))
    elif isinstance(detail, list):
        for index, value in enumerate(detail):
            if isinstance(value, (dict, list)):
                details.extend(_flatten_errors(value, f"{prefix}[{index}]"))
            else:
                details.append({"field": prefix, "message": str(value)})
    else:
        details.append({"field": prefix, "message": str(detail)})
    return details


def _error_message(detail):
    if isinstance(detail, list) and len(detail) == 1 and not isinstance(detail[0], (dict, list)):
        return str(detail[0])
    if isinstance(detail, (str, exceptions.ErrorDetail)):
        return str(detail)
    if isinstance(detail, dict) and "detail" in detail:
        return str(detail["detail"])
    if isinstance(detail, dict) and list(detail) == ["non_field_errors"]:
        return _error_message(detail["non_field_errors"])
    return None


def envelope_exception_handler(exc, context):
    """
    Wraps every error in {"success": false, "error": ..., "details"?: [...]}.
    """
    if isinstance(exc, (ProtectedError, RestrictedError)):
        return Response(
            {"success": False, "error": "Record has dependent records"},
            status=status.HTTP_409_CONFLICT,
        )

    if isinstance(exc, IntegrityError):
        logger.warning("Integrity error: %s", exc)
        return Response(
            {"success": False, "error": Conflict.default_detail},
            status=status.HTTP_409_CONFLICT,
        )

    if isinstance(exc, Http404):
        exc = exceptions.NotFound("Not found")
    elif isinstance(exc, DjangoPermissionDenied):
        exc = exceptions.PermissionDenied("Insufficient permissions")
    elif isinstance(exc, DjangoValidationError):
        exc = exceptions.ValidationError(
            exc.message_dict if hasattr(exc, "error_dict") else exc.messages
        )

    response = exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.error("Unhandled error in %s", view.__class__.__name__ if view else "view", exc_info=exc)
        return Response(
            {"success": False, "error": "Internal server error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, exceptions.ValidationError):
        message = _error_message(exc.detail)
        if message is not None:
            body = {"success": False, "error": message}
        else:
            body = {
                "success": False,
                "error": "Validation failed",
                "details": _flatten_errors(exc.detail),
            }
    else:
        body = {"success": False, "error": _error_message(response.data) or str(exc)}

    response.data = body
    return response
