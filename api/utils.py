from datetime import datetime, time
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework import status
from rest_framework.exceptions import NotFound
from rest_framework.response import Response

from api.exceptions import BadRequest


def success(data=None, message=None, status_code=status.HTTP_200_OK):
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return Response(body, status=status_code)


def datetime_param(request, name):
    """
    Query parameter as an aware datetime. Accepts a full ISO timestamp or
    a bare date (midnight in the current time zone).
    """
    raw = request.query_params.get(name)
    if not raw:
        return None
    value = parse_datetime(raw)
    if value is None:
        day = parse_date(raw)
        if day is None:
            raise BadRequest(f"Invalid date for '{name}'")
        value = datetime.combine(day, time.min)
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


def int_param(request, name, minimum=None, maximum=None):
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return None
    try:
        value = int(raw)
    except ValueError:
        raise BadRequest(f"'{name}' must be an integer")
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        raise BadRequest(f"'{name}' is out of range")
    return value


def decimal_param(request, name):
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return None
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise BadRequest(f"'{name}' must be a number")


def choice_param(request, name, choices):
    raw = request.query_params.get(name)
    if not raw:
        return None
    valid = [value for value, _label in choices]
    if raw not in valid:
        raise BadRequest(f"Invalid value for '{name}'. Expected one of: {', '.join(valid)}")
    return raw


def get_or_404(queryset, message="Not found", **lookup):
    """queryset.get(**lookup), with unknown or malformed ids answered as 404."""
    try:
        return queryset.get(**lookup)
    except (queryset.model.DoesNotExist, ValueError, DjangoValidationError):
        raise NotFound(message)
