import json
from pytz import utc
from datetime import datetime


def default_serializer(value):
    if isinstance(value, datetime):
        value = value.astimezone(utc)
        value = value.isoformat().split('+')[0]
        return f'{value}Z'
    return str(value)


def json_dumps(value):
    return json.dumps(value, default=default_serializer)


def normalize(value):
    """Round-trip through JSON so that payloads only hold plain types"""
    return json.loads(json_dumps(value))
