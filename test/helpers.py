"""Shared fakes for the test suite"""

import json
from unittest.mock import MagicMock

import requests


def fake_response(status_code=200, payload=None, text=None, cookies=None, history=None):
    """Build a stand-in for requests.Response"""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.cookies = requests.cookies.cookiejar_from_dict(cookies or {})
    response.history = list(history or [])

    if text is None:
        text = json.dumps(payload) if payload is not None else ""
    response.text = text

    if payload is not None:
        response.json.return_value = payload
    else:
        response.json.side_effect = ValueError("No JSON object could be decoded")

    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error", response=response
        )
    return response


def showings_payload(*showings):
    """GraphQL body for showingsForDate with (id, time, title) tuples"""
    return {
        "data": {
            "showingsForDate": {
                "data": [
                    {"id": sid, "time": start, "movie": {"name": title}}
                    for sid, start, title in showings
                ]
            }
        }
    }
