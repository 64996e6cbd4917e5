"""HTTP primitives: request, response, headers, cookies, form bodies."""

from keel.http.cookies import SetCookie, parse_cookies
from keel.http.forms import FormData, UploadFile
from keel.http.params import Headers, MultiDict, QueryParams
from keel.http.request import Request
from keel.http.response import Response, empty_response, json_response

__all__ = [
    "FormData",
    "Headers",
    "MultiDict",
    "QueryParams",
    "Request",
    "Response",
    "SetCookie",
    "UploadFile",
    "empty_response",
    "json_response",
    "parse_cookies",
]
