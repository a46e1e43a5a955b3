from infra.http.client import HttpError, HttpResponseError, post_json

__all__ = ["HttpError", "HttpResponseError", "post_json"]
