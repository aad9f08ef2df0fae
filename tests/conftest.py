"""Shared fixtures for apirules tests."""

import json
from pathlib import Path
from typing import Any

import pytest


def _document(paths: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a minimal OpenAPI 3 document."""
    return {
        "openapi": "3.0.3",
        "info": {"title": "test api", "version": "1.0.0"},
        "paths": paths or {},
    }


def _request_document(
    schema: dict[str, Any],
    *,
    path: str = "/api/users",
    method: str = "post",
    content_type: str = "application/json",
) -> dict[str, Any]:
    """Document with one operation whose request body uses ``schema``."""
    return _document(
        {
            path: {
                method: {
                    "requestBody": {"content": {content_type: {"schema": schema}}},
                    "responses": {},
                }
            }
        }
    )


def _response_document(
    schema: dict[str, Any],
    *,
    path: str = "/api/users",
    method: str = "get",
    status_code: str = "200",
    content_type: str = "application/json",
) -> dict[str, Any]:
    """Document with one operation whose response body uses ``schema``."""
    return _document(
        {
            path: {
                method: {
                    "responses": {
                        status_code: {
                            "description": "ok",
                            "content": {content_type: {"schema": schema}},
                        }
                    }
                }
            }
        }
    )


@pytest.fixture
def make_document():
    return _document


@pytest.fixture
def request_document():
    return _request_document


@pytest.fixture
def response_document():
    return _response_document


@pytest.fixture
def users_api() -> dict[str, Any]:
    """Two endpoints with request and response bodies."""
    return _document(
        {
            "/api/users": {
                "get": {
                    "operationId": "listUsers",
                    "summary": "List users",
                    "responses": {
                        "200": {
                            "description": "ok",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "array",
                                        "items": {
                                            "type": "object",
                                            "required": ["id"],
                                            "properties": {
                                                "id": {"type": "string"},
                                                "name": {"type": "string"},
                                            },
                                        },
                                    }
                                }
                            },
                        }
                    },
                },
                "post": {
                    "operationId": "createUser",
                    "summary": "Create a user",
                    "requestBody": {
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "required": ["name"],
                                    "properties": {
                                        "name": {"type": "string"},
                                        "email": {"type": "string", "format": "email"},
                                    },
                                }
                            }
                        }
                    },
                    "responses": {"201": {"description": "created"}},
                },
            },
            "/api/users/{userId}": {
                "get": {
                    "operationId": "getUser",
                    "summary": "Get a user",
                    "responses": {
                        "200": {
                            "description": "ok",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "object",
                                        "required": ["id"],
                                        "properties": {"id": {"type": "string"}},
                                    }
                                }
                            },
                        }
                    },
                }
            },
        }
    )


@pytest.fixture
def write_json(tmp_path: Path):
    """Write a dict as JSON under tmp_path and return the path."""

    def _write(name: str, data: Any) -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return path

    return _write
