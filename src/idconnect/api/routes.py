"""Connector operation surface over HTTP.

Each endpoint maps to one row of the operation table.  Read invocations
stream newline-delimited JSON; other operations answer 204.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse

from idconnect.api.schemas import ConnectionTestOut, InvokeBody, SystemParamsBody
from idconnect.contract.base import ClassRow
from idconnect.contract.requests import Call, CallRequest, Mode
from idconnect.errors import (
    ConfigurationError,
    ConnectionError,
    ConnectorError,
    OperationError,
    RouteNotFoundError,
    ValidationError,
)
from idconnect.host import ConnectorHost
from idconnect.params.values import dump_items
from idconnect.semantics.schemas import dump_semantics

router = APIRouter(prefix="/api/v1/connector", tags=["connector"])

_STATUS_CODES: dict[type[ConnectorError], int] = {
    RouteNotFoundError: status.HTTP_404_NOT_FOUND,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConfigurationError: status.HTTP_400_BAD_REQUEST,
    ConnectionError: status.HTTP_502_BAD_GATEWAY,
    OperationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_host(request: Request) -> ConnectorHost:
    """FastAPI dependency returning the host created at application startup."""
    return request.app.state.host


def _http_error(exc: ConnectorError) -> HTTPException:
    code = next(
        (c for cls, c in _STATUS_CODES.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    detail: dict[str, Any] = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, ValidationError):
        detail["violations"] = exc.violations
    if isinstance(exc, RouteNotFoundError):
        detail["className"] = exc.class_name
        detail["operationName"] = exc.operation_name
    return HTTPException(status_code=code, detail=detail)


def _dump(result: Any) -> Any:
    if result is None:
        return None
    if isinstance(result, list):
        return [entry.dump() for entry in result]
    return dump_semantics(result)


def _ndjson(first: ClassRow, rows: Iterator[ClassRow]) -> Iterator[str]:
    try:
        yield json.dumps(first, default=str) + "\n"
        for row in rows:
            yield json.dumps(row, default=str) + "\n"
    finally:
        rows.close()


def _stream(rows: Iterator[ClassRow]) -> StreamingResponse:
    """Stream rows as NDJSON.

    The first row is pulled before the response starts so failures while
    opening the read still map to a status code.
    """
    try:
        first = next(rows)
    except StopIteration:
        return StreamingResponse(iter(()), media_type="application/x-ndjson")
    except ConnectorError as exc:
        raise _http_error(exc) from exc
    return StreamingResponse(_ndjson(first, rows), media_type="application/x-ndjson")


# -- Connection / configuration ---------------------------------------------------

@router.get("/connection")
def connection_info(host: ConnectorHost = Depends(get_host)) -> list[dict]:
    """Parameter Items of the connection form."""
    try:
        return dump_items(host.connection_info())
    except ConnectorError as exc:
        raise _http_error(exc) from exc


@router.post("/connection/test", response_model=ConnectionTestOut)
def test_connection(body: SystemParamsBody, host: ConnectorHost = Depends(get_host)) -> dict:
    """Run the connection test with the submitted connection parameters."""
    try:
        host.test_connection(body.system_params)
    except ConnectorError as exc:
        raise _http_error(exc) from exc
    return {"status": "ok", "message": "Connection successful"}


@router.post("/configuration")
def configuration_info(body: SystemParamsBody, host: ConnectorHost = Depends(get_host)) -> list[dict]:
    """Parameter Items of the configuration form."""
    try:
        return dump_items(host.configuration_info(body.system_params))
    except ConnectorError as exc:
        raise _http_error(exc) from exc


# -- Dispatcher -------------------------------------------------------------------

@router.post("/classes")
def list_catalog(body: SystemParamsBody, host: ConnectorHost = Depends(get_host)) -> list[dict]:
    """Every (class, operation) pair the connector offers for these parameters."""
    try:
        return [entry.dump() for entry in host.list_catalog(body.system_params)]
    except ConnectorError as exc:
        raise _http_error(exc) from exc


@router.post("/classes/{class_name}/{operation_name}/describe")
def describe(
    class_name: str,
    operation_name: str,
    body: SystemParamsBody,
    host: ConnectorHost = Depends(get_host),
) -> Any:
    """Parameter Items for Read, a Semantics Descriptor for other operations."""
    try:
        result = host.describe(class_name, operation_name, body.system_params)
    except ConnectorError as exc:
        raise _http_error(exc) from exc
    return _dump(result)


@router.post("/classes/{class_name}/{operation_name}/invoke")
def invoke(
    class_name: str,
    operation_name: str,
    body: InvokeBody,
    host: ConnectorHost = Depends(get_host),
) -> Response:
    """Run the operation.  Reads stream rows as newline-delimited JSON."""
    try:
        rows = host.invoke(class_name, operation_name, body.system_params, body.function_params)
    except ConnectorError as exc:
        raise _http_error(exc) from exc
    if rows is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return _stream(rows)


@router.post("/call")
def call(request: CallRequest, host: ConnectorHost = Depends(get_host)) -> Any:
    """Mode-flag envelope: one endpoint for the whole operation surface."""
    try:
        result = host.handle(request)
    except ConnectorError as exc:
        raise _http_error(exc) from exc
    if request.call is Call.CONNECTION_TEST:
        return {"status": "ok", "message": "Connection successful"}
    if request.mode is Mode.EXECUTE:
        return Response(status_code=status.HTTP_204_NO_CONTENT) if result is None else _stream(result)
    return _dump(result)
