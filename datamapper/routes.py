"""
CRUD HTTP routes generated from a Model.

Endpoints (all under ``/<table>``):
    GET    /<table>          list every row
    GET    /<table>/{id}     fetch one row
    POST   /<table>          insert, respond with the stored row
    PUT    /<table>/{id}     update, respond with the stored row
    DELETE /<table>/{id}     delete, respond with ``{"id": id}``

FILTERED fields never appear in a response.
"""

from typing import Any, Callable, Dict, List, Sequence, Union

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.params import Depends as DependsParam
from fastapi.responses import JSONResponse

from .errors import ValidationError
from .model import Model

logger = structlog.get_logger()

Dependency = Union[DependsParam, Callable[..., Any]]


def body_field_errors(model: Model, body: Dict[str, Any]) -> Dict[str, List[str]]:
    """Report REQUIRED fields missing from ``body`` and keys the model lacks."""
    missing = [
        name
        for name, field in model.fields.items()
        if field.is_required and not field.is_auto and name not in body
    ]
    extra = [key for key in body if key not in model.fields]
    return {"missingFields": missing, "extraFields": extra}


async def _read_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="No json body detected")
    return body


def create_crud_router(model: Model, dependencies: Sequence[Dependency] = ()) -> APIRouter:
    """Build a router exposing CRUD endpoints for ``model``."""
    router = APIRouter(
        prefix=f"/{model.table}",
        tags=[model.table],
        dependencies=[d if isinstance(d, DependsParam) else Depends(d) for d in dependencies],
    )

    async def run(operation: str, call: Callable[[], Any]) -> Any:
        try:
            return await call()
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=e.to_dict())
        except HTTPException:
            raise
        except Exception as e:
            logger.exception("crud_request_failed", table=model.table, operation=operation, error=str(e))
            raise HTTPException(status_code=500, detail="Internal server error")

    @router.get("")
    async def list_rows() -> Any:
        """List every row."""

        async def call() -> Any:
            return model.filter_for_export(await model.search())

        return await run("list", call)

    @router.get("/{id}")
    async def get_row(id: str) -> Any:
        """Get a row by id."""

        async def call() -> Any:
            row = await model.get(id)
            if row is None:
                raise HTTPException(status_code=404, detail=f"{model.table} not found")
            return model.filter_for_export(row)

        return await run("get", call)

    @router.post("")
    async def create_row(request: Request) -> Any:
        """Insert a row and return it."""
        body = await _read_body(request)
        errors = body_field_errors(model, body)
        if errors["missingFields"] or errors["extraFields"]:
            return JSONResponse(status_code=400, content=errors)

        async def call() -> Any:
            new_id = await model.insert(body)
            return model.filter_for_export(await model.get(new_id))

        return await run("create", call)

    @router.put("/{id}")
    async def update_row(id: str, request: Request) -> Any:
        """Update a row and return it."""
        body = await _read_body(request)
        errors = body_field_errors(model, body)
        if errors["missingFields"] or errors["extraFields"]:
            return JSONResponse(status_code=400, content=errors)

        async def call() -> Any:
            if await model.get(id) is None:
                raise HTTPException(status_code=404, detail=f"{model.table} not found")
            await model.update(id, body)
            return model.filter_for_export(await model.get(id))

        return await run("update", call)

    @router.delete("/{id}")
    async def delete_row(id: str) -> Any:
        """Delete a row."""

        async def call() -> Any:
            if await model.get(id) is None:
                raise HTTPException(status_code=404, detail=f"{model.table} not found")
            await model.delete(id)
            return {"id": model.coerce_id(id)}

        return await run("delete", call)

    return router
