from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from homebank_bridge.api.dependencies import get_categories, get_importer, require_auth
from homebank_bridge.api.schemas import CategoryCreate, CategoryUpdate
from homebank_bridge.core.errors import ValidationError
from homebank_bridge.models import Category, ImportResult
from homebank_bridge.repositories.category_repository import CategoryRepository
from homebank_bridge.services.exporter import export_categories
from homebank_bridge.services.importer import Importer

router = APIRouter(prefix="/api/categories", tags=["categories"], dependencies=[Depends(require_auth)])


@router.get("", response_model=list[Category])
async def list_categories(
    categories: Annotated[CategoryRepository, Depends(get_categories)],
) -> list[Category]:
    return categories.list_tree()


@router.post("", status_code=201)
async def create_category(
    req: CategoryCreate,
    categories: Annotated[CategoryRepository, Depends(get_categories)],
) -> dict[str, int]:
    return {"id": categories.create(req.name, req.type, req.parent_id)}


@router.get("/export")
async def export_categories_csv(
    categories: Annotated[CategoryRepository, Depends(get_categories)],
) -> Response:
    return Response(
        content=export_categories(categories),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=categories.csv"},
    )


@router.post("/import", status_code=201, response_model=ImportResult)
async def import_categories_csv(
    request: Request,
    importer: Annotated[Importer, Depends(get_importer)],
) -> ImportResult:
    body = (await request.body()).decode("utf-8-sig")
    if not body.strip():
        raise ValidationError.for_field("body", "No CSV data provided")
    return importer.import_categories(body)


@router.put("/{category_id}")
async def update_category(
    category_id: int,
    req: CategoryUpdate,
    categories: Annotated[CategoryRepository, Depends(get_categories)],
) -> dict[str, str]:
    categories.update(category_id, req.changes())
    return {"message": "Category updated successfully"}


@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: int,
    categories: Annotated[CategoryRepository, Depends(get_categories)],
) -> Response:
    categories.delete(category_id)
    return Response(status_code=204)
