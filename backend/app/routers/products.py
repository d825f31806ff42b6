"""Router exposing product catalog and sales-history operations."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import get_current_user, get_effective_owner_id
from ..services import ProductService, ProductServiceError

router = APIRouter(dependencies=[Depends(get_current_user)])


def _get_owned_product(db: Session, owner_id: str, product_id: str) -> models.Product:
    product = ProductService.get_product(db, owner_id, product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


@router.get("/", response_model=schemas.ProductListResponse)
def list_products(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
    skip: int = Query(0, ge=0, description="Number of products to skip"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of products to return"),
    search: Optional[str] = Query(None, description="Case-insensitive name filter"),
) -> schemas.ProductListResponse:
    items, total = ProductService.list_products(db, owner_id, skip=skip, limit=limit, search=search)
    return schemas.ProductListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post("/", response_model=schemas.ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(
    product_in: schemas.ProductCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.ProductRead:
    try:
        return ProductService.create_product(db, owner_id, product_in)
    except ProductServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/{product_id}", response_model=schemas.ProductRead)
def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.ProductRead:
    return _get_owned_product(db, owner_id, product_id)


@router.patch("/{product_id}", response_model=schemas.ProductRead)
def update_product(
    product_id: str,
    product_in: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.ProductRead:
    product = _get_owned_product(db, owner_id, product_id)
    try:
        return ProductService.update_product(db, product, product_in)
    except (ValueError, ProductServiceError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> None:
    product = _get_owned_product(db, owner_id, product_id)
    try:
        ProductService.delete_product(db, product)
    except ProductServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/{product_id}/sales", response_model=List[schemas.SaleRecordRead])
def list_sales(
    product_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> List[schemas.SaleRecordRead]:
    """Return the product's sales history, newest first."""

    return ProductService.list_sales(_get_owned_product(db, owner_id, product_id))


@router.post(
    "/{product_id}/sales",
    response_model=schemas.ProductRead,
    status_code=status.HTTP_201_CREATED,
)
def add_sale(
    product_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.ProductRead:
    product = _get_owned_product(db, owner_id, product_id)
    try:
        sale_in = schemas.SaleRecordCreate.model_validate(payload)
    except ValidationError as exc:
        ProductService.reject_sale(db, owner_id, product_id, reason=exc.errors()[0]["msg"])
        raise RequestValidationError(exc.errors(include_url=False)) from exc

    try:
        ProductService.add_sale(db, product, sale_in)
    except ProductServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return product


@router.put("/{product_id}/sales/{identifier}", response_model=schemas.ProductRead)
def update_sale(
    product_id: str,
    identifier: str,
    sale_in: schemas.SaleRecordUpdate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.ProductRead:
    product = _get_owned_product(db, owner_id, product_id)
    try:
        ProductService.update_sale(db, product, identifier, sale_in)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ProductServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return product


@router.delete("/{product_id}/sales/{identifier}", response_model=schemas.ProductRead)
def delete_sale(
    product_id: str,
    identifier: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.ProductRead:
    product = _get_owned_product(db, owner_id, product_id)
    try:
        return ProductService.delete_sale(db, product, identifier)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ProductServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
