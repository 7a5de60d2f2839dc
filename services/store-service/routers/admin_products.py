"""Admin product API router."""
from decimal import Decimal
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, File, Form, Path, Query, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from auth import require_admin
from database import get_db
from dependencies import get_image_storage, get_product_service, page_params
from schemas import (
    ApiResponse,
    PageParams,
    Pagination,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    StockUpdateRequest,
)
from services.image_storage import ImageStorage
from services.product_service import ProductService

router = APIRouter(prefix="/admin/products", tags=["admin"], dependencies=[Depends(require_admin)])


def _validate_form(schema, values: Dict[str, Any]):
    """Run multipart fields through the JSON body schema."""
    try:
        return schema(**values)
    except ValidationError as e:
        raise RequestValidationError(e.errors())


@router.get("", response_model=ApiResponse[List[ProductResponse]])
async def list_products(
    params: PageParams = Depends(page_params),
    category_id: Optional[int] = Query(None, ge=1),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
    is_active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """All products, including inactive ones unless is_active is given."""
    products, total = product_service.get_products(
        db,
        params,
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        search=search,
        is_active=is_active
    )
    return ApiResponse(
        message="Products retrieved successfully",
        data=[ProductResponse.model_validate(product) for product in products],
        pagination=Pagination.build(params.page, params.limit, total),
    )


@router.post("", response_model=ApiResponse[ProductResponse], status_code=201)
async def create_product(
    request: ProductCreate,
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    product = product_service.create_product(db, request.model_dump())
    return ApiResponse(message="Product created successfully", data=ProductResponse.model_validate(product))


@router.post("/with-image", response_model=ApiResponse[ProductResponse], status_code=201)
async def create_product_with_image(
    name: str = Form(...),
    description: str = Form(...),
    price: Decimal = Form(...),
    stock_quantity: int = Form(0),
    category_id: Optional[int] = Form(None),
    is_active: bool = Form(True),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service),
    storage: ImageStorage = Depends(get_image_storage)
):
    """Create a product from a multipart form with an optional image file."""
    data = _validate_form(ProductCreate, {
        "name": name,
        "description": description,
        "price": price,
        "stock_quantity": stock_quantity,
        "category_id": category_id,
        "is_active": is_active,
    }).model_dump()

    image_url = None
    if image is not None and image.filename:
        image_url = await storage.save_product_image(image)
        data["image_url"] = image_url
    try:
        product = product_service.create_product(db, data)
    except Exception:
        storage.delete_image(image_url)
        raise
    return ApiResponse(message="Product created successfully", data=ProductResponse.model_validate(product))


@router.get("/{product_id}", response_model=ApiResponse[ProductResponse])
async def get_product(
    product_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    product = product_service.get_product(db, product_id)
    return ApiResponse(message="Product retrieved successfully", data=ProductResponse.model_validate(product))


@router.put("/{product_id}", response_model=ApiResponse[ProductResponse])
async def update_product(
    request: ProductUpdate,
    product_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    product = product_service.update_product(db, product_id, request.model_dump(exclude_unset=True))
    return ApiResponse(message="Product updated successfully", data=ProductResponse.model_validate(product))


@router.put("/{product_id}/with-image", response_model=ApiResponse[ProductResponse])
async def update_product_with_image(
    product_id: int = Path(..., ge=1),
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[Decimal] = Form(None),
    stock_quantity: Optional[int] = Form(None),
    category_id: Optional[int] = Form(None),
    is_active: Optional[bool] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service),
    storage: ImageStorage = Depends(get_image_storage)
):
    """Partial update from a multipart form; a new image replaces the old file."""
    sent = {
        "name": name,
        "description": description,
        "price": price,
        "stock_quantity": stock_quantity,
        "category_id": category_id,
        "is_active": is_active,
    }
    changes = _validate_form(ProductUpdate, {k: v for k, v in sent.items() if v is not None}).model_dump(
        exclude_unset=True
    )

    previous_image = product_service.get_product(db, product_id).image_url
    new_image = None
    if image is not None and image.filename:
        new_image = await storage.save_product_image(image)
        changes["image_url"] = new_image
    try:
        product = product_service.update_product(db, product_id, changes)
    except Exception:
        storage.delete_image(new_image)
        raise
    if new_image and previous_image != new_image:
        storage.delete_image(previous_image)
    return ApiResponse(message="Product updated successfully", data=ProductResponse.model_validate(product))


@router.patch("/{product_id}/stock", response_model=ApiResponse[ProductResponse])
async def update_stock(
    request: StockUpdateRequest,
    product_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """Adjust stock: decrement (default), increment, or set an absolute level."""
    product = product_service.update_stock(db, product_id, request.quantity, request.operation)
    return ApiResponse(message="Stock updated successfully", data=ProductResponse.model_validate(product))


@router.delete("/{product_id}", response_model=ApiResponse[None])
async def delete_product(
    product_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service),
    storage: ImageStorage = Depends(get_image_storage)
):
    image_url = product_service.delete_product(db, product_id)
    storage.delete_image(image_url)
    return ApiResponse(message="Product deleted successfully")
