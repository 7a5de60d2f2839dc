"""Client catalog API router."""
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session
from opentelemetry import trace

from database import get_db
from dependencies import get_category_service, get_product_service, page_params
from schemas import ApiResponse, CategoryResponse, PageParams, Pagination, ProductResponse
from services.category_service import CategoryService
from services.product_service import ProductService

router = APIRouter(prefix="/client", tags=["catalog"])


def _product_page(products, total: int, params: PageParams, message: str) -> ApiResponse:
    return ApiResponse(
        message=message,
        data=[ProductResponse.model_validate(product) for product in products],
        pagination=Pagination.build(params.page, params.limit, total),
    )


@router.get("/products", response_model=ApiResponse[List[ProductResponse]])
async def get_products(
    params: PageParams = Depends(page_params),
    category_id: Optional[int] = Query(None, ge=1),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """
    Browse active products.

    Supports category, price range and text filters with paging and sorting
    on id, name, price, created_at or updated_at.
    """
    products, total = product_service.get_products(
        db,
        params,
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        search=search,
        is_active=True
    )
    span = trace.get_current_span()
    span.set_attribute("product.count", len(products))
    span.set_attribute("endpoint.type", "product_catalog")
    return _product_page(products, total, params, "Products retrieved successfully")


@router.get("/products/featured", response_model=ApiResponse[List[ProductResponse]])
async def get_featured_products(
    limit: int = Query(8, ge=1, le=50),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    products = product_service.get_featured_products(db, limit)
    return ApiResponse(
        message="Featured products retrieved successfully",
        data=[ProductResponse.model_validate(product) for product in products],
    )


@router.get("/products/search", response_model=ApiResponse[List[ProductResponse]])
async def search_products(
    q: str = Query(..., min_length=1, max_length=100),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    products, total = product_service.get_products(db, params, search=q, is_active=True)
    return _product_page(products, total, params, "Search results retrieved successfully")


@router.get("/products/category/{category_id}", response_model=ApiResponse[List[ProductResponse]])
async def get_products_by_category(
    category_id: int = Path(..., ge=1),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service),
    category_service: CategoryService = Depends(get_category_service)
):
    category_service.get_category(db, category_id, active_only=True)
    products, total = product_service.get_products(db, params, category_id=category_id, is_active=True)
    return _product_page(products, total, params, "Products retrieved successfully")


@router.get("/products/{product_id}", response_model=ApiResponse[ProductResponse])
async def get_product(
    product_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """Product detail. Inactive products are reported as not found."""
    product = product_service.get_product(db, product_id, active_only=True)
    trace.get_current_span().set_attribute("product.id", product_id)
    return ApiResponse(message="Product retrieved successfully", data=ProductResponse.model_validate(product))


@router.get("/categories", response_model=ApiResponse[List[CategoryResponse]])
async def get_categories(
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    categories = category_service.list_categories(db, active_only=True)
    return ApiResponse(
        message="Categories retrieved successfully",
        data=[CategoryResponse.model_validate(category) for category in categories],
    )
