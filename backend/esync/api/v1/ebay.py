# eBay 来源：卖家校验 / 预览样例商品 / 按卖家 + 类目入队

from __future__ import annotations
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from esync.api.v1.deps import get_browse_api, get_current_shop
from esync.api.v1.jobs import JobOut
from esync.core.errors import InvalidRowsError
from esync.db.session import get_db
from esync.integrations.ebay import EbayBrowseAPI, EbayError
from esync.services import import_service

router = APIRouter(prefix="/ebay", tags=["ebay"])


class ValidateSellerRequest(BaseModel):
    ebaySellerUsername: str = Field(..., min_length=1)


class ValidateSellerResponse(BaseModel):
    success: bool = True
    ebaySellerUsername: str
    categoryIds: List[str]
    totalFound: int
    sampleItem: Optional[Dict[str, Any]] = None


class PreviewRequest(BaseModel):
    ebaySellerUsername: str = Field(..., min_length=1)
    categories: List[str] = Field(default_factory=list)


class PreviewResponse(BaseModel):
    totalItems: int
    sampleItem: Dict[str, Any]


class EnqueueRequest(BaseModel):
    ebaySellerUsername: str = Field(..., min_length=1)
    categories: List[str] = Field(default_factory=list)
    options: Dict[str, Any] = Field(default_factory=dict)
    quota: Optional[int] = Field(default=None, ge=1)


class EnqueueResponse(BaseModel):
    success: bool = True
    job: JobOut


@router.post("/validate", response_model=ValidateSellerResponse)
def validate_seller(
    body: ValidateSellerRequest,
    shop: str = Depends(get_current_shop),
    browse: EbayBrowseAPI = Depends(get_browse_api),
) -> ValidateSellerResponse:
    seller = body.ebaySellerUsername.strip()
    try:
        totals = browse.validate_seller(seller)
    except EbayError as e:
        raise HTTPException(status_code=502, detail=f"eBay error: {e}") from e

    if not totals.total_found:
        raise HTTPException(
            status_code=400,
            detail="Could not validate seller. Either the username is incorrect, "
                   "or they have no items listed in supported primary categories.",
        )
    return ValidateSellerResponse(ebaySellerUsername=seller, **totals.to_dict())


@router.post("/preview", response_model=PreviewResponse)
def preview(
    body: PreviewRequest,
    shop: str = Depends(get_current_shop),
    browse: EbayBrowseAPI = Depends(get_browse_api),
) -> PreviewResponse:
    if not body.categories:
        raise HTTPException(
            status_code=400,
            detail="Missing eBay seller username or selected categories. Please configure them in settings.",
        )
    try:
        result = browse.preview(body.ebaySellerUsername.strip(), body.categories)
    except EbayError as e:
        raise HTTPException(status_code=502, detail=f"eBay error: {e}") from e

    if result is None:
        raise HTTPException(
            status_code=404,
            detail="No items found on eBay for the selected categories and seller.",
        )
    return PreviewResponse(totalItems=result.total_items, sampleItem=result.sample_item)


'''
POST /ebay/enqueue
   1) 按卖家 + 类目分页拉取（quota 封顶）
   2) item → 规范 Product
   3) Job + PENDING imports 一个事务写入，worker 异步处理
'''
@router.post("/enqueue", response_model=EnqueueResponse, status_code=201)
def enqueue(
    body: EnqueueRequest,
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
    browse: EbayBrowseAPI = Depends(get_browse_api),
) -> EnqueueResponse:
    try:
        job, imports = import_service.create_job_from_ebay(
            db, shop, browse, body.ebaySellerUsername, body.categories, body.options, quota=body.quota,
        )
    except InvalidRowsError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except EbayError as e:
        raise HTTPException(status_code=502, detail=f"eBay error: {e}") from e

    view = import_service.JobStatusView(job=job, imports=[], pending=len(imports))
    return EnqueueResponse(job=JobOut(**view.to_dict()))
