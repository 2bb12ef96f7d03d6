# 单条同步导入（“立即导入”）：直接 upsert，结果写一条终态 import；带 jobId 时推进 Job 计数

from __future__ import annotations
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from esync.api.v1.deps import get_browse_api, get_current_shop, get_upserter_factory
from esync.core.errors import JobNotFoundError, MissingCredentialError
from esync.db.session import get_db
from esync.integrations.ebay import EbayBrowseAPI, EbayError
from esync.integrations.shopify import ShopCredential
from esync.services import import_service
from esync.services.reconciliation import ProductUpserter

router = APIRouter(prefix="/imports", tags=["imports"])


class SingleImportRequest(BaseModel):
    item: Optional[Dict[str, Any]] = None
    itemId: Optional[str] = None            # 只给 eBay legacyItemId 时先 getItem
    options: Dict[str, Any] = Field(default_factory=dict)
    jobId: Optional[str] = None


@router.post("/single")
def import_single(
    body: SingleImportRequest,
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
    upserter_factory: Callable[[ShopCredential], ProductUpserter] = Depends(get_upserter_factory),
    browse: EbayBrowseAPI = Depends(get_browse_api),
):
    item = body.item
    if item is None:
        if not body.itemId:
            raise HTTPException(status_code=400, detail="Missing item or options")
        try:
            item = browse.get_item(body.itemId)
        except EbayError as e:
            raise HTTPException(status_code=502, detail=f"eBay error: {e}") from e

    job_id = body.jobId or body.options.get("jobId")
    try:
        result, row = import_service.sync_single_item(
            db, shop, item, body.options, job_id=job_id, upserter_factory=upserter_factory,
        )
    except MissingCredentialError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail="Job not found.") from e

    record = import_service.import_to_dict(row)
    if result.success:
        return JSONResponse(content=jsonable_encoder({"success": True, **record}))
    # 失败仍然落了一条 FAILED 记录；返回 500 + 错误文本，前端直接展示
    return JSONResponse(
        status_code=500,
        content=jsonable_encoder({"success": False, **record, "error": result.error or "Failed to upsert product."}),
    )
