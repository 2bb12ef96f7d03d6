# 批量同步 Job：创建（原始行）/ 查询进度 / 取消 / 立即处理某条 import

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from esync.api.v1.deps import get_current_shop, get_upserter_factory
from esync.core.errors import (
    ImportNotFoundError,
    InvalidRowsError,
    InvalidTransitionError,
    JobNotFoundError,
    MissingCredentialError,
)
from esync.db.session import get_db
from esync.integrations.shopify import ShopCredential
from esync.services import import_service
from esync.services.reconciliation import ProductUpserter

router = APIRouter(prefix="/jobs", tags=["jobs"])


class CreateJobRequest(BaseModel):
    count: Optional[int] = Field(default=None, ge=0)
    options: Dict[str, Any] = Field(default_factory=dict)
    items: List[Dict[str, Any]] = Field(default_factory=list)


class ImportItem(BaseModel):
    id: int
    jobId: Optional[str] = None
    status: str
    title: Optional[str] = None
    sku: Optional[str] = None
    action: Optional[str] = None
    shopifyProductId: Optional[str] = None
    error: Optional[str] = None
    createdAt: Optional[datetime] = None


class JobOut(BaseModel):
    id: str
    shopDomain: str
    status: str
    total: int
    processed: int
    succeeded: int
    failed: int
    pending: int = 0
    error: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)
    createdAt: Optional[datetime] = None
    finishedAt: Optional[datetime] = None
    imports: List[ImportItem] = Field(default_factory=list)


class CreatedImport(BaseModel):
    id: int
    status: str
    productData: Dict[str, Any]


class CreateJobResponse(BaseModel):
    success: bool = True
    job: JobOut
    imports: List[CreatedImport]
    count: int


class ProcessImportResponse(BaseModel):
    success: bool
    recorded: bool
    action: Optional[str] = None
    shopifyProductId: Optional[str] = None
    error: Optional[str] = None


'''
POST /jobs
   body: { count, options, items: [原始 CSV 行 / JSON 对象] }
   1) 行规范化（按 handle 分组）
   2) 同一事务写 Job(QUEUED) + 每个商品一条 PENDING import
   3) 返回 job + 分组后的商品（worker 异步处理）
'''
@router.post("", response_model=CreateJobResponse, status_code=201)
def create_job(
    body: CreateJobRequest,
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
) -> CreateJobResponse:
    try:
        job, imports = import_service.create_sync_job(db, shop, body.items, body.options, count=body.count)
    except InvalidRowsError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    view = import_service.JobStatusView(job=job, imports=[], pending=len(imports))
    return CreateJobResponse(
        job=JobOut(**view.to_dict()),
        imports=[CreatedImport(id=i.id, status=i.status, productData=i.product_data or {}) for i in imports],
        count=len(imports),
    )


@router.get("/{job_id}", response_model=JobOut)
def get_job(
    job_id: str = Path(..., min_length=1),
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
) -> JobOut:
    try:
        view = import_service.get_job_status(db, shop, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail="Job not found.") from e
    return JobOut(**view.to_dict())


# 取消：只允许 QUEUED / RUNNING，其它状态 400；剩余 PENDING imports 原样保留
@router.delete("/{job_id}", response_model=JobOut)
def cancel_job(
    job_id: str = Path(..., min_length=1),
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
) -> JobOut:
    try:
        view = import_service.cancel_job(db, shop, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail="Job not found.") from e
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return JobOut(**view.to_dict())


@router.post("/{job_id}/imports/{import_id}/process", response_model=ProcessImportResponse)
def process_import(
    job_id: str = Path(..., min_length=1),
    import_id: int = Path(..., ge=1),
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
    upserter_factory: Callable[[ShopCredential], ProductUpserter] = Depends(get_upserter_factory),
) -> ProcessImportResponse:
    try:
        result, recorded = import_service.process_import_now(
            db, shop, import_id, job_id=job_id, upserter_factory=upserter_factory,
        )
    except ImportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except MissingCredentialError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    return ProcessImportResponse(
        success=result.success,
        recorded=recorded,
        action=result.action,
        shopifyProductId=result.product_id,
        error=result.error,
    )
