#!/usr/bin/env python
"""
FastAPI server for the bank statement importer.
"""
import logging
import os
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from extrato import __version__
from extrato.config import config
from extrato.exceptions import ImportAbortedError, StatementTooComplexError
from extrato.pipeline import StatementImportPipeline
from extrato.queries import TransactionFilter
from extrato.storage.document_store import JsonFileDocumentStore, RecordNotFoundError

# Logging setup
logging.basicConfig(
    level=config.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('api_server.log'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Extrato Import API",
    description="Importação de extratos bancários com deduplicação e cadastro de empresas",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Production deployments should set explicit origins
allowed_origins = os.getenv("CORS_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)

_pipeline: Optional[StatementImportPipeline] = None


def get_pipeline() -> StatementImportPipeline:
    """Lazily build the shared pipeline."""
    global _pipeline
    if _pipeline is None:
        logger.info("Initializing StatementImportPipeline...")
        _pipeline = StatementImportPipeline(store=JsonFileDocumentStore(config.storage_path))
        logger.info("StatementImportPipeline initialized successfully")
    return _pipeline


# ==================== Request/response models ====================

class ImportResponse(BaseModel):
    success: bool = Field(..., description="Whether every file was processed")
    message: str = Field(..., description="Human readable outcome")
    files: List[Dict[str, Any]] = Field(default_factory=list, description="Per-file outcome")
    accepted_transactions: int = 0
    processing_time: Optional[float] = None


class TransactionPatch(BaseModel):
    date: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    type: Optional[str] = None
    counterparty_name: Optional[str] = None
    counterparty_tax_id: Optional[str] = None
    payment_method: Optional[str] = None
    payer_name: Optional[str] = None
    origin: Optional[str] = None
    paying_bank: Optional[str] = None
    notes: Optional[str] = None


class CompanyCreate(BaseModel):
    name: str
    tax_id: str
    alternative_name: Optional[str] = None


class CompanyPatch(BaseModel):
    name: Optional[str] = None
    hidden: Optional[bool] = None


class AlternativeName(BaseModel):
    name: str


# ==================== Endpoints ====================

@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "service": "extrato-import",
        "version": __version__,
        "timestamp": datetime.now().isoformat(),
        "config": {
            "extraction_mode": config.extraction_mode,
            "gemini_model": config.gemini_model,
        },
    }


@app.post("/statements", response_model=ImportResponse, tags=["Import"])
def import_statements(
    files: List[UploadFile] = File(..., description="Statement PDFs or images"),
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    """
    Import files in upload order; a failing file stops the batch.

    Plain def: extraction blocks on HTTP calls and backoff sleeps, so it
    runs in the FastAPI threadpool.
    """
    start = datetime.now()
    batch = []
    for upload in files:
        content = upload.file.read()
        logger.info(f"Received file: {upload.filename}, size: {len(content)} bytes")
        batch.append((upload.filename, content))

    try:
        report = pipeline.import_files(batch)
    except ImportAbortedError as e:
        status = 422 if isinstance(e.cause, StatementTooComplexError) else 502
        committed = e.report.model_dump()["files"] if e.report else []
        logger.error(f"Import aborted: {e}")
        raise HTTPException(status_code=status, detail={"message": str(e), "committed": committed})

    duplicates = report.duplicate_files
    message = "Importação concluída"
    if duplicates:
        message += f"; arquivos em duplicidade ignorados: {', '.join(duplicates)}"
    return ImportResponse(
        success=True,
        message=message,
        files=[f.model_dump() for f in report.files],
        accepted_transactions=report.accepted_transactions,
        processing_time=(datetime.now() - start).total_seconds(),
    )


@app.get("/transactions", tags=["Transactions"])
async def list_transactions(
    cnpj: Optional[str] = Query(None),
    start: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end: Optional[str] = Query(None, description="YYYY-MM-DD"),
    search: Optional[str] = Query(None),
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    view = TransactionFilter(owner_tax_id=cnpj, start_date=start, end_date=end, search=search)
    return {
        "transactions": pipeline.snapshot(view),
        "summary": pipeline.summary(view).model_dump(mode="json"),
    }


@app.get("/transactions/duplicates", tags=["Transactions"])
async def list_duplicates(
    cnpj: Optional[str] = Query(None),
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    rows = pipeline.snapshot(TransactionFilter(owner_tax_id=cnpj))
    return {"transactions": [r for r in rows if r["duplicate"]]}


@app.patch("/transactions/{transaction_id}", tags=["Transactions"])
async def update_transaction(
    transaction_id: str,
    patch: TransactionPatch,
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    try:
        updated = pipeline.update_transaction(transaction_id, **patch.model_dump(exclude_none=True))
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Transaction not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return updated.model_dump(mode="json")


@app.delete("/transactions/{transaction_id}", status_code=204, tags=["Transactions"])
async def delete_transaction(
    transaction_id: str,
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    try:
        pipeline.delete_transaction(transaction_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Transaction not found")


@app.post("/dashboard", status_code=201, tags=["Transactions"])
def finalize_day(
    cnpj: Optional[str] = Query(None),
    start: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end: Optional[str] = Query(None, description="YYYY-MM-DD"),
    search: Optional[str] = Query(None),
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    """Close the day: store the totals of the filtered view."""
    view = TransactionFilter(owner_tax_id=cnpj, start_date=start, end_date=end, search=search)
    return pipeline.finalize_day(view)


@app.get("/companies", tags=["Companies"])
async def list_companies(
    include_hidden: bool = Query(False),
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    directory = pipeline.directory
    companies = directory.companies if include_hidden else directory.visible()
    return {"companies": [c.model_dump() for c in companies]}


@app.post("/companies", status_code=201, tags=["Companies"])
async def create_company(
    body: CompanyCreate,
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    try:
        company = pipeline.directory.register(body.name, body.tax_id, body.alternative_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return company.model_dump()


@app.post("/companies/{company_id}/alternative-names", tags=["Companies"])
async def add_alternative_name(
    company_id: str,
    body: AlternativeName,
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    try:
        company = pipeline.directory.add_alternative_name(company_id, body.name)
    except KeyError:
        raise HTTPException(status_code=404, detail="Company not found")
    return company.model_dump()


@app.patch("/companies/{company_id}", tags=["Companies"])
async def update_company(
    company_id: str,
    body: CompanyPatch,
    pipeline: StatementImportPipeline = Depends(get_pipeline),
):
    try:
        company = pipeline.directory.get(company_id)
        if body.name is not None:
            company = pipeline.rename_company(company_id, body.name)
        if body.hidden is not None:
            company = pipeline.directory.set_hidden(company_id, body.hidden)
    except KeyError:
        raise HTTPException(status_code=404, detail="Company not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return company.model_dump()


if __name__ == "__main__":
    uvicorn.run(
        "api_server:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=False,
    )
