"""Media migration models"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class UploadResult(BaseModel):
    path: str
    url: str
    mime_type: str
    size: int


class TableMigrationResult(BaseModel):
    processed: int = 0
    errors: int = 0


class MigrationRequest(BaseModel):
    tables: Optional[List[str]] = Field(None, description="Tables to migrate, defaults to every channel table")
    batch_size: Optional[int] = Field(None, ge=1, le=100, description="Rows fetched per batch")


class MigrationReport(BaseModel):
    success: bool = True
    message: str = ""
    total_processed: int = 0
    total_errors: int = 0
    table_results: Dict[str, TableMigrationResult] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Migration finished: 12 media processed, 0 errors",
                "total_processed": 12,
                "total_errors": 0,
                "table_results": {"canarana_conversas": {"processed": 12, "errors": 0}}
            }
        }
