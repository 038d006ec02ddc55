"""Service layer for business logic and database operations."""

from .account_lock_service import AccountLockService, LockInfo
from .auth_service import CredentialVerifier, Principal
from .content_service import ContentService
from .database import DatabaseService, get_db_service, init_db_service
from .ingestion_service import IngestAccepted, IngestionPipeline, IngestRejected
from .user_service import EmailAlreadyRegistered, UserService

__all__ = [
    "AccountLockService",
    "ContentService",
    "CredentialVerifier",
    "DatabaseService",
    "EmailAlreadyRegistered",
    "IngestAccepted",
    "IngestionPipeline",
    "IngestRejected",
    "LockInfo",
    "Principal",
    "UserService",
    "get_db_service",
    "init_db_service",
]
