"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping services free of SQL.
None of them commit; the caller owns the transaction.
"""

from repositories.certificate_repository import CertificateRepository
from repositories.template_repository import TemplateRepository
from repositories.utils import insert_if_absent, log_slow_query
from repositories.visitor_repository import VisitorRepository

__all__ = [
    "CertificateRepository",
    "TemplateRepository",
    "VisitorRepository",
    "insert_if_absent",
    "log_slow_query",
]
