"""
Domain services: voter registry (pre-election) and election audit
(post-election), wired together by create_services().
"""

from .voter_registry import VoterRegistryService, generate_document_number
from .election_audit import ElectionAuditService
from .factory import IntegrityServices, create_services

__all__ = [
    "VoterRegistryService",
    "ElectionAuditService",
    "IntegrityServices",
    "create_services",
    "generate_document_number",
]
