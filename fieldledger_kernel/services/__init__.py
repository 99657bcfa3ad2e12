from fieldledger_kernel.services.base import BaseService
from fieldledger_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = ["BaseService", "SequenceCounter", "SequenceService"]
