"""
Document and journal number formats.

Pure string functions; the numbers themselves come from SequenceAllocator.
"""

DOCUMENT_NO_MAX_LENGTH = 80
JOURNAL_NO_MAX_LENGTH = 40

JOURNAL_DIRECTION = "GL"
POSTING_JOURNAL_PREFIX = "CARI"
REVERSAL_JOURNAL_PREFIX = "CARI-REV"
MANUAL_JOURNAL_PREFIX = "MANUAL"


def format_draft_document_no(direction: str, fiscal_year: int, sequence_no: int) -> str:
    """``DRAFT-AR-2024-000001``"""
    return f"DRAFT-{direction}-{fiscal_year}-{sequence_no:06d}"[:DOCUMENT_NO_MAX_LENGTH]


def format_posted_document_no(
    direction: str, document_type: str, fiscal_year: int, sequence_no: int
) -> str:
    """``AR-INVOICE-2024-000001``"""
    return f"{direction}-{document_type}-{fiscal_year}-{sequence_no:06d}"[
        :DOCUMENT_NO_MAX_LENGTH
    ]


def format_journal_no(
    prefix: str, fiscal_year: int, sequence_no: int, max_length: int = JOURNAL_NO_MAX_LENGTH
) -> str:
    """``CARI-2024-000001``"""
    return f"{prefix}-{fiscal_year}-{sequence_no:06d}"[:max_length]


def format_manual_reversal_journal_no(
    journal_no: str, max_length: int = JOURNAL_NO_MAX_LENGTH
) -> str:
    """Suffix ``-REV``, trimming the original number so the suffix survives."""
    suffix = "-REV"
    return f"{journal_no[: max_length - len(suffix)]}{suffix}"


def subledger_reference(document_id) -> str:
    return f"CARI_DOC:{document_id}"


def reversal_subledger_reference(document_id) -> str:
    return f"CARI_DOC_REV:{document_id}"
