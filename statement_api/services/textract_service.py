"""TextractService runs form and table aware document analysis on stored statements.

The raw Textract response is kept, and a condensed view (lines, key/value pairs, tables) is built
from its blocks so the normalization prompt carries text rather than geometry.
"""

import asyncio
from collections.abc import Iterable
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from statement_api.core.errors import (
    DocumentAnalysisError,
    DocumentTooLargeError,
    ThrottledError,
    TransientAnalysisError,
    UnsupportedFormatError,
)
from statement_api.core.settings import Settings
from statement_api.core.utils import get_logger
from statement_api.services.base import DocumentAnalyzer

logger = get_logger("statement-api.textract")

FEATURE_TYPES = ["FORMS", "TABLES"]

ERROR_MAP: dict[str, tuple[type[DocumentAnalysisError], str]] = {
    "UnsupportedDocumentException": (UnsupportedFormatError, "Unsupported document format"),
    "BadDocumentException": (UnsupportedFormatError, "Bad document format"),
    "InvalidS3ObjectException": (UnsupportedFormatError, "Invalid S3 object or file not found"),
    "DocumentTooLargeException": (DocumentTooLargeError, "Document too large for processing"),
    "ThrottlingException": (ThrottledError, "Textract service is throttling requests"),
    "ProvisionedThroughputExceededException": (ThrottledError, "Textract throughput exceeded"),
    "LimitExceededException": (ThrottledError, "Textract limit exceeded"),
}


def map_textract_error(exc: Exception, document_ref: str) -> DocumentAnalysisError:
    """Translate a boto3 Textract failure into a typed analysis error."""
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code", ""))
        error_cls, message = ERROR_MAP.get(code, (TransientAnalysisError, "Textract analysis failed"))
        return error_cls(f"{message}: {document_ref}", details={"documentRef": document_ref, "awsCode": code})
    return TransientAnalysisError(
        f"Failed to analyze document with Textract: {exc}", details={"documentRef": document_ref}
    )


def _child_ids(block: dict[str, Any], relationship: str = "CHILD") -> list[str]:
    ids: list[str] = []
    for rel in block.get("Relationships") or []:
        if rel.get("Type") == relationship:
            ids.extend(rel.get("Ids") or [])
    return ids


def block_text(block: dict[str, Any], by_id: dict[str, dict[str, Any]]) -> str:
    """Text of a block, following CHILD relationships down to WORD blocks when needed."""
    if block.get("Text"):
        return block["Text"]
    words = [
        by_id[child_id].get("Text", "")
        for child_id in _child_ids(block)
        if child_id in by_id and by_id[child_id].get("BlockType") == "WORD"
    ]
    return " ".join(words)


def extract_lines(blocks: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """LINE blocks as ``{"page", "text"}`` in reading order."""
    return [
        {"page": block.get("Page", 1), "text": block.get("Text", "")}
        for block in blocks
        if block.get("BlockType") == "LINE"
    ]


def extract_forms(blocks: list[dict[str, Any]]) -> list[dict[str, str]]:
    """Key/value pairs from KEY_VALUE_SET blocks."""
    by_id = {block["Id"]: block for block in blocks if "Id" in block}
    pairs = []
    for block in blocks:
        if block.get("BlockType") != "KEY_VALUE_SET" or "KEY" not in (block.get("EntityTypes") or []):
            continue
        value_block = next(
            (
                by_id[value_id]
                for value_id in _child_ids(block, "VALUE")
                if value_id in by_id and "VALUE" in (by_id[value_id].get("EntityTypes") or [])
            ),
            None,
        )
        if value_block is None:
            continue
        pairs.append({"key": block_text(block, by_id), "value": block_text(value_block, by_id)})
    return pairs


def extract_tables(blocks: list[dict[str, Any]]) -> list[list[list[str]]]:
    """Tables as rows of cell text, ordered by row and column index."""
    by_id = {block["Id"]: block for block in blocks if "Id" in block}
    tables = []
    for block in blocks:
        if block.get("BlockType") != "TABLE":
            continue
        rows: dict[int, list[tuple[int, str]]] = {}
        for cell_id in _child_ids(block):
            cell = by_id.get(cell_id)
            if cell is None or cell.get("BlockType") != "CELL":
                continue
            rows.setdefault(cell.get("RowIndex", 0), []).append((cell.get("ColumnIndex", 0), block_text(cell, by_id)))
        tables.append([[text for _, text in sorted(cells)] for _, cells in sorted(rows.items())])
    return tables


def condense_response(response: dict[str, Any]) -> dict[str, Any]:
    """Build the analysis result handed to the normalization step."""
    blocks = response.get("Blocks") or []
    return {
        "blocks": blocks,
        "document_metadata": response.get("DocumentMetadata") or {},
        "model_version": response.get("AnalyzeDocumentModelVersion", ""),
        "lines": extract_lines(blocks),
        "forms": extract_forms(blocks),
        "tables": extract_tables(blocks),
    }


class TextractService(DocumentAnalyzer):
    """Document analysis of S3-stored statements with AWS Textract."""

    def __init__(self, settings: Settings, client: Any = None) -> None:
        """Initialize the Textract client for the configured region and bucket."""
        self.bucket = settings.s3_bucket
        self.textract = (
            client
            if client is not None
            else boto3.client(
                "textract",
                region_name=settings.aws_region,
                aws_access_key_id=settings.s3_access_key,
                aws_secret_access_key=settings.s3_secret_key,
            )
        )

    def analyze_document(self, document_ref: str) -> dict[str, Any]:
        """Run AnalyzeDocument on the S3 object and return the condensed result."""
        logger.info(f"Analyzing s3://{self.bucket}/{document_ref} with features {FEATURE_TYPES}")
        try:
            response = self.textract.analyze_document(
                Document={"S3Object": {"Bucket": self.bucket, "Name": document_ref}},
                FeatureTypes=FEATURE_TYPES,
            )
        except (ClientError, BotoCoreError) as exc:
            raise map_textract_error(exc, document_ref) from exc
        result = condense_response(response)
        logger.info(
            f"Textract returned {len(result['blocks'])} blocks, {len(result['lines'])} lines, "
            f"{len(result['tables'])} tables"
        )
        return result

    async def analyze(self, document_ref: str) -> dict[str, Any]:
        return await asyncio.to_thread(self.analyze_document, document_ref)
