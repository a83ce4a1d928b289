# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Transaction Logger

Single responsibility: Log and retrieve install transactions (append-only JSONL)
"""

import json
import logging
import uuid
from pathlib import Path
from typing import List, Dict, Any, Optional
from datetime import datetime, UTC

from ..models.library_models import (
    TransactionRecord,
    TransactionOperation,
    TransactionStatus
)

logger = logging.getLogger(__name__)


class TransactionLogger:
    """Manages transaction logging to append-only JSONL file"""

    def __init__(self, log_file: Path):
        """
        Initialize transaction logger.

        Args:
            log_file: Path to transactions.jsonl
        """
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        # Ensure log file exists
        if not self.log_file.exists():
            self.log_file.touch()

    def create_transaction(
        self,
        operation: TransactionOperation,
        library: str,
        version: Optional[str] = None,
        old_version: Optional[str] = None
    ) -> TransactionRecord:
        """
        Create a new transaction record.

        Args:
            operation: Type of operation
            library: Ubername of the library
            version: Full version (major.minor.patch)
            old_version: Installed version being replaced (upgrades only)

        Returns:
            New transaction record
        """
        return TransactionRecord(
            id=f"txn-{uuid.uuid4().hex[:12]}",
            operation=operation,
            library=library,
            version=version,
            old_version=old_version,
            status=TransactionStatus.PENDING,
            started_at=datetime.now(UTC)
        )

    def finish(
        self,
        transaction: TransactionRecord,
        status: TransactionStatus,
        error: Optional[BaseException] = None
    ) -> TransactionRecord:
        """Set the final status, stamp completion time and append to the log."""
        transaction.status = status
        transaction.completed_at = datetime.now(UTC)
        if error is not None:
            transaction.error = str(error)
        self.log(transaction)
        return transaction

    def log(self, transaction: TransactionRecord):
        """
        Append transaction to JSONL log file.

        Args:
            transaction: Transaction record to log
        """
        log_line = json.dumps(transaction.to_dict())
        with open(self.log_file, "a") as f:
            f.write(log_line + "\n")

    def list_transactions(self, limit: int = 50) -> List[Dict[str, Any]]:
        """
        List recent transactions from log.

        Args:
            limit: Maximum number of transactions to return

        Returns:
            List of transaction records (most recent first)
        """
        if not self.log_file.exists():
            return []

        transactions = []
        with open(self.log_file, "r") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    transactions.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to parse transaction log line: {e}")

        return list(reversed(transactions[-limit:]))

    def get_transaction(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        """
        Get the latest entry of a transaction by ID.

        Args:
            transaction_id: Transaction ID

        Returns:
            Transaction record or None if not found
        """
        if not self.log_file.exists():
            return None

        found = None
        with open(self.log_file, "r") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    txn = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if txn.get("id") == transaction_id:
                    found = txn

        return found
