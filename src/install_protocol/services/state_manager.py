"""State manager for persisted installation records."""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from install_protocol.config import get_config
from install_protocol.models.messages import InstallerMessageKind
from install_protocol.models.state import InstallationRecord


class StateManager:
    """Singleton store of per-application installation records.

    One JSON file per bundle identifier under the configured state directory.
    The installer consults it to decide whether ResumeInstallationToStage2 is
    allowed in a later session.
    """

    _instance: Optional["StateManager"] = None

    def __new__(cls):
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize state manager (only once due to singleton)."""
        if self._initialized:
            return

        self.logger = logging.getLogger("install_protocol.state_manager")
        self.state_dir = Path(get_config().state_dir)
        self._records: dict[str, InstallationRecord] = {}

        self._initialized = True
        self.logger.info(f"StateManager initialized at {self.state_dir}")

    def record_path(self, bundle_identifier: str) -> Path:
        return self.state_dir / f"{bundle_identifier}.json"

    def load_record(self, bundle_identifier: str) -> Optional[InstallationRecord]:
        """Load the persisted record of an application.

        Returns:
            InstallationRecord if exists and valid, None otherwise
        """
        path = self.record_path(bundle_identifier)
        if not path.exists():
            self.logger.debug(f"No installation record for {bundle_identifier}")
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            record = InstallationRecord(**data)
            self._records[bundle_identifier] = record
            self.logger.info(
                f"Loaded record: {bundle_identifier} version={record.version}, "
                f"last_kind={record.last_kind.name}"
            )
            return record
        except Exception as e:
            self.logger.error(f"Failed to load installation record: {e}", exc_info=True)
            # Corrupted record carries no trustworthy stage knowledge
            path.unlink(missing_ok=True)
            self._records.pop(bundle_identifier, None)
            return None

    def save_record(self, record: InstallationRecord) -> None:
        """Persist a record, replacing any previous one for the same application."""
        path = self.record_path(record.bundle_identifier)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(record.model_dump(mode="json"), f, indent=2)
            tmp_path.replace(path)
            self._records[record.bundle_identifier] = record
            self.logger.debug(
                f"Saved record: {record.bundle_identifier} last_kind={record.last_kind.name}"
            )
        except Exception as e:
            self.logger.error(f"Failed to save installation record: {e}", exc_info=True)
            raise

    def delete_record(self, bundle_identifier: str) -> None:
        """Delete the record (called once an installation finished)."""
        path = self.record_path(bundle_identifier)
        if path.exists():
            path.unlink()
            self.logger.info(f"Deleted installation record for {bundle_identifier}")
        self._records.pop(bundle_identifier, None)

    def record_stage(
        self, bundle_identifier: str, version: str, kind: InstallerMessageKind
    ) -> InstallationRecord:
        """Persist the last staged kind reported for an application.

        Args:
            bundle_identifier: Host bundle identifier
            version: Version being installed
            kind: Staged kind just reported (ALIVE_PING is never recorded)

        Returns:
            Updated record
        """
        record = self._records.get(bundle_identifier) or self.load_record(bundle_identifier)
        if record is None or record.version != version:
            record = InstallationRecord(bundle_identifier=bundle_identifier, version=version)

        updates = {"last_kind": kind, "last_update": datetime.now()}
        if kind is InstallerMessageKind.INSTALLATION_FINISHED_STAGE1:
            updates["stage1_completed_at"] = datetime.now()
        record = record.model_copy(update=updates)
        self.save_record(record)
        return record

    def stage1_completed(self, bundle_identifier: str, version: str) -> bool:
        """Check whether a prior session finished stage 1 of this same version.

        A stage-1 completion recorded for another version never counts.
        """
        record = self.load_record(bundle_identifier)
        if record is None or record.version != version:
            return False
        return record.stage1_completed()

    def reset(self) -> None:
        """Forget cached records (files on disk are kept)."""
        self._records.clear()
        self.logger.info("Record cache reset")
