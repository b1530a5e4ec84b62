"""Unit tests for message and payload models."""

import json

import pytest
from pydantic import ValidationError

from install_protocol.models.installation import (
    AppcastItemData,
    ArchiveDescriptor,
    ExtractionProgress,
    InstallationData,
    InstallationType,
)
from install_protocol.models.messages import (
    InstallerMessage,
    InstallerMessageKind,
    UpdaterMessage,
    UpdaterMessageKind,
)


@pytest.mark.unit
class TestMessageKinds:
    """Test the fixed ordinals of both message families."""

    def test_installer_ordinals(self):
        assert [k.value for k in InstallerMessageKind] == list(range(10))
        assert InstallerMessageKind.ALIVE_PING == 9

    def test_updater_ordinals(self):
        assert [k.value for k in UpdaterMessageKind] == [0, 1, 2, 3]

    def test_no_shared_ordinals_within_family(self):
        values = [k.value for k in InstallerMessageKind]
        assert len(values) == len(set(values))


@pytest.mark.unit
class TestMessages:
    """Test that the two message families cannot be mixed."""

    def test_installer_message_defaults(self):
        message = InstallerMessage(kind=InstallerMessageKind.VALIDATION_STARTED)
        assert message.payload == b""

    def test_installer_message_rejects_updater_kind(self):
        with pytest.raises(ValidationError):
            InstallerMessage(kind=UpdaterMessageKind.INSTALLATION_DATA)

    def test_updater_message_rejects_installer_kind(self):
        with pytest.raises(ValidationError):
            UpdaterMessage(kind=InstallerMessageKind.NOT_STARTED)

    def test_bare_int_kind_rejected(self):
        with pytest.raises(ValidationError):
            InstallerMessage(kind=1)

    def test_messages_are_frozen(self):
        message = UpdaterMessage(kind=UpdaterMessageKind.ALIVE_PONG)
        with pytest.raises(ValidationError):
            message.payload = b"x"


@pytest.mark.unit
class TestPayloads:
    """Test payload encoding helpers."""

    def test_installation_data_defaults_to_application(self):
        data = InstallationData(
            host_bundle_path="/Applications/Example.app",
            relaunch_path="/Applications/Example.app",
            update_directory="/tmp/update",
            download_name="Example-2.0.zip",
        )
        assert data.installation_type is InstallationType.APPLICATION

    def test_installation_data_payload(self):
        data = InstallationData(
            host_bundle_path="/Applications/Example.app",
            relaunch_path="/Applications/Example.app",
            installation_type=InstallationType.GUIDED_PACKAGE,
            update_directory="/tmp/update",
            download_name="Example-2.0.pkg",
        )

        decoded = InstallationData.from_payload(data.to_payload())

        assert decoded == data
        assert json.loads(data.to_payload())["installation_type"] == "GuidedPackage"

    def test_download_name_must_be_plain(self):
        with pytest.raises(ValidationError):
            InstallationData(
                host_bundle_path="/Applications/Example.app",
                relaunch_path="/Applications/Example.app",
                update_directory="/tmp/update",
                download_name="../evil.zip",
            )

    def test_appcast_item_uses_archive_key(self):
        item = AppcastItemData(
            archive=ArchiveDescriptor(version="200", display_version="2.0", archive_name="Example-2.0.zip")
        )

        payload = item.to_payload("AppcastItemArchive")

        body = json.loads(payload)
        assert list(body) == ["AppcastItemArchive"]
        assert body["AppcastItemArchive"]["version"] == "200"
        assert AppcastItemData.from_payload(payload, "AppcastItemArchive") == item

    def test_appcast_item_missing_key(self):
        with pytest.raises(ValueError, match="OtherKey"):
            AppcastItemData.from_payload(b'{"AppcastItemArchive": {}}', "OtherKey")

    def test_extraction_progress_bounds(self):
        with pytest.raises(ValidationError):
            ExtractionProgress(fraction=1.5)
