"""Status enums for the installation exchange lifecycle."""

from enum import Enum, IntEnum


class LifecycleState(str, Enum):
    """Exchange lifecycle states.

    State transitions:
    idle → awaitingInstallationData → extracting → validating → installingStage1
         → installingStage2 → installingStage3 → finished
                                   ↓
                                 failed

    idle / awaitingInstallationData → installingStage2 via ResumeInstallationToStage2
    """

    IDLE = "idle"
    AWAITING_INSTALLATION_DATA = "awaitingInstallationData"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    INSTALLING_STAGE1 = "installingStage1"
    INSTALLING_STAGE2 = "installingStage2"
    INSTALLING_STAGE3 = "installingStage3"
    FINISHED = "finished"
    FAILED = "failed"


class LauncherStatus(IntEnum):
    """Outcome of launching the installer process."""

    SUCCESS = 0
    CANCELED = 1
    AUTHORIZE_LATER = 3
    FAILURE = 4
