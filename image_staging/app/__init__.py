"""Qt-facing layer: bindable state objects for QML."""

from .state.staging_state import StagingState

__all__ = ["StagingState"]
