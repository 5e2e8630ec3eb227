from .run import ExportResult, export_from_config
from .viewer import ExportArtifact, ReliefParams, ReliefViewer, ViewerActions

__all__ = [
    "ExportArtifact",
    "ExportResult",
    "ReliefParams",
    "ReliefViewer",
    "ViewerActions",
    "export_from_config",
]
